from typing import Any, Dict, List, Optional, Set, Tuple

from mesa import Agent

from defi_amm.agents.pool import VaultAuthority
from defi_amm.utils.math_helpers import U64_MAX


class LedgerError(Exception):
    """A transfer, mint or burn was refused by the token ledger."""


class TokenLedgerAgent(Agent):
    """
    In-memory token layer backing the AMM: mints, token accounts and an event log.

    Accounts are keyed by ``(asset, holder)`` and each has an owner whose
    signature is required to move funds out of it. Owners are either plain
    identities or pool vault authorities, which sign with a
    :class:`~defi_amm.agents.pool.VaultAuthority`.

    Supports:
        - Mint registration with a mint authority and tracked supply
        - u64-bounded balances and transfers
        - Per-block event logging
        - Snapshots for all-or-nothing operations
    """

    def __init__(self, model):
        """Initialize an empty ledger at block 0."""
        super().__init__(model)
        self.current_block: int = 0
        self.mints: Dict[str, Dict[str, Any]] = {}
        self.token_balances: Dict[Tuple[str, Any], int] = {}
        self.account_owners: Dict[Tuple[str, Any], Any] = {}
        self.event_logs: Dict[int, List[Tuple[str, Any]]] = {}
        self.vault_authorities: Set[str] = set()

    def register_mint(self, mint: str, authority: Any) -> None:
        """Register a new asset whose supply only ``authority`` may expand."""
        if mint in self.mints:
            raise ValueError(f"Mint {mint} already registered")
        self.mints[mint] = {"authority": authority, "supply": 0}

    def create_account(self, asset: str, holder: Any, owner: Any = None) -> None:
        """Open a zero-balance token account; ``owner`` defaults to the holder."""
        key = (asset, holder)
        if key in self.account_owners:
            raise ValueError(f"Account {holder} for {asset} already exists")
        self.account_owners[key] = holder if owner is None else owner
        self.token_balances[key] = 0

    def _ensure_account(self, asset: str, holder: Any) -> Tuple[str, Any]:
        key = (asset, holder)
        if key not in self.account_owners:
            self.account_owners[key] = holder
            self.token_balances[key] = 0
        return key

    def get_owner(self, asset: str, holder: Any) -> Any:
        return self.account_owners.get((asset, holder), holder)

    def get_token_balance(self, asset: str, holder: Any) -> int:
        """Return token balance of a holder for a given asset."""
        return self.token_balances.get((asset, holder), 0)

    def get_mint_supply(self, mint: str) -> int:
        if mint not in self.mints:
            raise ValueError(f"Unknown mint {mint}")
        return self.mints[mint]["supply"]

    def register_vault_authority(self, key: str) -> None:
        """Require a :class:`VaultAuthority` capability to sign for ``key``."""
        self.vault_authorities.add(key)

    def _check_signer(self, required: Any, signer: Any) -> None:
        """Authority check: the signer must be ``required`` or a live vault authority for it."""
        if isinstance(signer, VaultAuthority):
            if signer.key != required:
                raise PermissionError(f"Vault authority {signer.key} cannot sign for {required}")
            signer.consume()
            return
        if required in self.vault_authorities:
            raise PermissionError(f"{required} only signs through its vault authority")
        if signer != required:
            raise PermissionError(f"{signer!r} cannot sign for {required!r}")

    def transfer_token(self, asset: str, frm: Any, to: Any, amount: int, signer: Any) -> bool:
        """
        Move ``amount`` of ``asset`` between two holders.

        Returns ``False`` when the amount is negative, the sender is short or
        the receiver would exceed the u64 range. Raises ``PermissionError``
        when ``signer`` does not own the sending account.
        """
        self._check_signer(self.get_owner(asset, frm), signer)
        key_from = (asset, frm)
        if amount < 0 or self.token_balances.get(key_from, 0) < amount:
            return False
        key_to = self._ensure_account(asset, to)
        if self.token_balances[key_to] + amount > U64_MAX:
            return False
        self.token_balances[key_from] -= amount
        self.token_balances[key_to] += amount
        return True

    def mint_to(self, mint: str, to: Any, amount: int, signer: Any) -> bool:
        """Create ``amount`` new units of ``mint`` in ``to``'s account."""
        if mint not in self.mints:
            raise ValueError(f"Unknown mint {mint}")
        self._check_signer(self.mints[mint]["authority"], signer)
        if amount < 0 or self.mints[mint]["supply"] + amount > U64_MAX:
            return False
        key_to = self._ensure_account(mint, to)
        self.token_balances[key_to] += amount
        self.mints[mint]["supply"] += amount
        return True

    def burn(self, mint: str, frm: Any, amount: int, signer: Any) -> bool:
        """Destroy ``amount`` units held by ``frm``; the account owner must sign."""
        if mint not in self.mints:
            raise ValueError(f"Unknown mint {mint}")
        self._check_signer(self.get_owner(mint, frm), signer)
        key_from = (mint, frm)
        if amount < 0 or self.token_balances.get(key_from, 0) < amount:
            return False
        self.token_balances[key_from] -= amount
        self.mints[mint]["supply"] -= amount
        return True

    def require(self, ok: bool, action: str) -> None:
        """Raise :class:`LedgerError` when a ledger action reported failure."""
        if not ok:
            raise LedgerError(f"{action} failed")

    def _log_event(self, block: int, event_name: str, payload: Any) -> None:
        """Store an event in the event log for a specific block."""
        self.event_logs.setdefault(block, []).append((event_name, payload))

    def emit(self, event_name: str, payload: Any) -> None:
        self._log_event(self.current_block, event_name, payload)

    def get_events(self, block: Optional[int] = None) -> List[Tuple[str, Any]]:
        """Get all events from a block or the full ledger."""
        if block is None:
            all_events = []
            for b in sorted(self.event_logs):
                all_events.extend(self.event_logs[b])
            return all_events
        return self.event_logs.get(block, [])

    def snapshot(self) -> Dict[str, Any]:
        """Capture balances, supplies and events so a failed operation can be undone."""
        return {
            "current_block": self.current_block,
            "mints": {m: dict(info) for m, info in self.mints.items()},
            "token_balances": self.token_balances.copy(),
            "account_owners": self.account_owners.copy(),
            "event_logs": {b: list(ev) for b, ev in self.event_logs.items()},
        }

    def restore(self, snap: Dict[str, Any]) -> None:
        """Return the ledger to a state captured by :meth:`snapshot`."""
        self.current_block = snap["current_block"]
        self.mints = {m: dict(info) for m, info in snap["mints"].items()}
        self.token_balances = snap["token_balances"].copy()
        self.account_owners = snap["account_owners"].copy()
        self.event_logs = {b: list(ev) for b, ev in snap["event_logs"].items()}

    def step(self) -> None:
        """Advance the ledger one block."""
        self.current_block += 1
