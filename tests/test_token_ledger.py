import sys
from pathlib import Path

import pytest
from mesa import Model

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from defi_amm.agents.pool import PoolAgent
from defi_amm.agents.token_ledger import LedgerError, TokenLedgerAgent
from defi_amm.utils.math_helpers import U64_MAX


@pytest.fixture
def ledger():
    ledger = TokenLedgerAgent(model=Model())
    ledger.register_mint("USDC", "issuer")
    return ledger


def test_mint_transfer_and_burn(ledger):
    assert ledger.mint_to("USDC", "alice", 100, "issuer")
    assert ledger.get_mint_supply("USDC") == 100

    assert ledger.transfer_token("USDC", "alice", "bob", 40, "alice")
    assert ledger.get_token_balance("USDC", "alice") == 60
    assert ledger.get_token_balance("USDC", "bob") == 40

    assert ledger.burn("USDC", "bob", 15, "bob")
    assert ledger.get_token_balance("USDC", "bob") == 25
    assert ledger.get_mint_supply("USDC") == 85


def test_failed_actions_return_false(ledger):
    ledger.mint_to("USDC", "alice", 10, "issuer")
    assert not ledger.transfer_token("USDC", "alice", "bob", 11, "alice")
    assert not ledger.transfer_token("USDC", "alice", "bob", -1, "alice")
    assert not ledger.burn("USDC", "alice", 11, "alice")
    assert not ledger.mint_to("USDC", "alice", U64_MAX, "issuer")
    assert ledger.get_token_balance("USDC", "alice") == 10
    with pytest.raises(LedgerError):
        ledger.require(False, "transfer")


def test_signers_are_checked(ledger):
    ledger.mint_to("USDC", "alice", 10, "issuer")
    with pytest.raises(PermissionError):
        ledger.mint_to("USDC", "alice", 10, "alice")
    with pytest.raises(PermissionError):
        ledger.transfer_token("USDC", "alice", "mallory", 5, "mallory")
    with pytest.raises(PermissionError):
        ledger.burn("USDC", "alice", 5, "mallory")


def test_vault_accounts_need_the_pool_capability(ledger):
    pool = PoolAgent(model=Model(), token_a_id="SOL", token_b_id="USDC")
    ledger.register_vault_authority(pool.vault_authority)
    ledger.create_account("USDC", pool.vault_b, owner=pool.vault_authority)
    ledger.mint_to("USDC", pool.vault_b, 50, "issuer")

    with pytest.raises(PermissionError):
        ledger.transfer_token("USDC", pool.vault_b, "mallory", 10, pool.vault_authority)

    signer = pool.sign_for_vault()
    assert ledger.transfer_token("USDC", pool.vault_b, "alice", 10, signer)
    assert ledger.get_token_balance("USDC", "alice") == 10
    with pytest.raises(PermissionError):
        ledger.transfer_token("USDC", pool.vault_b, "alice", 10, signer)

    other = PoolAgent(model=Model(), token_a_id="ETH", token_b_id="USDC")
    with pytest.raises(PermissionError):
        ledger.transfer_token("USDC", pool.vault_b, "alice", 10, other.sign_for_vault())


def test_duplicate_registration_rejected(ledger):
    with pytest.raises(ValueError):
        ledger.register_mint("USDC", "issuer")
    ledger.create_account("USDC", "vault", owner="custodian")
    with pytest.raises(ValueError):
        ledger.create_account("USDC", "vault")
    with pytest.raises(ValueError):
        ledger.get_mint_supply("DAI")


def test_snapshot_restore_and_events(ledger):
    ledger.mint_to("USDC", "alice", 100, "issuer")
    ledger.emit("Funded", {"holder": "alice"})
    snap = ledger.snapshot()

    ledger.transfer_token("USDC", "alice", "bob", 70, "alice")
    ledger.step()
    ledger.emit("Moved", {"amount": 70})
    assert ledger.current_block == 1
    assert [name for name, _ in ledger.get_events()] == ["Funded", "Moved"]

    ledger.restore(snap)
    assert ledger.current_block == 0
    assert ledger.get_token_balance("USDC", "alice") == 100
    assert ledger.get_token_balance("USDC", "bob") == 0
    assert ledger.get_events(block=1) == []
    assert ledger.get_events(block=0) == [("Funded", {"holder": "alice"})]
