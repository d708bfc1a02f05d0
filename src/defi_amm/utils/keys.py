import hashlib

POOL_SEED = "pool"
VAULT_A_SEED = "vault_a"
VAULT_B_SEED = "vault_b"
VAULT_AUTH_SEED = "vault_authority"
LP_MINT_SEED = "lp_mint"
TREASURY_SEED = "treasury"


def derive_address(*seeds: str) -> str:
    """
    Derive a deterministic 32-character address from an ordered list of seeds.

    The same seeds always yield the same address, and the result fits the
    32-byte identity field of the binary records.
    """
    digest = hashlib.sha256()
    for seed in seeds:
        encoded = str(seed).encode("utf-8")
        # length prefix keeps ("ab", "c") and ("a", "bc") apart
        digest.update(len(encoded).to_bytes(4, "little"))
        digest.update(encoded)
    return digest.hexdigest()[:32]
