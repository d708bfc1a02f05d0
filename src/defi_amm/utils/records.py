"""
Fixed-size binary records for pool and treasury state.

The layout mirrors the deployed account format: an 8-byte discriminator,
32-byte identity fields, then little-endian integers. Identities are stored as
UTF-8 padded with NUL bytes.
"""

import hashlib
import struct
from dataclasses import dataclass

IDENTITY_SIZE = 32

_POOL_LAYOUT = struct.Struct("<8s32s32s32s32s32s32s32sQQH")
_TREASURY_LAYOUT = struct.Struct("<8s32sQ")

POOL_RECORD_SIZE = _POOL_LAYOUT.size
TREASURY_RECORD_SIZE = _TREASURY_LAYOUT.size


def account_discriminator(name: str) -> bytes:
    """Return the 8-byte tag that prefixes every record of type ``name``."""
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:8]


POOL_DISCRIMINATOR = account_discriminator("Pool")
TREASURY_DISCRIMINATOR = account_discriminator("Treasury")


@dataclass(frozen=True)
class PoolRecord:
    authority: str
    token_a_id: str
    token_b_id: str
    vault_a: str
    vault_b: str
    vault_authority: str
    lp_mint: str
    reserve_a: int
    reserve_b: int
    fee_bps: int


@dataclass(frozen=True)
class TreasuryRecord:
    authority: str
    total_fees_collected: int


def _pack_identity(value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > IDENTITY_SIZE:
        raise ValueError(f"Identity {value!r} is longer than {IDENTITY_SIZE} bytes")
    if b"\x00" in raw:
        raise ValueError(f"Identity {value!r} contains a NUL byte")
    return raw.ljust(IDENTITY_SIZE, b"\x00")


def _unpack_identity(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8")


def _check_header(data: bytes, layout: struct.Struct, discriminator: bytes, name: str) -> tuple:
    if len(data) != layout.size:
        raise ValueError(f"{name} record must be {layout.size} bytes, got {len(data)}")
    fields = layout.unpack(data)
    if fields[0] != discriminator:
        raise ValueError(f"Record is not a {name} account")
    return fields[1:]


def encode_pool(record: PoolRecord) -> bytes:
    """Serialize a pool record. Raises ``ValueError`` on out-of-range fields."""
    try:
        return _POOL_LAYOUT.pack(
            POOL_DISCRIMINATOR,
            _pack_identity(record.authority),
            _pack_identity(record.token_a_id),
            _pack_identity(record.token_b_id),
            _pack_identity(record.vault_a),
            _pack_identity(record.vault_b),
            _pack_identity(record.vault_authority),
            _pack_identity(record.lp_mint),
            record.reserve_a,
            record.reserve_b,
            record.fee_bps,
        )
    except struct.error as exc:
        raise ValueError(f"Pool record field out of range: {exc}") from exc


def decode_pool(data: bytes) -> PoolRecord:
    fields = _check_header(data, _POOL_LAYOUT, POOL_DISCRIMINATOR, "Pool")
    identities = [_unpack_identity(raw) for raw in fields[:7]]
    reserve_a, reserve_b, fee_bps = fields[7:]
    return PoolRecord(*identities, reserve_a=reserve_a, reserve_b=reserve_b, fee_bps=fee_bps)


def encode_treasury(record: TreasuryRecord) -> bytes:
    try:
        return _TREASURY_LAYOUT.pack(
            TREASURY_DISCRIMINATOR,
            _pack_identity(record.authority),
            record.total_fees_collected,
        )
    except struct.error as exc:
        raise ValueError(f"Treasury record field out of range: {exc}") from exc


def decode_treasury(data: bytes) -> TreasuryRecord:
    authority, total = _check_header(data, _TREASURY_LAYOUT, TREASURY_DISCRIMINATOR, "Treasury")
    return TreasuryRecord(authority=_unpack_identity(authority), total_fees_collected=total)
