import copy
import json
import os
from typing import Any, Dict, Optional

import yaml

from defi_amm.utils.math_helpers import BPS_DENOMINATOR, DEFAULT_FEE_BPS

DEFAULT_CONFIG: Dict[str, Any] = {
    "simulation": {"steps": 100, "seed": None},
    "treasury": {"authority": "protocol"},
    "pools": [],
    "traders": [],
}

POOL_DEFAULTS: Dict[str, Any] = {
    "fee_bps": DEFAULT_FEE_BPS,
    "provider": "genesis-lp",
    "amount_a": 0,
    "amount_b": 0,
}

TRADER_DEFAULTS: Dict[str, Any] = {
    "balances": {},
    "max_trade_fraction": 0.01,
    "slippage_bps": 50,
    "seed": None,
}


def load_config(path: str) -> dict:
    """
    Read a YAML or JSON simulation config and merge it over the defaults.

    Parameters
    ----------
    path : str
        Path to a ``.yaml``, ``.yml`` or ``.json`` file.

    Returns
    -------
    dict
        The validated configuration (see :func:`build_config`).

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the extension is unsupported or the content is malformed.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    _, ext = os.path.splitext(path.lower())
    with open(path, "r") as f:
        if ext in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        elif ext == ".json":
            data = json.load(f)
        else:
            raise ValueError("Unsupported config extension. Use .yaml, .yml, or .json.")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Config file root must be a dictionary.")
    return build_config(data)


def build_config(overrides: Optional[dict] = None) -> dict:
    """
    Merge ``overrides`` over :data:`DEFAULT_CONFIG` and fill per-pool and
    per-trader defaults.

    Raises
    ------
    ValueError
        If a section has the wrong shape or a pool entry is incomplete.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    overrides = overrides or {}

    for section in ("simulation", "treasury"):
        value = overrides.get(section, {})
        if not isinstance(value, dict):
            raise ValueError(f"'{section}' must be a mapping.")
        config[section].update(value)

    pools = overrides.get("pools", [])
    if not isinstance(pools, list):
        raise ValueError("'pools' must be a list.")
    for entry in pools:
        if not isinstance(entry, dict) or "token_a" not in entry or "token_b" not in entry:
            raise ValueError("Each pool needs 'token_a' and 'token_b'.")
        pool_cfg = {**POOL_DEFAULTS, **entry}
        fee_bps = int(pool_cfg["fee_bps"])
        if not 0 <= fee_bps <= BPS_DENOMINATOR:
            raise ValueError(f"fee_bps must be within 0..{BPS_DENOMINATOR}, got {fee_bps}")
        pool_cfg["fee_bps"] = fee_bps
        pool_cfg["amount_a"] = int(pool_cfg["amount_a"])
        pool_cfg["amount_b"] = int(pool_cfg["amount_b"])
        config["pools"].append(pool_cfg)

    traders = overrides.get("traders", [])
    if not isinstance(traders, list):
        raise ValueError("'traders' must be a list.")
    for entry in traders:
        if not isinstance(entry, dict) or "name" not in entry:
            raise ValueError("Each trader needs a 'name'.")
        trader_cfg = {**TRADER_DEFAULTS, **entry}
        trader_cfg["balances"] = {str(k): int(v) for k, v in trader_cfg["balances"].items()}
        config["traders"].append(trader_cfg)

    return config
