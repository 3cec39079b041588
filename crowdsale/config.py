from __future__ import annotations
"""
crowdsale.config — configuration for a token crowdsale

Covers:
- Token parameters for a freshly deployed sale token (name, symbol, decimals, supply)
- Sale parameters handed to `Crowdsale.start` (duration, price, inventory, bounds)
- Administrator identity and log level used by the CLI

Amounts are integer base units (no floats). Identities are written either as
plain text (`admin`) or as 0x-prefixed hex (`0x61646d696e`).

Environment overrides (all optional; sensible defaults provided):

  # Token
  CROWDSALE_TOKEN_NAME="Crowdsale Token"
  CROWDSALE_TOKEN_SYMBOL=CST
  CROWDSALE_TOKEN_DECIMALS=18
  CROWDSALE_TOKEN_INITIAL_SUPPLY=1_000_000

  # Sale
  CROWDSALE_DURATION=86400
  CROWDSALE_UNIT_PRICE=1
  CROWDSALE_AVAILABLE_TOKENS=500_000
  CROWDSALE_MIN_CONTRIBUTION=1
  CROWDSALE_MAX_CONTRIBUTION=10_000

  # Operator
  CROWDSALE_ADMIN=admin
  CROWDSALE_LOG_LEVEL=INFO

You can also load from a JSON or YAML file via `CROWDSALE_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional
import json
import logging
import os
from pathlib import Path

import yaml

from crowdsale.ledger import MAX_DECIMALS, is_printable_ascii


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def parse_identity(text: str) -> bytes:
    """'0x…' → raw bytes from hex; anything else → its UTF-8 encoding."""
    s = str(text).strip()
    if s.lower().startswith("0x"):
        try:
            raw = bytes.fromhex(s[2:])
        except ValueError as e:
            raise ValueError(f"Invalid hex identity: {text!r}") from e
    else:
        raw = s.encode("utf-8")
    if not raw:
        raise ValueError("Identity must be non-empty.")
    return raw


# -------------------------- Data classes --------------------------


@dataclass
class TokenParams:
    """Metadata and supply of the token a deployed sale creates for itself."""
    name: str = "Crowdsale Token"
    symbol: str = "CST"
    decimals: int = 18
    initial_supply: int = 1_000_000

    def validate(self) -> None:
        if not (1 <= len(self.name) <= 64) or not is_printable_ascii(self.name.encode("utf-8")):
            raise ValueError(f"token name must be 1..64 printable ASCII chars (got {self.name!r}).")
        if not (1 <= len(self.symbol) <= 11) or not is_printable_ascii(self.symbol.encode("utf-8")):
            raise ValueError(f"token symbol must be 1..11 printable ASCII chars (got {self.symbol!r}).")
        if not (0 <= self.decimals <= MAX_DECIMALS):
            raise ValueError(f"decimals must be between 0 and {MAX_DECIMALS} (got {self.decimals}).")
        if self.initial_supply <= 0:
            raise ValueError("initial_supply must be positive.")


@dataclass
class SaleParams:
    """Arguments for `Crowdsale.start`; validated with the same rules it applies."""
    duration: int = 86_400              # seconds
    unit_price: int = 1                 # tokens per unit of value
    available_tokens: int = 500_000
    min_contribution: int = 1
    max_contribution: int = 10_000

    def validate(self, total_supply: Optional[int] = None) -> None:
        if self.duration <= 0:
            raise ValueError("duration must be positive.")
        if self.unit_price <= 0:
            raise ValueError("unit_price must be positive.")
        if self.available_tokens <= 0:
            raise ValueError("available_tokens must be positive.")
        if total_supply is not None and self.available_tokens > total_supply:
            raise ValueError(
                f"available_tokens ({self.available_tokens}) exceeds token supply ({total_supply})."
            )
        if self.min_contribution <= 0:
            raise ValueError("min_contribution must be positive.")
        if not (self.min_contribution <= self.max_contribution <= self.available_tokens):
            raise ValueError(
                "max_contribution must be between min_contribution and available_tokens "
                f"(got {self.max_contribution})."
            )


@dataclass
class CrowdsaleConfig:
    """Top-level configuration container."""
    token: TokenParams = field(default_factory=TokenParams)
    sale: SaleParams = field(default_factory=SaleParams)
    admin: str = "admin"
    log_level: str = "INFO"

    def validate(self) -> None:
        self.token.validate()
        self.sale.validate(total_supply=self.token.initial_supply)
        parse_identity(self.admin)
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)} (got {self.log_level!r}).")

    @property
    def admin_id(self) -> bytes:
        return parse_identity(self.admin)

    @property
    def log_level_no(self) -> int:
        return getattr(logging, self.log_level.upper())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v


def from_env(base: Optional[CrowdsaleConfig] = None, prefix: str = "CROWDSALE_") -> CrowdsaleConfig:
    """
    Build a CrowdsaleConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or CrowdsaleConfig()

    token = TokenParams(
        name=_getenv_str(f"{prefix}TOKEN_NAME", cfg.token.name),
        symbol=_getenv_str(f"{prefix}TOKEN_SYMBOL", cfg.token.symbol),
        decimals=_getenv_int(f"{prefix}TOKEN_DECIMALS", cfg.token.decimals),
        initial_supply=_getenv_int(f"{prefix}TOKEN_INITIAL_SUPPLY", cfg.token.initial_supply),
    )
    sale = SaleParams(
        duration=_getenv_int(f"{prefix}DURATION", cfg.sale.duration),
        unit_price=_getenv_int(f"{prefix}UNIT_PRICE", cfg.sale.unit_price),
        available_tokens=_getenv_int(f"{prefix}AVAILABLE_TOKENS", cfg.sale.available_tokens),
        min_contribution=_getenv_int(f"{prefix}MIN_CONTRIBUTION", cfg.sale.min_contribution),
        max_contribution=_getenv_int(f"{prefix}MAX_CONTRIBUTION", cfg.sale.max_contribution),
    )

    new_cfg = CrowdsaleConfig(
        token=token,
        sale=sale,
        admin=_getenv_str(f"{prefix}ADMIN", cfg.admin),
        log_level=_getenv_str(f"{prefix}LOG_LEVEL", cfg.log_level).upper(),
    )
    new_cfg.validate()
    return new_cfg


def _int_field(name: str, v: Any) -> int:
    if isinstance(v, (bool, float)):
        raise ValueError(f"{name} must be an integer (got {v!r}).")
    try:
        return int(str(v).replace("_", "")) if isinstance(v, str) else int(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer (got {v!r}).") from e


def from_mapping(data: Dict[str, Any]) -> CrowdsaleConfig:
    """Build a CrowdsaleConfig from a parsed JSON/YAML document (missing keys → defaults)."""
    token = data.get("token") or {}
    sale = data.get("sale") or {}
    defaults = CrowdsaleConfig()

    cfg = CrowdsaleConfig(
        token=TokenParams(
            name=str(token.get("name", defaults.token.name)),
            symbol=str(token.get("symbol", defaults.token.symbol)),
            decimals=_int_field("decimals", token.get("decimals", defaults.token.decimals)),
            initial_supply=_int_field("initial_supply", token.get("initial_supply", defaults.token.initial_supply)),
        ),
        sale=SaleParams(
            duration=_int_field("duration", sale.get("duration", defaults.sale.duration)),
            unit_price=_int_field("unit_price", sale.get("unit_price", defaults.sale.unit_price)),
            available_tokens=_int_field("available_tokens", sale.get("available_tokens", defaults.sale.available_tokens)),
            min_contribution=_int_field("min_contribution", sale.get("min_contribution", defaults.sale.min_contribution)),
            max_contribution=_int_field("max_contribution", sale.get("max_contribution", defaults.sale.max_contribution)),
        ),
        admin=str(data.get("admin", defaults.admin)),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
    )
    cfg.validate()
    return cfg


def from_file(path: str | os.PathLike[str]) -> CrowdsaleConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"Config file {p} must contain a mapping at the top level.")
    return from_mapping(data)


def load() -> CrowdsaleConfig:
    """
    Load configuration using the following precedence:
      1) File at $CROWDSALE_CONFIG_FILE (JSON/YAML)
      2) Environment variables (CROWDSALE_*), applied on top of defaults or file values
    """
    file_path = os.getenv("CROWDSALE_CONFIG_FILE")
    base = from_file(file_path) if file_path else CrowdsaleConfig()
    return from_env(base=base)


# -------------------------- Utilities --------------------------


def pretty(cfg: Optional[CrowdsaleConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "TokenParams",
    "SaleParams",
    "CrowdsaleConfig",
    "parse_identity",
    "from_env",
    "from_mapping",
    "from_file",
    "load",
    "pretty",
]
