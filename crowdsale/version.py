"""
crowdsale.version — package version and the identity of the sale a config would deploy.

`version_metadata(cfg)` is what the `version` command prints: the package
version, the installed distribution version (they differ in an editable
checkout that has not been reinstalled), the ledger limits every amount is
checked against, and the token/admin identity that `simulate` deploys.
"""

from __future__ import annotations

import platform
from importlib import metadata
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from crowdsale.config import CrowdsaleConfig

__version__ = "0.1.0"

DIST_NAME = "crowdsale"


def installed_version() -> Optional[str]:
    """Version recorded in the installed distribution's metadata, if installed."""
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return None


def version_metadata(cfg: Optional["CrowdsaleConfig"] = None) -> Dict[str, Any]:
    from crowdsale.ledger import MAX_DECIMALS, U256_MAX

    meta: Dict[str, Any] = {
        "version": __version__,
        "installed": installed_version(),
        "python": platform.python_version(),
        "ledger": {"amount_bits": U256_MAX.bit_length(), "max_decimals": MAX_DECIMALS},
    }
    if cfg is not None:
        meta["token"] = {
            "name": cfg.token.name,
            "symbol": cfg.token.symbol,
            "decimals": cfg.token.decimals,
            "initial_supply": cfg.token.initial_supply,
        }
        meta["admin"] = cfg.admin
    return meta


__all__ = ["__version__", "installed_version", "version_metadata"]
