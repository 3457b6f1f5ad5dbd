"""
EditionLedger configuration: Lenient and Strict modes.

Lenient mode: listings are accepted without checking that the seller holds
              an unlisted edition, and bids are accepted without a balance
              check. Both are re-validated at settlement time.
Strict mode:  listings must be backed by an owned, unlisted edition and
              bids must be funded when placed.

Settlement correctness never depends on the mode. Only the eagerness of
validation at listing and bid creation changes.
"""

import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml

from editionledger.core.exceptions import ConfigError


MODE_ENV_VAR   = "EDITIONLEDGER_MODE"
CONFIG_ENV_VAR = "EDITIONLEDGER_CONFIG"


class MarketMode(Enum):
    LENIENT = "lenient"
    STRICT  = "strict"


@dataclass(frozen=True)
class MarketConfig:
    mode:                              MarketMode = MarketMode.LENIENT
    require_owned_edition_for_listing: bool = False
    require_funded_bids:               bool = False
    lock_timeout:                      float = 0.25
    lock_attempts:                     int = 8
    lock_backoff:                      float = 0.01
    starting_credits:                  int = 0
    mint_fee:                          int = 0
    treasury_account:                  str = "treasury"
    log_path:                          Optional[str] = None

    # ── Factories ─────────────────────────────────────────────

    @classmethod
    def lenient(cls, **overrides) -> "MarketConfig":
        return cls(mode=MarketMode.LENIENT, **overrides)

    @classmethod
    def strict(cls, **overrides) -> "MarketConfig":
        values = {
            "require_owned_edition_for_listing": True,
            "require_funded_bids":               True,
        }
        values.update(overrides)
        return cls(mode=MarketMode.STRICT, **values)

    @classmethod
    def from_dict(cls, data: dict) -> "MarketConfig":
        """
        Build a config from a plain mapping.

        "mode" selects the base preset; every other key overrides a field.
        Unknown keys raise ConfigError.
        """
        data = dict(data or {})
        mode_name = str(data.pop("mode", MarketMode.LENIENT.value)).lower()
        try:
            mode = MarketMode(mode_name)
        except ValueError:
            raise ConfigError("Unknown market mode", {"mode": mode_name})

        known = {f.name for f in fields(cls)} - {"mode"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError("Unknown configuration keys", {"keys": ",".join(unknown)})

        base = cls.strict() if mode is MarketMode.STRICT else cls.lenient()
        config = replace(base, **data)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "MarketConfig":
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read config file: {exc}", {"path": str(path)}) from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML: {exc}", {"path": str(path)}) from exc
        if data is not None and not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping", {"path": str(path)})
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls) -> "MarketConfig":
        """
        EDITIONLEDGER_CONFIG (a YAML path) wins when set.
        Otherwise EDITIONLEDGER_MODE picks a preset. Defaults to lenient.
        """
        config_path = os.environ.get(CONFIG_ENV_VAR)
        if config_path:
            return cls.from_yaml(Path(config_path))
        return cls.from_dict({"mode": os.environ.get(MODE_ENV_VAR, "lenient")})

    # ── Validation ────────────────────────────────────────────

    def validate(self) -> None:
        if self.lock_timeout <= 0:
            raise ConfigError("lock_timeout must be positive", {"lock_timeout": self.lock_timeout})
        if self.lock_attempts < 1:
            raise ConfigError("lock_attempts must be at least 1", {"lock_attempts": self.lock_attempts})
        if self.lock_backoff < 0:
            raise ConfigError("lock_backoff must not be negative", {"lock_backoff": self.lock_backoff})
        if self.starting_credits < 0:
            raise ConfigError("starting_credits must not be negative")
        if self.mint_fee < 0:
            raise ConfigError("mint_fee must not be negative")
        if not self.treasury_account:
            raise ConfigError("treasury_account must not be empty")
