"""
Engine configuration.

Values come from the environment (optionally a `.env` file):

    LODGING_TAX_CURRENCY      ISO currency label, display only (default INR)
    LODGING_TAX_MINOR_UNITS   decimal places of the minor unit (default 2)
    LODGING_TAX_MAX_WORKERS   threads used for batch evaluation (default 4)
    LODGING_TAX_LOG_LEVEL     logging level name for the CLI (default WARNING)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

_ENV_PREFIX = "LODGING_TAX_"


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime settings for the tax engine.

    Attributes:
        currency: Currency label echoed in reports.
        minor_unit_exponent: Digits after the decimal point every amount is
            rounded to (2 for cents/paise, 0 for JPY, 3 for KWD).
        max_workers: Thread pool size for batch evaluation.
        log_level: Logging level name used when the CLI configures logging.
    """

    currency: str = "INR"
    minor_unit_exponent: int = 2
    max_workers: int = 4
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if not 0 <= self.minor_unit_exponent <= 6:
            raise ValueError(
                f"minor_unit_exponent must be between 0 and 6, got {self.minor_unit_exponent}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"unknown log level {self.log_level!r}")

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv: bool = True,
    ) -> "EngineConfig":
        """Build a config from environment variables, falling back to defaults."""
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        def _int(name: str, default: int) -> int:
            raw = environ.get(_ENV_PREFIX + name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from None

        return cls(
            currency=environ.get(_ENV_PREFIX + "CURRENCY", cls.currency) or cls.currency,
            minor_unit_exponent=_int("MINOR_UNITS", cls.minor_unit_exponent),
            max_workers=_int("MAX_WORKERS", cls.max_workers),
            log_level=environ.get(_ENV_PREFIX + "LOG_LEVEL", cls.log_level) or cls.log_level,
        )
