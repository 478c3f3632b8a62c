from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from folio.ledger.models import EPSILON

ENV_PREFIX = "FOLIO_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger.

    Attributes:
        epsilon: Relative tolerance for float comparisons
        max_apply_retries: Re-reads allowed when a conditional write loses a race
        data_dir: Directory for the JSON stores; None keeps everything in memory
        log_level: Level name passed to configure_logging
    """
    epsilon: float = EPSILON
    max_apply_retries: int = 3
    data_dir: Optional[Path] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "LedgerSettings":
        """Build settings from FOLIO_* environment variables.

        Raises:
            ValueError: If a numeric variable does not parse or is out of range
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        epsilon = float(env.get(f"{ENV_PREFIX}EPSILON", defaults.epsilon))
        if not 0.0 < epsilon < 1.0:
            raise ValueError(f"{ENV_PREFIX}EPSILON must be between 0 and 1, got {epsilon}")
        retries = int(env.get(f"{ENV_PREFIX}MAX_APPLY_RETRIES", defaults.max_apply_retries))
        if retries < 0:
            raise ValueError(f"{ENV_PREFIX}MAX_APPLY_RETRIES must not be negative, got {retries}")

        data_dir = env.get(f"{ENV_PREFIX}DATA_DIR")
        return cls(
            epsilon=epsilon,
            max_apply_retries=retries,
            data_dir=Path(data_dir).expanduser() if data_dir else None,
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the package logger."""
    logger = logging.getLogger("folio")
    logger.setLevel(level)
    if not any(getattr(h, "_folio_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._folio_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
