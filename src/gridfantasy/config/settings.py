"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


logger = logging.getLogger(__name__)

_DB_PATH_ENV = "GRIDFANTASY_DB_PATH"
_BATCH_LIMIT_ENV = "GRIDFANTASY_BATCH_LIMIT"
_WORKERS_ENV = "GRIDFANTASY_WORKERS"
_API_TOKENS_ENV = "GRIDFANTASY_API_TOKENS"
_LOG_LEVEL_ENV = "GRIDFANTASY_LOG_LEVEL"

# One below the store's 500-operation transaction ceiling.
BATCH_OP_LIMIT_DEFAULT = 499
WORKERS_DEFAULT = 1
DEFAULT_DB_PATH = Path("gridfantasy.sqlite")


def _env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def parse_api_tokens(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``token:uid`` pairs separated by commas."""

    tokens: Dict[str, str] = {}
    if not raw:
        return tokens
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" not in entry:
            logger.warning("Ignoring API token entry without uid: %r", entry)
            continue
        token, uid = entry.split(":", 1)
        token, uid = token.strip(), uid.strip()
        if token and uid:
            tokens[token] = uid
    return tokens


@dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    batch_op_limit: int = BATCH_OP_LIMIT_DEFAULT
    workers: int = WORKERS_DEFAULT
    api_tokens: Dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, *, db_path: Path | str | None = None) -> "Settings":
        env_db = os.getenv(_DB_PATH_ENV)
        if db_path is not None:
            resolved = Path(db_path)
        elif env_db:
            resolved = Path(env_db)
        else:
            resolved = DEFAULT_DB_PATH
        return cls(
            db_path=resolved,
            batch_op_limit=_env_int(_BATCH_LIMIT_ENV, BATCH_OP_LIMIT_DEFAULT, min_value=1, max_value=499),
            workers=_env_int(_WORKERS_ENV, WORKERS_DEFAULT, min_value=1),
            api_tokens=parse_api_tokens(os.getenv(_API_TOKENS_ENV)),
            log_level=os.getenv(_LOG_LEVEL_ENV, "INFO").upper(),
        )
