import logging
import os
from typing import Optional, Union, Any

logger = logging.getLogger("grid_signer")

# Internal guard to avoid re-initialising logging repeatedly
_LOGGING_CONFIGURED = False

def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    env = os.getenv("LOG_LEVEL") or os.getenv("GRID_LOG_LEVEL")
    if env:
        resolved = logging.getLevelName(env.upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO

def setup_logging(log_level: Optional[Union[int, str]] = None) -> None:
    """Initialise console logging in an idempotent, dependency-safe way.

    - Configures root logger once with a sane format.
    - Attaches a StreamHandler to the app logger and disables propagation to prevent duplicates.
    - Respects a provided level, otherwise falls back to env vars or INFO.
    """
    global _LOGGING_CONFIGURED

    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    level = _resolve_level(log_level)

    if not _LOGGING_CONFIGURED:
        # Configure root just once; avoid 'force' to keep 3rd party handlers intact
        logging.basicConfig(level=level, format=fmt)
        _LOGGING_CONFIGURED = True

    logger.setLevel(level)
    logger.propagate = False
    if all(isinstance(h, logging.NullHandler) for h in logger.handlers):
        h = logging.StreamHandler()
        h.setLevel(level)
        h.setFormatter(logging.Formatter(fmt))
        logger.addHandler(h)


def short_hex(value: Optional[str], keep: int = 6) -> str:
    """Abbreviate an address or hash for log lines."""
    if not value:
        return "-"
    if len(value) <= 2 + keep * 2:
        return value
    return f"{value[:2 + keep]}..{value[-keep:]}"


async def close_session(session: Any) -> None:
    """Close an aiohttp session (or look-alike) if it is still open.

    Tests hand in simple fakes, so both coroutine and plain ``close``
    methods are accepted.
    """
    if not session:
        return
    if getattr(session, "closed", False):
        return
    close = getattr(session, "close", None)
    if close is None:
        return
    result = close()
    if hasattr(result, "__await__"):
        await result
