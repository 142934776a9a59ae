import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class BestEffortResult:
    """Outcome of a secondary call. Callers read it for logging and reporting only."""

    label: str
    ok: bool
    value: Any = None
    error: str | None = None


async def run_best_effort(label: str, call: Awaitable[Any]) -> BestEffortResult:
    """Await a secondary upstream call; failures are logged and never raised."""
    try:
        value = await call
    except Exception as e:
        logger.warning("Best-effort step %r failed: %s: %s", label, type(e).__name__, e)
        return BestEffortResult(label=label, ok=False, error=f"{type(e).__name__}: {e}")
    return BestEffortResult(label=label, ok=True, value=value)
