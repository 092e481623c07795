"""Conversation compression contract used during model switches."""

from typing import Awaitable, Callable

import structlog

from switchboard.inference.generators import estimate_tokens
from switchboard.models.types import SessionSnapshot

logger = structlog.get_logger(__name__)

# Maps a snapshot and a token budget to a snapshot that fits the budget.
Compressor = Callable[[SessionSnapshot, int], Awaitable[SessionSnapshot]]


async def passthrough_compressor(snapshot: SessionSnapshot, context_limit: int) -> SessionSnapshot:
    """Return the snapshot unchanged, warning when it will not fit."""
    estimated = estimate_tokens(snapshot.history)
    if estimated > context_limit:
        logger.warning(
            "history_exceeds_context_limit",
            estimated_tokens=estimated,
            context_limit=context_limit,
            turns=len(snapshot.history),
        )
    return snapshot
