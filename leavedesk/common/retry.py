"""Transparent retry of leave transitions that lose an optimistic-lock race."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from leavedesk.common.exceptions import LedgerConflictError
from leavedesk.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Ledger write conflict on attempt %d, retrying: %s",
        state.attempt_number, exc,
    )


async def run_with_ledger_retry(
    db: AsyncSession,
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: Optional[int] = None,
    **kwargs: Any,
) -> T:
    """Run ``operation(db, *args, **kwargs)``, re-running it after a
    ``StaleDataError``.

    The session is rolled back before every retry so the next attempt
    re-reads the winning writer's state. When the bound is exhausted a
    ``LedgerConflictError`` (503) is raised.
    """
    attempts = max_attempts or settings.LEDGER_MAX_RETRIES

    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(StaleDataError),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            before_sleep=_log_retry,
        ):
            with attempt:
                try:
                    result = await operation(db, *args, **kwargs)
                except StaleDataError:
                    await db.rollback()
                    raise
    except RetryError as exc:
        logger.error(
            "Ledger write conflict persisted after %d attempt(s): %s",
            attempts, exc.last_attempt.exception(),
        )
        raise LedgerConflictError(attempts) from exc

    return result
