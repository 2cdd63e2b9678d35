"""
Optimistic-lock retry combinator.

Runs a read -> compute -> conditional-write cycle until the write lands or the
attempt budget runs out. The combinator knows nothing about mastery records,
so it can be exercised with plain callables.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from recall.core.errors import ConcurrencyExhaustedError, InvalidInputError

S = TypeVar("S")
R = TypeVar("R")


async def optimistic_retry(
    read: Callable[[], Awaitable[S]],
    compute: Callable[[S], R],
    write: Callable[[S, R], Awaitable[bool | int]],
    max_attempts: int,
    key: tuple[str, str],
) -> tuple[R, int]:
    """
    Apply ``compute`` to freshly read state and persist it with ``write``.

    ``write`` receives the snapshot it was computed from so it can condition on
    that snapshot's version. A falsy return (``False`` or 0 affected rows) means
    another writer got there first; the whole cycle is repeated against a new
    read. Exceptions from ``read`` or ``write`` propagate untouched.

    Args:
        read: Fetch the current state (may be None for "absent")
        compute: Derive the new value from the current state
        write: Persist the new value, conditioned on the state it came from
        max_attempts: Total cycles allowed before giving up
        key: (user_id, concept_id) used for logging and the raised error

    Returns:
        (computed value that was written, attempts used)

    Raises:
        ConcurrencyExhaustedError: every attempt lost the version race
    """
    if max_attempts < 1:
        raise InvalidInputError(f"max_attempts must be >= 1, got {max_attempts}")

    user_id, concept_id = key
    for attempt in range(1, max_attempts + 1):
        current = await read()
        new_value = compute(current)
        if await write(current, new_value):
            if attempt > 1:
                logger.debug(f"Write for {user_id}/{concept_id} landed on attempt {attempt}")
            return new_value, attempt

        logger.debug(f"Version conflict for {user_id}/{concept_id} (attempt {attempt}/{max_attempts})")

    logger.warning(f"Giving up on {user_id}/{concept_id} after {max_attempts} conflicting attempts")
    raise ConcurrencyExhaustedError(user_id, concept_id, max_attempts)
