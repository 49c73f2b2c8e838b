"""Commit retry policy with tenacity.

This module provides:
- commit_with_retry: Run a table commit, retrying optimistic-concurrency conflicts

A commit that keeps losing the race is surfaced as CommitConflictError once
the attempts are exhausted; it is never dropped.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import TypeVar

from pyiceberg.exceptions import CommitFailedException
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from floe_maintenance.config import RetryConfig
from floe_maintenance.errors import CommitConflictError
from floe_maintenance.observability import get_logger

R = TypeVar("R")

# Exceptions that mean "another writer committed first"
DEFAULT_RETRY_EXCEPTIONS: tuple[type[Exception], ...] = (CommitFailedException,)


def commit_with_retry(
    func: Callable[[], R],
    config: RetryConfig,
    *,
    table: str,
    operation: str,
    retry_exceptions: tuple[type[Exception], ...] | None = None,
) -> R:
    """Run a commit callable, retrying on commit conflicts.

    The callable must re-read table state on every call, so a retried attempt
    is applied on top of the concurrent writer's snapshot.

    Args:
        func: Zero-argument callable performing the commit.
        config: RetryConfig with retry policy settings.
        table: Table name for logging and the raised error.
        operation: Maintenance operation name for logging and the raised error.
        retry_exceptions: Exception types that trigger retry.
            Defaults to pyiceberg's CommitFailedException.

    Returns:
        Whatever func returns.

    Raises:
        CommitConflictError: If every attempt failed with a retried exception.

    Example:
        >>> commit_with_retry(lambda: tx.commit_transaction(), RetryConfig(),
        ...                   table="db.events", operation="retention")
    """
    exceptions = retry_exceptions or DEFAULT_RETRY_EXCEPTIONS
    logger = get_logger()
    last_exception: Exception | None = None

    try:
        for attempt_state in Retrying(
            retry=retry_if_exception_type(exceptions),
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_exponential_jitter(
                initial=config.initial_wait_seconds,
                max=config.max_wait_seconds,
                jitter=config.jitter_seconds,
            ),
            reraise=False,
        ):
            with attempt_state:
                attempt = attempt_state.retry_state.attempt_number
                try:
                    return func()
                except exceptions as exc:
                    last_exception = exc
                    if attempt < config.max_attempts:
                        logger.warning(
                            "commit_retry",
                            table=table,
                            operation=operation,
                            attempt=attempt,
                            max_attempts=config.max_attempts,
                            wait_seconds=round(_calculate_wait_time(config, attempt), 2),
                            error=str(exc),
                        )
                    raise
    except RetryError:
        logger.error(
            "commit_retries_exhausted",
            table=table,
            operation=operation,
            max_attempts=config.max_attempts,
        )
        raise CommitConflictError(
            table,
            operation=operation,
            cause=str(last_exception) if last_exception else None,
        ) from last_exception

    raise RuntimeError("Unexpected retry state")  # pragma: no cover


def _calculate_wait_time(config: RetryConfig, attempt: int) -> float:
    """Approximate the wait before the next attempt (for logging).

    Uses exponential backoff: initial * 2^(attempt-1) + jitter
    """
    base_wait = config.initial_wait_seconds * (2 ** (attempt - 1))
    jitter = random.uniform(0, config.jitter_seconds)  # noqa: S311
    return min(base_wait + jitter, config.max_wait_seconds)
