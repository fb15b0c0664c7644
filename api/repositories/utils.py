"""Repository utility functions for common database operations."""

import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Threshold for logging slow queries (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 500

P = ParamSpec("P")
R = TypeVar("R")


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to log slow repository operations and errors.

    Logs at WARNING level for queries exceeding SLOW_QUERY_THRESHOLD_MS.
    Logs at ERROR level for exceptions (re-raises after logging).

    Usage:
        @log_slow_query("certificate.get_by_id")
        async def get_by_id(self, certificate_id: str) -> Certificate | None:
            ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    "db.query.failed",
                    extra={
                        "db_operation": operation_name,
                        "db_duration_ms": round(duration_ms, 2),
                        "db_error_type": type(e).__name__,
                    },
                )
                raise
            duration_ms = (time.perf_counter() - start_time) * 1000
            if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                logger.warning(
                    "db.query.slow",
                    extra={
                        "db_operation": operation_name,
                        "db_duration_ms": round(duration_ms, 2),
                    },
                )
            return result

        return wrapper

    return decorator


async def insert_if_absent(
    db: AsyncSession,
    model: type[Any],
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING. Returns True if a row was inserted.

    The unique index decides the winner when concurrent transactions insert
    the same key, so callers can branch on the result without a prior read.

    Note:
        Does NOT commit. Caller owns the transaction.
    """
    bind = db.get_bind()
    dialect = bind.dialect.name if bind else ""

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        else:
            from sqlalchemy.dialects.sqlite import insert as dialect_insert

        key_columns = [getattr(model, name) for name in index_elements]
        stmt = (
            dialect_insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=index_elements)
            .returning(*key_columns)
        )
        result = await db.execute(stmt)
        return result.first() is not None

    # Other dialects: savepoint so a duplicate does not poison the transaction
    try:
        async with db.begin_nested():
            db.add(model(**values))
            await db.flush()
    except IntegrityError:
        return False
    return True
