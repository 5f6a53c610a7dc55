"""Base Repository Pattern

Provides a base class for control store repositories with session handling
and Prometheus latency tracking for every decorated operation.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any, TypeVar, cast

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leaveadmin.core.metrics import REPOSITORY_OPERATION_LATENCY

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MonitoredRepository:
    """Base repository class with session factory and latency monitoring."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize the base repository.

        Args:
            session_factory: Async session factory bound to the control store
        """
        self._session_factory = session_factory
        self._repository_name = self.__class__.__name__

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get a database session."""
        async with self._session_factory() as session:
            yield session

    @staticmethod
    def _monitored_operation(operation_name: str) -> Callable:
        """Decorator for monitoring repository operations.

        Args:
            operation_name: Name of the operation to monitor

        Returns:
            Decorator function
        """

        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            @wraps(func)
            async def async_wrapper(self: "MonitoredRepository", *args: Any, **kwargs: Any) -> T:
                start = time.perf_counter()
                try:
                    return await func(self, *args, **kwargs)
                finally:
                    REPOSITORY_OPERATION_LATENCY.labels(
                        repository=self._repository_name, operation=operation_name
                    ).observe(time.perf_counter() - start)

            if not asyncio.iscoroutinefunction(func):
                msg = f"{func.__qualname__} must be a coroutine function to be monitored"
                raise TypeError(msg)
            return cast("Callable[..., T]", async_wrapper)

        return decorator
