"""User id providers for the Mixpanel analytics client.

A provider exposes the current user id synchronously. It can wrap a getter,
follow an async stream of ids, read from storage, generate a uuid, etc.

Usage:
    from mixpanel_analytics.user_ids import user_ids_of_getter, user_ids_of_stream

    provider = user_ids_of_getter(lambda: session.user_id)

    async def ids():
        async for user in auth.changes():
            yield user.id

    provider = user_ids_of_stream(ids())
"""

import asyncio
import logging
from typing import AsyncIterable, Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class UserIdProvider(Protocol):
    """Protocol for the source of the current user id.

    Implementations must provide:
    - user_id: the current id, or None when there is none yet
    - dispose(): release any underlying subscription
    """

    @property
    def user_id(self) -> Optional[str]:
        ...

    async def dispose(self) -> None:
        ...


class UserIdGetter:
    """Provider that calls a getter every time the id is needed."""

    def __init__(self, getter: Callable[[], Optional[str]]):
        if getter is None:
            raise ValueError("getter must not be None")
        self.getter = getter

    @property
    def user_id(self) -> Optional[str]:
        return self.getter()

    async def dispose(self) -> None:
        pass


class StreamUserIds:
    """Provider that remembers the latest id emitted by an async stream.

    The stream is consumed by a background task started on construction (or
    on first access when no event loop was running at construction). Until
    the stream emits, ``user_id`` is None. Errors raised by the stream are
    logged and stop the subscription; the last seen id is kept.
    """

    def __init__(self, user_ids: AsyncIterable[Optional[str]]):
        if user_ids is None:
            raise ValueError("user_ids stream must not be None")
        self._user_ids = user_ids
        self._user_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._disposed = False
        self._subscribe()

    @property
    def user_id(self) -> Optional[str]:
        self._subscribe()
        return self._user_id

    def _subscribe(self) -> None:
        if self._task is not None or self._disposed:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        try:
            async for user_id in self._user_ids:
                self._user_id = user_id
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"User id stream failed: {e}", exc_info=True)

    async def dispose(self) -> None:
        self._disposed = True
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


def user_ids_of_getter(getter: Callable[[], Optional[str]]) -> UserIdProvider:
    """Create a provider backed by a getter function."""
    return UserIdGetter(getter)


def user_ids_of_stream(user_ids: AsyncIterable[Optional[str]]) -> UserIdProvider:
    """Create a provider that follows an async stream of ids."""
    return StreamUserIds(user_ids)
