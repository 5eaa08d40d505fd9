"""Mixpanel analytics client.

Usage (immediate delivery):
    from mixpanel_analytics import MixpanelAnalytics, user_ids_of_getter

    analytics = MixpanelAnalytics(
        token="project-token",
        user_id_provider=user_ids_of_getter(lambda: session.user_id),
    )
    await analytics.track(event="login", properties={"plan": "pro"})

Usage (batched delivery, retried until successful):
    async with MixpanelAnalytics.batch(
        token="project-token",
        user_ids=auth.user_id_stream(),
        upload_interval=30,
    ) as analytics:
        await analytics.engage(operation=UpdateOperation.SET, value={"plan": "pro"})

Immediate delivery sends one request per event; a failed request is
reported and the event is lost. Batched delivery queues events, persists
them, and uploads them every ``upload_interval`` seconds, requeueing the
chunks that fail.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, AsyncIterable, Awaitable, Callable, Mapping, Optional, Union

from .anonymize import ShaFn
from .api import BASE_API, ErrorReporter, MixpanelApi
from .config import AnalyticsConfig
from .envelope import EventEnvelopeBuilder
from .errors import ErrorCallback, InvalidArgumentError
from .log import configure_logging
from .queue import STORAGE_KEY
from .senders import BatchSender, EventSender, SyncSender
from .storage import JsonFileStorage, KeyValueStorage
from .transport import HttpxTransport, Transport
from .types import UpdateOperation
from .uploader import MAX_BATCH_SIZE
from .user_ids import StreamUserIds, UserIdProvider

logger = logging.getLogger(__name__)

Interval = Union[float, timedelta]


def _resolve_provider(
    user_id_provider: Optional[UserIdProvider],
    user_ids: Optional[AsyncIterable[Optional[str]]],
) -> UserIdProvider:
    if user_ids is not None:
        return StreamUserIds(user_ids)
    if user_id_provider is None:
        raise InvalidArgumentError("Either user_id_provider or user_ids must be provided")
    return user_id_provider


def _to_seconds(interval: Optional[Interval]) -> float:
    if interval is None:
        return 0.0
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


class MixpanelAnalytics:
    """Builds track/engage events and hands them to a delivery strategy.

    Args:
        token: The Mixpanel token associated with your project.
        user_id_provider: Strategy for obtaining the current user id.
        user_ids: Async stream of user ids, used instead of user_id_provider.
        should_anonymize: Anonymize the user id before sending it.
        sha_fn: Function used to anonymize; identity when not provided.
        verbose: Ask the API for detailed error causes.
        on_error: Receives every non-fatal error; the package logger is
            used when not provided.
        transport: HTTP transport; an HttpxTransport when not provided.
        base_url: Root URL of the ingestion API.
        timeout: Request timeout for the default transport.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        user_id_provider: Optional[UserIdProvider] = None,
        user_ids: Optional[AsyncIterable[Optional[str]]] = None,
        should_anonymize: bool = False,
        sha_fn: Optional[ShaFn] = None,
        verbose: bool = False,
        on_error: Optional[ErrorCallback] = None,
        transport: Optional[Transport] = None,
        base_url: str = BASE_API,
        timeout: Optional[float] = None,
    ):
        self._token = token
        self._user_id_provider = _resolve_provider(user_id_provider, user_ids)
        self._verbose = bool(verbose)
        self._on_error = on_error
        self._upload_interval = 0.0
        self._dispose_task: Optional[asyncio.Future] = None

        if transport is None:
            transport = HttpxTransport() if timeout is None else HttpxTransport(timeout=timeout)
            self._owned_transport: Optional[HttpxTransport] = transport
        else:
            self._owned_transport = None
        self.transport = transport

        self.api = MixpanelApi(
            transport,
            base_url=base_url,
            verbose=self._verbose,
            reporter=ErrorReporter(on_error),
        )
        self.envelopes = EventEnvelopeBuilder(
            token,
            self._user_id_provider,
            should_anonymize=should_anonymize,
            sha_fn=sha_fn,
        )
        self._sender: EventSender = SyncSender(self.api)

    @classmethod
    def batch(
        cls,
        token: str,
        upload_interval: Interval,
        user_id_provider: Optional[UserIdProvider] = None,
        user_ids: Optional[AsyncIterable[Optional[str]]] = None,
        should_anonymize: bool = False,
        sha_fn: Optional[ShaFn] = None,
        verbose: bool = False,
        on_error: Optional[ErrorCallback] = None,
        transport: Optional[Transport] = None,
        base_url: str = BASE_API,
        timeout: Optional[float] = None,
        storage: Optional[KeyValueStorage] = None,
        storage_factory: Optional[Callable[[], Awaitable[KeyValueStorage]]] = None,
        storage_key: str = STORAGE_KEY,
        max_batch_size: int = MAX_BATCH_SIZE,
    ) -> "MixpanelAnalytics":
        """Build a client that sends events in batches every ``upload_interval``.

        Events that can't be sent (connectivity issues, API errors) are kept
        and retried on the next upload until they succeed. The queue is
        persisted in ``storage`` so pending events survive a restart.
        """
        if token is None:
            raise InvalidArgumentError.not_null("token")
        if upload_interval is None:
            raise InvalidArgumentError.not_null("upload_interval")
        interval = _to_seconds(upload_interval)
        if interval <= 0:
            raise InvalidArgumentError(f"upload_interval must be positive, got {upload_interval}")

        analytics = cls(
            token=token,
            user_id_provider=user_id_provider,
            user_ids=user_ids,
            should_anonymize=should_anonymize,
            sha_fn=sha_fn,
            verbose=verbose,
            on_error=on_error,
            transport=transport,
            base_url=base_url,
            timeout=timeout,
        )
        analytics._upload_interval = interval
        analytics._sender = BatchSender(
            analytics.api,
            interval,
            storage=storage,
            storage_factory=storage_factory,
            storage_key=storage_key,
            max_batch_size=max_batch_size,
            on_error=on_error,
        )
        return analytics

    @classmethod
    def from_config(
        cls,
        config: AnalyticsConfig,
        user_id_provider: Optional[UserIdProvider] = None,
        user_ids: Optional[AsyncIterable[Optional[str]]] = None,
        sha_fn: Optional[ShaFn] = None,
        on_error: Optional[ErrorCallback] = None,
        transport: Optional[Transport] = None,
        storage: Optional[KeyValueStorage] = None,
    ) -> "MixpanelAnalytics":
        """Build a sync or batch client from an AnalyticsConfig.

        Also applies ``config.log_level`` to the ``mixpanel_analytics``
        package logger through ``configure_logging``, so a config file can
        turn on debug output for the client. Applications that manage
        logger levels themselves should build the client directly.
        """
        configure_logging(config.log_level)
        common = dict(
            token=config.token,
            user_id_provider=user_id_provider,
            user_ids=user_ids,
            should_anonymize=config.should_anonymize,
            sha_fn=sha_fn,
            verbose=config.verbose,
            on_error=on_error,
            transport=transport,
            base_url=config.base_url,
            timeout=config.transport.timeout_seconds,
        )
        if not config.is_batch_mode:
            return cls(**common)
        return cls.batch(
            upload_interval=config.upload_interval_seconds,
            storage=storage if storage is not None else JsonFileStorage(config.storage.path),
            storage_key=config.storage.key,
            max_batch_size=config.max_batch_size,
            **common,
        )

    @property
    def mixpanel_token(self) -> Optional[str]:
        """The Mixpanel project token."""
        return self._token

    @property
    def is_batch_mode(self) -> bool:
        """True when events are queued and sent every ``upload_interval``."""
        return self._upload_interval > 0

    @property
    def upload_interval(self) -> float:
        """Seconds between batch uploads (0 in immediate mode)."""
        return self._upload_interval

    @property
    def sender(self) -> EventSender:
        return self._sender

    @property
    def user_id_provider(self) -> UserIdProvider:
        return self._user_id_provider

    async def track(
        self,
        event: str,
        properties: Mapping[str, Any],
        time: Optional[datetime] = None,
        ip: Optional[str] = None,
        insert_id: Optional[str] = None,
    ) -> bool:
        """Track an event.

        Args:
            event: Name of the event.
            properties: Properties to send with the event.
            time: Event time; now when not provided.
            ip: The ``ip`` property.
            insert_id: The ``$insert_id`` property, used by the API for
                deduplication.

        Returns:
            In immediate mode, whether the request succeeded. In batch
            mode, whether the event was durably queued.

        Raises:
            InvalidArgumentError: If event or properties is None.
        """
        track_event = self.envelopes.build_track(event, properties, time=time, ip=ip, insert_id=insert_id)
        return await self._sender.process_track(track_event)

    async def engage(
        self,
        operation: UpdateOperation,
        value: Mapping[str, Any],
        time: Optional[datetime] = None,
        ip: Optional[str] = None,
        ignore_time: Optional[bool] = None,
        ignore_alias: Optional[bool] = None,
    ) -> bool:
        """Send a profile update.

        Args:
            operation: The profile update operation.
            value: Properties the operation applies to.
            time: Event time; now when not provided.
            ip: The ``$ip`` property.
            ignore_time: The ``$ignore_time`` property.
            ignore_alias: The ``$ignore_alias`` property.

        Returns:
            Same as track().

        Raises:
            InvalidArgumentError: If operation or value is None.
        """
        engage_event = self.envelopes.build_engage(
            operation,
            value,
            time=time,
            ip=ip,
            ignore_time=ignore_time,
            ignore_alias=ignore_alias,
        )
        return await self._sender.process_engage(engage_event)

    async def dispose(self) -> None:
        """Stop batch uploads and release the user id provider.

        Waits for an upload in progress to finish. Safe to call repeatedly:
        every call, concurrent ones included, waits for the same disposal.
        """
        if self._dispose_task is None:
            self._dispose_task = asyncio.ensure_future(self._dispose())
        await asyncio.shield(self._dispose_task)

    async def _dispose(self) -> None:
        await self._sender.dispose()
        await self._user_id_provider.dispose()
        if self._owned_transport is not None:
            await self._owned_transport.aclose()

    async def __aenter__(self) -> "MixpanelAnalytics":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()
