"""Mixpanel analytics - track and engage events with immediate or batched delivery.

Usage:
    from mixpanel_analytics import MixpanelAnalytics, user_ids_of_getter

    analytics = MixpanelAnalytics.batch(
        token="project-token",
        user_id_provider=user_ids_of_getter(lambda: current_user_id),
        upload_interval=30,
    )
    await analytics.track(event="login", properties={})
    await analytics.dispose()
"""

from mixpanel_analytics.client import MixpanelAnalytics
from mixpanel_analytics.config import AnalyticsConfig, get_config, load_config, reload_config
from mixpanel_analytics.errors import (
    AnalyticsError,
    FlushError,
    InvalidArgumentError,
    ResponseValidationError,
    StorageError,
    TransportError,
)
from mixpanel_analytics.senders import BatchSender, EventSender, SyncSender
from mixpanel_analytics.storage import InMemoryStorage, JsonFileStorage, KeyValueStorage
from mixpanel_analytics.transport import HttpxTransport, Transport, TransportResponse
from mixpanel_analytics.types import EngageEvent, TrackEvent, UpdateOperation
from mixpanel_analytics.user_ids import (
    StreamUserIds,
    UserIdGetter,
    UserIdProvider,
    user_ids_of_getter,
    user_ids_of_stream,
)

__version__ = "0.4.0"

__all__ = [
    # Client
    "MixpanelAnalytics",
    "UpdateOperation",
    "TrackEvent",
    "EngageEvent",
    # Delivery strategies
    "EventSender",
    "SyncSender",
    "BatchSender",
    # User ids
    "UserIdProvider",
    "UserIdGetter",
    "StreamUserIds",
    "user_ids_of_getter",
    "user_ids_of_stream",
    # Adapters
    "KeyValueStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "Transport",
    "TransportResponse",
    "HttpxTransport",
    # Configuration
    "AnalyticsConfig",
    "get_config",
    "load_config",
    "reload_config",
    # Errors
    "AnalyticsError",
    "InvalidArgumentError",
    "TransportError",
    "ResponseValidationError",
    "StorageError",
    "FlushError",
]
