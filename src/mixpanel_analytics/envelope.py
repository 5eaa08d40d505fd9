"""Construction of track and engage event records.

Distinct id resolution, shared by both event kinds:
1. A non-null ``distinct_id`` in the caller's mapping is used verbatim
   (per-call override, never anonymized).
2. Otherwise the user id provider is asked for its current value.
3. A provider value is anonymized under the field name "userId" when
   anonymization is enabled, and used raw otherwise.
4. When the provider has no value, distinct_id is None and is forwarded
   as-is.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from .anonymize import AnonymizationCache, ShaFn, identity_sha
from .errors import InvalidArgumentError
from .types import EngageEvent, TrackEvent, UpdateOperation
from .user_ids import UserIdProvider

USER_ID_FIELD = "userId"


def _to_millis(time: datetime) -> int:
    return int(time.timestamp() * 1000)


class EventEnvelopeBuilder:
    """Builds immutable event records from caller input."""

    def __init__(
        self,
        token: Optional[str],
        user_id_provider: UserIdProvider,
        should_anonymize: bool = False,
        sha_fn: Optional[ShaFn] = None,
    ):
        self.token = token
        self.user_id_provider = user_id_provider
        self.should_anonymize = should_anonymize
        self._sha_fn = sha_fn or identity_sha
        # Created on first anonymization
        self._anonymized: Optional[AnonymizationCache] = None

    def _anonymize(self, field: str, value: str) -> str:
        if self._anonymized is None:
            self._anonymized = AnonymizationCache(self._sha_fn)
        return self._anonymized.anonymize(field, value)

    def resolve_distinct_id(self, values: Mapping[str, Any]) -> Optional[Any]:
        if values.get("distinct_id") is not None:
            return values["distinct_id"]
        provided = self.user_id_provider.user_id
        if provided is None:
            return None
        if self.should_anonymize:
            return self._anonymize(USER_ID_FIELD, provided)
        return provided

    def build_track(
        self,
        event: str,
        properties: Mapping[str, Any],
        time: Optional[datetime] = None,
        ip: Optional[str] = None,
        insert_id: Optional[str] = None,
    ) -> TrackEvent:
        if event is None:
            raise InvalidArgumentError.not_null("event")
        if properties is None:
            raise InvalidArgumentError.not_null("properties")

        return TrackEvent(
            name=event,
            properties=properties,
            timestamp_ms=_to_millis(time or datetime.now()),
            distinct_id=self.resolve_distinct_id(properties),
            token=self.token,
            ip=ip,
            insert_id=insert_id,
        )

    def build_engage(
        self,
        operation: UpdateOperation,
        value: Mapping[str, Any],
        time: Optional[datetime] = None,
        ip: Optional[str] = None,
        ignore_time: Optional[bool] = None,
        ignore_alias: Optional[bool] = None,
    ) -> EngageEvent:
        if operation is None:
            raise InvalidArgumentError.not_null("operation")
        if value is None:
            raise InvalidArgumentError.not_null("value")

        return EngageEvent(
            operation=UpdateOperation(operation),
            payload=value,
            timestamp_ms=_to_millis(time or datetime.now()),
            distinct_id=self.resolve_distinct_id(value),
            token=self.token,
            ip=ip,
            ignore_time=ignore_time,
            ignore_alias=ignore_alias,
        )
