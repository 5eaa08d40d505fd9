"""Event types for the Mixpanel analytics client.

This module defines the two event records the client delivers and their
wire representation. The wire dict returned by ``to_dict()`` is what gets
base64-encoded for the API, and it is also the persisted queue format, so
``from_dict()`` must accept exactly what ``to_dict()`` produces.

Track wire format:
    {"event": "login",
     "properties": {..., "token": "...", "time": 1700000000000,
                    "distinct_id": "u1", "ip": "...", "$insert_id": "..."}}

Engage wire format:
    {"$set": {...}, "$token": "...", "$time": 1700000000000,
     "$distinct_id": "u1", "$ip": "...", "$ignore_time": true,
     "$ignore_alias": false}
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class UpdateOperation(Enum):
    """Profile update operations allowed for an 'engage' request."""

    SET = "$set"
    SET_ONCE = "$set_once"
    ADD = "$add"
    APPEND = "$append"
    UNION = "$union"
    REMOVE = "$remove"
    UNSET = "$unset"
    DELETE = "$delete"


# Keys the track record adds on top of the caller's properties
_TRACK_RESERVED = ("token", "time", "distinct_id", "ip", "$insert_id")


@dataclass(frozen=True)
class TrackEvent:
    """A record of something that happened, with a name and properties."""

    name: str
    properties: Mapping[str, Any]
    timestamp_ms: int
    distinct_id: Optional[Any]
    token: Optional[str] = None
    ip: Optional[str] = None
    insert_id: Optional[str] = None

    def __post_init__(self) -> None:
        # Detach from the caller's mapping so later mutation can't leak in
        object.__setattr__(self, "properties", dict(self.properties))

    def to_dict(self) -> Dict[str, Any]:
        properties = {
            **self.properties,
            "token": self.token,
            "time": self.timestamp_ms,
            "distinct_id": self.distinct_id,
        }
        if self.ip is not None:
            properties["ip"] = self.ip
        if self.insert_id is not None:
            properties["$insert_id"] = self.insert_id
        return {"event": self.name, "properties": properties}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackEvent":
        properties = dict(data["properties"])
        return cls(
            name=data["event"],
            properties={k: v for k, v in properties.items() if k not in _TRACK_RESERVED},
            timestamp_ms=properties.get("time"),
            distinct_id=properties.get("distinct_id"),
            token=properties.get("token"),
            ip=properties.get("ip"),
            insert_id=properties.get("$insert_id"),
        )


@dataclass(frozen=True)
class EngageEvent:
    """A record mutating a user profile via one of the update operations."""

    operation: UpdateOperation
    payload: Mapping[str, Any]
    timestamp_ms: int
    distinct_id: Optional[Any]
    token: Optional[str] = None
    ip: Optional[str] = None
    ignore_time: Optional[bool] = None
    ignore_alias: Optional[bool] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", dict(self.payload))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            self.operation.value: dict(self.payload),
            "$token": self.token,
            "$time": self.timestamp_ms,
            "$distinct_id": self.distinct_id,
        }
        if self.ip is not None:
            data["$ip"] = self.ip
        if self.ignore_time is not None:
            data["$ignore_time"] = self.ignore_time
        if self.ignore_alias is not None:
            data["$ignore_alias"] = self.ignore_alias
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngageEvent":
        operation = next((op for op in UpdateOperation if op.value in data), None)
        if operation is None:
            raise KeyError(f"No update operation in engage record: {sorted(data)}")
        return cls(
            operation=operation,
            payload=data[operation.value],
            timestamp_ms=data.get("$time"),
            distinct_id=data.get("$distinct_id"),
            token=data.get("$token"),
            ip=data.get("$ip"),
            ignore_time=data.get("$ignore_time"),
            ignore_alias=data.get("$ignore_alias"),
        )


Event = Union[TrackEvent, EngageEvent]


@dataclass
class UploadReport:
    """Outcome of draining one queue sequence during a flush cycle.

    Attributes:
        kind: "track" or "engage"
        attempts: Number of chunk uploads attempted
        sent: Events in chunks that were accepted
        failed: Events in chunks that were requeued
    """

    kind: str
    attempts: int = 0
    sent: int = 0
    failed: int = 0


@dataclass
class FlushReport:
    """Outcome of a full flush cycle over both sequences."""

    track: UploadReport = field(default_factory=lambda: UploadReport("track"))
    engage: UploadReport = field(default_factory=lambda: UploadReport("engage"))
    persisted: bool = True
