"""
Replay Models - Raw and typed line structures.

Raw lines come straight from the transport with an opaque payload.
Typed lines are what callers of the replay API receive.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union


# field name -> type tag ("timestamp", "duration", "int", anything else is kept as-is)
SchemaDefinition = dict[str, str]

NANOSECONDS_PER_MINUTE = 60 * 1_000_000_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class LineType(Enum):
    """Kind of a line in the replay log."""
    MESSAGE = "msg"
    SEND = "send"
    START = "start"
    END = "end"
    ERROR = "err"

    @classmethod
    def parse(cls, value: str) -> "LineType":
        """Parse a wire type code, raising ValueError on unknown codes."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown line type: {value!r}") from None


@dataclass(frozen=True)
class RawLine:
    """
    A line as delivered by the raw transport.

    `channel` and `message` are always present for MESSAGE lines.
    """
    exchange: str
    type: LineType
    timestamp: int
    channel: Optional[str] = None
    message: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.type is LineType.MESSAGE and (self.channel is None or self.message is None):
            raise ValueError("MESSAGE lines require both channel and message")


@dataclass(frozen=True)
class TypedLine:
    """
    A fully reprocessed line.

    For MESSAGE lines `message` is the decoded, type-coerced field mapping and
    `definition` is the schema it was decoded with. For every other line type
    `message` is the raw payload, unmodified, and `definition` is None.
    """
    exchange: str
    type: LineType
    timestamp: int
    channel: Optional[str] = None
    message: Union[dict[str, Any], bytes, None] = None
    definition: Optional[SchemaDefinition] = None

    @property
    def is_message(self) -> bool:
        """Check if this line carries a decoded message."""
        return self.type is LineType.MESSAGE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        message = self.message
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return {
            "exchange": self.exchange,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "channel": self.channel,
            "message": message,
            "definition": dict(self.definition) if self.definition is not None else None,
        }


def to_nanoseconds(value: Union[datetime, int]) -> int:
    """
    Convert an instant to nanoseconds since the Unix epoch.

    Naive datetimes are taken as UTC. Integers are passed through.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a valid instant")
    if isinstance(value, int):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - _EPOCH) // timedelta(microseconds=1) * 1000
    raise TypeError(f"Unsupported instant type: {type(value).__name__}")


def minute_of(timestamp: int) -> int:
    """Minute index (since epoch) that contains the nanosecond timestamp."""
    return timestamp // NANOSECONDS_PER_MINUTE
