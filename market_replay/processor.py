"""
Line Reprocessor - Turns raw replay lines into typed lines.

============================================================
SCHEMA PROTOCOL
============================================================
The remote log carries its own schemas inline:

- A START line resets every channel schema of its exchange.
- The first MESSAGE line of an (exchange, channel) after a reset is
  the schema definition itself (field -> type tag), not a message.
- Every following MESSAGE line of that pair is decoded and its fields
  coerced according to the definition.

The reprocessor is purely online: it never looks ahead or buffers.
One instance serves exactly one replay execution and is not safe to
share between concurrent consumers.

============================================================
"""

import json
import logging
import math
import re
from typing import Any, Optional

from market_replay.exceptions import DecodeError
from market_replay.models import LineType, RawLine, SchemaDefinition, TypedLine


logger = logging.getLogger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

TIMESTAMP_TAGS = frozenset({"timestamp", "duration"})
INT_TAG = "int"

_DECIMAL_RE = re.compile(r"[+-]?[0-9]+")


class LineReprocessor:
    """
    Stateful raw line processor.

    Keeps a private schema table: exchange -> channel -> definition.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, dict[str, SchemaDefinition]] = {}

    def definition(self, exchange: str, channel: str) -> Optional[SchemaDefinition]:
        """Return the current definition for a pair, if one was received."""
        return self._definitions.get(exchange, {}).get(channel)

    def reset(self) -> None:
        """Forget every definition of every exchange."""
        self._definitions.clear()

    def process(self, line: RawLine) -> Optional[TypedLine]:
        """
        Process one raw line.

        Args:
            line: Raw line from the transport

        Returns:
            The typed line, or None when the line was a schema definition
            and must not be emitted

        Raises:
            DecodeError: If the payload cannot be decoded or coerced
        """
        if line.type is LineType.START:
            if self._definitions.pop(line.exchange, None) is not None:
                logger.debug(f"[reprocessor] Schema reset for {line.exchange}")

        if line.type is not LineType.MESSAGE:
            return TypedLine(
                exchange=line.exchange,
                type=line.type,
                timestamp=line.timestamp,
                channel=line.channel,
                message=line.message,
            )

        exchange = line.exchange
        channel = line.channel
        channels = self._definitions.setdefault(exchange, {})

        definition = channels.get(channel)
        if definition is None:
            channels[channel] = _decode_definition(line)
            logger.debug(f"[reprocessor] Definition received for {exchange}/{channel}")
            return None

        return TypedLine(
            exchange=exchange,
            type=line.type,
            timestamp=line.timestamp,
            channel=channel,
            message=_decode_message(line, definition),
            definition=definition,
        )


def _load_object(line: RawLine, what: str) -> dict[str, Any]:
    try:
        obj = json.loads(line.message)
    except (ValueError, TypeError) as e:
        raise DecodeError(
            message=f"{what} unmarshal: {e}",
            raw_data=line.message,
            original_error=e,
            context={"exchange": line.exchange, "channel": line.channel},
        ) from e

    if not isinstance(obj, dict):
        raise DecodeError(
            message=f"{what} unmarshal: expected an object, got {type(obj).__name__}",
            raw_data=line.message,
            context={"exchange": line.exchange, "channel": line.channel},
        )
    return obj


def _decode_definition(line: RawLine) -> SchemaDefinition:
    definition = _load_object(line, "definition")
    for name, tag in definition.items():
        if not isinstance(tag, str):
            raise DecodeError(
                message=f"definition unmarshal: type of field {name!r} is not a string",
                raw_data=line.message,
                field_name=name,
                context={"exchange": line.exchange, "channel": line.channel},
            )
    return definition


def _decode_message(line: RawLine, definition: SchemaDefinition) -> dict[str, Any]:
    message = _load_object(line, "message")

    for name, tag in definition.items():
        value = message.get(name)
        if value is None:
            continue
        if tag in TIMESTAMP_TAGS:
            message[name] = _parse_decimal(value, name, line)
        elif tag == INT_TAG:
            message[name] = _truncate_number(value, name, line)

    return message


def _conversion_error(reason: str, name: str, value: Any, line: RawLine) -> DecodeError:
    return DecodeError(
        message=f"type conversion: field {name!r} {reason}: {value!r}",
        raw_data=line.message,
        field_name=name,
        context={"exchange": line.exchange, "channel": line.channel},
    )


def _check_int64(result: int, name: str, value: Any, line: RawLine) -> int:
    if not INT64_MIN <= result <= INT64_MAX:
        raise _conversion_error("out of int64 range", name, value, line)
    return result


def _parse_decimal(value: Any, name: str, line: RawLine) -> int:
    # Already-integral JSON numbers are accepted as they are
    if isinstance(value, int) and not isinstance(value, bool):
        return _check_int64(value, name, value, line)
    if not isinstance(value, str) or not _DECIMAL_RE.fullmatch(value):
        raise _conversion_error("is not a decimal string", name, value, line)
    return _check_int64(int(value), name, value, line)


def _truncate_number(value: Any, name: str, line: RawLine) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _conversion_error("is not a number", name, value, line)
    if isinstance(value, float) and not math.isfinite(value):
        raise _conversion_error("is not finite", name, value, line)
    return _check_int64(int(value), name, value, line)
