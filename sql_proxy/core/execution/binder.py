import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional, Sequence, Tuple

from psycopg.adapt import AdaptersMap
from psycopg.types.numeric import Int8
from psycopg.types.string import StrDumperUnknown


# -----------------------------------------------------------------------------
# BINDER MODULE
# Purpose: turn the untyped JSON params of a request into typed bind values.
# Rules are tried in table order and the first one that accepts a value wins.
# Every JSON value is accepted by some rule, so binding itself never fails.
# -----------------------------------------------------------------------------


class BindType(Enum):
    """SQL type a parameter is bound as."""

    TIMESTAMP = "timestamp"  # timestamp without time zone
    BIGINT = "bigint"
    BOOLEAN = "boolean"
    UNTYPED = "untyped"  # text, the server picks the type from context


class Untyped(str):
    """str sent with OID 0, so the server types it from the statement."""


def register_bind_dumpers(adapters: AdaptersMap) -> None:
    """Teach a psycopg adapters map (connection or cursor) the wrapper type."""
    adapters.register_dumper(Untyped, StrDumperUnknown)


# bool and naive datetime already go out as boolean and timestamp
DRIVER_TYPES = {
    BindType.BIGINT: Int8,
    BindType.UNTYPED: Untyped,
}


@dataclass(frozen=True)
class BoundParameter:
    bind_type: BindType
    value: Any

    @property
    def driver_value(self) -> Any:
        """
        Value handed to psycopg, wrapped so its dumper declares `bind_type`.

        Needs `register_bind_dumpers` on the adapters the cursor uses.
        """
        wrapper = DRIVER_TYPES.get(self.bind_type)
        return wrapper(self.value) if wrapper is not None else self.value


NAIVE_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def parse_naive_timestamp(text: str) -> Optional[datetime]:
    for fmt in NAIVE_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_aware_timestamp(text: str) -> Optional[datetime]:
    """ISO-8601 with an offset or `Z`, returned as a naive UTC datetime."""
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    # Lossy on purpose: the offset is dropped once the instant is in UTC
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def canonical_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _is_int(value: Any) -> bool:
    # bool is an int subclass in Python but a separate JSON type
    return isinstance(value, int) and not isinstance(value, bool)


def _bind_naive_timestamp(value: Any) -> Optional[BoundParameter]:
    if not isinstance(value, str):
        return None
    parsed = parse_naive_timestamp(value)
    return BoundParameter(BindType.TIMESTAMP, parsed) if parsed is not None else None


def _bind_aware_timestamp(value: Any) -> Optional[BoundParameter]:
    if not isinstance(value, str):
        return None
    parsed = parse_aware_timestamp(value)
    return BoundParameter(BindType.TIMESTAMP, parsed) if parsed is not None else None


def _bind_string(value: Any) -> Optional[BoundParameter]:
    if isinstance(value, str):
        return BoundParameter(BindType.UNTYPED, value)
    return None


def _bind_number(value: Any) -> Optional[BoundParameter]:
    if _is_int(value) and INT64_MIN <= value <= INT64_MAX:
        return BoundParameter(BindType.BIGINT, value)
    # Floats (and ints too wide for BIGINT) go over as their decimal text, untyped
    # so the column they meet decides, e.g. float8 or numeric
    if _is_int(value) or isinstance(value, float):
        return BoundParameter(BindType.UNTYPED, str(value))
    return None


def _bind_bool(value: Any) -> Optional[BoundParameter]:
    if isinstance(value, bool):
        return BoundParameter(BindType.BOOLEAN, value)
    return None


def _bind_json_text(value: Any) -> Optional[BoundParameter]:
    return BoundParameter(BindType.UNTYPED, canonical_json(value))


class BindRule(NamedTuple):
    name: str
    attempt: Callable[[Any], Optional[BoundParameter]]


BIND_RULES: Tuple[BindRule, ...] = (
    BindRule("naive_timestamp", _bind_naive_timestamp),
    BindRule("aware_timestamp", _bind_aware_timestamp),
    BindRule("string", _bind_string),
    BindRule("number", _bind_number),
    BindRule("bool", _bind_bool),
    BindRule("json_text", _bind_json_text),
)


def bind_parameter(value: Any) -> BoundParameter:
    for rule in BIND_RULES:
        bound = rule.attempt(value)
        if bound is not None:
            return bound
    # json_text accepts everything, this is only reached with an empty table
    raise LookupError(f"no bind rule accepted {value!r}")


def bind_parameters(params: Optional[Sequence[Any]]) -> List[BoundParameter]:
    """Bind every param, keeping positions: output[i] belongs to `$i+1`."""
    return [bind_parameter(value) for value in params or ()]


def bind_values(params: Optional[Sequence[Any]]) -> Tuple[Any, ...]:
    return tuple(bound.driver_value for bound in bind_parameters(params))
