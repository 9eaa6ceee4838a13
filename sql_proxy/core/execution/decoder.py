import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, List, NamedTuple, Sequence, Tuple

from sql_proxy.core.schemas import ResultFormat

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# DECODER MODULE
# Purpose: turn the values psycopg returns for a row into JSON-safe cells.
# Rules are tried in table order on the Python value, column metadata is never
# consulted. A rule that raises only spoils its own cell.
# -----------------------------------------------------------------------------

CONVERSION_ERROR = "<<conversion error>>"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_aware_datetime(value: Any) -> bool:
    return isinstance(value, datetime) and value.tzinfo is not None


def _is_naive_datetime(value: Any) -> bool:
    return isinstance(value, datetime) and value.tzinfo is None


def _is_bytes(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def _is_raw_text(value: Any) -> bool:
    # Enums, numeric, uuid, dates, intervals, inet ... anything with a text form
    return not _is_bytes(value) and not isinstance(value, (dict, list, tuple))


def format_aware_datetime(value: datetime) -> str:
    utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return f"{utc} UTC"


def format_naive_datetime(value: datetime) -> str:
    return str(value)


def finite_float(value: float) -> float:
    # NaN and infinity are not valid JSON numbers
    return value if math.isfinite(value) else 0


def text_from_raw(value: Any) -> Any:
    if _is_bytes(value):
        text = bytes(value).decode("utf-8")
    else:
        text = str(value)
    if "\x00" in text:
        raise ValueError("text contains a NUL byte")
    return text


def bytes_display(value: Any) -> str:
    return str(list(bytes(value)))


class DecodeRule(NamedTuple):
    name: str
    matches: Callable[[Any], bool]
    convert: Callable[[Any], Any]
    # Fallback rules step aside when convert raises instead of spoiling the cell
    fallback: bool = False


class ResultDecoder:
    """
    Decodes result cells with an ordered rule table.

    `representation` picks the output form: JSON-native values, or display
    strings for every non-null cell.
    """

    def __init__(self, representation: ResultFormat = ResultFormat.JSON):
        self.representation = ResultFormat(representation)
        self.rules: Tuple[DecodeRule, ...] = (
            DecodeRule("timestamptz", _is_aware_datetime, format_aware_datetime),
            DecodeRule("timestamp", _is_naive_datetime, format_naive_datetime),
            DecodeRule("text", lambda v: isinstance(v, str), lambda v: v),
            # Python ints carry both int8 and int4 columns
            DecodeRule("integer", _is_int, int),
            DecodeRule("float", lambda v: isinstance(v, float), finite_float),
            DecodeRule("bool", lambda v: isinstance(v, bool), lambda v: v),
            DecodeRule("json_object", lambda v: isinstance(v, dict), lambda v: v),
            DecodeRule(
                "json_array", lambda v: isinstance(v, (list, tuple)), self._decode_array
            ),
            DecodeRule("raw_bytes_text", _is_bytes, text_from_raw, fallback=True),
            DecodeRule("raw_text", _is_raw_text, text_from_raw, fallback=True),
            DecodeRule("raw_bytes", _is_bytes, bytes_display, fallback=True),
        )

    def _decode_array(self, value: Sequence[Any]) -> List[Any]:
        return [self._decode_value(item) for item in value]

    def _decode_value(self, value: Any) -> Any:
        # SQL NULL is JSON null whatever the column type
        if value is None:
            return None

        for rule in self.rules:
            if not rule.matches(value):
                continue
            try:
                return rule.convert(value)
            except ValueError:
                if rule.fallback:
                    continue
                raise
        return None

    def decode_cell(self, value: Any) -> Any:
        try:
            decoded = self._decode_value(value)
        except Exception as error:
            logger.warning(f"column conversion error: {error!r}")
            return CONVERSION_ERROR

        if self.representation is ResultFormat.DISPLAY:
            return to_display(decoded)
        return decoded

    def decode_row(self, row: Sequence[Any]) -> List[Any]:
        return [self.decode_cell(value) for value in row]

    def decode_rows(self, rows: Sequence[Sequence[Any]]) -> List[List[Any]]:
        return [self.decode_row(row) for row in rows]


def to_display(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)
