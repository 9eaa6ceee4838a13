from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


# =========================
# Enums
# =========================
class ExecutionMode(str, Enum):
    GET = "get"
    ALL = "all"
    VALUES = "values"
    RUN = "run"
    EXECUTE = "execute"


class ResultFormat(str, Enum):
    JSON = "json"
    DISPLAY = "display"


# =========================
# REQUEST
# =========================
class QueryRequest(BaseModel):
    sql: str
    params: Optional[List[Any]] = None
    # Kept as plain text so an unknown mode can be named in the 400 response
    method: str

    model_config = ConfigDict(extra="ignore")


# =========================
# RESPONSE
# =========================
class RowsResponse(BaseModel):
    """
    `all`/`values` return a list of rows, `run`/`execute` an empty list.
    `get` returns the cells of its single row, not wrapped in another list.
    """

    rows: List[Any]
