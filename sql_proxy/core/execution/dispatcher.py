import logging
from typing import Any, Awaitable, Callable, Dict, List

import psycopg
from psycopg import AsyncRawCursor
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from sql_proxy.core.errors import ClientFormatError, ExecutionError
from sql_proxy.core.execution.binder import bind_parameters, register_bind_dumpers
from sql_proxy.core.execution.decoder import ResultDecoder
from sql_proxy.core.schemas import ExecutionMode, QueryRequest

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# DISPATCHER MODULE
# Purpose: run one request's statement with the fetch strategy its mode asks for
# and shape the rows for the response.
# Each request gets its own pooled connection and transaction: committed on
# success, rolled back on any error, never retried.
# Statements run on a psycopg raw cursor, which takes `$1` placeholders as they
# are and sends every param with the type its dumper declares.
# -----------------------------------------------------------------------------

NO_ROWS_MESSAGE = "no rows returned by a query that expected to return at least one row"

CursorFactory = Callable[[Any], AsyncRawCursor]


def parse_mode(method: str) -> ExecutionMode:
    try:
        return ExecutionMode(method)
    except ValueError:
        logger.debug(f"Rejected unknown method {method!r}")
        raise ClientFormatError(f"unknown method: {method}") from None


async def fetch_one(cursor: AsyncRawCursor, decoder: ResultDecoder) -> List[Any]:
    """`get`: cells of the first row, flattened. No row at all is an error."""
    row = await cursor.fetchone() if cursor.description is not None else None
    if row is None:
        raise ExecutionError(f"DB error: {NO_ROWS_MESSAGE}")
    return decoder.decode_row(row)


async def fetch_all(cursor: AsyncRawCursor, decoder: ResultDecoder) -> List[List[Any]]:
    # INSERT/UPDATE without RETURNING has no result set, that is just no rows
    if cursor.description is None:
        return []
    return decoder.decode_rows(await cursor.fetchall())


async def fetch_none(cursor: AsyncRawCursor, decoder: ResultDecoder) -> List[Any]:
    return []


FETCH_STRATEGIES: Dict[
    ExecutionMode, Callable[[AsyncRawCursor, ResultDecoder], Awaitable[List[Any]]]
] = {
    ExecutionMode.GET: fetch_one,
    ExecutionMode.ALL: fetch_all,
    ExecutionMode.VALUES: fetch_all,
    ExecutionMode.RUN: fetch_none,
    ExecutionMode.EXECUTE: fetch_none,
}


def database_message(error: Exception) -> str:
    """Text of the driver error, unwrapped from SQLAlchemy if needed."""
    if isinstance(error, DBAPIError) and error.orig is not None:
        underlying = error.orig.__cause__ or error.orig
        return str(underlying)
    return str(error)


async def execute_query(
    engine: AsyncEngine,
    request: QueryRequest,
    decoder: ResultDecoder,
    cursor_factory: CursorFactory = AsyncRawCursor,
) -> Dict[str, List[Any]]:
    """
    Validate, bind and run a request, returning the response envelope.

    Raises:
        ClientFormatError: blank SQL or an unknown method, nothing is executed.
        ExecutionError: the database refused the statement, or `get` found no row.
    """

    if not request.sql.strip():
        logger.debug("Rejected request with empty sql")
        raise ClientFormatError("sql must not be empty")

    mode = parse_mode(request.method)
    bound = bind_parameters(request.params)
    values = tuple(param.driver_value for param in bound)
    strategy = FETCH_STRATEGIES[mode]

    logger.debug(
        f"Executing {mode.value} with {len(bound)} params "
        f"({', '.join(param.bind_type.value for param in bound)})"
    )

    try:
        async with engine.begin() as conn:
            pooled = await conn.get_raw_connection()
            async with cursor_factory(pooled.driver_connection) as cursor:
                register_bind_dumpers(cursor.adapters)
                await cursor.execute(request.sql, values)
                rows = await strategy(cursor, decoder)
    except ExecutionError as error:
        logger.warning(f"Query failed: {error.message}")
        raise
    except (psycopg.Error, SQLAlchemyError, OSError) as error:
        message = f"DB error: {database_message(error)}"
        logger.warning(f"Query failed: {message}")
        raise ExecutionError(message) from error

    return {"rows": rows}
