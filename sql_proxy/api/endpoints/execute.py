from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncEngine

from sql_proxy.core import schemas
from sql_proxy.core.config import settings
from sql_proxy.core.database import get_cursor_factory, get_engine
from sql_proxy.core.execution.decoder import ResultDecoder
from sql_proxy.core.execution.dispatcher import CursorFactory, execute_query
from sql_proxy.core.security import require_bearer

router = APIRouter(tags=["Execution"], dependencies=[Depends(require_bearer)])


async def get_result_decoder() -> ResultDecoder:
    return ResultDecoder(schemas.ResultFormat(settings.RESULT_FORMAT))


engine_dep = Annotated[AsyncEngine, Depends(get_engine)]
decoder_dep = Annotated[ResultDecoder, Depends(get_result_decoder)]
cursor_dep = Annotated[CursorFactory, Depends(get_cursor_factory)]


@router.post(
    "/exec", response_model=schemas.RowsResponse, status_code=status.HTTP_200_OK
)
async def execute_sql(
    query: schemas.QueryRequest,
    engine: engine_dep,
    decoder: decoder_dep,
    cursor_factory: cursor_dep,
):
    """
    Run one parameterized statement.

    `get` answers with the cells of a single row, `all`/`values` with every row,
    `run`/`execute` with an empty list once the statement succeeded.
    """
    return await execute_query(engine, query, decoder, cursor_factory)
