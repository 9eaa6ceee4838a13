import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from sql_proxy.api.router import api_router
from sql_proxy.core.config import settings
from sql_proxy.core.database import engine
from sql_proxy.core.errors import AuthenticationError, ProxyError
from sql_proxy.core.security import CredentialGate

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


# Build the credential gate once, and close the pool once everything is done
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.credential_gate = CredentialGate.from_settings(settings)
    yield
    await engine.dispose()


app = FastAPI(title="SQL Execution Proxy", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, error: ProxyError):
    headers = None
    if isinstance(error, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return PlainTextResponse(error.message, status_code=error.status_code, headers=headers)


# A body that is not a valid query request is a client mistake, not a 422
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, error: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )
    logger.debug(f"Rejected malformed request body: {problems}")
    return PlainTextResponse(
        f"invalid request body: {problems}", status_code=status.HTTP_400_BAD_REQUEST
    )


def run():
    """Console entry point: serve the app on BIND_ADDR."""
    host, port = settings.bind_host_port
    logger.info(f"Listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
