from fastapi import APIRouter
from sql_proxy.api.endpoints import execute

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(execute.router)
