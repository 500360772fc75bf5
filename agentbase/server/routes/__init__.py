"""Route registration for the AgentBase API."""

from fastapi import FastAPI

from .run import router as run_router
from .threads import router as threads_router
from .utilities import router as utilities_router


def register_routes(app: FastAPI):
    app.include_router(run_router)
    app.include_router(threads_router)
    app.include_router(utilities_router)
