"""
FastAPI application for the action knowledge base.

Provides REST API endpoints for mining, searching, teaching and learning
actions.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from action_kb import __version__
from action_kb.api.routes import close_knowledge_base, router as knowledge_base_router
from action_kb.core.errors import (
    InvalidIdError,
    KnowledgeBaseError,
    NotFoundError,
    StoreUnavailableError,
)


def _status_for(error: KnowledgeBaseError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, InvalidIdError):
        return 422
    if isinstance(error, StoreUnavailableError):
        return 503
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_knowledge_base()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Action Knowledge Base API",
        description="Maps natural-language test steps onto page-object methods",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(KnowledgeBaseError)
    async def knowledge_base_error_handler(request: Request, exc: KnowledgeBaseError):
        return JSONResponse(status_code=_status_for(exc), content=exc.to_dict())

    app.include_router(knowledge_base_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Action Knowledge Base API",
            "version": __version__,
            "docs": "/docs",
            "redoc": "/redoc",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
