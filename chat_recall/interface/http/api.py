"""HTTP API for message search and the ingestion trigger.

Pure delegation to the use cases; domain error categories are mapped onto
HTTP status codes here and nowhere else.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chat_recall.application.dto.search_dto import SearchRequest
from chat_recall.config.compose import Container, build_container
from chat_recall.config.logging_setup import configure_logging
from chat_recall.domain import errors
from chat_recall.domain.errors import DomainError
from chat_recall.domain.models import Message, vector_id_for

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    errors.CALLER: 400,
    errors.TRANSIENT: 503,
    errors.TIMEOUT: 504,
    errors.CONFIGURATION: 500,
    errors.CANCELLED: 499,
}

RETRY_HINT = {
    errors.TRANSIENT: "now",
    errors.CONFIGURATION: "contact operator",
}


class SearchRequestModel(BaseModel):
    """Request model for /v1/search."""

    user_id: str
    query: str
    limit: int | None = None


class SearchResultModel(BaseModel):
    message_id: str
    text: str
    score: float
    timestamp: datetime


class SearchResponseModel(BaseModel):
    status: str
    results: list[SearchResultModel] = Field(default_factory=list)


class MessageModel(BaseModel):
    """Request model for /v1/messages (a persisted chat message)."""

    message_id: str
    sender_id: str
    receiver_id: str
    text: str
    created_at: datetime
    user_id: str | None = None


class ErrorResponseModel(BaseModel):
    status: str = "error"
    error: str
    error_kind: str
    category: str
    retry: str | None = None


def error_response(err: DomainError) -> JSONResponse:
    body = ErrorResponseModel(
        error=str(err),
        error_kind=type(err).__name__,
        category=err.category,
        retry=RETRY_HINT.get(err.category),
    )
    return JSONResponse(status_code=STATUS_BY_CATEGORY.get(err.category, 500), content=body.model_dump())


def create_app(container: Container | None = None, bootstrap: bool = True) -> FastAPI:
    """Build the FastAPI app.

    Without an explicit container one is built from the environment on
    startup. bootstrap=True ensures the collection exists before serving.
    """
    app = FastAPI(title="chat-recall", version="0.1.0")
    app.state.container = container
    app.state.drainer = None

    @app.on_event("startup")
    def startup_event() -> None:
        if app.state.container is None:
            c = build_container()
            configure_logging(c.settings.log_level)
            app.state.container = c
        if bootstrap:
            try:
                app.state.container.bootstrap()
            except DomainError as err:
                # keep serving; requests will surface the same error with its status
                logger.error("Collection bootstrap failed: %s", err)

        c = app.state.container
        if c.settings.workqueue_backend == "memory":
            logger.warning(
                "Ingestion backlog is in-process (WORKQUEUE_BACKEND=memory); "
                "parked messages are lost on restart"
            )
        drainer = c.get_backlog_drainer()
        if drainer is not None:
            drainer.start()
            app.state.drainer = drainer

    @app.on_event("shutdown")
    def shutdown_event() -> None:
        if app.state.drainer is not None:
            app.state.drainer.stop()
            app.state.drainer = None

    def _container(request: Request) -> Container:
        return request.app.state.container

    @app.post("/v1/search", response_model=SearchResponseModel)
    def search(req: SearchRequestModel, request: Request) -> Any:
        """User-scoped semantic search.

        Example:
            POST /v1/search
            {"user_id": "u-42", "query": "where did we book dinner?", "limit": 5}
        """
        c = _container(request)
        limit = c.settings.result_limit_default if req.limit is None else req.limit
        limit = min(limit, c.settings.result_limit_max)

        result = c.get_search_use_case().execute(
            SearchRequest(user_id=req.user_id, query=req.query, limit=limit)
        )
        if not result.ok:
            assert result.error is not None
            return error_response(result.error)

        return SearchResponseModel(
            status="success",
            results=[
                SearchResultModel(
                    message_id=r.message_id, text=r.text, score=r.score, timestamp=r.timestamp
                )
                for r in result.value or []
            ],
        )

    @app.post("/v1/messages")
    def ingest_message(msg: MessageModel, request: Request) -> Any:
        """Ingestion trigger, called after a message has been persisted."""
        message = Message(
            message_id=msg.message_id,
            sender_id=msg.sender_id,
            receiver_id=msg.receiver_id,
            text=msg.text,
            created_at=msg.created_at,
            user_id=msg.user_id,
        )
        result = _container(request).get_ingest_use_case().execute(message)
        if not result.ok:
            assert result.error is not None
            return error_response(result.error)
        assert result.value is not None
        return {
            "status": "indexed",
            "message_id": message.message_id,
            "vector_id": result.value.vector_id,
        }

    @app.delete("/v1/messages/{message_id}")
    def delete_message(message_id: str, request: Request) -> Any:
        result = _container(request).get_ingest_use_case().delete(message_id)
        if not result.ok:
            assert result.error is not None
            return error_response(result.error)
        return {"status": "deleted", "message_id": message_id, "vector_id": vector_id_for(message_id)}

    @app.post("/v1/backlog/drain")
    def drain_backlog(request: Request, max_n: int = 100) -> Any:
        """Retry parked ingestion failures now instead of waiting for the drainer."""
        result = _container(request).get_ingest_use_case().drain_backlog(max_n=max_n)
        if not result.ok:
            assert result.error is not None
            return error_response(result.error)
        report = result.value
        assert report is not None
        return {
            "status": "drained",
            "succeeded": report.succeeded,
            "failed": report.failed,
            "errors": report.errors,
        }

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy", "service": "chat-recall"}

    return app


app = create_app()
