"""HTTP interface for tree-cache."""

from contextlib import asynccontextmanager
from typing import Any, Dict, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, StrictInt, StrictStr

from ..errors import DecodeError, InvalidRequest, SourceUnavailable
from .tree_service import TreeService


class TreeRequest(BaseModel):
    """Body of a subtree lookup."""

    tree: str = Field(description="Source name")
    id: Union[StrictInt, StrictStr] = Field(description="Id of the subtree root")


class RefreshRequest(BaseModel):
    """Body of a refresh trigger."""

    tree: str = Field(description="Source name")


def _error(status_code: int, reason: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": reason, "detail": detail}
    )


def create_app(service: TreeService) -> FastAPI:
    """Create the FastAPI application serving a tree service.

    The service is started when the application starts and closed when it
    shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start()
        try:
            yield
        finally:
            service.close()

    app = FastAPI(title="tree-cache", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(SourceUnavailable)
    async def source_unavailable_handler(request: Request, exc: SourceUnavailable):
        return _error(404, exc.reason, str(exc))

    @app.exception_handler(InvalidRequest)
    async def invalid_request_handler(request: Request, exc: InvalidRequest):
        return _error(422, exc.reason, str(exc))

    @app.exception_handler(DecodeError)
    async def decode_error_handler(request: Request, exc: DecodeError):
        return _error(500, exc.reason, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(422, "invalid_request", str(exc.errors()))

    @app.post("/tree", summary="Get a subtree by node id")
    def get_tree(body: TreeRequest):
        node = service.lookup(body.tree, body.id)
        if node is None:
            return _error(
                404, "not_found", f"Node {body.id} not found in {body.tree}"
            )
        return Response(
            content=f'{{"tree": {node.to_json()}}}', media_type="application/json"
        )

    @app.post("/tree/refresh", status_code=202, summary="Trigger a background refresh")
    def refresh_tree(body: RefreshRequest) -> Dict[str, bool]:
        return {"scheduled": service.request_refresh(body.tree)}

    @app.get("/sources", summary="Get cache status of every source")
    def list_sources() -> Dict[str, Any]:
        return service.get_stats()

    return app
