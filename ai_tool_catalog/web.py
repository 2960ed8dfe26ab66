"""JSON REST surface over the catalog store and the URL analysis pipeline."""

import json
import logging
from typing import Any
from typing import Optional

from fasthtml.fastapp import fast_app
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.responses import Response

from .catalog_db import CatalogStore
from .config import database_path
from .errors import CatalogError
from .errors import CatalogValidationError
from .errors import CategoryNotEmptyError
from .errors import NotFoundError
from .schemas import AnalyzeRequest
from .schemas import CategoryCreate
from .schemas import CategoryUpdate
from .schemas import CollectionCreate
from .schemas import CollectionUpdate
from .schemas import DeletePolicy
from .schemas import MoveRequest
from .schemas import ReorderRequest
from .schemas import ToolCreate
from .schemas import ToolUpdate
from .url_analyzer import UrlAnalyzer

logger = logging.getLogger(__name__)

DEFAULT_RUN_HISTORY = 50


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts)


async def _catalog_error(request: Request, exc: CatalogError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        return _error(404, str(exc))
    if isinstance(exc, CategoryNotEmptyError):
        return _error(409, str(exc))
    return _error(400, str(exc))


async def _invalid_body(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, _validation_message(exc))


async def _malformed_json(request: Request, exc: json.JSONDecodeError) -> JSONResponse:
    return _error(400, f"Malformed JSON body: {exc.msg}")


async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error(500, "Internal server error")


EXCEPTION_HANDLERS = {
    CatalogError: _catalog_error,
    ValidationError: _invalid_body,
    json.JSONDecodeError: _malformed_json,
    Exception: _unexpected,
}


async def _body(req: Request) -> Any:
    raw = await req.body()
    return json.loads(raw) if raw else {}


def _wire(items) -> list[dict[str, Any]]:
    return [item.to_wire() for item in items]


def create_app(store: Optional[CatalogStore] = None, analyzer: Optional[UrlAnalyzer] = None):
    """Build the app; uvicorn calls this with no arguments (``factory=True``)."""
    store = store if store is not None else CatalogStore(database_path())
    analyzer = analyzer if analyzer is not None else UrlAnalyzer.for_store(store)

    app, rt = fast_app(exception_handlers=EXCEPTION_HANDLERS)
    app.state.store = store
    app.state.analyzer = analyzer

    @rt("/health", methods=["get"])
    def health():
        return JSONResponse({"status": "ok"})

    # Pipeline

    @rt("/analyze-url", methods=["post"])
    async def analyze_url(req: Request):
        body = await _body(req)
        if not isinstance(body, dict) or not isinstance(body.get("url"), str) or not body["url"].strip():
            return _error(400, "URL is required")
        request = AnalyzeRequest.model_validate(body)
        outcome = await analyzer.analyze_url(request.url)
        return JSONResponse(outcome.to_wire())

    @rt("/pipeline-runs", methods=["get"])
    def list_pipeline_runs(req: Request):
        pipeline = req.query_params.get("pipeline") or None
        try:
            limit = int(req.query_params.get("limit", DEFAULT_RUN_HISTORY))
        except ValueError:
            raise CatalogValidationError("limit must be an integer")
        return JSONResponse(store.get_pipeline_history(pipeline, limit=limit))

    # Categories

    @rt("/categories", methods=["get"])
    def list_categories():
        return JSONResponse(_wire(store.list_categories()))

    @rt("/categories", methods=["post"])
    async def create_category(req: Request):
        data = CategoryCreate.model_validate(await _body(req))
        return JSONResponse(store.create_category(data).to_wire(), status_code=201)

    @rt("/categories/{category_id}", methods=["get"])
    def get_category(category_id: str):
        return JSONResponse(store.get_category(category_id).to_wire())

    @rt("/categories/{category_id}", methods=["patch"])
    async def update_category(req: Request, category_id: str):
        data = CategoryUpdate.model_validate(await _body(req))
        return JSONResponse(store.update_category(category_id, data).to_wire())

    @rt("/categories/{category_id}", methods=["delete"])
    def delete_category(req: Request, category_id: str):
        raw_policy = req.query_params.get("policy", DeletePolicy.REJECT_IF_NONEMPTY.value)
        try:
            policy = DeletePolicy(raw_policy)
        except ValueError:
            raise CatalogValidationError(f"Unknown delete policy: {raw_policy}")
        store.delete_category(category_id, policy)
        return Response(status_code=204)

    @rt("/categories/{category_id}/reorder", methods=["post"])
    async def reorder_category(req: Request, category_id: str):
        data = ReorderRequest.model_validate(await _body(req))
        return JSONResponse(store.reorder(category_id, data.tool_ids).to_wire())

    # Tools

    @rt("/tools", methods=["get"])
    def list_tools(req: Request):
        category_id = req.query_params.get("categoryId") or None
        return JSONResponse(_wire(store.list_tools(category_id)))

    @rt("/tools", methods=["post"])
    async def create_tool(req: Request):
        data = ToolCreate.model_validate(await _body(req))
        return JSONResponse(store.create_tool(data).to_wire(), status_code=201)

    @rt("/tools/{tool_id}", methods=["get"])
    def get_tool(tool_id: str):
        return JSONResponse(store.get_tool(tool_id).to_wire())

    @rt("/tools/{tool_id}", methods=["patch"])
    async def update_tool(req: Request, tool_id: str):
        data = ToolUpdate.model_validate(await _body(req))
        return JSONResponse(store.update_tool(tool_id, data).to_wire())

    @rt("/tools/{tool_id}", methods=["delete"])
    def delete_tool(tool_id: str):
        store.delete_tool(tool_id)
        return Response(status_code=204)

    @rt("/tools/{tool_id}/move", methods=["post"])
    async def move_tool(req: Request, tool_id: str):
        data = MoveRequest.model_validate(await _body(req))
        tool = store.move_tool(tool_id, data.from_category_id, data.to_category_id, data.position)
        return JSONResponse(tool.to_wire())

    # Collections

    @rt("/collections", methods=["get"])
    def list_collections():
        return JSONResponse(_wire(store.list_collections()))

    @rt("/collections", methods=["post"])
    async def create_collection(req: Request):
        data = CollectionCreate.model_validate(await _body(req))
        return JSONResponse(store.create_collection(data).to_wire(), status_code=201)

    @rt("/collections/{collection_id}", methods=["get"])
    def get_collection(collection_id: str):
        return JSONResponse(store.get_collection(collection_id).to_wire())

    @rt("/collections/{collection_id}", methods=["patch"])
    async def update_collection(req: Request, collection_id: str):
        data = CollectionUpdate.model_validate(await _body(req))
        return JSONResponse(store.update_collection(collection_id, data).to_wire())

    @rt("/collections/{collection_id}", methods=["delete"])
    def delete_collection(collection_id: str):
        store.delete_collection(collection_id)
        return Response(status_code=204)

    @rt("/collections/{collection_id}/tools/{tool_id}", methods=["post"])
    def add_collection_tool(collection_id: str, tool_id: str):
        return JSONResponse(store.add_tool_to_collection(collection_id, tool_id).to_wire())

    @rt("/collections/{collection_id}/tools/{tool_id}", methods=["delete"])
    def remove_collection_tool(collection_id: str, tool_id: str):
        return JSONResponse(store.remove_tool_from_collection(collection_id, tool_id).to_wire())

    return app
