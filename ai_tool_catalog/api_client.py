"""Async client for the catalog REST surface."""

import logging
from typing import Any
from typing import List
from typing import Optional

import httpx

from .errors import SyncError
from .schemas import Category
from .schemas import Collection
from .schemas import Tool

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class CatalogApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` returning pydantic models.

    Transport errors are retried once; any non-2xx reply raises ``SyncError``
    carrying the server's ``error`` message and status code.
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CatalogApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        for attempt in (1, 2):
            try:
                response = await self._client.request(method, path, **kwargs)
                break
            except httpx.TransportError as exc:
                if attempt == 2:
                    raise SyncError(f"{method} {path} failed: {exc}") from exc
                logger.warning(f"{method} {path} transport error, retrying once: {exc}")

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            message = message or response.text or response.reason_phrase
            raise SyncError(f"{method} {path} returned {response.status_code}: {message}", response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Categories

    async def list_categories(self) -> List[Category]:
        return [Category.model_validate(item) for item in await self._request("GET", "/categories")]

    async def create_category(self, body: dict[str, Any]) -> Category:
        return Category.model_validate(await self._request("POST", "/categories", json=body))

    async def update_category(self, category_id: str, body: dict[str, Any]) -> Category:
        return Category.model_validate(await self._request("PATCH", f"/categories/{category_id}", json=body))

    async def delete_category(self, category_id: str, policy: Optional[str] = None) -> None:
        params = {"policy": policy} if policy else None
        await self._request("DELETE", f"/categories/{category_id}", params=params)

    async def reorder_category(self, category_id: str, tool_ids: List[str]) -> Category:
        data = await self._request("POST", f"/categories/{category_id}/reorder", json={"toolIds": tool_ids})
        return Category.model_validate(data)

    # Tools

    async def list_tools(self, category_id: Optional[str] = None) -> List[Tool]:
        params = {"categoryId": category_id} if category_id else None
        return [Tool.model_validate(item) for item in await self._request("GET", "/tools", params=params)]

    async def create_tool(self, body: dict[str, Any]) -> Tool:
        return Tool.model_validate(await self._request("POST", "/tools", json=body))

    async def update_tool(self, tool_id: str, body: dict[str, Any]) -> Tool:
        return Tool.model_validate(await self._request("PATCH", f"/tools/{tool_id}", json=body))

    async def delete_tool(self, tool_id: str) -> None:
        await self._request("DELETE", f"/tools/{tool_id}")

    async def move_tool(
        self, tool_id: str, from_category_id: str, to_category_id: str, position: Optional[int] = None
    ) -> Tool:
        body: dict[str, Any] = {"fromCategoryId": from_category_id, "toCategoryId": to_category_id}
        if position is not None:
            body["position"] = position
        return Tool.model_validate(await self._request("POST", f"/tools/{tool_id}/move", json=body))

    # Collections

    async def list_collections(self) -> List[Collection]:
        return [Collection.model_validate(item) for item in await self._request("GET", "/collections")]

    async def create_collection(self, body: dict[str, Any]) -> Collection:
        return Collection.model_validate(await self._request("POST", "/collections", json=body))

    async def update_collection(self, collection_id: str, body: dict[str, Any]) -> Collection:
        return Collection.model_validate(await self._request("PATCH", f"/collections/{collection_id}", json=body))

    async def delete_collection(self, collection_id: str) -> None:
        await self._request("DELETE", f"/collections/{collection_id}")

    async def add_tool_to_collection(self, collection_id: str, tool_id: str) -> Collection:
        data = await self._request("POST", f"/collections/{collection_id}/tools/{tool_id}")
        return Collection.model_validate(data)

    async def remove_tool_from_collection(self, collection_id: str, tool_id: str) -> Collection:
        data = await self._request("DELETE", f"/collections/{collection_id}/tools/{tool_id}")
        return Collection.model_validate(data)
