"""Tests for optimistic sync against the real app over httpx.ASGITransport."""

import asyncio

import httpx
import pytest

from ai_tool_catalog.api_client import CatalogApiClient
from ai_tool_catalog.errors import SyncError
from ai_tool_catalog.schemas import CategoryCreate
from ai_tool_catalog.schemas import CategoryUpdate
from ai_tool_catalog.schemas import CollectionCreate
from ai_tool_catalog.schemas import CollectionUpdate
from ai_tool_catalog.schemas import DeletePolicy
from ai_tool_catalog.schemas import ToolCreate
from ai_tool_catalog.schemas import ToolUpdate
from ai_tool_catalog.sync import SyncReconciler
from ai_tool_catalog.sync import is_temp_id
from ai_tool_catalog.web import create_app


class SpyTransport(httpx.AsyncBaseTransport):
    """Wraps the ASGI transport to observe requests and inject transport failures."""

    def __init__(self, inner: httpx.AsyncBaseTransport, failures: int = 0):
        self.inner = inner
        self.failures = failures
        self.on_request = None
        self.requests = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(f"{request.method} {request.url.path}")
        if self.on_request is not None:
            self.on_request(request)
        if self.failures > 0:
            self.failures -= 1
            raise httpx.ConnectError("connection reset", request=request)
        return await self.inner.handle_async_request(request)


@pytest.fixture
def transport(store):
    return SpyTransport(httpx.ASGITransport(app=create_app(store=store)))


def _run(transport, scenario):
    async def main():
        async with CatalogApiClient("http://catalog.test", transport=transport) as api:
            reconciler = SyncReconciler(api)
            await reconciler.refresh()
            return await scenario(reconciler)

    return asyncio.run(main())


def _tool(category_id: str, name: str = "ChatThing") -> ToolCreate:
    return ToolCreate(name=name, url=f"https://{name.lower()}.example.com", type="CHATBOT", category_id=category_id)


def test_refresh_mirrors_server_state(store, add_category, add_tool, transport):
    chat = add_category("Chat")
    dev = add_category("Dev", sort_order=-1)
    first = add_tool(chat.id, "First")
    second = add_tool(chat.id, "Second")

    async def scenario(reconciler):
        return reconciler.local

    local = _run(transport, scenario)

    assert [c.id for c in local.ordered_categories()] == [dev.id, chat.id]
    assert [t.id for t in local.tools_in(chat.id)] == [first.id, second.id]
    assert local.tools_in(dev.id) == []


def test_create_applies_locally_before_server_confirms(store, transport):
    seen_during_request = []

    async def scenario(reconciler):
        category = await reconciler.create_category(CategoryCreate(name="Chat"))

        def capture(request):
            if request.method == "POST" and request.url.path == "/tools":
                seen_during_request.extend(reconciler.local.categories[category.id].tool_ids)

        transport.on_request = capture
        tool = await reconciler.create_tool(_tool(category.id))
        return reconciler, category, tool

    reconciler, category, tool = _run(transport, scenario)

    assert len(seen_during_request) == 1 and is_temp_id(seen_during_request[0])
    assert reconciler.id_map[seen_during_request[0]] == tool.id
    assert reconciler.local.categories[category.id].tool_ids == [tool.id]
    assert set(reconciler.local.tools) == {tool.id}
    assert store.get_category(category.id).tool_ids == [tool.id]


def test_create_tool_under_confirmed_temp_category(store, transport):
    async def scenario(reconciler):
        category = await reconciler.create_category(CategoryCreate(name="Chat"))
        temp = next(t for t, real in reconciler.id_map.items() if real == category.id)
        tool = await reconciler.create_tool(_tool(temp))
        return tool, category

    tool, category = _run(transport, scenario)

    assert tool.category_id == category.id


def test_failed_create_is_rolled_back(store, add_category, transport):
    category = add_category("Chat")

    async def scenario(reconciler):
        # The server loses the category behind the client's back
        store.delete_category(category.id)
        with pytest.raises(SyncError) as excinfo:
            await reconciler.create_tool(_tool(category.id))
        return reconciler, excinfo.value

    reconciler, error = _run(transport, scenario)

    assert error.status_code == 400
    assert reconciler.local.tools == {}
    assert reconciler.local.categories[category.id].tool_ids == []
    assert reconciler.id_map == {}


def test_update_tool_moves_between_local_categories(store, add_category, add_tool, transport):
    chat = add_category("Chat")
    dev = add_category("Dev")
    tool = add_tool(chat.id, "Mover")

    async def scenario(reconciler):
        updated = await reconciler.update_tool(tool.id, ToolUpdate(category_id=dev.id, summary="Moved"))
        return reconciler, updated

    reconciler, updated = _run(transport, scenario)

    assert updated.summary == "Moved"
    assert reconciler.local.categories[chat.id].tool_ids == []
    assert reconciler.local.categories[dev.id].tool_ids == [tool.id]
    assert store.get_category(dev.id).tool_ids == [tool.id]


def test_rejected_delete_restores_category(store, add_category, add_tool, transport):
    category = add_category("Busy")
    tool = add_tool(category.id, "Busy Tool")

    async def scenario(reconciler):
        with pytest.raises(SyncError) as excinfo:
            await reconciler.delete_category(category.id)
        return reconciler, excinfo.value

    reconciler, error = _run(transport, scenario)

    assert error.status_code == 409
    assert reconciler.local.categories[category.id].tool_ids == [tool.id]
    assert tool.id in reconciler.local.tools


def test_cascade_delete_clears_local_tools_and_collections(store, add_category, add_tool, transport):
    doomed = add_category("Doomed")
    kept = add_category("Kept")
    gone = add_tool(doomed.id, "Gone")
    stays = add_tool(kept.id, "Stays")
    collection = store.create_collection(CollectionCreate(name="Mixed", tool_ids=[gone.id, stays.id]))

    async def scenario(reconciler):
        await reconciler.delete_category(doomed.id, DeletePolicy.CASCADE)
        return reconciler

    reconciler = _run(transport, scenario)

    assert doomed.id not in reconciler.local.categories
    assert set(reconciler.local.tools) == {stays.id}
    assert reconciler.local.collections[collection.id].tool_ids == [stays.id]
    assert store.list_tools() == [store.get_tool(stays.id)]


def test_delete_tool_updates_local_collections(store, add_category, add_tool, transport):
    category = add_category("Chat")
    tool = add_tool(category.id, "Gone")
    collection = store.create_collection(CollectionCreate(name="Favs", tool_ids=[tool.id]))

    async def scenario(reconciler):
        await reconciler.delete_tool(tool.id)
        return reconciler

    reconciler = _run(transport, scenario)

    assert reconciler.local.tools == {}
    assert reconciler.local.categories[category.id].tool_ids == []
    assert reconciler.local.collections[collection.id].tool_ids == []


def test_failed_reorder_restores_local_order(store, add_category, add_tool, transport):
    category = add_category("Chat")
    first = add_tool(category.id, "First")
    second = add_tool(category.id, "Second")

    async def scenario(reconciler):
        # Server gains a member the local copy has not seen
        add_tool(category.id, "Third")
        with pytest.raises(SyncError):
            await reconciler.reorder_category(category.id, [second.id, first.id])
        return reconciler

    reconciler = _run(transport, scenario)

    assert reconciler.local.categories[category.id].tool_ids == [first.id, second.id]


def test_update_category(store, add_category, transport):
    category = add_category("Chat")

    async def scenario(reconciler):
        return await reconciler.update_category(category.id, CategoryUpdate(collapsed=True))

    updated = _run(transport, scenario)

    assert updated.collapsed is True
    assert store.get_category(category.id).collapsed is True


def test_transport_error_is_retried_once(store, add_category, transport):
    add_category("Chat")
    transport.failures = 1

    async def scenario(reconciler):
        return reconciler.local

    local = _run(transport, scenario)

    assert len(local.categories) == 1
    assert transport.requests[:2] == ["GET /categories", "GET /categories"]


def test_repeated_transport_errors_raise(store, transport):
    async def scenario(reconciler):
        transport.failures = 2
        with pytest.raises(SyncError):
            await reconciler.create_category(CategoryCreate(name="Chat"))
        return reconciler

    reconciler = _run(transport, scenario)

    assert reconciler.local.categories == {}
    assert store.list_categories() == []


def test_reject_delete_of_nonempty_category_touches_nothing(store, add_category, add_tool, transport):
    category = add_category("Busy")
    tool = add_tool(category.id, "Busy Tool")

    async def scenario(reconciler):
        transport.requests.clear()
        with pytest.raises(SyncError) as excinfo:
            await reconciler.delete_category(category.id, DeletePolicy.REJECT_IF_NONEMPTY)
        return reconciler, excinfo.value

    reconciler, error = _run(transport, scenario)

    assert error.status_code == 409
    assert transport.requests == []
    assert reconciler.local.tools[tool.id].category_id in reconciler.local.categories
    assert store.get_category(category.id).tool_ids == [tool.id]


def test_server_side_reject_restores_category(store, add_category, add_tool, transport):
    category = add_category("Quiet")

    async def scenario(reconciler):
        # Server gains a tool the local copy has not seen
        add_tool(category.id, "Late Arrival")
        with pytest.raises(SyncError) as excinfo:
            await reconciler.delete_category(category.id)
        return reconciler, excinfo.value

    reconciler, error = _run(transport, scenario)

    assert error.status_code == 409
    assert category.id in reconciler.local.categories


def test_cascade_delete_never_exposes_orphaned_tools(store, add_category, add_tool, transport):
    doomed = add_category("Doomed")
    add_tool(doomed.id, "Gone")
    add_tool(doomed.id, "Also Gone")
    orphans_during_request = []

    async def scenario(reconciler):
        def capture(request):
            if request.method == "DELETE":
                local = reconciler.local
                orphans_during_request.extend(
                    t.id for t in local.tools.values() if t.category_id not in local.categories
                )

        transport.on_request = capture
        await reconciler.delete_category(doomed.id, DeletePolicy.CASCADE)
        return reconciler

    reconciler = _run(transport, scenario)

    assert orphans_during_request == []
    assert reconciler.local.tools == {}


def test_move_tool_applies_locally_before_server_confirms(store, add_category, add_tool, transport):
    chat = add_category("Chat")
    dev = add_category("Dev")
    mover = add_tool(chat.id, "Mover")
    anchor = add_tool(dev.id, "Anchor")
    seen_during_request = []

    async def scenario(reconciler):
        def capture(request):
            if request.url.path.endswith("/move"):
                seen_during_request.append(list(reconciler.local.categories[dev.id].tool_ids))

        transport.on_request = capture
        moved = await reconciler.move_tool(mover.id, dev.id, position=0)
        return reconciler, moved

    reconciler, moved = _run(transport, scenario)

    assert seen_during_request == [[mover.id, anchor.id]]
    assert moved.category_id == dev.id
    assert reconciler.local.categories[chat.id].tool_ids == []
    assert store.get_category(dev.id).tool_ids == [mover.id, anchor.id]


def test_failed_move_is_rolled_back(store, add_category, add_tool, transport):
    chat = add_category("Chat")
    dev = add_category("Dev")
    mover = add_tool(chat.id, "Mover")

    async def scenario(reconciler):
        store.delete_category(dev.id)
        with pytest.raises(SyncError) as excinfo:
            await reconciler.move_tool(mover.id, dev.id)
        return reconciler, excinfo.value

    reconciler, error = _run(transport, scenario)

    assert error.status_code == 404
    assert reconciler.local.tools[mover.id].category_id == chat.id
    assert reconciler.local.categories[chat.id].tool_ids == [mover.id]
    assert reconciler.local.categories[dev.id].tool_ids == []


def test_collection_lifecycle(store, add_category, add_tool, transport):
    category = add_category("Chat")
    first = add_tool(category.id, "First")
    second = add_tool(category.id, "Second")

    async def scenario(reconciler):
        created = await reconciler.create_collection(CollectionCreate(name="Favs", tool_ids=[first.id]))
        await reconciler.add_tool_to_collection(created.id, second.id)
        await reconciler.remove_tool_from_collection(created.id, first.id)
        renamed = await reconciler.update_collection(created.id, CollectionUpdate(name="Picks"))
        return reconciler, renamed

    reconciler, renamed = _run(transport, scenario)

    assert renamed.name == "Picks"
    assert renamed.tool_ids == [second.id]
    assert reconciler.local.collections == {renamed.id: renamed}
    assert store.get_collection(renamed.id).tool_ids == [second.id]


def test_create_collection_gets_temp_id_until_confirmed(store, add_category, transport):
    category = add_category("Chat")
    seen_during_request = []

    async def scenario(reconciler):
        tool = await reconciler.create_tool(_tool(category.id))
        temp_tool = next(t for t, real in reconciler.id_map.items() if real == tool.id)

        def capture(request):
            if request.method == "POST" and request.url.path == "/collections":
                seen_during_request.extend(reconciler.local.collections)

        transport.on_request = capture
        collection = await reconciler.create_collection(CollectionCreate(name="Favs", tool_ids=[temp_tool]))
        return reconciler, tool, collection

    reconciler, tool, collection = _run(transport, scenario)

    assert len(seen_during_request) == 1 and is_temp_id(seen_during_request[0])
    assert reconciler.id_map[seen_during_request[0]] == collection.id
    assert collection.tool_ids == [tool.id]


def test_failed_collection_add_is_rolled_back(store, add_category, add_tool, transport):
    category = add_category("Chat")
    tool = add_tool(category.id, "Gone")
    collection = store.create_collection(CollectionCreate(name="Favs"))

    async def scenario(reconciler):
        store.delete_tool(tool.id)
        with pytest.raises(SyncError):
            await reconciler.add_tool_to_collection(collection.id, tool.id)
        return reconciler

    reconciler = _run(transport, scenario)

    assert reconciler.local.collections[collection.id].tool_ids == []


def test_delete_collection(store, transport):
    collection = store.create_collection(CollectionCreate(name="Favs"))

    async def scenario(reconciler):
        await reconciler.delete_collection(collection.id)
        return reconciler

    reconciler = _run(transport, scenario)

    assert reconciler.local.collections == {}
    assert store.list_collections() == []
