"""Optimistic local catalog kept in step with the server.

Each mutation is two-phase: it is applied to the local copy first (creates get
a ``tmp-<uuid>`` id), then sent to the server. A successful reply replaces the
tentative entity, swapping the temporary id for the server's everywhere it is
referenced. A failed reply restores the touched entities and raises
``SyncError``.
"""

import logging
import uuid
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timezone
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from .api_client import CatalogApiClient
from .errors import SyncError
from .schemas import Category
from .schemas import CategoryCreate
from .schemas import CategoryUpdate
from .schemas import Collection
from .schemas import CollectionCreate
from .schemas import CollectionUpdate
from .schemas import DeletePolicy
from .schemas import Tool
from .schemas import ToolCreate
from .schemas import ToolUpdate

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "tmp-"


def temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def is_temp_id(entity_id: str) -> bool:
    return entity_id.startswith(TEMP_ID_PREFIX)


@dataclass
class Snapshot:
    """Pre-mutation copies of touched entities; ``None`` marks one that did not exist."""

    categories: Dict[str, Optional[Category]] = field(default_factory=dict)
    tools: Dict[str, Optional[Tool]] = field(default_factory=dict)
    collections: Dict[str, Optional[Collection]] = field(default_factory=dict)


class LocalCatalog:
    """In-memory mirror of the server catalog."""

    def __init__(self):
        self.categories: Dict[str, Category] = {}
        self.tools: Dict[str, Tool] = {}
        self.collections: Dict[str, Collection] = {}

    def load(self, categories: Iterable[Category], tools: Iterable[Tool], collections: Iterable[Collection]) -> None:
        self.categories = {c.id: c for c in categories}
        self.tools = {t.id: t for t in tools}
        self.collections = {c.id: c for c in collections}

    def ordered_categories(self) -> List[Category]:
        return sorted(self.categories.values(), key=lambda c: c.sort_order)

    def tools_in(self, category_id: str) -> List[Tool]:
        category = self.categories[category_id]
        return [self.tools[tool_id] for tool_id in category.tool_ids if tool_id in self.tools]

    def snapshot(
        self,
        category_ids: Iterable[str] = (),
        tool_ids: Iterable[str] = (),
        collection_ids: Iterable[str] = (),
    ) -> Snapshot:
        def copy(store, key):
            entity = store.get(key)
            return entity.model_copy(deep=True) if entity is not None else None

        return Snapshot(
            categories={cid: copy(self.categories, cid) for cid in category_ids},
            tools={tid: copy(self.tools, tid) for tid in tool_ids},
            collections={cid: copy(self.collections, cid) for cid in collection_ids},
        )

    def restore(self, snapshot: Snapshot) -> None:
        for target, saved in (
            (self.categories, snapshot.categories),
            (self.tools, snapshot.tools),
            (self.collections, snapshot.collections),
        ):
            for key, entity in saved.items():
                if entity is None:
                    target.pop(key, None)
                else:
                    target[key] = entity

    def collections_containing(self, tool_id: str) -> List[str]:
        return [c.id for c in self.collections.values() if tool_id in c.tool_ids]

    def set_category_tools(self, category_id: str, tool_ids: List[str]) -> None:
        category = self.categories[category_id]
        self.categories[category_id] = category.model_copy(update={"tool_ids": list(tool_ids)})

    def replace_tool_id(self, old_id: str, new_id: str) -> None:
        for category in list(self.categories.values()):
            if old_id in category.tool_ids:
                self.set_category_tools(category.id, [new_id if t == old_id else t for t in category.tool_ids])
        for collection in list(self.collections.values()):
            if old_id in collection.tool_ids:
                updated = [new_id if t == old_id else t for t in collection.tool_ids]
                self.collections[collection.id] = collection.model_copy(update={"tool_ids": updated})

    def replace_category_id(self, old_id: str, new_id: str) -> None:
        for tool in list(self.tools.values()):
            if tool.category_id == old_id:
                self.tools[tool.id] = tool.model_copy(update={"category_id": new_id})


class SyncReconciler:
    def __init__(self, client: CatalogApiClient, local: Optional[LocalCatalog] = None):
        self.client = client
        self.local = local or LocalCatalog()
        self.id_map: Dict[str, str] = {}

    def resolve(self, entity_id: str) -> str:
        """Server id for a temporary id that has been confirmed; otherwise the id itself."""
        return self.id_map.get(entity_id, entity_id)

    async def refresh(self) -> LocalCatalog:
        """Replace the local copy with server state."""
        categories = await self.client.list_categories()
        tools = await self.client.list_tools()
        collections = await self.client.list_collections()
        self.local.load(categories, tools, collections)
        logger.info(f"Refreshed local catalog: {len(categories)} categories, {len(tools)} tools")
        return self.local

    def _rollback(self, snapshot: Snapshot, action: str, exc: SyncError) -> None:
        self.local.restore(snapshot)
        logger.warning(f"Rolled back {action}: {exc}")

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def create_tool(self, data: ToolCreate) -> Tool:
        category_id = self.resolve(data.category_id)
        if category_id not in self.local.categories:
            raise SyncError(f"Unknown local category: {data.category_id}")

        tentative_id = temp_id()
        snapshot = self.local.snapshot(category_ids=[category_id], tool_ids=[tentative_id])
        fields = data.model_dump()
        fields["category_id"] = category_id
        self.local.tools[tentative_id] = Tool(id=tentative_id, created_at=datetime.now(timezone.utc), **fields)
        self.local.set_category_tools(category_id, [*self.local.categories[category_id].tool_ids, tentative_id])

        body = data.to_wire()
        body["categoryId"] = category_id
        try:
            created = await self.client.create_tool(body)
        except SyncError as exc:
            self._rollback(snapshot, f"create tool {data.name!r}", exc)
            raise

        del self.local.tools[tentative_id]
        self.local.tools[created.id] = created
        self.local.replace_tool_id(tentative_id, created.id)
        self.id_map[tentative_id] = created.id
        return created

    async def update_tool(self, tool_id: str, data: ToolUpdate) -> Tool:
        tool_id = self.resolve(tool_id)
        current = self.local.tools.get(tool_id)
        if current is None:
            raise SyncError(f"Unknown local tool: {tool_id}")

        changes = data.changes(nullable=("notes",))
        if "category_id" in changes:
            changes["category_id"] = self.resolve(changes["category_id"])
        target_category = changes.get("category_id", current.category_id)
        if target_category not in self.local.categories:
            raise SyncError(f"Unknown local category: {target_category}")

        snapshot = self.local.snapshot(category_ids={current.category_id, target_category}, tool_ids=[tool_id])
        self.local.tools[tool_id] = current.model_copy(update=changes)
        if target_category != current.category_id:
            source = self.local.categories[current.category_id]
            self.local.set_category_tools(current.category_id, [t for t in source.tool_ids if t != tool_id])
            self.local.set_category_tools(
                target_category, [*self.local.categories[target_category].tool_ids, tool_id]
            )

        body = data.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if "category_id" in changes:
            body["categoryId"] = changes["category_id"]
        try:
            updated = await self.client.update_tool(tool_id, body)
        except SyncError as exc:
            self._rollback(snapshot, f"update tool {tool_id}", exc)
            raise

        self.local.tools[tool_id] = updated
        return updated

    async def delete_tool(self, tool_id: str) -> None:
        tool_id = self.resolve(tool_id)
        current = self.local.tools.get(tool_id)
        if current is None:
            raise SyncError(f"Unknown local tool: {tool_id}")

        collection_ids = self.local.collections_containing(tool_id)
        snapshot = self.local.snapshot(
            category_ids=[current.category_id], tool_ids=[tool_id], collection_ids=collection_ids
        )
        category = self.local.categories[current.category_id]
        self.local.set_category_tools(category.id, [t for t in category.tool_ids if t != tool_id])
        for collection_id in collection_ids:
            collection = self.local.collections[collection_id]
            remaining = [t for t in collection.tool_ids if t != tool_id]
            self.local.collections[collection_id] = collection.model_copy(update={"tool_ids": remaining})
        del self.local.tools[tool_id]

        try:
            await self.client.delete_tool(tool_id)
        except SyncError as exc:
            self._rollback(snapshot, f"delete tool {tool_id}", exc)
            raise

    async def move_tool(self, tool_id: str, to_category_id: str, position: Optional[int] = None) -> Tool:
        """Re-file a tool under ``to_category_id``; ``position`` past the end appends."""
        tool_id = self.resolve(tool_id)
        to_category_id = self.resolve(to_category_id)
        current = self.local.tools.get(tool_id)
        if current is None:
            raise SyncError(f"Unknown local tool: {tool_id}")
        if to_category_id not in self.local.categories:
            raise SyncError(f"Unknown local category: {to_category_id}")
        if position is not None and position < 0:
            raise SyncError("Position must be zero or greater", 400)

        from_category_id = current.category_id
        snapshot = self.local.snapshot(category_ids={from_category_id, to_category_id}, tool_ids=[tool_id])
        source = [t for t in self.local.categories[from_category_id].tool_ids if t != tool_id]
        target = source if from_category_id == to_category_id else list(self.local.categories[to_category_id].tool_ids)
        target.insert(len(target) if position is None else min(position, len(target)), tool_id)
        if from_category_id != to_category_id:
            self.local.set_category_tools(from_category_id, source)
        self.local.set_category_tools(to_category_id, target)
        self.local.tools[tool_id] = current.model_copy(update={"category_id": to_category_id})

        try:
            moved = await self.client.move_tool(tool_id, from_category_id, to_category_id, position)
        except SyncError as exc:
            self._rollback(snapshot, f"move tool {tool_id}", exc)
            raise

        self.local.tools[tool_id] = moved
        return moved

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def create_category(self, data: CategoryCreate) -> Category:
        tentative_id = temp_id()
        snapshot = self.local.snapshot(category_ids=[tentative_id])
        if data.sort_order is not None:
            sort_order = data.sort_order
        else:
            sort_order = max((c.sort_order for c in self.local.categories.values()), default=-1) + 1
        self.local.categories[tentative_id] = Category(
            id=tentative_id, name=data.name, collapsed=data.collapsed, sort_order=sort_order
        )

        try:
            created = await self.client.create_category(data.to_wire())
        except SyncError as exc:
            self._rollback(snapshot, f"create category {data.name!r}", exc)
            raise

        del self.local.categories[tentative_id]
        self.local.categories[created.id] = created
        self.local.replace_category_id(tentative_id, created.id)
        self.id_map[tentative_id] = created.id
        return created

    async def update_category(self, category_id: str, data: CategoryUpdate) -> Category:
        category_id = self.resolve(category_id)
        current = self.local.categories.get(category_id)
        if current is None:
            raise SyncError(f"Unknown local category: {category_id}")

        snapshot = self.local.snapshot(category_ids=[category_id])
        self.local.categories[category_id] = current.model_copy(update=data.changes())

        try:
            updated = await self.client.update_category(
                category_id, data.model_dump(mode="json", by_alias=True, exclude_unset=True)
            )
        except SyncError as exc:
            self._rollback(snapshot, f"update category {category_id}", exc)
            raise

        self.local.categories[category_id] = updated
        return updated

    async def reorder_category(self, category_id: str, tool_ids: List[str]) -> Category:
        category_id = self.resolve(category_id)
        if category_id not in self.local.categories:
            raise SyncError(f"Unknown local category: {category_id}")
        tool_ids = [self.resolve(t) for t in tool_ids]

        snapshot = self.local.snapshot(category_ids=[category_id])
        self.local.set_category_tools(category_id, tool_ids)

        try:
            updated = await self.client.reorder_category(category_id, tool_ids)
        except SyncError as exc:
            self._rollback(snapshot, f"reorder category {category_id}", exc)
            raise

        self.local.categories[category_id] = updated
        return updated

    async def delete_category(
        self, category_id: str, policy: DeletePolicy = DeletePolicy.REJECT_IF_NONEMPTY
    ) -> None:
        category_id = self.resolve(category_id)
        current = self.local.categories.get(category_id)
        if current is None:
            raise SyncError(f"Unknown local category: {category_id}")

        policy = DeletePolicy(policy)
        tool_ids = [t.id for t in self.local.tools.values() if t.category_id == category_id]
        if tool_ids and policy == DeletePolicy.REJECT_IF_NONEMPTY:
            # Rejected before any local change so no tool ever points at a missing category
            raise SyncError(f"Category {category_id} still holds {len(tool_ids)} tool(s)", 409)
        collection_ids = {cid for tid in tool_ids for cid in self.local.collections_containing(tid)}
        snapshot = self.local.snapshot(category_ids=[category_id], tool_ids=tool_ids, collection_ids=collection_ids)

        del self.local.categories[category_id]
        if policy == DeletePolicy.CASCADE:
            removed = set(tool_ids)
            for tool_id in tool_ids:
                del self.local.tools[tool_id]
            for collection_id in collection_ids:
                collection = self.local.collections[collection_id]
                remaining = [t for t in collection.tool_ids if t not in removed]
                self.local.collections[collection_id] = collection.model_copy(update={"tool_ids": remaining})

        try:
            await self.client.delete_category(category_id, policy.value)
        except SyncError as exc:
            self._rollback(snapshot, f"delete category {category_id}", exc)
            raise

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _known_tools(self, tool_ids: Iterable[str]) -> List[str]:
        resolved = [self.resolve(t) for t in tool_ids]
        unknown = [t for t in resolved if t not in self.local.tools]
        if unknown:
            raise SyncError(f"Unknown local tool(s): {', '.join(unknown)}")
        return resolved

    def _collection(self, collection_id: str) -> Collection:
        current = self.local.collections.get(collection_id)
        if current is None:
            raise SyncError(f"Unknown local collection: {collection_id}")
        return current

    async def create_collection(self, data: CollectionCreate) -> Collection:
        tool_ids = self._known_tools(data.tool_ids)
        tentative_id = temp_id()
        snapshot = self.local.snapshot(collection_ids=[tentative_id])
        if data.sort_order is not None:
            sort_order = data.sort_order
        else:
            sort_order = max((c.sort_order for c in self.local.collections.values()), default=-1) + 1
        self.local.collections[tentative_id] = Collection(
            id=tentative_id, name=data.name, tool_ids=tool_ids, sort_order=sort_order
        )

        try:
            created = await self.client.create_collection(data.model_copy(update={"tool_ids": tool_ids}).to_wire())
        except SyncError as exc:
            self._rollback(snapshot, f"create collection {data.name!r}", exc)
            raise

        del self.local.collections[tentative_id]
        self.local.collections[created.id] = created
        self.id_map[tentative_id] = created.id
        return created

    async def update_collection(self, collection_id: str, data: CollectionUpdate) -> Collection:
        collection_id = self.resolve(collection_id)
        current = self._collection(collection_id)
        changes = data.changes()
        if "tool_ids" in changes:
            changes["tool_ids"] = self._known_tools(changes["tool_ids"])

        snapshot = self.local.snapshot(collection_ids=[collection_id])
        self.local.collections[collection_id] = current.model_copy(update=changes)

        body = data.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if "tool_ids" in changes:
            body["toolIds"] = changes["tool_ids"]
        try:
            updated = await self.client.update_collection(collection_id, body)
        except SyncError as exc:
            self._rollback(snapshot, f"update collection {collection_id}", exc)
            raise

        self.local.collections[collection_id] = updated
        return updated

    async def delete_collection(self, collection_id: str) -> None:
        collection_id = self.resolve(collection_id)
        self._collection(collection_id)

        snapshot = self.local.snapshot(collection_ids=[collection_id])
        del self.local.collections[collection_id]

        try:
            await self.client.delete_collection(collection_id)
        except SyncError as exc:
            self._rollback(snapshot, f"delete collection {collection_id}", exc)
            raise

    async def add_tool_to_collection(self, collection_id: str, tool_id: str) -> Collection:
        collection_id = self.resolve(collection_id)
        current = self._collection(collection_id)
        (tool_id,) = self._known_tools([tool_id])

        snapshot = self.local.snapshot(collection_ids=[collection_id])
        if tool_id not in current.tool_ids:
            self.local.collections[collection_id] = current.model_copy(
                update={"tool_ids": [*current.tool_ids, tool_id]}
            )

        try:
            updated = await self.client.add_tool_to_collection(collection_id, tool_id)
        except SyncError as exc:
            self._rollback(snapshot, f"add tool {tool_id} to collection {collection_id}", exc)
            raise

        self.local.collections[collection_id] = updated
        return updated

    async def remove_tool_from_collection(self, collection_id: str, tool_id: str) -> Collection:
        collection_id = self.resolve(collection_id)
        tool_id = self.resolve(tool_id)
        current = self._collection(collection_id)

        snapshot = self.local.snapshot(collection_ids=[collection_id])
        self.local.collections[collection_id] = current.model_copy(
            update={"tool_ids": [t for t in current.tool_ids if t != tool_id]}
        )

        try:
            updated = await self.client.remove_tool_from_collection(collection_id, tool_id)
        except SyncError as exc:
            self._rollback(snapshot, f"remove tool {tool_id} from collection {collection_id}", exc)
            raise

        self.local.collections[collection_id] = updated
        return updated
