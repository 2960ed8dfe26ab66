"""SQLite-backed catalog store for categories, tools and collections.

Every public method runs under one re-entrant lock and commits (or rolls back)
a single transaction, so compound operations such as ``move_tool`` and
``delete_category`` are never observed half-applied.

Invariants kept by this module:
- every tool's ``category_id`` references an existing category;
- ``category_tool_order`` holds exactly one row per tool, under the tool's
  own category, so a category's ``tool_ids`` is exactly its members;
- collection membership only references existing tools.
"""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import Callable
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional

from .errors import CatalogValidationError
from .errors import CategoryNotEmptyError
from .errors import NotFoundError
from .schemas import Category
from .schemas import CategoryCreate
from .schemas import CategoryRef
from .schemas import CategoryUpdate
from .schemas import Collection
from .schemas import CollectionCreate
from .schemas import CollectionUpdate
from .schemas import DeletePolicy
from .schemas import Tool
from .schemas import ToolCreate
from .schemas import ToolUpdate

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    collapsed INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS tools (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    type TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    what_it_is TEXT NOT NULL DEFAULT '',
    capabilities TEXT NOT NULL DEFAULT '[]',  -- JSON array
    best_for TEXT NOT NULL DEFAULT '[]',      -- JSON array
    tags TEXT NOT NULL DEFAULT '[]',          -- JSON array
    category_id TEXT NOT NULL REFERENCES categories(id),
    is_pinned INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'active',
    content_type TEXT NOT NULL DEFAULT 'tool',
    created_at TEXT NOT NULL,
    notes TEXT
);
CREATE INDEX IF NOT EXISTS tools_category_id_idx ON tools(category_id);

CREATE TABLE IF NOT EXISTS category_tool_order (
    category_id TEXT NOT NULL REFERENCES categories(id),
    tool_id TEXT NOT NULL UNIQUE REFERENCES tools(id),
    position INTEGER NOT NULL,
    PRIMARY KEY (category_id, tool_id)
);

CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS collection_tool (
    collection_id TEXT NOT NULL REFERENCES collections(id),
    tool_id TEXT NOT NULL REFERENCES tools(id),
    position INTEGER NOT NULL,
    PRIMARY KEY (collection_id, tool_id)
);

CREATE TABLE IF NOT EXISTS pipeline_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pipeline TEXT NOT NULL,           -- 'analyze_url'
    status TEXT NOT NULL,             -- 'success', 'error'
    started_at TEXT NOT NULL,         -- ISO timestamp
    finished_at TEXT,                 -- ISO timestamp
    duration_seconds REAL,
    metrics TEXT,                     -- JSON blob
    attributes TEXT,                  -- JSON blob (url, content kind, etc.)
    error_type TEXT,
    error_note TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

_TOOL_LIST_COLUMNS = ("capabilities", "best_for", "tags")

CategoryListener = Callable[[], None]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class CatalogStore:
    def __init__(self, db_path: str = ":memory:"):
        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)
        self._conn.commit()
        self._category_listeners: List[CategoryListener] = []
        logger.info(f"Catalog store ready at {db_path}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the store lock and commit on success, roll back on any error."""
        with self._lock:
            with self._conn:
                yield self._conn

    @contextmanager
    def _category_transaction(self) -> Iterator[sqlite3.Connection]:
        """A transaction whose category listeners run after commit, before the lock is released."""
        with self._lock:
            with self._transaction() as conn:
                yield conn
            self._notify_category_change()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_category_listener(self, listener: CategoryListener) -> None:
        """Register a callback run synchronously after every category mutation.

        Listeners run while the store lock is still held, so no other caller
        can observe the committed change before every listener has seen it.
        """
        self._category_listeners.append(listener)

    def _notify_category_change(self) -> None:
        for listener in list(self._category_listeners):
            listener()

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def _category_order(self, conn: sqlite3.Connection, category_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT tool_id FROM category_tool_order WHERE category_id = ? ORDER BY position",
            (category_id,),
        ).fetchall()
        return [row["tool_id"] for row in rows]

    def _write_category_order(self, conn: sqlite3.Connection, category_id: str, tool_ids: List[str]) -> None:
        conn.execute("DELETE FROM category_tool_order WHERE category_id = ?", (category_id,))
        conn.executemany(
            "INSERT INTO category_tool_order (category_id, tool_id, position) VALUES (?, ?, ?)",
            [(category_id, tool_id, position) for position, tool_id in enumerate(tool_ids)],
        )

    def _collection_members(self, conn: sqlite3.Connection, collection_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT tool_id FROM collection_tool WHERE collection_id = ? ORDER BY position",
            (collection_id,),
        ).fetchall()
        return [row["tool_id"] for row in rows]

    def _write_collection_members(self, conn: sqlite3.Connection, collection_id: str, tool_ids: List[str]) -> None:
        conn.execute("DELETE FROM collection_tool WHERE collection_id = ?", (collection_id,))
        conn.executemany(
            "INSERT INTO collection_tool (collection_id, tool_id, position) VALUES (?, ?, ?)",
            [(collection_id, tool_id, position) for position, tool_id in enumerate(tool_ids)],
        )

    def _category_row(self, conn: sqlite3.Connection, category_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
        if row is None:
            raise NotFoundError("Category", category_id)
        return row

    def _tool_row(self, conn: sqlite3.Connection, tool_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM tools WHERE id = ?", (tool_id,)).fetchone()
        if row is None:
            raise NotFoundError("Tool", tool_id)
        return row

    def _collection_row(self, conn: sqlite3.Connection, collection_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM collections WHERE id = ?", (collection_id,)).fetchone()
        if row is None:
            raise NotFoundError("Collection", collection_id)
        return row

    def _to_category(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            tool_ids=self._category_order(conn, row["id"]),
            collapsed=bool(row["collapsed"]),
            sort_order=row["sort_order"],
        )

    @staticmethod
    def _to_tool(row: sqlite3.Row) -> Tool:
        data = dict(row)
        for column in _TOOL_LIST_COLUMNS:
            data[column] = json.loads(data[column])
        data["is_pinned"] = bool(data["is_pinned"])
        return Tool(**data)

    def _to_collection(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Collection:
        return Collection(
            id=row["id"],
            name=row["name"],
            tool_ids=self._collection_members(conn, row["id"]),
            sort_order=row["sort_order"],
        )

    @staticmethod
    def _next_sort_order(conn: sqlite3.Connection, table: str) -> int:
        row = conn.execute(f"SELECT COALESCE(MAX(sort_order), -1) + 1 AS next FROM {table}").fetchone()
        return row["next"]

    def _validate_tool_refs(self, conn: sqlite3.Connection, tool_ids: List[str]) -> None:
        if len(set(tool_ids)) != len(tool_ids):
            raise CatalogValidationError("Duplicate tool ids in collection membership")
        for tool_id in tool_ids:
            if conn.execute("SELECT 1 FROM tools WHERE id = ?", (tool_id,)).fetchone() is None:
                raise CatalogValidationError(f"Unknown tool id: {tool_id}")

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self) -> List[Category]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM categories ORDER BY sort_order, rowid").fetchall()
            return [self._to_category(conn, row) for row in rows]

    def category_refs(self) -> List[CategoryRef]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT id, name FROM categories ORDER BY sort_order, rowid").fetchall()
            return [CategoryRef(id=row["id"], name=row["name"]) for row in rows]

    def get_category(self, category_id: str) -> Category:
        with self._transaction() as conn:
            return self._to_category(conn, self._category_row(conn, category_id))

    def create_category(self, data: CategoryCreate) -> Category:
        if data.tool_ids:
            raise CatalogValidationError("Categories are created empty; file tools with create_tool or move_tool")
        with self._category_transaction() as conn:
            category_id = _new_id()
            sort_order = data.sort_order if data.sort_order is not None else self._next_sort_order(conn, "categories")
            conn.execute(
                "INSERT INTO categories (id, name, collapsed, sort_order) VALUES (?, ?, ?, ?)",
                (category_id, data.name, int(data.collapsed), sort_order),
            )
            category = self._to_category(conn, self._category_row(conn, category_id))
        logger.info(f"Created category {category.name!r} ({category.id})")
        return category

    def update_category(self, category_id: str, data: CategoryUpdate) -> Category:
        changes = data.changes()
        with self._category_transaction() as conn:
            self._category_row(conn, category_id)
            if "tool_ids" in changes:
                self._reorder(conn, category_id, changes.pop("tool_ids"))
            if "collapsed" in changes:
                changes["collapsed"] = int(changes["collapsed"])
            if changes:
                assignments = ", ".join(f"{column} = ?" for column in changes)
                conn.execute(
                    f"UPDATE categories SET {assignments} WHERE id = ?",
                    [*changes.values(), category_id],
                )
            category = self._to_category(conn, self._category_row(conn, category_id))
        return category

    def delete_category(self, category_id: str, policy: DeletePolicy = DeletePolicy.REJECT_IF_NONEMPTY) -> List[str]:
        """Delete a category; returns the ids of tools removed along with it."""
        policy = DeletePolicy(policy)
        with self._category_transaction() as conn:
            self._category_row(conn, category_id)
            tool_ids = [
                row["id"]
                for row in conn.execute("SELECT id FROM tools WHERE category_id = ?", (category_id,)).fetchall()
            ]
            if tool_ids and policy == DeletePolicy.REJECT_IF_NONEMPTY:
                raise CategoryNotEmptyError(category_id, len(tool_ids))
            for tool_id in tool_ids:
                self._delete_tool(conn, tool_id)
            conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        logger.info(f"Deleted category {category_id} ({policy.value}, {len(tool_ids)} tools removed)")
        return tool_ids

    def reorder(self, category_id: str, new_order: List[str]) -> Category:
        with self._transaction() as conn:
            self._category_row(conn, category_id)
            self._reorder(conn, category_id, new_order)
            return self._to_category(conn, self._category_row(conn, category_id))

    def _reorder(self, conn: sqlite3.Connection, category_id: str, new_order: List[str]) -> None:
        current = self._category_order(conn, category_id)
        if len(set(new_order)) != len(new_order):
            raise CatalogValidationError("New order contains duplicate tool ids")
        current_ids, requested_ids = set(current), set(new_order)
        extra = [tool_id for tool_id in new_order if tool_id not in current_ids]
        missing = [tool_id for tool_id in current if tool_id not in requested_ids]
        if extra or missing:
            problems = []
            if extra:
                problems.append(f"not members: {', '.join(extra)}")
            if missing:
                problems.append(f"missing members: {', '.join(missing)}")
            raise CatalogValidationError(f"New order is not a permutation of the category ({'; '.join(problems)})")
        self._write_category_order(conn, category_id, new_order)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def list_tools(self, category_id: Optional[str] = None) -> List[Tool]:
        with self._transaction() as conn:
            if category_id is None:
                rows = conn.execute("SELECT * FROM tools ORDER BY created_at, rowid").fetchall()
            else:
                self._category_row(conn, category_id)
                rows = conn.execute(
                    """
                    SELECT t.* FROM tools t
                    JOIN category_tool_order o ON o.tool_id = t.id
                    WHERE o.category_id = ?
                    ORDER BY o.position
                    """,
                    (category_id,),
                ).fetchall()
            return [self._to_tool(row) for row in rows]

    def get_tool(self, tool_id: str) -> Tool:
        with self._transaction() as conn:
            return self._to_tool(self._tool_row(conn, tool_id))

    def create_tool(self, data: ToolCreate) -> Tool:
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM categories WHERE id = ?", (data.category_id,)).fetchone() is None:
                raise CatalogValidationError(f"Unknown category id: {data.category_id}")
            tool_id = _new_id()
            conn.execute(
                """
                INSERT INTO tools
                (id, name, url, type, summary, what_it_is, capabilities, best_for, tags,
                 category_id, is_pinned, status, content_type, created_at, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tool_id,
                    data.name,
                    data.url,
                    data.type,
                    data.summary,
                    data.what_it_is,
                    json.dumps(data.capabilities),
                    json.dumps(data.best_for),
                    json.dumps(data.tags),
                    data.category_id,
                    int(data.is_pinned),
                    data.status.value,
                    data.content_type.value,
                    _utc_now(),
                    data.notes,
                ),
            )
            order = self._category_order(conn, data.category_id)
            self._write_category_order(conn, data.category_id, [*order, tool_id])
            tool = self._to_tool(self._tool_row(conn, tool_id))
        logger.info(f"Created tool {tool.name!r} in category {tool.category_id}")
        return tool

    def update_tool(self, tool_id: str, data: ToolUpdate) -> Tool:
        changes = data.changes(nullable=("notes",))
        with self._transaction() as conn:
            current = self._tool_row(conn, tool_id)
            new_category = changes.pop("category_id", None)
            if new_category is not None and new_category != current["category_id"]:
                self._move(conn, tool_id, current["category_id"], new_category, None)
            for column in _TOOL_LIST_COLUMNS:
                if column in changes:
                    changes[column] = json.dumps(changes[column])
            for column in ("status", "content_type"):
                if column in changes:
                    changes[column] = changes[column].value
            if "is_pinned" in changes:
                changes["is_pinned"] = int(changes["is_pinned"])
            if changes:
                assignments = ", ".join(f"{column} = ?" for column in changes)
                conn.execute(f"UPDATE tools SET {assignments} WHERE id = ?", [*changes.values(), tool_id])
            return self._to_tool(self._tool_row(conn, tool_id))

    def move_tool(
        self,
        tool_id: str,
        from_category_id: str,
        to_category_id: str,
        position: Optional[int] = None,
    ) -> Tool:
        """Re-file a tool; removal from the source and insertion into the target commit together."""
        with self._transaction() as conn:
            self._move(conn, tool_id, from_category_id, to_category_id, position)
            return self._to_tool(self._tool_row(conn, tool_id))

    def _move(
        self,
        conn: sqlite3.Connection,
        tool_id: str,
        from_category_id: str,
        to_category_id: str,
        position: Optional[int],
    ) -> None:
        tool = self._tool_row(conn, tool_id)
        if tool["category_id"] != from_category_id:
            raise CatalogValidationError(f"Tool {tool_id} is not in category {from_category_id}")
        self._category_row(conn, to_category_id)
        if position is not None and position < 0:
            raise CatalogValidationError("Position must be zero or greater")

        source = [tid for tid in self._category_order(conn, from_category_id) if tid != tool_id]
        target = source if from_category_id == to_category_id else self._category_order(conn, to_category_id)
        index = len(target) if position is None else min(position, len(target))
        target.insert(index, tool_id)

        if from_category_id != to_category_id:
            # Source first: tool_id is unique across the order table
            self._write_category_order(conn, from_category_id, source)
            conn.execute("UPDATE tools SET category_id = ? WHERE id = ?", (to_category_id, tool_id))
        self._write_category_order(conn, to_category_id, target)
        logger.info(f"Moved tool {tool_id}: {from_category_id} -> {to_category_id} at {index}")

    def delete_tool(self, tool_id: str) -> None:
        with self._transaction() as conn:
            self._delete_tool(conn, tool_id)
        logger.info(f"Deleted tool {tool_id}")

    def _delete_tool(self, conn: sqlite3.Connection, tool_id: str) -> None:
        tool = self._tool_row(conn, tool_id)
        order = [tid for tid in self._category_order(conn, tool["category_id"]) if tid != tool_id]
        self._write_category_order(conn, tool["category_id"], order)
        conn.execute("DELETE FROM collection_tool WHERE tool_id = ?", (tool_id,))
        conn.execute("DELETE FROM tools WHERE id = ?", (tool_id,))

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def list_collections(self) -> List[Collection]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM collections ORDER BY sort_order, rowid").fetchall()
            return [self._to_collection(conn, row) for row in rows]

    def get_collection(self, collection_id: str) -> Collection:
        with self._transaction() as conn:
            return self._to_collection(conn, self._collection_row(conn, collection_id))

    def create_collection(self, data: CollectionCreate) -> Collection:
        with self._transaction() as conn:
            self._validate_tool_refs(conn, data.tool_ids)
            collection_id = _new_id()
            sort_order = data.sort_order if data.sort_order is not None else self._next_sort_order(conn, "collections")
            conn.execute(
                "INSERT INTO collections (id, name, sort_order) VALUES (?, ?, ?)",
                (collection_id, data.name, sort_order),
            )
            self._write_collection_members(conn, collection_id, data.tool_ids)
            return self._to_collection(conn, self._collection_row(conn, collection_id))

    def update_collection(self, collection_id: str, data: CollectionUpdate) -> Collection:
        changes = data.changes()
        with self._transaction() as conn:
            self._collection_row(conn, collection_id)
            if "tool_ids" in changes:
                tool_ids = changes.pop("tool_ids")
                self._validate_tool_refs(conn, tool_ids)
                self._write_collection_members(conn, collection_id, tool_ids)
            if changes:
                assignments = ", ".join(f"{column} = ?" for column in changes)
                conn.execute(
                    f"UPDATE collections SET {assignments} WHERE id = ?",
                    [*changes.values(), collection_id],
                )
            return self._to_collection(conn, self._collection_row(conn, collection_id))

    def delete_collection(self, collection_id: str) -> None:
        with self._transaction() as conn:
            self._collection_row(conn, collection_id)
            conn.execute("DELETE FROM collection_tool WHERE collection_id = ?", (collection_id,))
            conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))

    def add_tool_to_collection(self, collection_id: str, tool_id: str) -> Collection:
        with self._transaction() as conn:
            self._collection_row(conn, collection_id)
            self._tool_row(conn, tool_id)
            members = self._collection_members(conn, collection_id)
            if tool_id not in members:
                self._write_collection_members(conn, collection_id, [*members, tool_id])
            return self._to_collection(conn, self._collection_row(conn, collection_id))

    def remove_tool_from_collection(self, collection_id: str, tool_id: str) -> Collection:
        with self._transaction() as conn:
            self._collection_row(conn, collection_id)
            members = self._collection_members(conn, collection_id)
            if tool_id in members:
                self._write_collection_members(conn, collection_id, [tid for tid in members if tid != tool_id])
            return self._to_collection(conn, self._collection_row(conn, collection_id))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def integrity_problems(self) -> List[str]:
        """Human-readable invariant violations; empty when the catalog is consistent."""
        problems: List[str] = []
        with self._transaction() as conn:
            for row in conn.execute(
                "SELECT t.id, t.category_id FROM tools t LEFT JOIN categories c ON c.id = t.category_id "
                "WHERE c.id IS NULL"
            ):
                problems.append(f"tool {row['id']} references missing category {row['category_id']}")
            for row in conn.execute(
                "SELECT t.id FROM tools t LEFT JOIN category_tool_order o ON o.tool_id = t.id WHERE o.tool_id IS NULL"
            ):
                problems.append(f"tool {row['id']} is missing from its category order")
            for row in conn.execute(
                "SELECT o.tool_id, o.category_id, t.category_id AS owner FROM category_tool_order o "
                "LEFT JOIN tools t ON t.id = o.tool_id WHERE t.id IS NULL OR t.category_id != o.category_id"
            ):
                problems.append(f"category {row['category_id']} lists tool {row['tool_id']} owned by {row['owner']}")
            for row in conn.execute(
                "SELECT ct.collection_id, ct.tool_id FROM collection_tool ct "
                "LEFT JOIN tools t ON t.id = ct.tool_id WHERE t.id IS NULL"
            ):
                problems.append(f"collection {row['collection_id']} references missing tool {row['tool_id']}")
        return problems

    # ------------------------------------------------------------------
    # Pipeline history
    # ------------------------------------------------------------------

    def record_pipeline_run(self, pipeline: str, run_data: Dict) -> None:
        """Record a completed pipeline run."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO pipeline_runs
                (pipeline, status, started_at, finished_at, duration_seconds,
                 metrics, attributes, error_type, error_note)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    pipeline,
                    run_data.get("status"),
                    run_data.get("started_at"),
                    run_data.get("finished_at"),
                    run_data.get("duration_seconds"),
                    json.dumps(run_data.get("metrics", {})),
                    json.dumps(run_data.get("attributes", {})),
                    run_data.get("error_type"),
                    run_data.get("error_note"),
                ],
            )
        logger.debug(f"Recorded pipeline run: {pipeline} - {run_data.get('status')}")

    def get_pipeline_history(self, pipeline: Optional[str] = None, limit: int = 50) -> List[Dict]:
        """Get pipeline run history, newest first, optionally filtered by pipeline name."""
        with self._transaction() as conn:
            if pipeline:
                rows = conn.execute(
                    "SELECT * FROM pipeline_runs WHERE pipeline = ? ORDER BY id DESC LIMIT ?",
                    [pipeline, limit],
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM pipeline_runs ORDER BY id DESC LIMIT ?", [limit]).fetchall()

        results = []
        for row in rows:
            result = dict(row)
            # Parse JSON fields
            if result["metrics"]:
                result["metrics"] = json.loads(result["metrics"])
            if result["attributes"]:
                result["attributes"] = json.loads(result["attributes"])
            results.append(result)
        return results
