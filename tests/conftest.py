"""Shared fixtures for catalog tests."""

import pytest

from ai_tool_catalog.catalog_db import CatalogStore
from ai_tool_catalog.schemas import CategoryCreate
from ai_tool_catalog.schemas import ToolCreate


@pytest.fixture
def store():
    """Fresh in-memory catalog store."""
    catalog = CatalogStore(":memory:")
    yield catalog
    catalog.close()


@pytest.fixture
def add_category(store):
    def _add(name: str, **kwargs):
        return store.create_category(CategoryCreate(name=name, **kwargs))

    return _add


@pytest.fixture
def add_tool(store):
    def _add(category_id: str, name: str, **kwargs):
        fields = {"url": f"https://{name.lower().replace(' ', '')}.example.com", "type": "CHATBOT"}
        fields.update(kwargs)
        return store.create_tool(ToolCreate(name=name, category_id=category_id, **fields))

    return _add
