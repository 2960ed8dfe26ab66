"""Tests for the command line interface."""

import pytest
from click.testing import CliRunner

from ai_tool_catalog import cli
from ai_tool_catalog.catalog_db import CatalogStore
from ai_tool_catalog.config import INITIAL_CATEGORIES
from ai_tool_catalog.config import INITIAL_TOOLS
from ai_tool_catalog.extractor import TOOL_TYPES


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    # Root handlers bound to CliRunner streams would outlive each invocation
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    return str(tmp_path / "catalog.db")


def test_seed_creates_initial_categories_once(db_path):
    runner = CliRunner()

    first = runner.invoke(cli.main, ["--db", db_path, "seed"])
    second = runner.invoke(cli.main, ["--db", db_path, "seed"])

    assert first.exit_code == 0
    assert "nothing to seed" in second.output
    store = CatalogStore(db_path)
    assert [c.name for c in store.list_categories()] == INITIAL_CATEGORIES
    assert len(store.list_tools()) == len(INITIAL_TOOLS)
    store.close()


def test_seed_files_sample_tools_under_their_categories(db_path):
    result = CliRunner().invoke(cli.main, ["--db", db_path, "seed"])

    assert result.exit_code == 0
    store = CatalogStore(db_path)
    by_name = {c.name: c for c in store.list_categories()}
    for entry in INITIAL_TOOLS:
        tool = next(t for t in store.list_tools() if t.name == entry["name"])
        assert tool.category_id == by_name[entry["category"]].id
        assert tool.type in TOOL_TYPES
    chat = by_name["Chatbots & Assistants"]
    assert [store.get_tool(tid).name for tid in chat.tool_ids] == ["OpenAI ChatGPT", "ClickUp Chat"]
    assert store.get_tool(chat.tool_ids[0]).is_pinned is True
    assert store.integrity_problems() == []
    store.close()


def test_check_reports_consistent_store(db_path):
    result = CliRunner().invoke(cli.main, ["--db", db_path, "check"])

    assert result.exit_code == 0
    assert "consistent" in result.output


def test_analyze_invalid_url_exits_non_zero(db_path):
    result = CliRunner().invoke(cli.main, ["--db", db_path, "analyze", "not-a-url"])

    assert result.exit_code == 1
    assert '"errorType": "INVALID_URL"' in result.output
