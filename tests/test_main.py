"""Startup and request-state wiring in main."""
from pymongo.errors import PyMongoError
from starlette.requests import Request

import main


class IndexlessCollection:
    """Stands in for a collection whose user lacks the createIndex privilege."""

    async def create_index(self, *args, **kwargs):
        raise PyMongoError("not authorized on calendar to execute command { createIndexes: \"expenses\" }")


class TestEnsureIndexes:

    async def test_creates_by_date_index(self, expenses_collection):
        assert await main.ensure_indexes(expenses_collection) is True

        index_info = await expenses_collection.index_information()
        assert any(spec["key"] == [("date", 1), ("created_at", -1)] for spec in index_info.values())

    async def test_index_failure_is_not_fatal(self):
        assert await main.ensure_indexes(IndexlessCollection()) is False


class TestRequestState:

    async def test_only_collections_reach_handlers(self, monkeypatch, expenses_collection, budgets_collection):
        monkeypatch.setattr(main, "app_state", {
            "db_client": object(),
            "db": object(),
            "expenses_collection": expenses_collection,
            "budgets_collection": budgets_collection,
        })
        request = Request({"type": "http", "method": "GET", "path": "/", "headers": []})

        async def call_next(req):
            return req.state

        state = await main.add_app_config_to_request(request, call_next)

        assert state.expenses_collection is expenses_collection
        assert state.budgets_collection is budgets_collection
        assert not hasattr(state, "db_client")
        assert not hasattr(state, "db")
