"""
Unit tests for persistent memory.

Tests cover:
- NullMemoryStore and create_memory_store wiring
- MnemosyneMemoryStore: JSON payload round trip, ranking, failure handling
- MnemosyneClient command construction (subprocess mocked)
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from spindle.memory import (
    MemoryEntry,
    MnemosyneClient,
    MnemosyneMemoryStore,
    NullMemoryStore,
    create_memory_store,
)


class TestNullMemoryStore:

    @pytest.mark.asyncio
    async def test_query_and_store_are_noops(self):
        store = NullMemoryStore()
        assert await store.query("anything", 5) == []
        assert await store.store(MemoryEntry("a", "A", "out")) is None
        assert store.enabled is False

    def test_factory(self):
        assert isinstance(create_memory_store(False, "ns"), NullMemoryStore)
        store = create_memory_store(True, "team:api", db_path="/tmp/memories.db")
        assert isinstance(store, MnemosyneMemoryStore)
        assert store.namespace == "team:api"
        assert store.client.db_path == "/tmp/memories.db"


class TestMnemosyneMemoryStore:

    @pytest.mark.asyncio
    async def test_query_parses_stored_entries(self):
        entry = MemoryEntry(
            "backend", "Backend Dev", "Use REST", key_insights=["REST"], decisions=["FastAPI"],
            timestamp=1700000000.0
        )
        client = AsyncMock()
        client.recall.return_value = [
            {"content": json.dumps(entry.to_dict()), "score": 0.6},
            {"content": "plain note", "context": "ops", "score": 1.7},
            "not a dict",
        ]
        store = MnemosyneMemoryStore(client, namespace="ns")

        memories = await store.query("backend work", 5)

        client.recall.assert_awaited_once_with("backend work", namespace="ns", max_results=5)
        plain, stored = memories
        assert plain.role == "ops"
        assert plain.score == 1.0
        assert stored.agent_id == "backend"
        assert stored.key_insights == ("REST",)
        assert stored.decisions == ("FastAPI",)
        assert stored.timestamp == 1700000000.0

    @pytest.mark.asyncio
    async def test_query_failure_returns_empty(self):
        client = AsyncMock()
        client.recall.side_effect = RuntimeError("mnemosyne recall failed")

        assert await MnemosyneMemoryStore(client).query("x", 3) == []

    @pytest.mark.asyncio
    async def test_zero_top_k_skips_query(self):
        client = AsyncMock()
        assert await MnemosyneMemoryStore(client).query("x", 0) == []
        client.recall.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_serializes_entry(self):
        client = AsyncMock()
        store = MnemosyneMemoryStore(client, namespace="ns", importance=7)
        entry = MemoryEntry("writer", "Writer", "final draft", workflow_id="run1")

        await store.store(entry)

        args, kwargs = client.remember.await_args
        assert json.loads(args[0])["workflow_id"] == "run1"
        assert kwargs == {"namespace": "ns", "importance": 7, "context": "Writer (writer)"}

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self):
        client = AsyncMock()
        client.remember.side_effect = RuntimeError("disk full")

        await MnemosyneMemoryStore(client).store(MemoryEntry("a", "A", "out"))


class TestMnemosyneClient:

    @pytest.fixture
    def subprocess(self, monkeypatch):
        process = MagicMock()
        process.returncode = 0
        process.communicate = AsyncMock(return_value=(b'{"memories": [{"content": "m"}]}', b""))
        spawn = AsyncMock(return_value=process)
        monkeypatch.setattr("spindle.memory.asyncio.create_subprocess_exec", spawn)
        return spawn, process

    @pytest.mark.asyncio
    async def test_recall_command(self, subprocess):
        spawn, _ = subprocess
        client = MnemosyneClient(db_path="/tmp/m.db")

        results = await client.recall("api design", namespace="ns", max_results=2)

        assert results == [{"content": "m"}]
        command = spawn.await_args.args
        assert command == (
            "mnemosyne", "recall", "api design", "--namespace", "ns",
            "--limit", "2", "--format", "json", "--db", "/tmp/m.db"
        )

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self, subprocess):
        _, process = subprocess
        process.returncode = 1
        process.communicate.return_value = (b"", b"no database")

        with pytest.raises(RuntimeError, match="no database"):
            await MnemosyneClient().remember("x", namespace="ns", importance=5)
