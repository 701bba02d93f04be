"""
Persistent memory across workflow runs.

The engine only reads ranked matches and writes turn summaries. Every
operation here is non-fatal: a broken store degrades to "no memories" and a
skipped write, never a failed run.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import asyncio
import json
import os
import time
import uuid

from .logging_config import get_logger
from .models import RelevantMemory

logger = get_logger("memory")


@dataclass
class MemoryEntry:
    """What gets stored after a memory-enabled agent's turn is committed."""
    agent_id: str
    role: str
    content: str
    key_insights: List[str] = field(default_factory=list)
    decisions: List[str] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)
    workflow_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "role": self.role,
            "content": self.content,
            "key_insights": list(self.key_insights),
            "decisions": list(self.decisions),
            "artifacts": list(self.artifacts),
            "timestamp": self.timestamp,
            "workflow_id": self.workflow_id,
            "metadata": dict(self.metadata),
        }


class MemoryStore(ABC):
    """Vector/semantic memory interface consumed by the engine."""

    enabled: bool = True

    @abstractmethod
    async def query(self, text: str, top_k: int) -> List[RelevantMemory]:
        """Ranked matches for ``text``; empty on any failure."""

    @abstractmethod
    async def store(self, entry: MemoryEntry, embedding: Optional[Sequence[float]] = None):
        """Persist ``entry``; failures are logged and skipped."""


class NullMemoryStore(MemoryStore):
    """Used when memory is not configured."""

    enabled = False

    async def query(self, text: str, top_k: int) -> List[RelevantMemory]:
        return []

    async def store(self, entry: MemoryEntry, embedding: Optional[Sequence[float]] = None):
        return None


class MnemosyneClient:
    """
    Async client for the ``mnemosyne`` memory CLI.

    Commands run as asyncio subprocesses with ``--format json``.
    """

    def __init__(self, db_path: Optional[str] = None, binary_path: str = "mnemosyne"):
        """
        Initialize Mnemosyne client.

        Args:
            db_path: Optional custom database path (falls back to DATABASE_URL)
            binary_path: Path to mnemosyne binary (default: "mnemosyne" in PATH)
        """
        self.db_path = db_path or os.getenv("DATABASE_URL")
        self.binary_path = binary_path

    async def _run(self, cmd: List[str]):
        if self.db_path:
            cmd = cmd + ["--db", self.db_path]

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(), stderr.decode()

    async def remember(
        self,
        content: str,
        namespace: str,
        importance: int,
        context: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Store a memory.

        Raises:
            RuntimeError: If the CLI exits non-zero
        """
        cmd = [
            self.binary_path, "remember",
            content,
            "--namespace", namespace,
            "--importance", str(importance),
            "--format", "json",
        ]
        if context:
            cmd.extend(["--context", context])

        returncode, stdout, stderr = await self._run(cmd)
        if returncode != 0:
            raise RuntimeError(f"mnemosyne remember failed: {stderr}")

        try:
            return json.loads(stdout)
        except json.JSONDecodeError:
            return {"output": stdout, "success": True}

    async def recall(
        self,
        query: str,
        namespace: Optional[str] = None,
        max_results: int = 10
    ) -> List[Dict[str, Any]]:
        """
        Search memories.

        Raises:
            RuntimeError: If the CLI exits non-zero
        """
        cmd = [self.binary_path, "recall", query]
        if namespace:
            cmd.extend(["--namespace", namespace])
        cmd.extend(["--limit", str(max_results), "--format", "json"])

        returncode, stdout, stderr = await self._run(cmd)
        if returncode != 0:
            raise RuntimeError(f"mnemosyne recall failed: {stderr}")

        output = json.loads(stdout)
        # Handle both list and dict response formats
        if isinstance(output, list):
            return output
        if isinstance(output, dict):
            return output.get("memories") or output.get("results") or []
        return []


class MnemosyneMemoryStore(MemoryStore):
    """
    MemoryStore backed by Mnemosyne.

    Entries are stored as JSON so that role, insights and decisions survive
    the round trip; memories written by other tools are read back as plain
    content.
    """

    def __init__(
        self,
        client: Optional[MnemosyneClient] = None,
        namespace: str = "spindle:workflows",
        importance: int = 6
    ):
        self.client = client or MnemosyneClient()
        self.namespace = namespace
        self.importance = importance

    async def query(self, text: str, top_k: int) -> List[RelevantMemory]:
        if top_k <= 0:
            return []

        try:
            raw = await self.client.recall(text, namespace=self.namespace, max_results=top_k)
        except Exception as e:
            logger.warning(f"[Memory] Query failed, continuing without memories: {e}")
            return []

        memories = [self._to_relevant_memory(item) for item in raw if isinstance(item, dict)]
        memories.sort(key=lambda m: m.score, reverse=True)
        logger.debug(f"[Memory] {len(memories)} match(es) for query ({len(text)} chars)")
        return memories[:top_k]

    async def store(self, entry: MemoryEntry, embedding: Optional[Sequence[float]] = None):
        # Mnemosyne computes its own embeddings
        try:
            await self.client.remember(
                json.dumps(entry.to_dict()),
                namespace=self.namespace,
                importance=self.importance,
                context=f"{entry.role} ({entry.agent_id})"
            )
            logger.debug(f"[Memory] Stored entry {entry.id} for {entry.agent_id}")
        except Exception as e:
            logger.warning(f"[Memory] Store skipped for {entry.agent_id}: {e}")

    @staticmethod
    def _to_relevant_memory(item: Dict[str, Any]) -> RelevantMemory:
        content = item.get("content", "")
        score = item.get("score", item.get("relevance", 0.0))
        try:
            score = min(max(float(score), 0.0), 1.0)
        except (TypeError, ValueError):
            score = 0.0

        payload = None
        if isinstance(content, str) and content.startswith("{"):
            try:
                payload = json.loads(content)
            except json.JSONDecodeError:
                payload = None

        if isinstance(payload, dict):
            return RelevantMemory(
                role=str(payload.get("role", "")),
                content=str(payload.get("content", "")),
                key_insights=tuple(payload.get("key_insights") or ()),
                decisions=tuple(payload.get("decisions") or ()),
                timestamp=float(payload.get("timestamp") or 0.0),
                score=score,
                agent_id=str(payload.get("agent_id", "")),
            )

        return RelevantMemory(
            role=str(item.get("context") or "memory"),
            content=str(content),
            score=score,
        )


def create_memory_store(enabled: bool, namespace: str, db_path: Optional[str] = None) -> MemoryStore:
    if not enabled:
        return NullMemoryStore()
    logger.info(f"[Memory] Using Mnemosyne namespace {namespace}")
    return MnemosyneMemoryStore(MnemosyneClient(db_path=db_path), namespace=namespace)
