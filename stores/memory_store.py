"""In-process content store seeded from a dict or YAML file.

Mirrors the argument backend's schema: statements carry text and a source,
an argument pairs a claim statement with its premise statements, and each
topic points at one argument. A rebuttal is stored as a new statement whose
counter-statement is the target, wrapped in an argument of its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from dialogue_engine.exceptions import IllegalMoveError, NotFoundError
from .base_store import (
    ClaimRecord,
    ContentStore,
    JustificationNode,
    JustificationRecord,
    RebuttalCreateRequest,
    RebuttalRecord,
    RebuttalSink,
    TopicRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class StoredStatement:
    id: int
    text: str
    source: str | None = None
    counter_statement: int | None = None
    created_at: datetime | None = None


@dataclass
class StoredArgument:
    id: int
    claim: int
    premises: list[int] = field(default_factory=list)


class InMemoryContentStore(ContentStore, RebuttalSink):
    """Content store and rebuttal sink backed by plain dictionaries."""

    def __init__(self, seed: dict[str, Any] | None = None):
        self._statements: dict[int, StoredStatement] = {}
        self._arguments: dict[int, StoredArgument] = {}
        self._topics: dict[str, int] = {}
        if seed:
            self._load(seed)

    @classmethod
    def from_yaml(cls, seed_file: Path) -> InMemoryContentStore:
        """Create a store from a YAML seed file."""
        if not seed_file.exists():
            raise FileNotFoundError(f"Seed file not found: {seed_file}")

        with open(seed_file, "r", encoding="utf-8") as f:
            seed = yaml.safe_load(f) or {}

        store = cls(seed)
        logger.info(
            f"Loaded memory store from {seed_file}: {len(store._topics)} topics, "
            f"{len(store._statements)} statements"
        )
        return store

    def _load(self, seed: dict[str, Any]) -> None:
        for item in seed.get("statements", []):
            statement = StoredStatement(
                id=int(item["id"]),
                text=item["text"],
                source=item.get("source"),
            )
            self._statements[statement.id] = statement

        for item in seed.get("arguments", []):
            argument = StoredArgument(
                id=int(item["id"]),
                claim=int(item["claim"]),
                premises=[int(p) for p in item.get("premises", [])],
            )
            missing = [
                sid for sid in (argument.claim, *argument.premises)
                if sid not in self._statements
            ]
            if missing:
                raise ValueError(f"Argument {argument.id} refers to unknown statements {missing}")
            self._arguments[argument.id] = argument

        for item in seed.get("topics", []):
            argument_id = int(item["argument"])
            if argument_id not in self._arguments:
                raise ValueError(f"Topic {item['name']} refers to unknown argument {argument_id}")
            self._topics[item["name"]] = argument_id

        for item in seed.get("rebuttals", []):
            created_at = item.get("created_at")
            if isinstance(created_at, str):
                created_at = datetime.fromisoformat(created_at)
            self._statements[int(item["id"])] = StoredStatement(
                id=int(item["id"]),
                text=item["text"],
                source=item.get("author", "User"),
                counter_statement=int(item["target"]),
                created_at=created_at or datetime.now(),
            )

    @property
    def store_name(self) -> str:
        return "memory"

    async def fetch_topics(self) -> list[TopicRecord]:
        return [TopicRecord(topic=name) for name in self._topics]

    async def fetch_root_claim(self, topic: str) -> ClaimRecord:
        argument_id = self._topics.get(topic)
        if argument_id is None:
            raise NotFoundError(f"Topic not found: {topic}")

        claim = self._statements[self._arguments[argument_id].claim]
        return ClaimRecord(id=claim.id, text=claim.text, source=claim.source)

    async def fetch_justifications(self, argument_id: int) -> list[JustificationRecord]:
        argument = self._arguments.get(argument_id)
        if argument is None:
            raise NotFoundError(f"Argument not found with ID: {argument_id}")

        return [self._justification(self._statements[pid]) for pid in argument.premises]

    async def resolve_argument_id(self, claim_id: int) -> int:
        for argument in self._arguments.values():
            if argument.claim == claim_id:
                return argument.id
        raise NotFoundError("Unable to find argument for the selected justification.")

    async def fetch_justification_tree(self, topic: str) -> JustificationNode:
        argument_id = self._topics.get(topic)
        if argument_id is None:
            raise NotFoundError(f"Topic not found: {topic}")

        claim = self._statements[self._arguments[argument_id].claim]
        return self._tree_node(claim, visited=set())

    def _tree_node(self, statement: StoredStatement, visited: set[int]) -> JustificationNode:
        visited.add(statement.id)
        children: list[JustificationNode] = []

        argument = next(
            (a for a in self._arguments.values() if a.claim == statement.id), None
        )
        if argument is not None:
            for premise_id in argument.premises:
                if premise_id in visited:
                    continue
                children.append(self._tree_node(self._statements[premise_id], visited))

        return JustificationNode(
            id=statement.id, text=statement.text, source=statement.source, children=children
        )

    async def fetch_rebuttals(self, target_id: int) -> list[RebuttalRecord]:
        rebuttals = [
            s for s in self._statements.values() if s.counter_statement == target_id
        ]
        rebuttals.sort(key=lambda s: (s.created_at or datetime.min, s.id))
        return [self._rebuttal(s) for s in rebuttals]

    async def create_rebuttal(self, request: RebuttalCreateRequest) -> RebuttalRecord:
        if not request.text.strip():
            raise IllegalMoveError("targetClaimId and text are required")
        if request.target_claim_id not in self._statements:
            raise NotFoundError(f"Target statement not found: {request.target_claim_id}")

        statement = StoredStatement(
            id=max(self._statements, default=0) + 1,
            text=request.text.strip(),
            source=request.author or "User",
            counter_statement=request.target_claim_id,
            created_at=datetime.now(),
        )
        self._statements[statement.id] = statement

        argument_id = max(self._arguments, default=0) + 1
        self._arguments[argument_id] = StoredArgument(id=argument_id, claim=statement.id)

        logger.info(
            f"Saved rebuttal {statement.id} against statement {request.target_claim_id}"
        )
        return self._rebuttal(statement)

    @staticmethod
    def _justification(statement: StoredStatement) -> JustificationRecord:
        return JustificationRecord(id=statement.id, text=statement.text, source=statement.source)

    @staticmethod
    def _rebuttal(statement: StoredStatement) -> RebuttalRecord:
        assert statement.counter_statement is not None
        return RebuttalRecord(
            id=statement.id,
            target_id=statement.counter_statement,
            text=statement.text,
            author=statement.source or "User",
            created_at=statement.created_at or datetime.now(),
        )
