"""Content store and persistence sink interfaces plus their wire records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class TopicRecord(BaseModel):
    """A discussion topic under which a root claim is stored."""

    topic: str = Field(validation_alias=AliasChoices("topic", "name"))


class ClaimRecord(BaseModel):
    """Statement-shaped record for a topic's root claim."""

    id: int
    text: str
    source: str | None = None


class JustificationRecord(BaseModel):
    """A candidate justification offered for a challenged statement."""

    id: int
    text: str
    source: str | None = None


class JustificationNode(JustificationRecord):
    """A node of a topic's justification tree."""

    children: list[JustificationNode] = Field(default_factory=list)

    def walk(self) -> Iterator[JustificationNode]:
        """Yield every descendant in pre-order, excluding this node."""
        for child in self.children:
            yield child
            yield from child.walk()


JustificationNode.model_rebuild()


class RebuttalRecord(BaseModel):
    """A persisted rebuttal attached to a target statement."""

    id: int = Field(validation_alias=AliasChoices("id", "statementId", "statement_id"))
    target_id: int = Field(
        validation_alias=AliasChoices("target_id", "targetId", "targetClaimId")
    )
    text: str
    author: str = Field(
        default="User", validation_alias=AliasChoices("author", "actor", "source")
    )
    created_at: datetime = Field(
        default_factory=datetime.now,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "target_id": self.target_id,
            "text": self.text,
            "author": self.author,
            "created_at": self.created_at.isoformat(),
        }


class RebuttalCreateRequest(BaseModel):
    """Payload sent to the persistence sink for a new rebuttal."""

    target_claim_id: int
    text: str
    author: str


class ContentStore(ABC):
    """Read-only source of topics, claims, justifications and rebuttals."""

    @property
    @abstractmethod
    def store_name(self) -> str:
        """Return the name of this store."""
        pass

    @abstractmethod
    async def fetch_topics(self) -> list[TopicRecord]:
        """List all available topics."""
        pass

    @abstractmethod
    async def fetch_root_claim(self, topic: str) -> ClaimRecord:
        """Return the root claim for a topic; raise NotFoundError if absent."""
        pass

    @abstractmethod
    async def fetch_justifications(self, argument_id: int) -> list[JustificationRecord]:
        """Return the ordered candidate justifications for an argument."""
        pass

    @abstractmethod
    async def resolve_argument_id(self, claim_id: int) -> int:
        """Return the id of the argument whose claim is ``claim_id``."""
        pass

    @abstractmethod
    async def fetch_justification_tree(self, topic: str) -> JustificationNode:
        """Return the topic's root claim with its nested justifications."""
        pass

    @abstractmethod
    async def fetch_rebuttals(self, target_id: int) -> list[RebuttalRecord]:
        """Return rebuttals for a target statement, oldest first."""
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None


class RebuttalSink(ABC):
    """Persistence sink for newly created rebuttals."""

    @abstractmethod
    async def create_rebuttal(self, request: RebuttalCreateRequest) -> RebuttalRecord:
        """Persist a rebuttal and return the saved record."""
        pass
