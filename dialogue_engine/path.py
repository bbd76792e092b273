"""Append-only dialogue path and move history log."""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .exceptions import IllegalMoveError
from .models import Move, Statement


@dataclass
class TreeNode:
    """Read-only tree view of a statement and its replies."""

    statement: Statement
    children: list["TreeNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.statement.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


class DialoguePath:
    """Ordered statements of one dialogue; index 0 is the root claim.

    Statements are only ever appended. Every non-root statement must point
    at a statement that is already present, so the path is always a tree.
    """

    def __init__(self, root: Statement):
        if root.parent_id is not None:
            raise ValueError("Root statement must not have a parent")
        self._statements: list[Statement] = [root]
        self._by_id: dict[int, Statement] = {root.id: root}

    @property
    def root(self) -> Statement:
        return self._statements[0]

    def __len__(self) -> int:
        return len(self._statements)

    def __iter__(self) -> Iterator[Statement]:
        return iter(self._statements)

    def __contains__(self, statement_id: object) -> bool:
        return statement_id in self._by_id

    def get(self, statement_id: int) -> Statement | None:
        return self._by_id.get(statement_id)

    def check_appendable(self, statements: Sequence[Statement]) -> None:
        """Raise IllegalMoveError unless every statement could be appended in order."""
        seen: set[int] = set()
        for statement in statements:
            if statement.id in self._by_id or statement.id in seen:
                raise IllegalMoveError(
                    f"Statement {statement.id} is already part of the dialogue."
                )
            parent = statement.parent_id
            if parent is None or (parent not in self._by_id and parent not in seen):
                raise IllegalMoveError(
                    f"Statement {statement.id} refers to unknown parent {parent}."
                )
            seen.add(statement.id)

    def extend(self, statements: Sequence[Statement]) -> None:
        """Append statements, all or none."""
        self.check_appendable(statements)
        for statement in statements:
            self._statements.append(statement)
            self._by_id[statement.id] = statement

    def append(self, statement: Statement) -> None:
        self.extend([statement])

    def children_of(self, statement_id: int) -> list[Statement]:
        return [s for s in self._statements if s.parent_id == statement_id]

    def build_tree(self) -> TreeNode:
        """Build a nested view of the path, keyed on parent ids."""

        def node(statement: Statement) -> TreeNode:
            return TreeNode(statement, [node(child) for child in self.children_of(statement.id)])

        return node(self.root)

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._statements]


class MoveLog:
    """Chronological, append-only record of accepted moves."""

    def __init__(self) -> None:
        self._moves: list[Move] = []

    def __len__(self) -> int:
        return len(self._moves)

    def __iter__(self) -> Iterator[Move]:
        return iter(self._moves)

    def append(self, move: Move) -> None:
        self._moves.append(move)

    def last(self, count: int = 1) -> list[Move]:
        if count <= 0:
            return []
        return self._moves[-count:]

    @property
    def moves(self) -> tuple[Move, ...]:
        return tuple(self._moves)

    def to_list(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._moves]
