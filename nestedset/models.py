"""Canonical data structures for the nested-set engine.

Node is the tree entity: one row of the nested-set table plus the in-flight
state the engine needs (persisted snapshot, pending intent, linked relatives).
Pending intents are a small tagged union resolved right before a node is
written; see nestedset.tree.mutation.resolve_pending.
"""

import math
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from nestedset.errors import InvalidMoveError, NodeNotPersistedError
from nestedset.tree.scope import assert_same_scope, is_same_scope, scope_text

# ---------------------------------------------------------------------------
# Pending intents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RootIntent:
    kind: Literal["root"] = "root"


@dataclass(frozen=True)
class AppendOrPrependIntent:
    target: "Node"
    prepend: bool = False
    kind: Literal["append_or_prepend"] = "append_or_prepend"


@dataclass(frozen=True)
class BeforeOrAfterIntent:
    target: "Node"
    after: bool = False
    kind: Literal["before_or_after"] = "before_or_after"


@dataclass(frozen=True)
class RawBoundsIntent:
    lft: int
    rgt: int
    parent_id: int | None
    kind: Literal["raw"] = "raw"


PendingIntent = RootIntent | AppendOrPrependIntent | BeforeOrAfterIntent | RawBoundsIntent

# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

# Fields mirrored into the persisted snapshot for dirty tracking.
_PERSISTED_FIELDS = ("name", "attributes", "parent_id", "lft", "rgt", "scope", "deleted_at")


class Node(BaseModel):
    id: int | None = None
    name: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    parent_id: int | None = None
    lft: int | None = None
    rgt: int | None = None
    scope: dict[str, Any] = Field(default_factory=dict)
    deleted_at: str | None = None
    depth: int | None = None

    _exists: bool = PrivateAttr(default=False)
    _original: dict[str, Any] = PrivateAttr(default_factory=dict)
    _pending: PendingIntent | None = PrivateAttr(default=None)
    _moved: bool = PrivateAttr(default=False)
    _parent: "Node | None" = PrivateAttr(default=None)
    _children: list["Node"] | None = PrivateAttr(default=None)

    @field_validator("scope", mode="before")
    @classmethod
    def _scope_as_text(cls, value: Any) -> Any:
        return scope_text(value) if isinstance(value, dict) else value

    # -- persistence state --

    @property
    def exists(self) -> bool:
        """Whether the node has a row in the store."""
        return self._exists

    def mark_persisted(self, node_id: int | None = None) -> None:
        """Record that the in-memory values now match the stored row."""
        if node_id is not None:
            self.id = node_id
        self._exists = True
        self.sync_original()

    def mark_removed(self) -> None:
        self._exists = False

    def sync_original(self) -> None:
        self._original = {
            name: _copy_value(getattr(self, name)) for name in _PERSISTED_FIELDS
        }

    def get_dirty(self) -> dict[str, Any]:
        """Persisted fields whose value differs from the last stored snapshot."""
        return {
            name: getattr(self, name)
            for name in _PERSISTED_FIELDS
            if name not in self._original or self._original[name] != getattr(self, name)
        }

    def is_dirty(self, *fields: str) -> bool:
        dirty = self.get_dirty()
        if not fields:
            return bool(dirty)
        return any(name in dirty for name in fields)

    def dirty_bounds(self) -> "Node":
        """Force the bounds to be written on the next save."""
        self._original["lft"] = None
        self._original["rgt"] = None
        return self

    def set_stored_bounds(self, lft: int, rgt: int) -> None:
        """Adopt bounds read back from storage."""
        self.lft = lft
        self.rgt = rgt
        self._original["lft"] = lft
        self._original["rgt"] = rgt

    def shift_original(self, cut: int, height: int) -> None:
        """Apply a gap to the stored snapshot, mirroring what make_gap did to the row."""
        for bound in ("lft", "rgt"):
            value = self._original.get(bound)
            if value is not None and value >= cut:
                self._original[bound] = value + height

    @property
    def original(self) -> dict[str, Any]:
        return dict(self._original)

    # -- pending intent --

    @property
    def pending(self) -> PendingIntent | None:
        return self._pending

    def take_pending(self) -> PendingIntent | None:
        pending, self._pending = self._pending, None
        return pending

    def _set_intent(self, intent: PendingIntent) -> "Node":
        self._pending = intent
        return self

    @property
    def moved(self) -> bool:
        """Whether the last save changed the node's position."""
        return self._moved

    def mark_moved(self, moved: bool) -> None:
        self._moved = moved

    # -- relatives --

    @property
    def parent(self) -> "Node | None":
        return self._parent

    @parent.setter
    def parent(self, value: "Node | None") -> None:
        self._parent = value

    @property
    def children(self) -> list["Node"]:
        return self._children if self._children is not None else []

    @children.setter
    def children(self, value: list["Node"]) -> None:
        self._children = list(value)

    def _set_parent(self, parent: "Node | None") -> "Node":
        self.parent_id = parent.id if parent is not None else None
        self._parent = parent
        return self

    # -- interval arithmetic --

    @property
    def bounds(self) -> tuple[int | None, int | None]:
        return self.lft, self.rgt

    @property
    def height(self) -> int:
        """rgt - lft + 1; a node that was never stored counts as a leaf."""
        if not self._exists or self.lft is None or self.rgt is None:
            return 2
        return self.rgt - self.lft + 1

    @property
    def descendant_count(self) -> int:
        return math.ceil(self.height / 2) - 1

    def is_root(self) -> bool:
        return self.parent_id is None

    def is_leaf(self) -> bool:
        return self.lft is not None and self.rgt is not None and self.lft + 1 == self.rgt

    def is_same_scope(self, other: "Node") -> bool:
        return is_same_scope(self, other)

    def is_descendant_of(self, other: "Node") -> bool:
        if None in (self.lft, other.lft, other.rgt):
            return False
        return other.lft < self.lft < other.rgt and self.is_same_scope(other)

    def is_self_or_descendant_of(self, other: "Node") -> bool:
        if None in (self.lft, other.lft, other.rgt):
            return False
        return other.lft <= self.lft < other.rgt and self.is_same_scope(other)

    def is_child_of(self, other: "Node") -> bool:
        return self.parent_id == other.id

    def is_sibling_of(self, other: "Node") -> bool:
        return self.parent_id == other.parent_id

    def is_ancestor_of(self, other: "Node") -> bool:
        return other.is_descendant_of(self)

    def is_self_or_ancestor_of(self, other: "Node") -> bool:
        return other.is_self_or_descendant_of(self)

    # -- intents --

    def make_root(self) -> "Node":
        """Turn the node into a root of its scope on the next save."""
        self._set_parent(None).dirty_bounds()
        return self._set_intent(RootIntent())

    def append_to(self, parent: "Node") -> "Node":
        return self.append_or_prepend_to(parent)

    def prepend_to(self, parent: "Node") -> "Node":
        return self.append_or_prepend_to(parent, prepend=True)

    def append_or_prepend_to(self, parent: "Node", prepend: bool = False) -> "Node":
        self._assert_node_exists(parent)
        self._assert_not_descendant(parent)
        assert_same_scope(self, parent)

        self._set_parent(parent).dirty_bounds()
        return self._set_intent(AppendOrPrependIntent(target=parent, prepend=prepend))

    def before(self, node: "Node") -> "Node":
        return self.before_or_after(node)

    def after(self, node: "Node") -> "Node":
        return self.before_or_after(node, after=True)

    def before_or_after(self, node: "Node", after: bool = False) -> "Node":
        self._assert_node_exists(node)
        self._assert_not_descendant(node)
        assert_same_scope(self, node)

        if not self.is_sibling_of(node):
            self.parent_id = node.parent_id
            self._parent = node._parent

        self.dirty_bounds()
        return self._set_intent(BeforeOrAfterIntent(target=node, after=after))

    def raw_bounds(self, lft: int, rgt: int, parent_id: int | None) -> "Node":
        """Set bounds and parent verbatim, bypassing the gap arithmetic."""
        self.lft = lft
        self.rgt = rgt
        self.parent_id = parent_id
        return self._set_intent(RawBoundsIntent(lft=lft, rgt=rgt, parent_id=parent_id))

    def replicate(self) -> "Node":
        """Unsaved copy of the node without its tree columns."""
        return Node(
            name=self.name,
            attributes=dict(self.attributes),
            scope=dict(self.scope),
        )

    # -- guards --

    @staticmethod
    def _assert_node_exists(node: "Node") -> None:
        if not node.lft or not node.rgt:
            raise NodeNotPersistedError(node.id)

    def _assert_not_descendant(self, node: "Node") -> None:
        same = node is self or (self.id is not None and node.id == self.id)
        if same or node.is_descendant_of(self):
            raise InvalidMoveError(self.id, node.id)


def _copy_value(value: Any) -> Any:
    return dict(value) if isinstance(value, dict) else value


# ---------------------------------------------------------------------------
# Integrity report
# ---------------------------------------------------------------------------


class ErrorCounts(BaseModel):
    oddness: int = 0
    duplicates: int = 0
    wrong_parent: int = 0
    missing_parent: int = 0

    @property
    def total(self) -> int:
        return self.oddness + self.duplicates + self.wrong_parent + self.missing_parent


class RebuildItem(BaseModel):
    """One entry of a hierarchical description fed to rebuild_tree."""

    id: int | None = None
    name: str | None = None
    attributes: dict[str, Any] | None = None
    children: list["RebuildItem"] = Field(default_factory=list)


RebuildItem.model_rebuild()
