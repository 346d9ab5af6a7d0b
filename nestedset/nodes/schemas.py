"""Request and response schemas for node endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from nestedset.models import ErrorCounts, Node, RebuildItem

# -- Requests --


class CreateNodeRequest(BaseModel):
    name: str | None = None
    attributes: dict[str, Any] | None = None
    scope: dict[str, Any] = Field(default_factory=dict)
    parent_id: int | None = None
    children: list[RebuildItem] = Field(default_factory=list)


class MoveNodeRequest(BaseModel):
    """Request body for POST /api/nodes/{node_id}/move."""

    action: Literal["append", "prepend", "before", "after", "root"]
    target_id: int | None = None


class FixTreeRequest(BaseModel):
    scope: dict[str, Any] | None = None
    root_id: int | None = None


class RebuildTreeRequest(BaseModel):
    items: list[RebuildItem]
    scope: dict[str, Any] | None = None
    delete: bool = False
    root_id: int | None = None


# -- Responses --


class NodeResponse(BaseModel):
    id: int
    name: str | None
    attributes: dict[str, Any]
    parent_id: int | None
    lft: int
    rgt: int
    scope: dict[str, Any]
    deleted_at: str | None = None
    depth: int | None = None
    descendant_count: int
    is_leaf: bool

    @classmethod
    def from_node(cls, node: Node) -> "NodeResponse":
        return cls(
            id=node.id,
            name=node.name,
            attributes=node.attributes,
            parent_id=node.parent_id,
            lft=node.lft,
            rgt=node.rgt,
            scope=node.scope,
            deleted_at=node.deleted_at,
            depth=node.depth,
            descendant_count=node.descendant_count,
            is_leaf=node.is_leaf(),
        )


class NodeTreeResponse(NodeResponse):
    children: list["NodeTreeResponse"] = Field(default_factory=list)

    @classmethod
    def from_tree(cls, node: Node) -> "NodeTreeResponse":
        base = NodeResponse.from_node(node).model_dump()
        return cls(**base, children=[cls.from_tree(child) for child in node.children])


class ErrorCountsResponse(BaseModel):
    oddness: int
    duplicates: int
    wrong_parent: int
    missing_parent: int
    total: int
    is_broken: bool

    @classmethod
    def from_counts(cls, counts: ErrorCounts) -> "ErrorCountsResponse":
        return cls(**counts.model_dump(), total=counts.total, is_broken=counts.total > 0)


class RepairResponse(BaseModel):
    changed: int
    errors: ErrorCountsResponse


NodeTreeResponse.model_rebuild()
