"""Exceptions raised by the nested-set engine and the node service."""


class NestedSetLogicError(Exception):
    """A structural precondition failed; nothing has been written."""


class NodeNotPersistedError(NestedSetLogicError):
    def __init__(self, node_id: int | None) -> None:
        self.node_id = node_id
        super().__init__(f"Node must exist (have bounds) before it can be used as an anchor: {node_id}")


class InvalidMoveError(NestedSetLogicError):
    def __init__(self, node_id: int | None, target_id: int | None = None) -> None:
        self.node_id = node_id
        self.target_id = target_id
        if target_id is None:
            message = f"Cannot move node into itself: {node_id}"
        else:
            message = f"Node {target_id} is the node {node_id} itself or one of its descendants"
        super().__init__(message)


class ScopeMismatchError(NestedSetLogicError):
    def __init__(self, scope: dict, other_scope: dict) -> None:
        self.scope = scope
        self.other_scope = other_scope
        super().__init__(f"Nodes must be in the same scope: {scope} != {other_scope}")


class NodeNotFoundError(Exception):
    def __init__(self, node_id: int | None) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class SoftDeleteNotEnabledError(Exception):
    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Soft delete is not enabled for table: {table}")
