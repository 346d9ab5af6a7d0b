"""FastAPI routes for node CRUD, tree reads and tree maintenance."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from nestedset.errors import (
    NestedSetLogicError,
    NodeNotFoundError,
    SoftDeleteNotEnabledError,
)
from nestedset.models import Node
from nestedset.nodes.schemas import (
    CreateNodeRequest,
    ErrorCountsResponse,
    FixTreeRequest,
    MoveNodeRequest,
    NodeResponse,
    NodeTreeResponse,
    RebuildTreeRequest,
    RepairResponse,
)
from nestedset.nodes.service import NodeService

router = APIRouter(prefix="/api/nodes", tags=["nodes"])


def get_node_service() -> NodeService:
    """Dependency placeholder — replaced at app startup."""
    raise RuntimeError("NodeService not initialized")


def _scope_from_query(request: Request, service: NodeService) -> dict | None:
    """Scope values passed as query parameters named after the scope columns."""
    if not service.config.scope:
        return None
    params = request.query_params
    if not any(column in params for column in service.config.scope):
        return None
    return {column: params.get(column) for column in service.config.scope}


async def _get_node(service: NodeService, node_id: int, with_trashed: bool = False) -> Node:
    try:
        return await service.get(node_id, with_trashed=with_trashed)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


# -- collection-level reads and maintenance --


@router.get("/tree")
async def get_tree(
    request: Request,
    service: NodeService = Depends(get_node_service),
) -> list[NodeTreeResponse]:
    roots = await service.get_tree(_scope_from_query(request, service))
    return [NodeTreeResponse.from_tree(node) for node in roots]


@router.get("/errors")
async def count_errors(
    request: Request,
    service: NodeService = Depends(get_node_service),
) -> ErrorCountsResponse:
    counts = await service.count_errors(_scope_from_query(request, service))
    return ErrorCountsResponse.from_counts(counts)


@router.post("/fix")
async def fix_tree(
    request: FixTreeRequest,
    service: NodeService = Depends(get_node_service),
) -> RepairResponse:
    root = await _get_node(service, request.root_id) if request.root_id is not None else None
    changed = await service.fix_tree(request.scope, root)
    counts = await service.count_errors(root.scope if root is not None else request.scope)
    return RepairResponse(changed=changed, errors=ErrorCountsResponse.from_counts(counts))


@router.post("/rebuild")
async def rebuild_tree(
    request: RebuildTreeRequest,
    service: NodeService = Depends(get_node_service),
) -> RepairResponse:
    root = await _get_node(service, request.root_id) if request.root_id is not None else None
    try:
        changed = await service.rebuild_tree(request.items, request.scope, request.delete, root)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    counts = await service.count_errors(root.scope if root is not None else request.scope)
    return RepairResponse(changed=changed, errors=ErrorCountsResponse.from_counts(counts))


# -- single node --


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_node(
    request: CreateNodeRequest,
    service: NodeService = Depends(get_node_service),
) -> NodeTreeResponse:
    parent = None
    if request.parent_id is not None:
        parent = await _get_node(service, request.parent_id)
    data = request.model_dump(exclude={"scope", "parent_id"})
    try:
        node = await service.create(data, parent=parent, scope=request.scope)
    except NestedSetLogicError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return NodeTreeResponse.from_tree(node)


@router.get("/{node_id}")
async def get_node(
    node_id: int,
    service: NodeService = Depends(get_node_service),
) -> NodeResponse:
    return NodeResponse.from_node(await _get_node(service, node_id))


@router.delete("/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(
    node_id: int,
    force: bool = False,
    service: NodeService = Depends(get_node_service),
) -> Response:
    node = await _get_node(service, node_id, with_trashed=force)
    await service.delete(node, force=force)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{node_id}/restore")
async def restore_node(
    node_id: int,
    service: NodeService = Depends(get_node_service),
) -> NodeResponse:
    node = await _get_node(service, node_id, with_trashed=True)
    try:
        await service.restore(node)
    except SoftDeleteNotEnabledError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return NodeResponse.from_node(node)


@router.post("/{node_id}/move")
async def move_node(
    node_id: int,
    request: MoveNodeRequest,
    service: NodeService = Depends(get_node_service),
) -> NodeResponse:
    node = await _get_node(service, node_id)

    if request.action == "root":
        await service.save_as_root(node)
        return NodeResponse.from_node(node)

    if request.target_id is None:
        raise HTTPException(status_code=400, detail=f"Action {request.action!r} needs a target_id")
    target = await _get_node(service, request.target_id)

    try:
        if request.action == "append":
            await service.append_node(target, node)
        elif request.action == "prepend":
            await service.prepend_node(target, node)
        elif request.action == "before":
            await service.insert_before(node, target)
        else:
            await service.insert_after(node, target)
    except NestedSetLogicError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return NodeResponse.from_node(node)


@router.get("/{node_id}/ancestors")
async def get_ancestors(
    node_id: int,
    include_self: bool = False,
    service: NodeService = Depends(get_node_service),
) -> list[NodeResponse]:
    node = await _get_node(service, node_id)
    return [NodeResponse.from_node(n) for n in await service.ancestors_of(node, include_self)]


@router.get("/{node_id}/descendants")
async def get_descendants(
    node_id: int,
    include_self: bool = False,
    service: NodeService = Depends(get_node_service),
) -> list[NodeResponse]:
    node = await _get_node(service, node_id)
    return [NodeResponse.from_node(n) for n in await service.descendants_of(node, include_self)]


@router.get("/{node_id}/siblings")
async def get_siblings(
    node_id: int,
    service: NodeService = Depends(get_node_service),
) -> list[NodeResponse]:
    node = await _get_node(service, node_id)
    return [NodeResponse.from_node(n) for n in await service.siblings(node)]


@router.get("/{node_id}/subtree")
async def get_subtree(
    node_id: int,
    service: NodeService = Depends(get_node_service),
) -> NodeTreeResponse:
    node = await _get_node(service, node_id)
    node.children = await service.get_tree(root=node)
    return NodeTreeResponse.from_tree(node)
