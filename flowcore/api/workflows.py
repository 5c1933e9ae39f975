from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Literal, Optional

from flowcore.api.deps import get_manager
from flowcore.schemas.common import CamelModel
from flowcore.schemas.workflow import (
    ConnectionCreate,
    NodeCreate,
    NodeUpdate,
    ValidationResult,
    WorkflowConnection,
    WorkflowCreate,
    WorkflowDefinition,
    WorkflowExportData,
    WorkflowFilter,
    WorkflowListResponse,
    WorkflowNode,
    WorkflowSort,
    WorkflowStats,
    WorkflowStatus,
    WorkflowUpdate,
)
from flowcore.services.workflow_manager import WorkflowManager

router = APIRouter()


class DuplicateRequest(CamelModel):
    name: Optional[str] = None


@router.get("", response_model=WorkflowListResponse)
async def get_workflows(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    status: Optional[List[WorkflowStatus]] = Query(None),
    category: Optional[List[str]] = Query(None),
    tags: Optional[List[str]] = Query(None),
    author: Optional[str] = None,
    is_template: Optional[bool] = Query(None, alias="isTemplate"),
    sort_by: Literal["name", "createdAt", "updatedAt", "executions"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    manager: WorkflowManager = Depends(get_manager),
):
    filter = WorkflowFilter(status=status, category=category, tags=tags, author=author, is_template=is_template)
    sort = WorkflowSort(by=sort_by, order=sort_order)
    return await manager.get_workflows(filter, sort, page, page_size)


@router.post("", response_model=WorkflowDefinition, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    workflow_in: WorkflowCreate,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.create_workflow(workflow_in)


@router.post("/import", response_model=WorkflowDefinition, status_code=status.HTTP_201_CREATED)
async def import_workflow(
    data: WorkflowExportData,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.import_workflow(data)


@router.get("/{workflow_id}", response_model=WorkflowDefinition)
async def get_workflow(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    workflow = await manager.get_workflow(workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


@router.put("/{workflow_id}", response_model=WorkflowDefinition)
async def update_workflow(
    workflow_id: str,
    workflow_in: WorkflowUpdate,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.update_workflow(workflow_id, workflow_in)


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    success = await manager.delete_workflow(workflow_id)
    if not success:
        raise HTTPException(status_code=404, detail="Workflow not found")


@router.post("/{workflow_id}/duplicate", response_model=WorkflowDefinition, status_code=status.HTTP_201_CREATED)
async def duplicate_workflow(
    workflow_id: str,
    request: Optional[DuplicateRequest] = None,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.duplicate_workflow(workflow_id, request.name if request else None)


@router.post("/{workflow_id}/activate", response_model=WorkflowDefinition)
async def activate_workflow(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.activate_workflow(workflow_id)


@router.post("/{workflow_id}/deactivate", response_model=WorkflowDefinition)
async def deactivate_workflow(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.deactivate_workflow(workflow_id)


@router.post("/{workflow_id}/validate", response_model=ValidationResult)
async def validate_workflow(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.validate_workflow(workflow_id)


@router.get("/{workflow_id}/stats", response_model=WorkflowStats)
async def get_workflow_stats(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.get_workflow_stats(workflow_id)


@router.get("/{workflow_id}/export", response_model=WorkflowExportData)
async def export_workflow(
    workflow_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.export_workflow(workflow_id)


# --- Nodes ---

@router.post("/{workflow_id}/nodes", response_model=WorkflowNode, status_code=status.HTTP_201_CREATED)
async def add_node(
    workflow_id: str,
    node_in: NodeCreate,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.add_node(workflow_id, node_in.template_id, node_in.position)


@router.patch("/{workflow_id}/nodes/{node_id}", response_model=WorkflowNode)
async def update_node(
    workflow_id: str,
    node_id: str,
    node_in: NodeUpdate,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.update_node(workflow_id, node_id, node_in)


@router.delete("/{workflow_id}/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(
    workflow_id: str,
    node_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    await manager.delete_node(workflow_id, node_id)


# --- Connections ---

@router.post("/{workflow_id}/connections", response_model=WorkflowConnection, status_code=status.HTTP_201_CREATED)
async def add_connection(
    workflow_id: str,
    connection_in: ConnectionCreate,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.add_connection(
        workflow_id,
        connection_in.source_node_id,
        connection_in.source_port_id,
        connection_in.target_node_id,
        connection_in.target_port_id,
        connection_in.label,
    )


@router.delete("/{workflow_id}/connections/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    workflow_id: str,
    connection_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    await manager.delete_connection(workflow_id, connection_id)
