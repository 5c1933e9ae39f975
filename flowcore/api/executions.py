from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic_core import to_jsonable_python
from typing import Dict, List

from flowcore.api.deps import get_engine, get_manager
from flowcore.core.logging import get_logger
from flowcore.engine.engine import WorkflowEngine
from flowcore.schemas.execution import WorkflowExecuteRequest, WorkflowExecution
from flowcore.schemas.node import NodeStatus
from flowcore.services.workflow_manager import WorkflowManager
from celery_app.tasks import execute_workflow_task

logger = get_logger("api.executions")

router = APIRouter()


@router.post("/{workflow_id}/execute", response_model=WorkflowExecution, status_code=status.HTTP_202_ACCEPTED)
async def execute_workflow(
    workflow_id: str,
    request: WorkflowExecuteRequest,
    manager: WorkflowManager = Depends(get_manager),
):
    execution_id = await manager.execute_workflow(workflow_id, request.inputs, request.triggered_by)
    return await manager.get_execution(execution_id)


@router.post("/{workflow_id}/execute/queue", status_code=status.HTTP_202_ACCEPTED)
async def queue_workflow_execution(
    workflow_id: str,
    request: WorkflowExecuteRequest,
    manager: WorkflowManager = Depends(get_manager),
):
    """Run the workflow in a Celery worker instead of this process."""
    workflow = await manager.get_workflow(workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    task = execute_workflow_task.delay(workflow_id, request.inputs, request.triggered_by.value)
    return {"taskId": task.id, "workflowId": workflow_id}


@router.get("/executions/{execution_id}", response_model=WorkflowExecution)
async def get_execution_status(
    execution_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    execution = await manager.get_execution(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution


@router.get("/executions/{execution_id}/nodes", response_model=Dict[str, NodeStatus])
async def get_node_statuses(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await engine.get_node_statuses(execution_id)


@router.post("/executions/{execution_id}/stop", response_model=WorkflowExecution)
async def stop_execution(
    execution_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.stop_execution(execution_id)


@router.get("/{workflow_id}/executions", response_model=List[WorkflowExecution])
async def get_workflow_executions(
    workflow_id: str,
    limit: int = Query(20, ge=1, le=500),
    manager: WorkflowManager = Depends(get_manager),
):
    return await manager.get_execution_history(workflow_id, limit)


@router.websocket("/executions/{execution_id}/events")
async def stream_execution_events(websocket: WebSocket, execution_id: str):
    """
    Stream engine events for one execution until it reaches a terminal
    event. Events for runs in other processes are not visible here.
    """
    engine: WorkflowEngine = websocket.app.state.engine
    await websocket.accept()
    logger.info(f"WebSocket connected for execution {execution_id}")
    try:
        await websocket.send_json({"type": "connected", "executionId": execution_id})
        async for event in engine.events.stream(execution_id):
            payload = to_jsonable_python(event.model_dump(by_alias=True), fallback=str)
            await websocket.send_json(payload)
        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"Client disconnected from execution {execution_id}")
