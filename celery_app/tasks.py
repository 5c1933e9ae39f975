import asyncio
from typing import Any, Dict, Optional

from celery_app.celery import celery_app
from flowcore.config import settings
from flowcore.core.errors import ErrorCode, WorkflowError
from flowcore.core.logging import logger
from flowcore.database import create_engine, create_session_factory
from flowcore.engine.engine import WorkflowEngine
from flowcore.engine.nodes.base import NodeServices
from flowcore.integrations.http_client import HttpClient
from flowcore.schemas.execution import TriggerSource
from flowcore.services.workflow_store import WorkflowStore

@celery_app.task(
    name="execute_workflow_task",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    acks_late=True
)
def execute_workflow_task(self, workflow_id: str, inputs: Optional[dict] = None, triggered_by: str = "schedule"):
    try:
        return asyncio.run(async_execute_workflow(workflow_id, inputs or {}, triggered_by))
    except WorkflowError as exc:
        if exc.code != ErrorCode.STORE_UNAVAILABLE:
            logger.error(f"Workflow task rejected for {workflow_id}: {exc.message}")
            return {"workflow_id": workflow_id, "status": "rejected", "error": exc.message, "error_code": exc.code}
        logger.error(f"Task failed, retrying: {exc}")
        raise self.retry(exc=exc)

async def async_execute_workflow(
    workflow_id: str,
    inputs: Dict[str, Any],
    triggered_by: str = "schedule",
    services: Optional[NodeServices] = None,
    database_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run one workflow to completion in this worker process and return a
    summary of the finished execution.
    """
    db_engine = create_engine(database_url or settings.DATABASE_URL)
    try:
        store = WorkflowStore(create_session_factory(db_engine))
        engine = WorkflowEngine(store, services=services)

        logger.info(f"Starting workflow execution for workflow: {workflow_id}")
        execution_id = await engine.execute_workflow(workflow_id, inputs, TriggerSource(triggered_by))
        execution = await engine.wait_for_execution(execution_id)
        logger.info(
            f"Workflow execution {execution_id} finished: status={execution.status.value} duration={execution.duration}ms"
        )
        return {
            "execution_id": execution_id,
            "workflow_id": workflow_id,
            "status": execution.status.value,
            "output": execution.output,
            "error": execution.error,
            "error_code": execution.error_code,
        }
    finally:
        await HttpClient.close_client()
        await db_engine.dispose()
