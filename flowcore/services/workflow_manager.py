import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from flowcore.config import settings
from flowcore.core.errors import ErrorCode, WorkflowError, WorkflowValidationError
from flowcore.core.logging import get_logger
from flowcore.engine.engine import WorkflowEngine
from flowcore.engine.graph import WorkflowGraph
from flowcore.engine.templates import (
    ALL_NODE_TEMPLATES,
    NodeTemplate,
    get_node_categories,
    get_node_template,
)
from flowcore.schemas.execution import ExecutionStatus, TriggerSource, WorkflowExecution
from flowcore.schemas.node import NodePosition, PortDirection, validate_node_config
from flowcore.schemas.workflow import (
    ExportMetadata,
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
from flowcore.services.validation_service import ValidationService
from flowcore.services.workflow_store import WorkflowStore

logger = get_logger("manager")


class WorkflowManager:
    """Definition CRUD and graph editing with integrity checks."""

    def __init__(self, store: WorkflowStore, engine: WorkflowEngine):
        self.store = store
        self.engine = engine

    async def _require(self, workflow_id: str) -> WorkflowDefinition:
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowError(f"Workflow not found: {workflow_id}", ErrorCode.WORKFLOW_NOT_FOUND)
        return workflow

    @staticmethod
    def _require_node(workflow: WorkflowDefinition, node_id: str) -> WorkflowNode:
        node = workflow.get_node(node_id)
        if node is None:
            raise WorkflowError(f"Node not found: {node_id}", ErrorCode.NODE_NOT_FOUND, node_id=node_id)
        return node

    async def _save_graph(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        return await self.store.update_workflow(workflow.id, {
            "nodes": [n.model_dump() for n in workflow.nodes],
            "connections": [c.model_dump() for c in workflow.connections],
        })

    # --- Workflows ---

    async def create_workflow(self, data: WorkflowCreate, created_by: Optional[str] = None) -> WorkflowDefinition:
        workflow = WorkflowDefinition(
            id=str(uuid.uuid4()),
            name=data.name,
            description=data.description,
            status=WorkflowStatus.DRAFT,
            category=data.category,
            tags=data.tags,
            created_by=created_by,
        )
        return await self.store.create_workflow(workflow)

    async def update_workflow(self, workflow_id: str, data: Union[WorkflowUpdate, Dict[str, Any]]) -> WorkflowDefinition:
        if isinstance(data, dict):
            data = WorkflowUpdate.model_validate(data)
        current = await self._require(workflow_id)
        if data.nodes is not None or data.connections is not None:
            # Raw graph replacement gets the same connection checks as graph editing
            WorkflowGraph(
                data.nodes if data.nodes is not None else current.nodes,
                data.connections if data.connections is not None else current.connections,
            )
        return await self.store.update_workflow(workflow_id, data.model_dump(exclude_unset=True))

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return await self.store.get_workflow(workflow_id)

    async def get_workflows(
        self,
        filter: Optional[WorkflowFilter] = None,
        sort: Optional[WorkflowSort] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> WorkflowListResponse:
        return await self.store.get_workflows(filter, sort, page, page_size)

    async def delete_workflow(self, workflow_id: str) -> bool:
        return await self.store.delete_workflow(workflow_id)

    async def duplicate_workflow(self, workflow_id: str, new_name: Optional[str] = None) -> WorkflowDefinition:
        original = await self._require(workflow_id)
        duplicate = original.model_copy(deep=True, update={
            "id": str(uuid.uuid4()),
            "name": new_name or f"{original.name} (Copy)",
            "status": WorkflowStatus.DRAFT,
            "created_at": None,
            "updated_at": None,
        })
        return await self.store.create_workflow(duplicate)

    async def activate_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = await self._require(workflow_id)
        errors = ValidationService.validate_workflow(workflow)
        if errors:
            raise WorkflowValidationError(f"Workflow {workflow_id} failed validation", errors)
        return await self.store.update_workflow(workflow_id, {"status": WorkflowStatus.ACTIVE})

    async def deactivate_workflow(self, workflow_id: str) -> WorkflowDefinition:
        await self._require(workflow_id)
        return await self.store.update_workflow(workflow_id, {"status": WorkflowStatus.PAUSED})

    # --- Nodes ---

    async def add_node(
        self,
        workflow_id: str,
        template_id: str,
        position: Optional[NodePosition] = None,
    ) -> WorkflowNode:
        template = get_node_template(template_id)
        if template is None:
            raise WorkflowError(f"Node template not found: {template_id}", ErrorCode.TEMPLATE_NOT_FOUND)
        workflow = await self._require(workflow_id)

        node = WorkflowNode(
            id=f"node_{uuid.uuid4().hex}",
            type=template.type,
            subtype=template.subtype,
            label=template.name,
            description=template.description,
            position=position or NodePosition(),
            config=copy.deepcopy(template.default_config),
            ports=[port.model_copy(deep=True) for port in template.ports],
        )
        workflow.nodes.append(node)
        await self._save_graph(workflow)
        logger.info(f"Node {node.id} ({template_id}) added to workflow {workflow_id}")
        return node

    async def update_node(self, workflow_id: str, node_id: str, data: Union[NodeUpdate, Dict[str, Any]]) -> WorkflowNode:
        if isinstance(data, dict):
            data = NodeUpdate.model_validate(data)
        workflow = await self._require(workflow_id)
        node = self._require_node(workflow, node_id)

        updates = data.model_dump(exclude_unset=True, exclude={"config"})
        if data.config is not None:
            updates["config"] = validate_node_config(node.type, node.subtype, {**node.config, **data.config})
        if data.position is not None:
            updates["position"] = data.position

        updated = node.model_copy(update=updates)
        workflow.nodes = [updated if n.id == node_id else n for n in workflow.nodes]
        await self._save_graph(workflow)
        return updated

    async def delete_node(self, workflow_id: str, node_id: str) -> None:
        """Remove a node together with every connection touching it."""
        workflow = await self._require(workflow_id)
        self._require_node(workflow, node_id)
        workflow.nodes = [n for n in workflow.nodes if n.id != node_id]
        workflow.connections = [
            c for c in workflow.connections
            if c.source_node_id != node_id and c.target_node_id != node_id
        ]
        await self._save_graph(workflow)
        logger.info(f"Node {node_id} deleted from workflow {workflow_id}")

    # --- Connections ---

    async def add_connection(
        self,
        workflow_id: str,
        source_node_id: str,
        source_port_id: str,
        target_node_id: str,
        target_port_id: str,
        label: Optional[str] = None,
    ) -> WorkflowConnection:
        workflow = await self._require(workflow_id)
        source = self._require_node(workflow, source_node_id)
        target = self._require_node(workflow, target_node_id)

        if source.get_port(source_port_id, PortDirection.OUTPUT.value) is None:
            raise WorkflowError(
                f"Node {source_node_id} has no output port '{source_port_id}'",
                ErrorCode.PORT_NOT_FOUND,
                node_id=source_node_id,
            )
        if target.get_port(target_port_id, PortDirection.INPUT.value) is None:
            raise WorkflowError(
                f"Node {target_node_id} has no input port '{target_port_id}'",
                ErrorCode.PORT_NOT_FOUND,
                node_id=target_node_id,
            )
        # Fan-in of 1 per target port
        for conn in workflow.connections:
            if conn.target_node_id == target_node_id and conn.target_port_id == target_port_id:
                raise WorkflowError(
                    f"Input port '{target_port_id}' of node {target_node_id} is already connected",
                    ErrorCode.PORT_ALREADY_CONNECTED,
                    node_id=target_node_id,
                )

        connection = WorkflowConnection(
            id=f"conn_{uuid.uuid4().hex}",
            source_node_id=source_node_id,
            source_port_id=source_port_id,
            target_node_id=target_node_id,
            target_port_id=target_port_id,
            label=label,
        )
        workflow.connections.append(connection)
        await self._save_graph(workflow)
        return connection

    async def delete_connection(self, workflow_id: str, connection_id: str) -> None:
        workflow = await self._require(workflow_id)
        remaining = [c for c in workflow.connections if c.id != connection_id]
        if len(remaining) == len(workflow.connections):
            raise WorkflowError(f"Connection not found: {connection_id}", ErrorCode.CONNECTION_NOT_FOUND)
        workflow.connections = remaining
        await self._save_graph(workflow)

    # --- Export / import ---

    async def export_workflow(self, workflow_id: str, exported_by: Optional[str] = None) -> WorkflowExportData:
        workflow = await self._require(workflow_id)
        dependencies = sorted({f"{n.type.value}_{n.subtype}" for n in workflow.nodes})
        return WorkflowExportData(
            workflow=workflow,
            dependencies=dependencies,
            metadata=ExportMetadata(
                exported_at=datetime.now(timezone.utc),
                exported_by=exported_by or "system",
                application=settings.PROJECT_NAME,
                version=settings.APP_VERSION,
            ),
        )

    async def import_workflow(
        self,
        data: Union[WorkflowExportData, Dict[str, Any]],
        created_by: Optional[str] = None,
    ) -> WorkflowDefinition:
        """
        Create a draft copy of an exported workflow. Every node and
        connection gets a fresh id; connection endpoints are remapped.
        """
        if isinstance(data, dict):
            data = WorkflowExportData.model_validate(data)
        source = data.workflow

        id_map: Dict[str, str] = {}
        nodes = []
        for node in source.nodes:
            id_map[node.id] = f"node_{uuid.uuid4().hex}"
            nodes.append(node.model_copy(deep=True, update={"id": id_map[node.id]}))

        connections = []
        for conn in source.connections:
            if conn.source_node_id not in id_map or conn.target_node_id not in id_map:
                raise WorkflowError(
                    f"Imported connection {conn.id} references a missing node",
                    ErrorCode.INVALID_CONNECTION,
                )
            connections.append(conn.model_copy(update={
                "id": f"conn_{uuid.uuid4().hex}",
                "source_node_id": id_map[conn.source_node_id],
                "target_node_id": id_map[conn.target_node_id],
            }))

        WorkflowGraph(nodes, connections)

        workflow = source.model_copy(deep=True, update={
            "id": str(uuid.uuid4()),
            "name": f"{source.name} (Imported)",
            "status": WorkflowStatus.DRAFT,
            "nodes": nodes,
            "connections": connections,
            "created_by": created_by or source.created_by,
            "created_at": None,
            "updated_at": None,
        })
        imported = await self.store.create_workflow(workflow)
        logger.info(f"Workflow imported: {imported.id} (from {source.id})")
        return imported

    # --- Templates ---

    def get_node_templates(self) -> List[NodeTemplate]:
        return list(ALL_NODE_TEMPLATES)

    def get_node_template(self, template_id: str) -> NodeTemplate:
        template = get_node_template(template_id)
        if template is None:
            raise WorkflowError(f"Node template not found: {template_id}", ErrorCode.TEMPLATE_NOT_FOUND)
        return template

    def get_node_categories(self) -> List[str]:
        return get_node_categories()

    # --- Validation & stats ---

    async def validate_workflow(self, workflow_id: str) -> ValidationResult:
        workflow = await self._require(workflow_id)
        errors = ValidationService.validate_workflow(workflow)
        return ValidationResult(valid=not errors, errors=errors)

    async def get_workflow_stats(self, workflow_id: str) -> WorkflowStats:
        await self._require(workflow_id)
        executions = await self.store.get_executions_by_workflow(workflow_id, limit=None)
        if not executions:
            return WorkflowStats()

        completed = [e for e in executions if e.status == ExecutionStatus.COMPLETED]
        failed = [e for e in executions if e.status == ExecutionStatus.FAILED]
        durations = [e.duration for e in completed if e.duration is not None]
        return WorkflowStats(
            total_executions=len(executions),
            successful_executions=len(completed),
            failed_executions=len(failed),
            average_duration=sum(durations) / len(durations) if durations else 0,
            last_execution=max(e.started_at for e in executions),
            success_rate=len(completed) / len(executions),
        )

    # --- Execution ---

    async def execute_workflow(
        self,
        workflow_id: str,
        inputs: Optional[Dict[str, Any]] = None,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
    ) -> str:
        return await self.engine.execute_workflow(workflow_id, inputs, triggered_by)

    async def stop_execution(self, execution_id: str) -> WorkflowExecution:
        return await self.engine.stop_execution(execution_id)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.engine.get_execution(execution_id)

    async def get_execution_history(self, workflow_id: str, limit: Optional[int] = 50) -> List[WorkflowExecution]:
        return await self.engine.get_execution_history(workflow_id, limit)
