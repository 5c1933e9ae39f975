"""
Workflow engine: runs one definition per execution as an asyncio task.

A run validates the definition, orders nodes with a single Kahn traversal
and dispatches every ready node to its registered executor. Node outputs
flow along connections keyed by the target port id. Cancellation is
cooperative and status-only: ``stop_execution`` finalizes the record
immediately, the walker stops launching new nodes, and handlers already in
flight run to completion without their side effects being rolled back.
"""
import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from flowcore.core.errors import ErrorCode, NodeExecutionError, WorkflowError
from flowcore.core.logging import EXECUTION_LOG_LEVELS, get_logger, run_fields
from flowcore.engine.context import ExecutionContext
from flowcore.engine.events import EventBus
from flowcore.engine.graph import WorkflowGraph
from flowcore.engine.nodes.base import NodeServices
from flowcore.engine.nodes.registry import get_executor_class
import flowcore.engine.nodes  # Import to trigger registration
from flowcore.schemas.execution import (
    EventType,
    ExecutionLog,
    ExecutionStatus,
    NodeExecution,
    TriggerSource,
    WorkflowExecution,
)
from flowcore.schemas.node import NodeStatus, NodeType
from flowcore.schemas.workflow import ErrorHandling, WorkflowDefinition, WorkflowNode, WorkflowStatus
from flowcore.services.workflow_store import WorkflowStore

logger = get_logger("engine")

_NODE_STATUS_BY_RECORD = {
    ExecutionStatus.RUNNING: NodeStatus.RUNNING,
    ExecutionStatus.COMPLETED: NodeStatus.SUCCESS,
    ExecutionStatus.FAILED: NodeStatus.ERROR,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunState:
    """In-memory bookkeeping for one running execution."""

    execution_id: str
    workflow_id: str
    started: float = field(default_factory=time.monotonic)
    cancelled: bool = False
    task: Optional[asyncio.Task] = None
    logs: List[ExecutionLog] = field(default_factory=list)
    node_statuses: Dict[str, NodeStatus] = field(default_factory=dict)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


class WorkflowEngine:
    def __init__(
        self,
        store: WorkflowStore,
        services: Optional[NodeServices] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.services = services or NodeServices()
        self.events = event_bus or EventBus()
        # execution_id -> state; only touched from the event loop thread
        self._runs: Dict[str, RunState] = {}

    # --- Public API ---

    async def execute_workflow(
        self,
        workflow_id: str,
        inputs: Optional[Dict[str, Any]] = None,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
    ) -> str:
        """
        Create a pending execution and launch the run in the background.
        Returns the execution id without waiting for the run.
        """
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowError(f"Workflow not found: {workflow_id}", ErrorCode.WORKFLOW_NOT_FOUND)
        if workflow.status != WorkflowStatus.ACTIVE:
            raise WorkflowError(
                f"Workflow {workflow_id} is not active (status: {workflow.status.value})",
                ErrorCode.WORKFLOW_NOT_ACTIVE,
            )

        inputs = inputs or {}
        execution = await self.store.create_execution(
            workflow_id=workflow.id,
            workflow_version=workflow.version,
            input=inputs,
            triggered_by=triggered_by,
        )
        state = RunState(execution_id=execution.id, workflow_id=workflow.id)
        self._runs[execution.id] = state
        state.task = asyncio.create_task(self._run_workflow(workflow, inputs, state))
        return execution.id

    async def stop_execution(self, execution_id: str) -> WorkflowExecution:
        """Mark an execution cancelled. In-flight node handlers are not interrupted."""
        state = self._runs.get(execution_id)
        if state is None:
            execution = await self.store.get_execution(execution_id, include_nodes=False)
            if execution is None:
                raise WorkflowError(f"Execution not found: {execution_id}", ErrorCode.EXECUTION_NOT_FOUND)
            if execution.is_terminal:
                raise WorkflowError(
                    f"Execution {execution_id} is already {execution.status.value}",
                    ErrorCode.EXECUTION_FINALIZED,
                )
            started_at = execution.started_at
            if started_at.tzinfo is None:
                started_at = started_at.replace(tzinfo=timezone.utc)
            now = utcnow()
            updated = await self.store.update_execution(
                execution_id,
                status=ExecutionStatus.CANCELLED,
                error="Execution cancelled",
                completed_at=now,
                duration=max(int((now - started_at).total_seconds() * 1000), 0),
            )
            await self.events.emit(EventType.WORKFLOW_CANCELLED, execution_id, execution.workflow_id)
            return updated

        state.cancelled = True
        self._log(state, "warn", "Execution cancelled")
        updated = await self.store.update_execution(
            execution_id,
            status=ExecutionStatus.CANCELLED,
            error="Execution cancelled",
            logs=state.logs,
            completed_at=utcnow(),
            duration=state.elapsed_ms(),
        )
        await self.events.emit(EventType.WORKFLOW_CANCELLED, execution_id, state.workflow_id)
        logger.info(f"Workflow execution {execution_id} cancelled")
        return updated

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> WorkflowExecution:
        """Wait until the run task (if any) finishes and return the stored record."""
        state = self._runs.get(execution_id)
        if state is not None and state.task is not None:
            await asyncio.wait_for(asyncio.shield(state.task), timeout)
        execution = await self.store.get_execution(execution_id)
        if execution is None:
            raise WorkflowError(f"Execution not found: {execution_id}", ErrorCode.EXECUTION_NOT_FOUND)
        return execution

    def get_running_executions(self) -> List[str]:
        return list(self._runs.keys())

    async def get_node_statuses(self, execution_id: str) -> Dict[str, NodeStatus]:
        state = self._runs.get(execution_id)
        if state is not None:
            return dict(state.node_statuses)
        execution = await self.store.get_execution(execution_id)
        if execution is None:
            raise WorkflowError(f"Execution not found: {execution_id}", ErrorCode.EXECUTION_NOT_FOUND)
        return {
            record.node_id: _NODE_STATUS_BY_RECORD.get(record.status, NodeStatus.IDLE)
            for record in execution.node_executions
        }

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.store.get_execution(execution_id)

    async def get_execution_history(self, workflow_id: str, limit: Optional[int] = 50) -> List[WorkflowExecution]:
        return await self.store.get_executions_by_workflow(workflow_id, limit)

    async def shutdown(self) -> None:
        """Cancel every run still in flight (used on application shutdown)."""
        tasks = [state.task for state in self._runs.values() if state.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def validate(self, workflow: WorkflowDefinition) -> WorkflowGraph:
        """Pre-run checks. Returns the dependency graph of a runnable definition."""
        if not workflow.nodes:
            raise WorkflowError("Workflow has no nodes", ErrorCode.WORKFLOW_EMPTY)
        if not any(n.type == NodeType.INPUT for n in workflow.nodes):
            raise WorkflowError("Workflow has no input node", ErrorCode.MISSING_INPUT_NODE)
        if not any(n.type == NodeType.OUTPUT for n in workflow.nodes):
            raise WorkflowError("Workflow has no output node", ErrorCode.MISSING_OUTPUT_NODE)

        graph = WorkflowGraph.from_definition(workflow)
        graph.get_topo_sort()
        return graph

    # --- Run ---

    async def _run_workflow(self, workflow: WorkflowDefinition, inputs: Dict[str, Any], state: RunState):
        execution_id = state.execution_id
        try:
            await self._update(state, status=ExecutionStatus.RUNNING)
            self._log(state, "info", f"Workflow execution started: {workflow.name}")
            await self.events.emit(EventType.WORKFLOW_START, execution_id, workflow.id, data={"input": inputs})

            timeout_ms = workflow.settings.timeout
            try:
                output = await asyncio.wait_for(
                    self._execute(workflow, inputs, state),
                    timeout=timeout_ms / 1000 if timeout_ms and timeout_ms > 0 else None,
                )
            except asyncio.TimeoutError:
                raise WorkflowError(f"Workflow execution timed out after {timeout_ms} ms", ErrorCode.TIMEOUT)

            if state.cancelled:
                return

            duration = state.elapsed_ms()
            self._log(state, "info", f"Workflow execution completed in {duration} ms")
            await self._update(
                state,
                status=ExecutionStatus.COMPLETED,
                output=output,
                completed_at=utcnow(),
                duration=duration,
            )
            await self.events.emit(
                EventType.WORKFLOW_COMPLETE, execution_id, workflow.id,
                data={"output": output, "duration": duration},
            )
        except WorkflowError as e:
            await self._fail(state, e.message, e.code, e.node_id)
        except asyncio.CancelledError:
            await self._fail(state, "Execution interrupted", None, None)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in workflow execution {execution_id}")
            await self._fail(state, str(e), None, None)
        finally:
            self._runs.pop(execution_id, None)

    async def _fail(self, state: RunState, message: str, code: Optional[str], node_id: Optional[str]):
        if state.cancelled:
            logger.info(f"Workflow execution {state.execution_id} stopped after cancellation: {message}")
            return
        self._log(state, "error", message, node_id=node_id, data={"code": code} if code else None)
        await self._update(
            state,
            status=ExecutionStatus.FAILED,
            error=message,
            error_code=code,
            completed_at=utcnow(),
            duration=state.elapsed_ms(),
        )
        await self.events.emit(
            EventType.WORKFLOW_ERROR, state.execution_id, state.workflow_id, node_id=node_id,
            data={"error": message, "code": code},
        )

    async def _execute(self, workflow: WorkflowDefinition, inputs: Dict[str, Any], state: RunState) -> Dict[str, Any]:
        graph = self.validate(workflow)
        context = ExecutionContext(inputs, workflow.variables)
        settings = workflow.settings
        position = {node_id: i for i, node_id in enumerate(graph.order)}

        remaining = graph.in_degrees()
        ready: List[str] = graph.entry_nodes()
        for node_id in graph.order:
            state.node_statuses[node_id] = NodeStatus.IDLE if node_id in ready else NodeStatus.WAITING

        running: Dict[asyncio.Task, str] = {}
        skipped: Set[str] = set()
        failure: Optional[Exception] = None

        def release(node_id: str):
            for neighbor in graph.get_next_nodes(node_id):
                remaining[neighbor] -= 1
                if remaining[neighbor] == 0 and neighbor not in skipped:
                    ready.append(neighbor)
            ready.sort(key=position.__getitem__)

        def launch(node_id: str):
            node = graph.get_node(node_id)
            task = asyncio.create_task(self._execute_node(node, graph, context, state, workflow))
            running[task] = node_id

        try:
            # Entry nodes always fan out together; parallel_execution governs downstream nodes
            if not state.cancelled:
                while ready:
                    launch(ready.pop(0))

            while ready or running:
                while ready and failure is None and not state.cancelled and (settings.parallel_execution or not running):
                    launch(ready.pop(0))

                if not running:
                    break

                finished, _ = await asyncio.wait(running.keys(), return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(finished, key=lambda t: position[running[t]]):
                    node_id = running.pop(task)
                    exc = task.exception()
                    if exc is None:
                        release(node_id)
                    elif isinstance(exc, NodeExecutionError) and settings.error_handling == ErrorHandling.CONTINUE:
                        await self._skip_descendants(node_id, graph, state, skipped)
                    elif failure is None:
                        failure = exc
        finally:
            for task in running:
                task.cancel()
            if running:
                await asyncio.gather(*running.keys(), return_exceptions=True)

        if failure is not None:
            raise failure

        # Collect output: keyed by node id and by label
        output: Dict[str, Any] = {}
        for node in workflow.nodes:
            if node.type == NodeType.OUTPUT and context.has_output(node.id):
                value = context.get_output(node.id)
                output[node.id] = value
                if node.label:
                    output[node.label] = value
        return output

    async def _skip_descendants(self, failed_id: str, graph: WorkflowGraph, state: RunState, skipped: Set[str]):
        downstream = graph.descendants(failed_id)
        for node_id in graph.order:
            if node_id not in downstream or node_id in skipped:
                continue
            skipped.add(node_id)
            node = graph.get_node(node_id)
            message = f"Skipped: upstream node {failed_id} failed"
            self._log(state, "warn", message, node_id=node_id)
            now = utcnow()
            await self._record_node(state, NodeExecution(
                id=str(uuid.uuid4()),
                execution_id=state.execution_id,
                node_id=node_id,
                node_type=node.type.value,
                status=ExecutionStatus.CANCELLED,
                error=message,
                started_at=now,
                completed_at=now,
                duration=0,
            ))

    async def _execute_node(
        self,
        node: WorkflowNode,
        graph: WorkflowGraph,
        context: ExecutionContext,
        state: RunState,
        workflow: WorkflowDefinition,
    ) -> Any:
        executor_cls = get_executor_class(node.type.value, node.subtype)
        inputs = self._gather_inputs(node, graph, context)
        retry_limit = workflow.settings.retry_count if workflow.settings.error_handling == ErrorHandling.RETRY else 0

        started_at = utcnow()
        start = time.monotonic()
        state.node_statuses[node.id] = NodeStatus.RUNNING
        await self.events.emit(EventType.NODE_START, state.execution_id, workflow.id, node_id=node.id, data={"input": inputs})

        retries = 0
        while True:
            try:
                if executor_cls is None:
                    raise ValueError(f"No executor registered for node type {node.type.value}/{node.subtype}")
                executor = executor_cls(node, self.services)
                output = await executor.execute(inputs, context)
                break
            except Exception as e:
                if executor_cls is not None and retries < retry_limit and not state.cancelled:
                    retries += 1
                    self._log(state, "warn", f"Node {node.id} failed, retrying ({retries}/{retry_limit}): {e}", node_id=node.id)
                    continue

                duration = int((time.monotonic() - start) * 1000)
                state.node_statuses[node.id] = NodeStatus.ERROR
                message = f"Node '{node.label or node.id}' failed: {e}"
                self._log(state, "error", message, node_id=node.id)
                await self.events.emit(
                    EventType.NODE_ERROR, state.execution_id, workflow.id, node_id=node.id,
                    data={"error": str(e), "retry_count": retries},
                )
                await self._record_node(state, NodeExecution(
                    id=str(uuid.uuid4()),
                    execution_id=state.execution_id,
                    node_id=node.id,
                    node_type=node.type.value,
                    status=ExecutionStatus.FAILED,
                    input=inputs,
                    error=str(e),
                    retry_count=retries,
                    started_at=started_at,
                    completed_at=utcnow(),
                    duration=duration,
                ))
                raise NodeExecutionError(message, node.id, node.type.value) from e

        duration = int((time.monotonic() - start) * 1000)
        context.set_node_output(node.id, output)
        state.node_statuses[node.id] = NodeStatus.SUCCESS
        self._log(state, "debug", f"Node {node.id} completed in {duration} ms", node_id=node.id)
        await self.events.emit(
            EventType.NODE_COMPLETE, state.execution_id, workflow.id, node_id=node.id,
            data={"output": output, "duration": duration},
        )
        await self._record_node(state, NodeExecution(
            id=str(uuid.uuid4()),
            execution_id=state.execution_id,
            node_id=node.id,
            node_type=node.type.value,
            status=ExecutionStatus.COMPLETED,
            input=inputs,
            output=output,
            retry_count=retries,
            started_at=started_at,
            completed_at=utcnow(),
            duration=duration,
        ))
        return output

    @staticmethod
    def _gather_inputs(node: WorkflowNode, graph: WorkflowGraph, context: ExecutionContext) -> Dict[str, Any]:
        inputs: Dict[str, Any] = {}
        for conn in graph.incoming.get(node.id, []):
            if context.has_output(conn.source_node_id):
                inputs[conn.target_port_id] = context.get_output(conn.source_node_id)
        return inputs

    # --- Persistence helpers ---

    def _log(self, state: RunState, level: str, message: str, node_id: Optional[str] = None, data: Any = None):
        state.logs.append(ExecutionLog(
            id=str(uuid.uuid4()),
            timestamp=utcnow(),
            level=level,
            message=message,
            node_id=node_id,
            data=data,
        ))
        logger.log(
            EXECUTION_LOG_LEVELS[level],
            message,
            extra=run_fields(state.execution_id, state.workflow_id, node_id),
        )

    async def _update(self, state: RunState, **fields: Any):
        try:
            await self.store.update_execution(state.execution_id, logs=state.logs, **fields)
        except WorkflowError as e:
            if e.code != ErrorCode.EXECUTION_FINALIZED:
                raise
            logger.info(f"Execution {state.execution_id} already finalized, skipping update")

    async def _record_node(self, state: RunState, record: NodeExecution):
        try:
            await self.store.record_node_execution(record)
        except WorkflowError as e:
            if e.code != ErrorCode.EXECUTION_FINALIZED:
                raise
            logger.info(f"Execution {state.execution_id} already finalized, node record for {record.node_id} dropped")
