"""
Persistence for workflow definitions and execution records.

The store owns no business logic. Nested structures (graph, settings,
variables, logs, inputs/outputs) are JSON columns next to indexed scalar
columns used for filtering and sorting. Every call runs in its own session;
infrastructure failures are retried here and surface to callers as
``STORE_UNAVAILABLE``.
"""
import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from pydantic_core import to_jsonable_python
from sqlalchemy import String, cast, delete, desc, asc, func, or_, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowcore.config import settings
from flowcore.core.errors import ErrorCode, WorkflowError
from flowcore.core.logging import get_logger
from flowcore.models.execution import NodeExecution as NodeExecutionRow
from flowcore.models.execution import WorkflowExecution as WorkflowExecutionRow
from flowcore.models.workflow import Workflow
from flowcore.schemas.execution import (
    ExecutionLog,
    ExecutionStatus,
    NodeExecution,
    TERMINAL_STATUSES,
    TriggerSource,
    WorkflowExecution,
)
from flowcore.schemas.workflow import (
    WorkflowDefinition,
    WorkflowFilter,
    WorkflowListResponse,
    WorkflowSort,
)

logger = get_logger("store")

T = TypeVar("T")

_SORT_COLUMNS = {
    "name": Workflow.name,
    "createdAt": Workflow.created_at,
    "updatedAt": Workflow.updated_at,
}

_EXECUTION_FIELDS = {
    "status", "output", "error", "error_code", "logs", "started_at", "completed_at", "duration",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json(value: Any) -> Any:
    return to_jsonable_python(value, fallback=str)


def _bump_version(version: str) -> str:
    parts = version.split(".")
    if parts and parts[-1].isdigit():
        parts[-1] = str(int(parts[-1]) + 1)
        return ".".join(parts)
    return f"{version}.1"


class WorkflowStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.retry_attempts = max(1, retry_attempts or settings.STORE_RETRY_ATTEMPTS)
        self.retry_delay = settings.STORE_RETRY_DELAY if retry_delay is None else retry_delay

    async def _run(self, op_name: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        return await fn(session)
            except (OperationalError, InterfaceError) as e:
                if attempt >= self.retry_attempts:
                    logger.error(f"Store operation {op_name} failed after {attempt} attempts: {e}")
                    raise WorkflowError(
                        f"Workflow store unavailable during {op_name}",
                        ErrorCode.STORE_UNAVAILABLE,
                    ) from e
                logger.warning(f"Store operation {op_name} failed (attempt {attempt}), retrying: {e}")
                await asyncio.sleep(self.retry_delay * attempt)
        raise AssertionError("unreachable")

    # --- Conversions ---

    @staticmethod
    def _to_definition(row: Workflow) -> WorkflowDefinition:
        definition = row.definition or {}
        return WorkflowDefinition(
            id=row.id,
            name=row.name,
            description=row.description,
            version=row.version,
            status=row.status,
            nodes=definition.get("nodes", []),
            connections=definition.get("connections", []),
            variables=row.variables or {},
            settings=row.settings or {},
            tags=row.tags or [],
            category=row.category,
            is_template=row.is_template,
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_node_execution(row: NodeExecutionRow) -> NodeExecution:
        return NodeExecution(
            id=row.id,
            execution_id=row.execution_id,
            node_id=row.node_id,
            node_type=row.node_type,
            status=row.status,
            input=row.input,
            output=row.output,
            error=row.error,
            retry_count=row.retry_count or 0,
            started_at=row.started_at,
            completed_at=row.completed_at,
            duration=row.duration,
        )

    @staticmethod
    def _to_execution(row: WorkflowExecutionRow, node_rows: Optional[List[NodeExecutionRow]] = None) -> WorkflowExecution:
        return WorkflowExecution(
            id=row.id,
            workflow_id=row.workflow_id,
            workflow_version=row.workflow_version,
            status=row.status,
            triggered_by=row.triggered_by,
            input=row.input,
            output=row.output,
            error=row.error,
            error_code=row.error_code,
            logs=row.logs or [],
            started_at=row.started_at,
            completed_at=row.completed_at,
            duration=row.duration,
            node_executions=[WorkflowStore._to_node_execution(n) for n in node_rows or []],
        )

    # --- Workflow definitions ---

    async def create_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        now = utcnow()

        async def op(session: AsyncSession) -> WorkflowDefinition:
            row = Workflow(
                id=workflow.id or str(uuid.uuid4()),
                name=workflow.name,
                description=workflow.description,
                version=workflow.version,
                status=workflow.status.value,
                definition={
                    "nodes": _json([n.model_dump() for n in workflow.nodes]),
                    "connections": _json([c.model_dump() for c in workflow.connections]),
                },
                variables=_json(workflow.variables),
                settings=_json(workflow.settings.model_dump()),
                tags=list(workflow.tags),
                category=workflow.category,
                is_template=workflow.is_template,
                created_by=workflow.created_by,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            return self._to_definition(row)

        created = await self._run("create_workflow", op)
        logger.info(f"Workflow created: {created.name} ({created.id})")
        return created

    async def update_workflow(self, workflow_id: str, updates: Dict[str, Any]) -> WorkflowDefinition:
        """
        Apply a partial update. ``nodes``/``connections`` replace the stored
        graph and bump the patch version unless ``version`` is given.
        """
        async def op(session: AsyncSession) -> WorkflowDefinition:
            row = await session.get(Workflow, workflow_id)
            if row is None:
                raise WorkflowError(f"Workflow not found: {workflow_id}", ErrorCode.WORKFLOW_NOT_FOUND)

            data = dict(updates)
            if "nodes" in data or "connections" in data:
                current = row.definition or {}
                nodes = data.pop("nodes", None)
                connections = data.pop("connections", None)
                row.definition = {
                    "nodes": _json(nodes) if nodes is not None else current.get("nodes", []),
                    "connections": _json(connections) if connections is not None else current.get("connections", []),
                }
                if "version" not in data:
                    row.version = _bump_version(row.version)

            for key, value in data.items():
                if key in ("id", "created_at", "updated_at") or not hasattr(Workflow, key):
                    continue
                value = getattr(value, "value", value)
                if key in ("variables", "settings", "tags"):
                    value = _json(value)
                setattr(row, key, value)

            row.updated_at = utcnow()
            await session.flush()
            return self._to_definition(row)

        updated = await self._run("update_workflow", op)
        logger.info(f"Workflow updated: {workflow_id}")
        return updated

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        async def op(session: AsyncSession) -> Optional[WorkflowDefinition]:
            row = await session.get(Workflow, workflow_id)
            return self._to_definition(row) if row else None

        return await self._run("get_workflow", op)

    async def get_workflows(
        self,
        filter: Optional[WorkflowFilter] = None,
        sort: Optional[WorkflowSort] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> WorkflowListResponse:
        page = max(1, page)
        page_size = max(1, page_size)

        async def op(session: AsyncSession) -> WorkflowListResponse:
            conditions = []
            if filter:
                if filter.status:
                    conditions.append(Workflow.status.in_([s.value for s in filter.status]))
                if filter.category:
                    conditions.append(Workflow.category.in_(filter.category))
                if filter.is_template is not None:
                    conditions.append(Workflow.is_template == filter.is_template)
                if filter.date_range:
                    conditions.append(Workflow.created_at.between(filter.date_range.start, filter.date_range.end))
                if filter.author:
                    conditions.append(Workflow.created_by == filter.author)
                if filter.tags:
                    # Tags are a JSON array; match any tag in its serialized form
                    tags_text = cast(Workflow.tags, String)
                    conditions.append(or_(*[tags_text.like(f'%"{tag}"%') for tag in filter.tags]))

            total = await session.scalar(select(func.count()).select_from(Workflow).where(*conditions))

            query = select(Workflow).where(*conditions)
            by = sort.by if sort else "createdAt"
            direction = desc if (sort.order if sort else "desc") == "desc" else asc
            if by == "executions":
                counts = (
                    select(WorkflowExecutionRow.workflow_id, func.count().label("n"))
                    .group_by(WorkflowExecutionRow.workflow_id)
                    .subquery()
                )
                query = query.outerjoin(counts, counts.c.workflow_id == Workflow.id).order_by(
                    direction(func.coalesce(counts.c.n, 0)), desc(Workflow.created_at)
                )
            else:
                query = query.order_by(direction(_SORT_COLUMNS.get(by, Workflow.created_at)))

            offset = (page - 1) * page_size
            result = await session.execute(query.offset(offset).limit(page_size))
            workflows = [self._to_definition(row) for row in result.scalars().all()]
            return WorkflowListResponse(
                workflows=workflows,
                total=total or 0,
                page=page,
                page_size=page_size,
                has_more=offset + len(workflows) < (total or 0),
            )

        return await self._run("get_workflows", op)

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and cascade to its executions and node records."""
        async def op(session: AsyncSession) -> bool:
            execution_ids = select(WorkflowExecutionRow.id).where(WorkflowExecutionRow.workflow_id == workflow_id)
            await session.execute(delete(NodeExecutionRow).where(NodeExecutionRow.execution_id.in_(execution_ids)))
            await session.execute(delete(WorkflowExecutionRow).where(WorkflowExecutionRow.workflow_id == workflow_id))
            result = await session.execute(delete(Workflow).where(Workflow.id == workflow_id))
            return result.rowcount > 0

        deleted = await self._run("delete_workflow", op)
        if deleted:
            logger.info(f"Workflow deleted: {workflow_id}")
        return deleted

    # --- Executions ---

    async def create_execution(
        self,
        workflow_id: str,
        workflow_version: str,
        input: Optional[Dict[str, Any]] = None,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
    ) -> WorkflowExecution:
        async def op(session: AsyncSession) -> WorkflowExecution:
            row = WorkflowExecutionRow(
                id=str(uuid.uuid4()),
                workflow_id=workflow_id,
                workflow_version=workflow_version,
                status=ExecutionStatus.PENDING.value,
                triggered_by=TriggerSource(triggered_by).value,
                input=_json(input) if input is not None else None,
                logs=[],
                started_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return self._to_execution(row)

        execution = await self._run("create_execution", op)
        logger.info(f"Workflow execution created: {execution.id}")
        return execution

    async def update_execution(self, execution_id: str, **updates: Any) -> WorkflowExecution:
        """
        Update an execution record. Records in a terminal status reject
        every further mutation with EXECUTION_FINALIZED.
        """
        unknown = set(updates) - _EXECUTION_FIELDS
        if unknown:
            raise ValueError(f"Unknown execution fields: {', '.join(sorted(unknown))}")

        async def op(session: AsyncSession) -> WorkflowExecution:
            row = await session.get(WorkflowExecutionRow, execution_id, with_for_update=True)
            if row is None:
                raise WorkflowError(f"Execution not found: {execution_id}", ErrorCode.EXECUTION_NOT_FOUND)
            if ExecutionStatus(row.status) in TERMINAL_STATUSES:
                raise WorkflowError(
                    f"Execution {execution_id} is already {row.status}",
                    ErrorCode.EXECUTION_FINALIZED,
                )

            for key, value in updates.items():
                if key == "status":
                    value = ExecutionStatus(value).value
                elif key == "logs":
                    value = _json([log.model_dump() if isinstance(log, ExecutionLog) else log for log in value])
                elif key == "output":
                    value = _json(value)
                setattr(row, key, value)
            await session.flush()
            return self._to_execution(row)

        return await self._run("update_execution", op)

    async def get_execution(self, execution_id: str, include_nodes: bool = True) -> Optional[WorkflowExecution]:
        async def op(session: AsyncSession) -> Optional[WorkflowExecution]:
            row = await session.get(WorkflowExecutionRow, execution_id)
            if row is None:
                return None
            node_rows = None
            if include_nodes:
                result = await session.execute(
                    select(NodeExecutionRow)
                    .where(NodeExecutionRow.execution_id == execution_id)
                    .order_by(NodeExecutionRow.started_at)
                )
                node_rows = list(result.scalars().all())
            return self._to_execution(row, node_rows)

        return await self._run("get_execution", op)

    async def get_executions_by_workflow(self, workflow_id: str, limit: Optional[int] = 50) -> List[WorkflowExecution]:
        """Most recent first; ``limit=None`` returns the whole history."""
        async def op(session: AsyncSession) -> List[WorkflowExecution]:
            query = (
                select(WorkflowExecutionRow)
                .where(WorkflowExecutionRow.workflow_id == workflow_id)
                .order_by(desc(WorkflowExecutionRow.started_at))
            )
            if limit is not None:
                query = query.limit(limit)
            result = await session.execute(query)
            return [self._to_execution(row) for row in result.scalars().all()]

        return await self._run("get_executions_by_workflow", op)

    async def record_node_execution(self, record: NodeExecution) -> NodeExecution:
        """Persist a finished per-node record; rejected once the run is terminal."""
        async def op(session: AsyncSession) -> NodeExecution:
            parent = await session.get(WorkflowExecutionRow, record.execution_id)
            if parent is None:
                raise WorkflowError(f"Execution not found: {record.execution_id}", ErrorCode.EXECUTION_NOT_FOUND)
            if ExecutionStatus(parent.status) in TERMINAL_STATUSES:
                raise WorkflowError(
                    f"Execution {record.execution_id} is already {parent.status}",
                    ErrorCode.EXECUTION_FINALIZED,
                )
            row = NodeExecutionRow(
                id=record.id,
                execution_id=record.execution_id,
                node_id=record.node_id,
                node_type=record.node_type,
                status=record.status.value,
                input=_json(record.input),
                output=_json(record.output),
                error=record.error,
                retry_count=record.retry_count,
                started_at=record.started_at,
                completed_at=record.completed_at,
                duration=record.duration,
            )
            session.add(row)
            await session.flush()
            return self._to_node_execution(row)

        return await self._run("record_node_execution", op)
