from pydantic import Field
from typing import List, Optional, Dict, Any, Literal
from datetime import datetime
from enum import Enum

from flowcore.schemas.common import CamelModel

class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED})

class TriggerSource(str, Enum):
    MANUAL = "manual"
    SCHEDULE = "schedule"
    API = "api"
    EVENT = "event"

class EventType(str, Enum):
    NODE_START = "node_start"
    NODE_COMPLETE = "node_complete"
    NODE_ERROR = "node_error"
    WORKFLOW_START = "workflow_start"
    WORKFLOW_COMPLETE = "workflow_complete"
    WORKFLOW_ERROR = "workflow_error"
    WORKFLOW_CANCELLED = "workflow_cancelled"

class ExecutionLog(CamelModel):
    id: str
    timestamp: datetime
    level: Literal["debug", "info", "warn", "error"] = "info"
    message: str
    node_id: Optional[str] = None
    data: Optional[Any] = None

class NodeExecution(CamelModel):
    id: str
    execution_id: str
    node_id: str
    node_type: str
    status: ExecutionStatus
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    retry_count: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None

class WorkflowExecution(CamelModel):
    id: str
    workflow_id: str
    workflow_version: str
    status: ExecutionStatus
    triggered_by: TriggerSource = TriggerSource.MANUAL
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    logs: List[ExecutionLog] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None
    node_executions: List[NodeExecution] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

class WorkflowExecuteRequest(CamelModel):
    inputs: Dict[str, Any] = Field(default_factory=dict)
    triggered_by: TriggerSource = TriggerSource.API

class WorkflowEvent(CamelModel):
    type: EventType
    timestamp: datetime
    execution_id: str
    workflow_id: str
    node_id: Optional[str] = None
    data: Optional[Any] = None
