from pydantic import Field, model_validator
from typing import List, Optional, Dict, Any, Literal
from datetime import datetime
from enum import Enum

from flowcore.schemas.common import CamelModel
from flowcore.schemas.node import NodeType, NodeStatus, NodePort, NodePosition, validate_node_config

class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"

class ErrorHandling(str, Enum):
    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"

class WorkflowNode(CamelModel):
    id: str
    type: NodeType
    subtype: str
    label: str = ""
    description: Optional[str] = None
    position: NodePosition = Field(default_factory=NodePosition)
    config: Dict[str, Any] = Field(default_factory=dict)
    ports: List[NodePort] = Field(default_factory=list)
    status: NodeStatus = NodeStatus.IDLE
    error: Optional[str] = None

    @model_validator(mode="after")
    def _normalize_config(self) -> "WorkflowNode":
        self.config = validate_node_config(self.type, self.subtype, self.config)
        return self

    def get_port(self, port_id: str, direction: Optional[str] = None) -> Optional[NodePort]:
        for port in self.ports:
            if port.id == port_id and (direction is None or port.type.value == direction):
                return port
        return None

class WorkflowConnection(CamelModel):
    id: str
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str
    label: Optional[str] = None

class NotificationSettings(CamelModel):
    on_success: bool = False
    on_error: bool = True
    email: Optional[str] = None

class ScheduleSettings(CamelModel):
    enabled: bool = False
    cron: str = ""
    timezone: str = "UTC"

class WorkflowSettings(CamelModel):
    timeout: int = 300000  # milliseconds
    retry_count: int = 3
    parallel_execution: bool = False
    error_handling: ErrorHandling = ErrorHandling.STOP
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    schedule: Optional[ScheduleSettings] = None

class WorkflowDefinition(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    version: str = "1.0.0"
    status: WorkflowStatus = WorkflowStatus.DRAFT
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[WorkflowConnection] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    tags: List[str] = Field(default_factory=list)
    category: str = "general"
    is_template: bool = False
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

class WorkflowCreate(CamelModel):
    name: str
    description: Optional[str] = None
    category: str = "general"
    tags: List[str] = Field(default_factory=list)

class WorkflowUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    status: Optional[WorkflowStatus] = None
    nodes: Optional[List[WorkflowNode]] = None
    connections: Optional[List[WorkflowConnection]] = None
    variables: Optional[Dict[str, Any]] = None
    settings: Optional[WorkflowSettings] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    is_template: Optional[bool] = None

class NodeCreate(CamelModel):
    template_id: str
    position: NodePosition = Field(default_factory=NodePosition)

class NodeUpdate(CamelModel):
    label: Optional[str] = None
    description: Optional[str] = None
    position: Optional[NodePosition] = None
    config: Optional[Dict[str, Any]] = None

class ConnectionCreate(CamelModel):
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str
    label: Optional[str] = None

class DateRange(CamelModel):
    start: datetime
    end: datetime

class WorkflowFilter(CamelModel):
    status: Optional[List[WorkflowStatus]] = None
    category: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    author: Optional[str] = None
    is_template: Optional[bool] = None

class WorkflowSort(CamelModel):
    by: Literal["name", "createdAt", "updatedAt", "executions"] = "createdAt"
    order: Literal["asc", "desc"] = "desc"

class WorkflowListResponse(CamelModel):
    workflows: List[WorkflowDefinition]
    total: int
    page: int
    page_size: int
    has_more: bool

class WorkflowStats(CamelModel):
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_duration: float = 0
    last_execution: Optional[datetime] = None
    success_rate: float = 0

class ValidationResult(CamelModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)

class ExportMetadata(CamelModel):
    exported_at: datetime
    exported_by: str
    application: str
    version: str

class WorkflowExportData(CamelModel):
    version: str = "1.0"
    workflow: WorkflowDefinition
    dependencies: Optional[List[str]] = None
    metadata: ExportMetadata
