"""
Workflow error taxonomy. Every error carries a stable machine-readable code.
"""
from typing import Any, List, Optional


class ErrorCode:
    WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
    WORKFLOW_NOT_ACTIVE = "WORKFLOW_NOT_ACTIVE"
    WORKFLOW_EMPTY = "WORKFLOW_EMPTY"
    MISSING_INPUT_NODE = "MISSING_INPUT_NODE"
    MISSING_OUTPUT_NODE = "MISSING_OUTPUT_NODE"
    INVALID_CONNECTION = "INVALID_CONNECTION"
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    EXECUTION_NOT_FOUND = "EXECUTION_NOT_FOUND"
    CYCLIC_WORKFLOW = "CYCLIC_WORKFLOW"
    TIMEOUT = "TIMEOUT"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    PORT_NOT_FOUND = "PORT_NOT_FOUND"
    PORT_ALREADY_CONNECTED = "PORT_ALREADY_CONNECTED"
    CONNECTION_NOT_FOUND = "CONNECTION_NOT_FOUND"
    INVALID_NODE_CONFIG = "INVALID_NODE_CONFIG"
    EXECUTION_FINALIZED = "EXECUTION_FINALIZED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    NODE_EXECUTION_ERROR = "NODE_EXECUTION_ERROR"
    WORKFLOW_VALIDATION_ERROR = "WORKFLOW_VALIDATION_ERROR"


class WorkflowError(Exception):
    """Base exception for workflow errors."""

    def __init__(
        self,
        message: str,
        code: str,
        node_id: Optional[str] = None,
        details: Any = None,
    ):
        self.message = message
        self.code = code
        self.node_id = node_id
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        data = {"detail": self.message, "code": self.code}
        if self.node_id:
            data["node_id"] = self.node_id
        return data


class NodeExecutionError(WorkflowError):
    """Raised when a node handler fails; fatal to the run under the stop policy."""

    def __init__(self, message: str, node_id: str, node_type: str, details: Any = None):
        super().__init__(message, ErrorCode.NODE_EXECUTION_ERROR, node_id, details)
        self.node_type = node_type


class WorkflowValidationError(WorkflowError):
    """Pre-flight validation failure carrying every validation message."""

    def __init__(self, message: str, validation_errors: List[str], details: Any = None):
        super().__init__(message, ErrorCode.WORKFLOW_VALIDATION_ERROR, None, details)
        self.validation_errors = validation_errors

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.validation_errors
        return data
