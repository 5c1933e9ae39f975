from pydantic import Field, ValidationError
from typing import List, Optional, Literal, Dict, Any, Tuple, Type
from enum import Enum

from flowcore.core.errors import ErrorCode, WorkflowError
from flowcore.schemas.common import CamelModel

class NodeType(str, Enum):
    INPUT = "input"
    PROCESS = "process"
    OUTPUT = "output"
    CONTROL = "control"
    AI = "ai"
    TOOL = "tool"

class NodeStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    WAITING = "waiting"

class PortDirection(str, Enum):
    INPUT = "input"
    OUTPUT = "output"

class NodePort(CamelModel):
    id: str
    type: PortDirection
    data_type: str = "any"
    label: str = ""
    required: bool = False

class NodePosition(CamelModel):
    x: float = 0
    y: float = 0

# --- Per-kind configuration ---

class NodeConfig(CamelModel):
    pass

class TextInputConfig(NodeConfig):
    placeholder: str = Field("Enter text", title="Placeholder")
    multiline: bool = Field(False, title="Multiline input")
    required: bool = Field(True, title="Required")

class FileInputConfig(NodeConfig):
    accepted_types: List[str] = Field(default_factory=lambda: ["*"], title="Accepted file types")
    max_size: int = Field(10 * 1024 * 1024, title="Maximum file size (bytes)")
    multiple: bool = Field(False, title="Multiple files")

class TextTransformConfig(NodeConfig):
    operation: Literal["uppercase", "lowercase", "trim", "replace", "regex"] = Field("uppercase", title="Operation")
    custom_pattern: str = Field("", title="Pattern")
    replacement: str = Field("", title="Replacement")

class FilterCondition(CamelModel):
    field: Optional[str] = None  # None compares the item itself
    operator: Literal["equals", "not_equals", "greater", "less", "contains", "is_empty", "is_not_empty"] = "equals"
    value: Any = None

class DataFilterConfig(NodeConfig):
    conditions: List[FilterCondition] = Field(default_factory=list, title="Filter conditions")
    operator: Literal["and", "or"] = Field("and", title="Condition operator")
    expression: Optional[str] = Field(None, title="Expression")

class TextGenerationConfig(NodeConfig):
    provider: Literal["openai", "anthropic", "claude"] = Field("openai", title="Provider")
    model: str = Field("gpt-4o-mini", title="Model")
    prompt: str = Field("", title="Prompt")
    system_prompt: Optional[str] = Field(None, title="System prompt")
    temperature: float = Field(0.7, ge=0, le=2, title="Temperature")
    max_tokens: int = Field(1000, ge=1, le=8000, title="Max tokens")

class TextAnalysisConfig(NodeConfig):
    provider: Literal["openai", "anthropic", "claude"] = Field("openai", title="Provider")
    model: str = Field("gpt-4o-mini", title="Model")
    analysis_type: Literal["sentiment", "keywords", "summary", "classification"] = Field("sentiment", title="Analysis type")
    language: Literal["zh", "en"] = Field("en", title="Language")

class HttpRequestConfig(NodeConfig):
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = Field("GET", title="Method")
    url: str = Field("", title="URL")
    headers: Dict[str, str] = Field(default_factory=dict, title="Headers")
    timeout: int = Field(30000, ge=1, title="Timeout (ms)")
    raise_for_status: bool = Field(True, title="Fail on non-2xx response")

class SmtpAuth(CamelModel):
    user: str = ""
    password: str = Field("", alias="pass")

class EmailSendConfig(NodeConfig):
    smtp_host: str = Field("", title="SMTP host")
    smtp_port: int = Field(587, title="SMTP port")
    secure: bool = Field(False, title="Use SSL")
    sender: Optional[str] = Field(None, title="From address")
    auth: SmtpAuth = Field(default_factory=SmtpAuth, title="Credentials")

class ConditionConfig(NodeConfig):
    condition: str = Field("", title="Condition label")
    operator: Literal["equals", "not_equals", "greater", "less", "contains", "is_empty", "is_not_empty"] = Field("equals", title="Operator")
    value: Any = Field("", title="Compare value")

class LoopConfig(NodeConfig):
    loop_type: Literal["for", "while", "forEach"] = Field("forEach", title="Loop type")
    count: int = Field(10, ge=0, title="Iterations")
    condition: str = Field("", title="Loop condition")

class DisplayConfig(NodeConfig):
    format: Literal["text", "json", "table", "chart"] = Field("text", title="Display format")
    title: str = Field("Result", title="Title")

class FileSaveConfig(NodeConfig):
    filename: str = Field("output.txt", title="File name")
    format: Literal["text", "json", "csv"] = Field("text", title="File format")
    encoding: Literal["utf-8", "ascii"] = Field("utf-8", title="Encoding")

CONFIG_MODELS: Dict[Tuple[str, str], Type[NodeConfig]] = {
    ("input", "text"): TextInputConfig,
    ("input", "file"): FileInputConfig,
    ("process", "text_transform"): TextTransformConfig,
    ("process", "data_filter"): DataFilterConfig,
    ("ai", "text_generation"): TextGenerationConfig,
    ("ai", "text_analysis"): TextAnalysisConfig,
    ("tool", "http_request"): HttpRequestConfig,
    ("tool", "email_send"): EmailSendConfig,
    ("control", "condition"): ConditionConfig,
    ("control", "loop"): LoopConfig,
    ("output", "display"): DisplayConfig,
    ("output", "file_save"): FileSaveConfig,
}

def get_config_model(node_type: str, subtype: str) -> Optional[Type[NodeConfig]]:
    return CONFIG_MODELS.get((str(getattr(node_type, "value", node_type)), subtype))

def validate_node_config(node_type: str, subtype: str, config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate a raw config map against the model for (type, subtype).
    Returns the normalized snake_case dict; unknown kinds pass through unchanged.
    """
    model = get_config_model(node_type, subtype)
    if model is None:
        return dict(config or {})
    try:
        return model.model_validate(config or {}).model_dump()
    except ValidationError as e:
        raise WorkflowError(
            f"Invalid config for {getattr(node_type, 'value', node_type)}/{subtype}: {e.errors(include_url=False)}",
            ErrorCode.INVALID_NODE_CONFIG,
        ) from e
