"""
Node template catalog.

Each template describes one node kind (type + subtype): its default config,
its ports and the JSON schema used to render the configuration form. The
catalog is built once at import time and never mutated.
"""
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from flowcore.schemas.common import CamelModel
from flowcore.schemas.node import NodePort, NodeType, get_config_model


class NodeTemplate(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: NodeType
    subtype: str
    name: str
    description: str
    icon: str
    color: str
    category: str
    default_config: Dict[str, Any] = Field(default_factory=dict)
    ports: List[NodePort] = Field(default_factory=list)
    config_schema: Dict[str, Any] = Field(default_factory=dict)
    documentation: Optional[str] = None


def _port(port_id: str, direction: str, data_type: str, label: str, required: bool = False) -> NodePort:
    return NodePort(id=port_id, type=direction, data_type=data_type, label=label, required=required)


def _template(
    template_id: str,
    node_type: NodeType,
    subtype: str,
    name: str,
    description: str,
    icon: str,
    color: str,
    category: str,
    ports: List[NodePort],
) -> NodeTemplate:
    config_model = get_config_model(node_type.value, subtype)
    return NodeTemplate(
        id=template_id,
        type=node_type,
        subtype=subtype,
        name=name,
        description=description,
        icon=icon,
        color=color,
        category=category,
        default_config=config_model().model_dump(),
        ports=ports,
        config_schema=config_model.model_json_schema(),
    )


INPUT_NODE_TEMPLATES: List[NodeTemplate] = [
    _template(
        "input_text", NodeType.INPUT, "text",
        "Text Input", "Receives text input data",
        "RiInputMethodLine", "blue", "Input",
        [_port("output", "output", "string", "Text")],
    ),
    _template(
        "input_file", NodeType.INPUT, "file",
        "File Input", "Receives a file",
        "RiFileUploadLine", "green", "Input",
        [_port("output", "output", "file", "File")],
    ),
]

PROCESS_NODE_TEMPLATES: List[NodeTemplate] = [
    _template(
        "process_text_transform", NodeType.PROCESS, "text_transform",
        "Text Transform", "Applies a transformation to text",
        "RiEditLine", "purple", "Process",
        [
            _port("input", "input", "string", "Text", required=True),
            _port("output", "output", "string", "Result"),
        ],
    ),
    _template(
        "process_data_filter", NodeType.PROCESS, "data_filter",
        "Data Filter", "Filters a list by conditions",
        "RiFilterLine", "orange", "Process",
        [
            _port("input", "input", "array", "Data", required=True),
            _port("output", "output", "array", "Filtered data"),
        ],
    ),
]

AI_NODE_TEMPLATES: List[NodeTemplate] = [
    _template(
        "ai_text_generation", NodeType.AI, "text_generation",
        "AI Text Generation", "Generates text with an LLM",
        "RiRobot2Line", "cyan", "AI",
        [
            _port("prompt", "input", "string", "Prompt", required=True),
            _port("context", "input", "string", "Context"),
            _port("output", "output", "string", "Generated text"),
        ],
    ),
    _template(
        "ai_text_analysis", NodeType.AI, "text_analysis",
        "AI Text Analysis", "Analyses text with an LLM",
        "RiSearchEyeLine", "indigo", "AI",
        [
            _port("input", "input", "string", "Text", required=True),
            _port("output", "output", "object", "Analysis"),
        ],
    ),
]

TOOL_NODE_TEMPLATES: List[NodeTemplate] = [
    _template(
        "tool_http_request", NodeType.TOOL, "http_request",
        "HTTP Request", "Sends an HTTP request",
        "RiGlobalLine", "teal", "Tool",
        [
            _port("url", "input", "string", "URL", required=True),
            _port("data", "input", "object", "Body"),
            _port("response", "output", "object", "Response"),
        ],
    ),
    _template(
        "tool_email_send", NodeType.TOOL, "email_send",
        "Send Email", "Sends an email over SMTP",
        "RiMailSendLine", "red", "Tool",
        [
            _port("to", "input", "string", "Recipient", required=True),
            _port("subject", "input", "string", "Subject", required=True),
            _port("content", "input", "string", "Body", required=True),
            _port("result", "output", "object", "Result"),
        ],
    ),
]

CONTROL_NODE_TEMPLATES: List[NodeTemplate] = [
    _template(
        "control_condition", NodeType.CONTROL, "condition",
        "Condition", "Compares a value and emits a branch signal",
        "RiGitBranchLine", "yellow", "Control",
        [
            _port("input", "input", "any", "Value", required=True),
            _port("true", "output", "any", "True"),
            _port("false", "output", "any", "False"),
        ],
    ),
    _template(
        "control_loop", NodeType.CONTROL, "loop",
        "Loop", "Iterates over a list",
        "RiRefreshLine", "pink", "Control",
        [
            _port("input", "input", "array", "Items", required=True),
            _port("item", "output", "any", "Item"),
            _port("index", "output", "number", "Index"),
        ],
    ),
]

OUTPUT_NODE_TEMPLATES: List[NodeTemplate] = [
    _template(
        "output_display", NodeType.OUTPUT, "display",
        "Display", "Displays the result",
        "RiEyeLine", "gray", "Output",
        [_port("input", "input", "any", "Content", required=True)],
    ),
    _template(
        "output_file_save", NodeType.OUTPUT, "file_save",
        "Save File", "Saves the result to a file",
        "RiSaveLine", "emerald", "Output",
        [
            _port("input", "input", "any", "Content", required=True),
            _port("filename", "input", "string", "File name"),
        ],
    ),
]

ALL_NODE_TEMPLATES: List[NodeTemplate] = [
    *INPUT_NODE_TEMPLATES,
    *PROCESS_NODE_TEMPLATES,
    *AI_NODE_TEMPLATES,
    *TOOL_NODE_TEMPLATES,
    *CONTROL_NODE_TEMPLATES,
    *OUTPUT_NODE_TEMPLATES,
]

_TEMPLATES_BY_ID: Dict[str, NodeTemplate] = {t.id: t for t in ALL_NODE_TEMPLATES}


def get_node_template(template_id: str) -> Optional[NodeTemplate]:
    return _TEMPLATES_BY_ID.get(template_id)


def get_node_templates_by_type(node_type: str) -> List[NodeTemplate]:
    return [t for t in ALL_NODE_TEMPLATES if t.type.value == str(getattr(node_type, "value", node_type))]


def get_node_templates_by_category(category: str) -> List[NodeTemplate]:
    return [t for t in ALL_NODE_TEMPLATES if t.category == category]


def get_node_categories() -> List[str]:
    # Preserves catalog order
    return list(dict.fromkeys(t.category for t in ALL_NODE_TEMPLATES))
