from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Type

import httpx

from flowcore.config import settings
from flowcore.engine.context import ExecutionContext
from flowcore.integrations.http_client import get_http_client
from flowcore.integrations.llm_provider import LLMProvider
from flowcore.integrations.mailer import Mailer
from flowcore.schemas.node import NodeConfig, get_config_model
from flowcore.schemas.workflow import WorkflowNode


@dataclass
class NodeServices:
    """External collaborators reachable from node handlers."""

    chat_completion: Callable[..., Awaitable[str]] = LLMProvider.chat_completion
    http_client: Callable[[], Awaitable[httpx.AsyncClient]] = get_http_client
    send_email: Callable[..., Awaitable[Dict[str, Any]]] = Mailer.send
    file_save_dir: Optional[str] = field(default_factory=lambda: settings.FILE_SAVE_DIR)


class BaseNodeExecutor(ABC):
    node_type: str = ""
    subtype: str = ""

    def __init__(self, node: WorkflowNode, services: NodeServices):
        self.node = node
        self.node_id = node.id
        self.services = services
        config_model: Optional[Type[NodeConfig]] = get_config_model(node.type, node.subtype)
        self.config = config_model.model_validate(node.config) if config_model else node.config

    @abstractmethod
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        """
        Execute node logic.
        inputs: values gathered from incoming connections, keyed by target port id.
        Returns the node output.
        """
        pass
