import asyncio
import uuid
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from flowcore.database import create_engine, create_session_factory, init_models
from flowcore.engine.engine import WorkflowEngine
from flowcore.engine.nodes.base import NodeServices
from flowcore.engine.templates import get_node_template
from flowcore.schemas.workflow import WorkflowConnection, WorkflowDefinition, WorkflowNode, WorkflowStatus
from flowcore.services.workflow_manager import WorkflowManager
from flowcore.services.workflow_store import WorkflowStore


class FakeLLM:
    """Records prompts and answers with a canned reply."""

    def __init__(self, reply: Optional[str] = None):
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, **kwargs) -> str:
        self.calls.append(kwargs)
        if self.reply is not None:
            return self.reply
        return f"generated: {kwargs['user_prompt']}"


class FakeMailer:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def __call__(self, **kwargs) -> Dict[str, Any]:
        self.sent.append(kwargs)
        return {"success": True, "message_id": "<test@flowcore>", "recipients": kwargs["to"]}


def echo_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"method": request.method, "url": str(request.url)})


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_mailer():
    return FakeMailer()


@pytest.fixture
def http_handler():
    """Swap ``handler`` to change what the mocked HTTP transport answers."""
    return {"handler": echo_handler}


@pytest.fixture
def services(fake_llm, fake_mailer, http_handler):
    async def http_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: http_handler["handler"](request)))

    return NodeServices(
        chat_completion=fake_llm,
        http_client=http_client,
        send_email=fake_mailer,
        file_save_dir=None,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'flowcore.db'}", echo=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(db_engine):
    return WorkflowStore(create_session_factory(db_engine), retry_attempts=3, retry_delay=0.01)


@pytest_asyncio.fixture
async def engine(store, services):
    workflow_engine = WorkflowEngine(store, services=services)
    yield workflow_engine
    await workflow_engine.shutdown()


@pytest_asyncio.fixture
async def manager(store, engine):
    return WorkflowManager(store, engine)


def make_node(
    node_id: str,
    template_id: str,
    label: str = "",
    config: Optional[Dict[str, Any]] = None,
) -> WorkflowNode:
    """Build a node with the ports of the given template."""
    template = get_node_template(template_id)
    return WorkflowNode(
        id=node_id,
        type=template.type,
        subtype=template.subtype,
        label=label,
        config={**template.default_config, **(config or {})},
        ports=[port.model_copy() for port in template.ports],
    )


def connect(source: str, source_port: str, target: str, target_port: str) -> WorkflowConnection:
    return WorkflowConnection(
        id=f"{source}.{source_port}->{target}.{target_port}",
        source_node_id=source,
        source_port_id=source_port,
        target_node_id=target,
        target_port_id=target_port,
    )


@pytest.fixture
def create_workflow(store):
    async def _create(
        nodes: List[WorkflowNode],
        connections: Optional[List[WorkflowConnection]] = None,
        status: WorkflowStatus = WorkflowStatus.ACTIVE,
        **fields: Any,
    ) -> WorkflowDefinition:
        workflow = WorkflowDefinition(
            id=str(uuid.uuid4()),
            name=fields.pop("name", "Test workflow"),
            status=status,
            nodes=nodes,
            connections=connections or [],
            **fields,
        )
        return await store.create_workflow(workflow)

    return _create


@pytest.fixture
def record_events(engine):
    """Collect every event emitted by the engine, in emission order."""
    events = []
    engine.events.subscribe(events.append)
    return events


@pytest.fixture
def gate():
    """An asyncio.Event handlers can block on to hold a run in flight."""
    return asyncio.Event()
