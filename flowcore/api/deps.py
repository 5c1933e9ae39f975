from fastapi import Request

from flowcore.engine.engine import WorkflowEngine
from flowcore.services.workflow_manager import WorkflowManager


def get_manager(request: Request) -> WorkflowManager:
    return request.app.state.manager


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine
