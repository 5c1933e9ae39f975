from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional

from flowcore.config import Settings, settings as default_settings
from flowcore.api import workflows, executions, templates
from flowcore.core.errors import ErrorCode, WorkflowError
from flowcore.core.logging import logger
from flowcore.database import create_engine, create_session_factory, init_models
from flowcore.engine.engine import WorkflowEngine
from flowcore.engine.nodes.base import NodeServices
from flowcore.engine.nodes.registry import get_all_executors
from flowcore.integrations.http_client import HttpClient
from flowcore.services.workflow_manager import WorkflowManager
from flowcore.services.workflow_store import WorkflowStore

_STATUS_BY_CODE = {
    ErrorCode.WORKFLOW_NOT_FOUND: 404,
    ErrorCode.NODE_NOT_FOUND: 404,
    ErrorCode.EXECUTION_NOT_FOUND: 404,
    ErrorCode.TEMPLATE_NOT_FOUND: 404,
    ErrorCode.CONNECTION_NOT_FOUND: 404,
    ErrorCode.WORKFLOW_NOT_ACTIVE: 409,
    ErrorCode.EXECUTION_FINALIZED: 409,
    ErrorCode.PORT_ALREADY_CONNECTED: 409,
    ErrorCode.WORKFLOW_EMPTY: 422,
    ErrorCode.MISSING_INPUT_NODE: 422,
    ErrorCode.MISSING_OUTPUT_NODE: 422,
    ErrorCode.INVALID_CONNECTION: 422,
    ErrorCode.CYCLIC_WORKFLOW: 422,
    ErrorCode.PORT_NOT_FOUND: 422,
    ErrorCode.INVALID_NODE_CONFIG: 422,
    ErrorCode.WORKFLOW_VALIDATION_ERROR: 422,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


def create_app(
    app_settings: Optional[Settings] = None,
    services: Optional[NodeServices] = None,
) -> FastAPI:
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        db_engine = create_engine(app_settings.DATABASE_URL, app_settings.DATABASE_ECHO)
        await init_models(db_engine)
        store = WorkflowStore(
            create_session_factory(db_engine),
            retry_attempts=app_settings.STORE_RETRY_ATTEMPTS,
            retry_delay=app_settings.STORE_RETRY_DELAY,
        )
        engine = WorkflowEngine(store, services=services)
        app.state.store = store
        app.state.engine = engine
        app.state.manager = WorkflowManager(store, engine)
        logger.info(f"{app_settings.PROJECT_NAME} started")
        yield
        # Shutdown
        await engine.shutdown()
        await HttpClient.close_client()
        await db_engine.dispose()

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.APP_VERSION,
        openapi_url=f"{app_settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    # Set all CORS enabled origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        return JSONResponse(status_code=_STATUS_BY_CODE.get(exc.code, 400), content=exc.to_dict())

    app.include_router(workflows.router, prefix=f"{app_settings.API_V1_STR}/workflows", tags=["workflows"])
    app.include_router(executions.router, prefix=f"{app_settings.API_V1_STR}/workflows", tags=["executions"])
    app.include_router(templates.router, prefix=f"{app_settings.API_V1_STR}/templates", tags=["templates"])

    @app.get("/")
    async def root():
        return {"message": f"{app_settings.PROJECT_NAME} is running"}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "version": app_settings.APP_VERSION,
            "node_types": sorted(f"{node_type}_{subtype}" for node_type, subtype in get_all_executors()),
        }

    return app


app = create_app()
