from fastapi import APIRouter, Depends
from typing import List, Optional

from flowcore.api.deps import get_manager
from flowcore.engine.templates import NodeTemplate, get_node_templates_by_category, get_node_templates_by_type
from flowcore.services.workflow_manager import WorkflowManager

router = APIRouter()


@router.get("", response_model=List[NodeTemplate])
async def get_node_templates(
    type: Optional[str] = None,
    category: Optional[str] = None,
    manager: WorkflowManager = Depends(get_manager),
):
    if type:
        templates = get_node_templates_by_type(type)
    elif category:
        templates = get_node_templates_by_category(category)
    else:
        templates = manager.get_node_templates()
    return templates


@router.get("/categories", response_model=List[str])
async def get_node_categories(manager: WorkflowManager = Depends(get_manager)):
    return manager.get_node_categories()


@router.get("/{template_id}", response_model=NodeTemplate)
async def get_node_template(
    template_id: str,
    manager: WorkflowManager = Depends(get_manager),
):
    return manager.get_node_template(template_id)
