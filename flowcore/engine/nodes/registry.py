from typing import Dict, Optional, Tuple, Type, Any
from flowcore.core.logging import get_logger

logger = get_logger("nodes")

_NODE_EXECUTOR_REGISTRY: Dict[Tuple[str, str], Type[Any]] = {}

def register_node(node_type: str, subtype: str):
    """Decorator to register node executors by (type, subtype)"""
    def decorator(cls):
        _NODE_EXECUTOR_REGISTRY[(node_type, subtype)] = cls
        cls.node_type = node_type
        cls.subtype = subtype
        logger.debug(f"Registered node executor: {node_type}/{subtype} -> {cls.__name__}")
        return cls
    return decorator

def get_executor_class(node_type: str, subtype: str) -> Optional[Type[Any]]:
    return _NODE_EXECUTOR_REGISTRY.get((node_type, subtype))

def get_all_executors() -> Dict[Tuple[str, str], Type[Any]]:
    return dict(_NODE_EXECUTOR_REGISTRY)
