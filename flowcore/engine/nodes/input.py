import fnmatch
from typing import Any, Dict
from flowcore.engine.nodes.base import BaseNodeExecutor
from flowcore.engine.context import ExecutionContext
from flowcore.engine.nodes.registry import register_node

@register_node("input", "text")
class TextInputNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        # Pass-through of the caller input bound to this node
        value = context.get_seed(self.node)
        if value is None and self.config.required:
            raise ValueError(f"Input node '{self.node.label or self.node_id}' requires a value")
        return value

@register_node("input", "file")
class FileInputNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        value = context.get_seed(self.node)
        files = value if isinstance(value, list) else [value]
        if isinstance(value, list) and not self.config.multiple:
            raise ValueError("File input accepts a single file")

        for item in files:
            if not isinstance(item, dict):
                continue
            size = item.get("size")
            if size is not None and size > self.config.max_size:
                raise ValueError(f"File '{item.get('name')}' exceeds {self.config.max_size} bytes")
            name = item.get("name")
            if name and not any(fnmatch.fnmatch(name, pattern) for pattern in self._patterns()):
                raise ValueError(f"File type of '{name}' is not accepted")
        return value

    def _patterns(self):
        # '.pdf' style entries match by extension
        return [p if p == "*" or not p.startswith(".") else f"*{p}" for p in self.config.accepted_types]
