import re
from typing import Any, Dict
from flowcore.engine.nodes.base import BaseNodeExecutor
from flowcore.engine.context import ExecutionContext
from flowcore.engine.nodes.control import compare
from flowcore.engine.nodes.registry import register_node
from simpleeval import simple_eval

_MISSING = object()

@register_node("process", "text_transform")
class TextTransformNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        text = inputs.get("input")
        if not isinstance(text, str):
            raise TypeError(f"Text transform requires a string input, got {type(text).__name__}")

        operation = self.config.operation
        if operation == "uppercase":
            return text.upper()
        elif operation == "lowercase":
            return text.lower()
        elif operation == "trim":
            return text.strip()
        elif operation == "replace":
            return text.replace(self.config.custom_pattern, self.config.replacement) if self.config.custom_pattern else text
        elif operation == "regex":
            try:
                return re.sub(self.config.custom_pattern, self.config.replacement, text)
            except re.error as e:
                raise ValueError(f"Invalid pattern {self.config.custom_pattern!r}: {e}") from e
        return text

@register_node("process", "data_filter")
class DataFilterNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        data = inputs.get("input")
        if not isinstance(data, list):
            raise TypeError(f"Data filter requires an array input, got {type(data).__name__}")
        return [item for item in data if self._matches(item)]

    def _matches(self, item: Any) -> bool:
        results = [self._check(item, cond) for cond in self.config.conditions]
        if self.config.expression:
            names = dict(item) if isinstance(item, dict) else {}
            names["item"] = item
            results.append(bool(simple_eval(self.config.expression, names=names)))

        if not results:
            return True
        return all(results) if self.config.operator == "and" else any(results)

    @staticmethod
    def _check(item: Any, cond) -> bool:
        if cond.field is None:
            value = item
        elif isinstance(item, dict):
            value = item.get(cond.field, _MISSING)
            if value is _MISSING:
                return cond.operator == "is_empty"
        else:
            return False
        try:
            return compare(value, cond.operator, cond.value)
        except (TypeError, ValueError):
            return False
