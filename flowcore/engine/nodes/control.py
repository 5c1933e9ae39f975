from typing import Any, Dict
from flowcore.engine.nodes.base import BaseNodeExecutor
from flowcore.engine.context import ExecutionContext
from flowcore.engine.nodes.registry import register_node
from simpleeval import simple_eval

def compare(value: Any, operator: str, compare_value: Any) -> bool:
    """Shared comparison for condition nodes and data filters."""
    if operator == "equals":
        return value == compare_value or str(value) == str(compare_value)
    elif operator == "not_equals":
        return not (value == compare_value or str(value) == str(compare_value))
    elif operator == "greater":
        return float(value) > float(compare_value)
    elif operator == "less":
        return float(value) < float(compare_value)
    elif operator == "contains":
        if isinstance(value, (list, tuple, set, dict)):
            return compare_value in value
        return str(compare_value) in str(value)
    elif operator == "is_empty":
        return not value
    elif operator == "is_not_empty":
        return bool(value)
    raise ValueError(f"Unsupported operator: {operator}")

@register_node("control", "condition")
class ConditionNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        value = inputs.get("input")
        compare_value = context.resolve_variables(self.config.value)
        try:
            result = compare(value, self.config.operator, compare_value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Cannot apply '{self.config.operator}' to {value!r} and {compare_value!r}: {e}") from e
        return {"condition": result, "value": value}

@register_node("control", "loop")
class LoopNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        data = inputs.get("input")
        if not isinstance(data, list):
            raise TypeError("Loop node requires an array input")

        loop_type = self.config.loop_type
        if loop_type == "for":
            data = data[: self.config.count]
        elif loop_type == "while":
            if not self.config.condition:
                raise ValueError("While loop requires a condition")
            items = []
            for index, item in enumerate(data):
                names = {**context.data, "item": item, "index": index}
                if not simple_eval(self.config.condition, names=names):
                    break
                items.append(item)
            data = items

        return [{"item": item, "index": index} for index, item in enumerate(data)]
