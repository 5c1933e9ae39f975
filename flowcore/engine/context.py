import re
from typing import Any, Dict, Optional

from flowcore.schemas.workflow import WorkflowNode

_MISSING = object()

class ExecutionContext:
    def __init__(
        self,
        initial_inputs: Optional[Dict[str, Any]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ):
        self.initial_inputs: Dict[str, Any] = initial_inputs or {}
        # Flat namespace: workflow variables by name, node outputs as '<node_id>.output'
        self.data: Dict[str, Any] = dict(variables or {})
        self.outputs: Dict[str, Any] = {}

    def get_seed(self, node: WorkflowNode) -> Any:
        """
        Caller-supplied value bound to an input node: looked up by node id,
        then by label.
        """
        if node.id in self.initial_inputs:
            return self.initial_inputs[node.id]
        if node.label and node.label in self.initial_inputs:
            return self.initial_inputs[node.label]
        return None

    def get_variable(self, path: str, default: Any = None) -> Any:
        return self.data.get(path, default)

    def set_variable(self, reference_key: str, var_name: str, value: Any):
        self.data[f"{reference_key}.{var_name}"] = value

    def set_node_output(self, node_id: str, output: Any):
        """
        Store a node's output and expose it (and its keys, for dict outputs)
        to template resolution.
        """
        self.outputs[node_id] = output
        self.set_variable(node_id, "output", output)
        if isinstance(output, dict):
            for key, value in output.items():
                self.set_variable(node_id, str(key), value)

    def has_output(self, node_id: str) -> bool:
        return node_id in self.outputs

    def get_output(self, node_id: str, default: Any = None) -> Any:
        return self.outputs.get(node_id, default)

    def resolve_template(self, template: str) -> str:
        """
        Resolve {{key}} in a string
        """
        if not template or not isinstance(template, str):
            return template

        def replace(match):
            path = match.group(1).strip()
            val = self.get_variable(path, _MISSING)
            return str(val) if val is not _MISSING and val is not None else match.group(0)

        return re.sub(r"\{\{([^}]+)\}\}", replace, template)

    def resolve_variables(self, value: Any) -> Any:
        """
        Recursively resolve variables in dicts, lists, or strings
        """
        if isinstance(value, str):
            return self.resolve_template(value)
        elif isinstance(value, list):
            return [self.resolve_variables(item) for item in value]
        elif isinstance(value, dict):
            return {k: self.resolve_variables(v) for k, v in value.items()}
        return value
