from typing import Dict, List, Set, Tuple

from flowcore.engine.graph import connection_problem
from flowcore.schemas.node import NodeType
from flowcore.schemas.workflow import WorkflowDefinition

class ValidationService:
    @staticmethod
    def validate_workflow(workflow: WorkflowDefinition) -> List[str]:
        """
        Structural checks for a definition. Returns human-readable errors;
        an empty list means the definition is valid.
        """
        errors = []
        nodes = workflow.nodes
        connections = workflow.connections

        # 1. Empty check
        if not nodes:
            errors.append("Workflow must contain at least one node")
            return errors

        # 2. Input / output node check
        if not any(n.type == NodeType.INPUT for n in nodes):
            errors.append("Workflow must have at least one input node")
        if not any(n.type == NodeType.OUTPUT for n in nodes):
            errors.append("Workflow must have at least one output node")

        # 3. Dangling connections, missing ports and doubly-fed input ports
        by_id = {n.id: n for n in nodes}
        connected: Set[str] = set()
        fed: Dict[Tuple[str, str], str] = {}
        for conn in connections:
            source = by_id.get(conn.source_node_id)
            target = by_id.get(conn.target_node_id)
            if source is None:
                errors.append(f"Connection {conn.id} references non-existent source node: {conn.source_node_id}")
            if target is None:
                errors.append(f"Connection {conn.id} references non-existent target node: {conn.target_node_id}")
            if source is not None and target is not None:
                problem = connection_problem(conn, source, target, fed)
                if problem:
                    errors.append(problem)
                else:
                    fed[(target.id, conn.target_port_id)] = conn.id
            connected.add(conn.source_node_id)
            connected.add(conn.target_node_id)

        # 4. Isolated nodes (input/output nodes may stand alone)
        for n in nodes:
            if n.type in (NodeType.INPUT, NodeType.OUTPUT):
                continue
            if n.id not in connected:
                errors.append(f"Node '{n.label or n.id}' is not connected to any other node")

        return errors
