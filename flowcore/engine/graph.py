from typing import List, Dict, Optional, Set, Tuple
from collections import deque

from flowcore.core.errors import ErrorCode, WorkflowError
from flowcore.schemas.workflow import WorkflowConnection, WorkflowDefinition, WorkflowNode

def connection_problem(
    conn: WorkflowConnection,
    source: WorkflowNode,
    target: WorkflowNode,
    fed: Dict[Tuple[str, str], str],
) -> Optional[str]:
    """
    Port-level check for one connection between two existing nodes.
    ``fed`` maps (target node, input port) to the connection already feeding it.
    """
    if source.get_port(conn.source_port_id, "output") is None:
        return f"Connection {conn.id} references non-existent output port: {source.id}.{conn.source_port_id}"
    if target.get_port(conn.target_port_id, "input") is None:
        return f"Connection {conn.id} references non-existent input port: {target.id}.{conn.target_port_id}"
    existing = fed.get((target.id, conn.target_port_id))
    if existing is not None:
        return f"Connection {conn.id} targets port {target.id}.{conn.target_port_id} already fed by {existing}"
    return None

class WorkflowGraph:
    def __init__(self, nodes: List[WorkflowNode], connections: List[WorkflowConnection]):
        self.nodes: Dict[str, WorkflowNode] = {n.id: n for n in nodes}
        self.order: List[str] = [n.id for n in nodes]  # definition order, used for tie-breaks
        self.connections = connections
        self.adj: Dict[str, List[str]] = {n.id: [] for n in nodes}
        self.dependencies: Dict[str, Set[str]] = {n.id: set() for n in nodes}
        self.incoming: Dict[str, List[WorkflowConnection]] = {n.id: [] for n in nodes}

        fed: Dict[Tuple[str, str], str] = {}
        for conn in connections:
            u, v = conn.source_node_id, conn.target_node_id
            if u not in self.nodes or v not in self.nodes:
                raise WorkflowError(
                    f"Connection {conn.id} references a missing node: {u} -> {v}",
                    ErrorCode.INVALID_CONNECTION,
                )
            problem = connection_problem(conn, self.nodes[u], self.nodes[v], fed)
            if problem:
                raise WorkflowError(problem, ErrorCode.INVALID_CONNECTION, details={"connection_id": conn.id})
            fed[(v, conn.target_port_id)] = conn.id
            self.incoming[v].append(conn)
            if u not in self.dependencies[v]:
                self.dependencies[v].add(u)
                self.adj[u].append(v)

    @classmethod
    def from_definition(cls, workflow: WorkflowDefinition) -> "WorkflowGraph":
        return cls(workflow.nodes, workflow.connections)

    def entry_nodes(self) -> List[str]:
        return [node_id for node_id in self.order if not self.dependencies[node_id]]

    def in_degrees(self) -> Dict[str, int]:
        return {node_id: len(deps) for node_id, deps in self.dependencies.items()}

    def get_topo_sort(self) -> List[str]:
        """
        Topological order of node ids (Kahn). Raises CYCLIC_WORKFLOW when
        some nodes can never become ready.
        """
        in_degree = self.in_degrees()
        queue = deque(self.entry_nodes())
        result = []

        while queue:
            curr = queue.popleft()
            result.append(curr)
            for neighbor in self.adj[curr]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        if len(result) < len(self.nodes):
            visited = set(result)
            stuck = [node_id for node_id in self.order if node_id not in visited]
            raise WorkflowError(
                f"Workflow contains a cycle involving nodes: {', '.join(stuck)}",
                ErrorCode.CYCLIC_WORKFLOW,
                details={"nodes": stuck},
            )
        return result

    def get_next_nodes(self, node_id: str) -> List[str]:
        return self.adj.get(node_id, [])

    def descendants(self, node_id: str) -> Set[str]:
        seen: Set[str] = set()
        queue = deque(self.adj.get(node_id, []))
        while queue:
            curr = queue.popleft()
            if curr not in seen:
                seen.add(curr)
                queue.extend(self.adj.get(curr, []))
        return seen

    def get_node(self, node_id: str) -> WorkflowNode:
        node = self.nodes.get(node_id)
        if node is None:
            raise WorkflowError(f"Node not found: {node_id}", ErrorCode.NODE_NOT_FOUND, node_id=node_id)
        return node
