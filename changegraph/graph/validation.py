"""
Graph Validation Engine.

Pure validators: each takes a GraphSnapshot and returns a list of
GraphValidationError. No storage access, no side effects. ``validate_graph``
runs all of them and collects every violation; callers treat an empty list
as a pass.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Set

from ..enums import EdgeType, NodeType
from .contracts import (
    EdgeDefinition,
    GraphNode,
    GraphPackage,
    GraphSnapshot,
    GraphValidationError,
    PackageRef,
)

ORPHAN_NODE = "ORPHAN_NODE"
CYCLE_DETECTED = "CYCLE_DETECTED"
CROSS_PROJECT_BASE_TYPE = "CROSS_PROJECT_BASE_TYPE"
DUPLICATE_FIELD = "DUPLICATE_FIELD"
INVALID_BINDING_TARGET = "INVALID_BINDING_TARGET"

Validator = Callable[[GraphSnapshot], List[GraphValidationError]]


def detect_orphans(snapshot: GraphSnapshot) -> List[GraphValidationError]:
    """Record-type nodes with no edges at all.

    A base type referenced by another node is never an orphan, and neither is
    the only node of the graph.
    """
    errors: List[GraphValidationError] = []
    connected: Set[str] = set()
    base_types: Set[str] = set()
    for edge in snapshot.edges:
        connected.add(edge.from_key)
        connected.add(edge.to_key)
        if edge.type == EdgeType.INHERITS:
            base_types.add(edge.to_key)

    if len(snapshot.nodes) <= 1:
        return errors

    for node in snapshot.nodes:
        if node.type != NodeType.RECORD_TYPE:
            continue
        if node.key in connected or node.key in base_types:
            continue
        errors.append(
            GraphValidationError(
                code=ORPHAN_NODE,
                message=f'Node "{node.key}" has no connections',
                node_key=node.key,
            )
        )
    return errors


def detect_cycles(snapshot: GraphSnapshot) -> List[GraphValidationError]:
    """Depth-first search over ``inherits`` edges.

    A back-edge to a node on the current DFS path is reported once per
    search tree, naming both ends of the back-edge. Iterative, so deep
    inheritance chains cannot exhaust the interpreter stack.
    """
    errors: List[GraphValidationError] = []
    adjacency: Dict[str, List[str]] = {}
    for edge in snapshot.edges:
        if edge.type == EdgeType.INHERITS:
            adjacency.setdefault(edge.from_key, []).append(edge.to_key)

    visited: Set[str] = set()
    roots = [node.key for node in snapshot.nodes]
    roots.extend(k for k in adjacency if k not in roots)

    for root in roots:
        if root in visited:
            continue
        on_path: Set[str] = {root}
        visited.add(root)
        stack = [(root, iter(adjacency.get(root, ())))]
        while stack:
            node, neighbours = stack[-1]
            advanced = False
            for neighbour in neighbours:
                if neighbour in on_path:
                    errors.append(
                        GraphValidationError(
                            code=CYCLE_DETECTED,
                            message=(
                                f'Inheritance cycle detected involving "{node}" '
                                f'→ "{neighbour}"'
                            ),
                            node_key=node,
                        )
                    )
                    stack.clear()
                    break
                if neighbour not in visited:
                    visited.add(neighbour)
                    on_path.add(neighbour)
                    stack.append((neighbour, iter(adjacency.get(neighbour, ()))))
                    advanced = True
                    break
            else:
                on_path.discard(node)
                stack.pop()
                continue
            if not advanced:
                # cycle reported; abandon this search tree
                break
    return errors


def detect_cross_project_base_type(snapshot: GraphSnapshot) -> List[GraphValidationError]:
    """``inherits`` edges whose two ends live in different projects."""
    errors: List[GraphValidationError] = []
    nodes: Dict[str, GraphNode] = {node.key: node for node in snapshot.nodes}

    for edge in snapshot.edges:
        if edge.type != EdgeType.INHERITS:
            continue
        sub = nodes.get(edge.from_key)
        base = nodes.get(edge.to_key)
        if sub and base and sub.project_id != base.project_id:
            errors.append(
                GraphValidationError(
                    code=CROSS_PROJECT_BASE_TYPE,
                    message=(
                        f'"{edge.from_key}" (project {sub.project_id}) inherits from '
                        f'"{edge.to_key}" (project {base.project_id})'
                    ),
                    node_key=edge.from_key,
                )
            )
    return errors


def detect_field_uniqueness(snapshot: GraphSnapshot) -> List[GraphValidationError]:
    """Every repeated field name within one record type, reported individually."""
    errors: List[GraphValidationError] = []
    for node in snapshot.nodes:
        if node.type != NodeType.RECORD_TYPE:
            continue
        seen: Set[str] = set()
        for f in getattr(node.data, "fields", None) or []:
            if f.name in seen:
                errors.append(
                    GraphValidationError(
                        code=DUPLICATE_FIELD,
                        message=f'Duplicate field "{f.name}" on record type "{node.key}"',
                        node_key=node.key,
                    )
                )
            seen.add(f.name)
    return errors


def validate_bindings(snapshot: GraphSnapshot) -> List[GraphValidationError]:
    """``binds_to`` edges pointing at a node key that does not exist."""
    errors: List[GraphValidationError] = []
    keys = {node.key for node in snapshot.nodes}
    for edge in snapshot.edges:
        if edge.type == EdgeType.BINDS_TO and edge.to_key not in keys:
            errors.append(
                GraphValidationError(
                    code=INVALID_BINDING_TARGET,
                    message=f'Binding target "{edge.to_key}" does not exist',
                    node_key=edge.from_key,
                )
            )
    return errors


VALIDATORS: List[Validator] = [
    detect_orphans,
    detect_cycles,
    detect_cross_project_base_type,
    detect_field_uniqueness,
    validate_bindings,
]


def validate_graph(snapshot: GraphSnapshot) -> List[GraphValidationError]:
    """Run every validator and collect all violations."""
    errors: List[GraphValidationError] = []
    for validator in VALIDATORS:
        errors.extend(validator(snapshot))
    return errors


def snapshot_from_package(pkg: GraphPackage, project_id: str = "") -> GraphSnapshot:
    """View an incoming package as a graph of its own.

    Lets the tenant-graph validators (cycles, duplicate fields) vet a package
    before anything is written.
    """
    nodes: List[GraphNode] = []
    edges: List[EdgeDefinition] = []

    for rt in pkg.record_types:
        data = rt.model_copy(update={"project_id": project_id or rt.project_id})
        nodes.append(
            GraphNode(
                type=NodeType.RECORD_TYPE,
                key=rt.key,
                project_id=data.project_id,
                data=data,
            )
        )
        if rt.base_type:
            edges.append(
                EdgeDefinition(from_key=rt.key, to_key=rt.base_type, type=EdgeType.INHERITS)
            )

    for wf in pkg.workflows:
        data = wf.model_copy(update={"project_id": project_id or wf.project_id})
        nodes.append(
            GraphNode(type=NodeType.WORKFLOW, key=wf.key, project_id=data.project_id, data=data)
        )

    for binding in pkg.bindings or []:
        edges.append(
            EdgeDefinition(
                from_key=binding.source_key,
                to_key=binding.target_key,
                type=EdgeType.BINDS_TO,
            )
        )

    return GraphSnapshot(
        nodes=nodes,
        edges=edges,
        packages=[PackageRef(key=pkg.key, version=pkg.version)],
    )
