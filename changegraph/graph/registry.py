"""
Graph Registry.

Builds a GraphSnapshot from what storage holds right now. Nothing is cached:
every call reads current record types and package installs.
"""

from __future__ import annotations

from typing import Dict, List

from ..enums import EdgeType, NodeType
from ..storage.port import SchemaStorage
from .contracts import (
    EdgeDefinition,
    GraphNode,
    GraphSnapshot,
    PackageRef,
    RecordTypeNode,
    RecordTypeSchema,
)


def build_graph_snapshot(storage: SchemaStorage) -> GraphSnapshot:
    """One node per record type, one ``inherits`` edge per base type."""
    nodes: List[GraphNode] = []
    edges: List[EdgeDefinition] = []

    for rt in storage.get_record_types():
        schema = RecordTypeSchema.from_raw(rt.schema)
        nodes.append(
            GraphNode(
                type=NodeType.RECORD_TYPE,
                key=rt.key,
                project_id=rt.project_id,
                data=RecordTypeNode(
                    key=rt.key,
                    name=rt.name,
                    project_id=rt.project_id,
                    base_type=rt.base_type,
                    fields=schema.fields,
                ),
            )
        )
        if rt.base_type:
            edges.append(
                EdgeDefinition(from_key=rt.key, to_key=rt.base_type, type=EdgeType.INHERITS)
            )

    # install rows are append-only; report the newest version per package
    latest: Dict[str, str] = {}
    for install in storage.get_graph_package_installs():
        latest[install.package_key] = install.package_version

    return GraphSnapshot(
        nodes=nodes,
        edges=edges,
        packages=[PackageRef(key=k, version=v) for k, v in latest.items()],
    )
