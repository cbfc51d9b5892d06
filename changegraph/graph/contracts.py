"""
Graph Contracts.

Pure data types for the graph layer: nodes, edges, packages and the
derived snapshot. No storage access lives here.

Packages arrive from external authors (including the package generator) as
camelCase JSON, so every model accepts both the camelCase alias and the
Python field name.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..enums import EdgeType, NodeType


class ContractModel(BaseModel):
    """Base for graph contracts: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump with camelCase keys, JSON-safe values."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class FieldDefinition(ContractModel):
    """One named, typed field of a record type schema."""

    model_config = ConfigDict(extra="allow")

    name: str
    type: str
    required: Optional[bool] = None


class RecordTypeSchema(ContractModel):
    """The schema column of a record type."""

    model_config = ConfigDict(extra="allow")

    fields: List[FieldDefinition] = Field(default_factory=list)

    def clone(self) -> "RecordTypeSchema":
        """Value copy: a new list of new FieldDefinition instances."""
        return self.model_copy(update={"fields": [f.model_copy() for f in self.fields]})

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def find(self, name: str) -> Optional[int]:
        for idx, f in enumerate(self.fields):
            if f.name == name:
                return idx
        return None

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "RecordTypeSchema":
        return cls.model_validate(raw or {"fields": []})


class RecordTypeNode(ContractModel):
    key: str
    name: str
    project_id: str = ""
    base_type: Optional[str] = None
    fields: List[FieldDefinition] = Field(default_factory=list)


class WorkflowStep(ContractModel):
    step_type: str
    order_index: int


class WorkflowNode(ContractModel):
    key: str
    name: str
    project_id: str = ""
    trigger_type: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)


class FormNode(ContractModel):
    key: str
    record_type_key: str
    layout: Any = None


class GraphNode(ContractModel):
    type: NodeType
    key: str
    project_id: str
    data: Union[RecordTypeNode, WorkflowNode, FormNode]


class EdgeDefinition(ContractModel):
    """Directed edge between two node keys."""

    from_key: str = Field(alias="from")
    to_key: str = Field(alias="to")
    type: EdgeType


class Binding(ContractModel):
    source_key: str
    target_key: str
    binding_type: str


class GraphPackage(ContractModel):
    """Externally authored bundle of record types and workflows."""

    key: str
    name: str
    version: str
    description: Optional[str] = None
    record_types: List[RecordTypeNode] = Field(default_factory=list)
    workflows: List[WorkflowNode] = Field(default_factory=list)
    forms: Optional[List[FormNode]] = None
    bindings: Optional[List[Binding]] = None


class PackageRef(ContractModel):
    key: str
    version: str


class GraphSnapshot(ContractModel):
    """Derived, never persisted, view of one tenant's graph."""

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[EdgeDefinition] = Field(default_factory=list)
    packages: List[PackageRef] = Field(default_factory=list)


class GraphValidationError(ContractModel):
    code: str
    message: str
    node_key: Optional[str] = None


class ModifiedNode(ContractModel):
    key: str
    before: GraphNode
    after: GraphNode


class GraphDiff(ContractModel):
    added: List[GraphNode] = Field(default_factory=list)
    removed: List[GraphNode] = Field(default_factory=list)
    modified: List[ModifiedNode] = Field(default_factory=list)


class GraphSummary(ContractModel):
    node_count: int
    edge_count: int
    package_count: int
    errors: List[GraphValidationError] = Field(default_factory=list)


class GraphValidationReport(ContractModel):
    valid: bool
    errors: List[GraphValidationError] = Field(default_factory=list)
