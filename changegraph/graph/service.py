"""
Graph introspection.

Read-only views over the tenant graph for admin tooling, plus the merge
boundary check that reports its outcome as a domain event.
"""

from typing import Optional

import structlog

from ..events import DomainEvent, DomainEventType, EventBus
from ..storage.port import SchemaStorage
from .contracts import GraphSnapshot, GraphSummary, GraphValidationReport
from .registry import build_graph_snapshot
from .validation import validate_graph

logger = structlog.get_logger()


class GraphService:
    """Snapshot, summary and validation of the current tenant graph."""

    def __init__(self, storage: SchemaStorage, bus: Optional[EventBus] = None):
        self.storage = storage
        self.bus = bus

    def get_graph_snapshot(self) -> GraphSnapshot:
        return build_graph_snapshot(self.storage)

    def get_graph_summary(self) -> GraphSummary:
        snapshot = build_graph_snapshot(self.storage)
        errors = validate_graph(snapshot)
        return GraphSummary(
            node_count=len(snapshot.nodes),
            edge_count=len(snapshot.edges),
            package_count=len(snapshot.packages),
            errors=errors,
        )

    def validate_current_graph(self) -> GraphValidationReport:
        errors = validate_graph(build_graph_snapshot(self.storage))
        return GraphValidationReport(valid=not errors, errors=errors)

    def validate_merge_graph(self, change_id: str) -> GraphValidationReport:
        """Validate the graph at a change's merge boundary and announce the result."""
        report = self.validate_current_graph()
        if self.bus is not None:
            if report.valid:
                event = DomainEvent(
                    DomainEventType.VALIDATION_SUCCEEDED, "succeeded", change_id
                )
            else:
                event = DomainEvent(
                    DomainEventType.VALIDATION_FAILED,
                    "failed",
                    change_id,
                    error={"message": "; ".join(e.message for e in report.errors)},
                )
            self.bus.emit(self.storage, event)

        if not report.valid:
            logger.info(
                "merge_graph_validation_failed",
                tenant_id=self.storage.ctx.tenant_id,
                change_id=change_id,
                error_count=len(report.errors),
            )
        return report
