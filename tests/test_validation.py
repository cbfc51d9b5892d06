"""Tests for the graph validators, the registry and graph introspection."""

from changegraph.enums import EdgeType, NodeType
from changegraph.events import DomainEventType
from changegraph.graph import (
    GraphPackage,
    GraphService,
    build_graph_snapshot,
    detect_cross_project_base_type,
    detect_cycles,
    detect_field_uniqueness,
    detect_orphans,
    snapshot_from_package,
    validate_bindings,
    validate_graph,
)
from changegraph.graph.contracts import (
    EdgeDefinition,
    FieldDefinition,
    GraphNode,
    GraphSnapshot,
    RecordTypeNode,
)
from changegraph.services import RecordTypeService


def rt_node(key, project="p1", base_type=None, fields=()):
    return GraphNode(
        type=NodeType.RECORD_TYPE,
        key=key,
        project_id=project,
        data=RecordTypeNode(
            key=key,
            name=key.title(),
            project_id=project,
            base_type=base_type,
            fields=[FieldDefinition(name=f, type="string") for f in fields],
        ),
    )


def inherits(sub, base):
    return EdgeDefinition(from_key=sub, to_key=base, type=EdgeType.INHERITS)


class TestDetectCycles:
    def test_two_node_cycle(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("A", base_type="B"), rt_node("B", base_type="A")],
            edges=[inherits("A", "B"), inherits("B", "A")],
        )
        errors = detect_cycles(snapshot)

        assert len(errors) >= 1
        assert errors[0].code == "CYCLE_DETECTED"
        assert '"A"' in errors[0].message
        assert '"B"' in errors[0].message

    def test_self_inheritance(self):
        snapshot = GraphSnapshot(nodes=[rt_node("A")], edges=[inherits("A", "A")])
        assert [e.code for e in detect_cycles(snapshot)] == ["CYCLE_DETECTED"]

    def test_acyclic_chain(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("a"), rt_node("b"), rt_node("c")],
            edges=[inherits("c", "b"), inherits("b", "a")],
        )
        assert detect_cycles(snapshot) == []

    def test_diamond_is_not_a_cycle(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node(k) for k in "abcd"],
            edges=[inherits("b", "a"), inherits("c", "a"), inherits("d", "b"), inherits("d", "c")],
        )
        assert detect_cycles(snapshot) == []

    def test_deep_chain_does_not_exhaust_stack(self):
        depth = 5000
        nodes = [rt_node(f"n{i}") for i in range(depth)]
        edges = [inherits(f"n{i}", f"n{i + 1}") for i in range(depth - 1)]
        edges.append(inherits(f"n{depth - 1}", "n0"))

        errors = detect_cycles(GraphSnapshot(nodes=nodes, edges=edges))

        assert len(errors) == 1

    def test_triggers_edges_ignored(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("a"), rt_node("b")],
            edges=[
                EdgeDefinition(from_key="a", to_key="b", type=EdgeType.TRIGGERS),
                EdgeDefinition(from_key="b", to_key="a", type=EdgeType.TRIGGERS),
            ],
        )
        assert detect_cycles(snapshot) == []


class TestDetectOrphans:
    def test_single_node_is_never_orphan(self):
        assert detect_orphans(GraphSnapshot(nodes=[rt_node("solo")])) == []

    def test_unconnected_nodes_flagged(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("task"), rt_node("incident", base_type="task"), rt_node("asset")],
            edges=[inherits("incident", "task")],
        )
        errors = detect_orphans(snapshot)
        assert [e.node_key for e in errors] == ["asset"]
        assert errors[0].code == "ORPHAN_NODE"


class TestCrossProject:
    def test_base_in_other_project(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("task", project="p1"), rt_node("incident", project="p2")],
            edges=[inherits("incident", "task")],
        )
        errors = detect_cross_project_base_type(snapshot)
        assert [e.code for e in errors] == ["CROSS_PROJECT_BASE_TYPE"]
        assert errors[0].node_key == "incident"

    def test_same_project_ok(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("task"), rt_node("incident")],
            edges=[inherits("incident", "task")],
        )
        assert detect_cross_project_base_type(snapshot) == []


class TestFieldUniqueness:
    def test_each_duplicate_reported(self):
        snapshot = GraphSnapshot(nodes=[rt_node("t", fields=["a", "a", "b", "b", "c"])])
        errors = detect_field_uniqueness(snapshot)
        assert [e.code for e in errors] == ["DUPLICATE_FIELD", "DUPLICATE_FIELD"]
        assert 'Duplicate field "a"' in errors[0].message


class TestBindings:
    def test_missing_binding_target(self):
        snapshot = GraphSnapshot(
            nodes=[rt_node("t")],
            edges=[EdgeDefinition(from_key="t", to_key="ghost", type=EdgeType.BINDS_TO)],
        )
        errors = validate_bindings(snapshot)
        assert [e.code for e in errors] == ["INVALID_BINDING_TARGET"]


class TestValidateGraph:
    def test_collects_from_every_validator(self):
        snapshot = GraphSnapshot(
            nodes=[
                rt_node("A", base_type="B", fields=["x", "x"]),
                rt_node("B", base_type="A", project="p2"),
                rt_node("lonely"),
            ],
            edges=[
                inherits("A", "B"),
                inherits("B", "A"),
                EdgeDefinition(from_key="A", to_key="nowhere", type=EdgeType.BINDS_TO),
            ],
        )
        codes = {e.code for e in validate_graph(snapshot)}
        assert codes == {
            "ORPHAN_NODE",
            "CYCLE_DETECTED",
            "CROSS_PROJECT_BASE_TYPE",
            "DUPLICATE_FIELD",
            "INVALID_BINDING_TARGET",
        }

    def test_empty_graph_is_valid(self):
        assert validate_graph(GraphSnapshot()) == []


class TestSnapshotFromPackage:
    def test_package_becomes_graph(self):
        pkg = GraphPackage.model_validate(
            {
                "key": "pkg",
                "name": "Pkg",
                "version": "1.0.0",
                "recordTypes": [
                    {"key": "base", "name": "Base", "fields": []},
                    {"key": "sub", "name": "Sub", "baseType": "base", "fields": []},
                ],
                "workflows": [{"key": "wf", "name": "Flow", "steps": []}],
                "bindings": [{"sourceKey": "wf", "targetKey": "sub", "bindingType": "record"}],
            }
        )
        snapshot = snapshot_from_package(pkg, project_id="p1")

        assert [n.key for n in snapshot.nodes] == ["base", "sub", "wf"]
        assert {n.project_id for n in snapshot.nodes} == {"p1"}
        assert [(e.from_key, e.to_key, e.type) for e in snapshot.edges] == [
            ("sub", "base", EdgeType.INHERITS),
            ("wf", "sub", EdgeType.BINDS_TO),
        ]
        assert validate_graph(snapshot) == []


class TestRegistryAndService:
    def test_snapshot_reflects_storage(self, storage, task_and_incident):
        snapshot = build_graph_snapshot(storage)

        assert sorted(n.key for n in snapshot.nodes) == ["incident", "task"]
        assert [(e.from_key, e.to_key) for e in snapshot.edges] == [("incident", "task")]
        incident = next(n for n in snapshot.nodes if n.key == "incident")
        assert incident.data.base_type == "task"
        assert [f.name for f in incident.data.fields] == ["title", "severity"]

    def test_summary(self, storage, task_and_incident):
        summary = GraphService(storage).get_graph_summary()
        assert summary.node_count == 2
        assert summary.edge_count == 1
        assert summary.package_count == 0
        assert summary.errors == []
        assert summary.to_wire() == {
            "nodeCount": 2,
            "edgeCount": 1,
            "packageCount": 0,
            "errors": [],
        }

    def test_merge_validation_emits_failure(self, storage, project, task_and_incident, bus):
        RecordTypeService(storage).create_record_type("asset", "Asset", project.id)
        failures = []
        bus.subscribe(DomainEventType.VALIDATION_FAILED, lambda ctx, e: failures.append(e))

        report = GraphService(storage, bus).validate_merge_graph("change-1")

        assert report.valid is False
        assert [e.node_key for e in report.errors] == ["asset"]
        bus.wait_idle()
        assert len(failures) == 1
        assert failures[0].entity_id == "change-1"

    def test_merge_validation_emits_success(self, storage, task_and_incident, bus):
        successes = []
        bus.subscribe(DomainEventType.VALIDATION_SUCCEEDED, lambda ctx, e: successes.append(e))

        assert GraphService(storage, bus).validate_merge_graph("change-1").valid
        bus.wait_idle()
        assert len(successes) == 1
