"""Create change graph tables

Revision ID: 0001_changegraph
Revises:
Create Date: 2026-10-18

Projects, record types, changes with their targets and patch ops,
pre-mutation snapshots, the package install ledger, environments,
promotion intents and the telemetry sink. Every table carries tenant_id.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_changegraph"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _tenant():
    return sa.Column("tenant_id", sa.String(length=128), nullable=False)


def _created_at():
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "projects",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index("ix_projects_tenant_id", "projects", ["tenant_id"])

    op.create_table(
        "record_types",
        _id(),
        _tenant(),
        sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("base_type", sa.String(length=128), nullable=True),
        sa.Column("schema", sa.JSON, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("tenant_id", "project_id", "key", name="uq_record_types_key"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_record_types_name"),
    )
    op.create_index("ix_record_types_tenant_id", "record_types", ["tenant_id"])

    op.create_table(
        "changes",
        _id(),
        _tenant(),
        sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="Draft"),
        sa.Column("base_sha", sa.String(length=64), nullable=True),
        sa.Column("branch_name", sa.String(length=256), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_changes_tenant_id", "changes", ["tenant_id"])
    op.create_index("ix_changes_status", "changes", ["status"])

    op.create_table(
        "change_targets",
        _id(),
        _tenant(),
        sa.Column("change_id", sa.String(length=36), sa.ForeignKey("changes.id"), nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("selector", sa.JSON, nullable=False),
        _created_at(),
    )
    op.create_index("ix_change_targets_tenant_id", "change_targets", ["tenant_id"])
    op.create_index("ix_change_targets_change_id", "change_targets", ["change_id"])

    op.create_table(
        "patch_ops",
        _id(),
        _tenant(),
        sa.Column("change_id", sa.String(length=36), sa.ForeignKey("changes.id"), nullable=False),
        sa.Column(
            "target_id", sa.String(length=36), sa.ForeignKey("change_targets.id"), nullable=False
        ),
        sa.Column("op_type", sa.String(length=32), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("previous_snapshot", sa.JSON, nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_patch_ops_tenant_id", "patch_ops", ["tenant_id"])
    op.create_index("ix_patch_ops_change_id", "patch_ops", ["change_id"])

    op.create_table(
        "record_type_snapshots",
        _id(),
        _tenant(),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("change_id", sa.String(length=36), sa.ForeignKey("changes.id"), nullable=False),
        sa.Column("record_type_key", sa.String(length=128), nullable=False),
        sa.Column("schema", sa.JSON, nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "tenant_id", "change_id", "record_type_key", name="uq_snapshot_change_rt"
        ),
    )
    op.create_index("ix_record_type_snapshots_tenant_id", "record_type_snapshots", ["tenant_id"])

    op.create_table(
        "graph_package_installs",
        _id(),
        _tenant(),
        sa.Column("project_id", sa.String(length=36), nullable=True),
        sa.Column("package_key", sa.String(length=128), nullable=False),
        sa.Column("package_version", sa.String(length=64), nullable=False),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("installed_by", sa.String(length=128), nullable=False),
        sa.Column("manifest", sa.JSON, nullable=False),
        sa.Column(
            "installed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_graph_package_installs_tenant_id", "graph_package_installs", ["tenant_id"])
    op.create_index(
        "ix_graph_package_installs_package_key", "graph_package_installs", ["package_key"]
    )
    op.create_index(
        "ix_graph_package_installs_key_ts",
        "graph_package_installs",
        ["tenant_id", "package_key", "installed_at"],
    )

    op.create_table(
        "environments",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("ordinal", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_environments_slug"),
    )
    op.create_index("ix_environments_tenant_id", "environments", ["tenant_id"])

    op.create_table(
        "promotion_intents",
        _id(),
        _tenant(),
        sa.Column(
            "source_environment_id",
            sa.String(length=36),
            sa.ForeignKey("environments.id"),
            nullable=False,
        ),
        sa.Column(
            "target_environment_id",
            sa.String(length=36),
            sa.ForeignKey("environments.id"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("diff", sa.JSON, nullable=False),
        sa.Column("approved_by", sa.String(length=128), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_promotion_intents_tenant_id", "promotion_intents", ["tenant_id"])

    op.create_table(
        "telemetry_events",
        _id(),
        _tenant(),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=256), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("payload", sa.JSON, nullable=False),
    )
    op.create_index("ix_telemetry_events_tenant_id", "telemetry_events", ["tenant_id"])
    op.create_index("ix_telemetry_events_ts", "telemetry_events", ["ts"])
    op.create_index("ix_telemetry_events_event_type", "telemetry_events", ["event_type"])
    op.create_index(
        "ix_telemetry_events_type_ts", "telemetry_events", ["tenant_id", "event_type", "ts"]
    )


def downgrade() -> None:
    op.drop_table("telemetry_events")
    op.drop_table("promotion_intents")
    op.drop_table("environments")
    op.drop_table("graph_package_installs")
    op.drop_table("record_type_snapshots")
    op.drop_table("patch_ops")
    op.drop_table("change_targets")
    op.drop_table("changes")
    op.drop_table("record_types")
    op.drop_table("projects")
