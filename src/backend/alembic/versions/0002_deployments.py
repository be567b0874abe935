"""Revision 0002: deployments table

One row per deployment: the desired image, replica count, resources,
environment and placement, plus the lifecycle status and the cluster object
names derived at creation. Rows cascade away with their project.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "deployments",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("owner_id", sa.UUID(), nullable=False),
        sa.Column("project_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("image", sa.Text(), nullable=False),
        sa.Column(
            "env_vars",
            postgresql.JSONB(),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "replicas",
            sa.Integer(),
            sa.CheckConstraint("replicas >= 1", name="ck_deployments_replicas"),
            server_default=sa.text("1"),
            nullable=False,
        ),
        sa.Column("resources", postgresql.JSONB(), nullable=False),
        sa.Column("labels", postgresql.JSONB(), nullable=True),
        sa.Column("node_selector", postgresql.JSONB(), nullable=True),
        sa.Column(
            "status",
            sa.Text(),
            sa.CheckConstraint(
                "status IN ('pending', 'running', 'succeeded', 'failed', 'terminated')",
                name="ck_deployments_status",
            ),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column(
            "cluster_namespace",
            sa.String(128),
            server_default=sa.text("'default'"),
            nullable=False,
        ),
        sa.Column("cluster_resource_name", sa.String(192), nullable=False),
        sa.Column("container_port", sa.Integer(), nullable=False),
        sa.Column("external_host", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["project_id"],
            ["projects.id"],
            name="fk_deployments_project_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_deployments"),
        sa.UniqueConstraint("project_id", "name", name="uq_deployments_project_name"),
    )
    op.create_index("ix_deployments_owner_id", "deployments", ["owner_id"])
    op.create_index("ix_deployments_project_id", "deployments", ["project_id"])
    op.create_index("ix_deployments_status", "deployments", ["status"])


def downgrade():
    op.drop_index("ix_deployments_status", table_name="deployments")
    op.drop_index("ix_deployments_project_id", table_name="deployments")
    op.drop_index("ix_deployments_owner_id", table_name="deployments")
    op.drop_table("deployments")
