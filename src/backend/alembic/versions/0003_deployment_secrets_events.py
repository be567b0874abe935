"""Revision 0003: deployment_secrets + deployment_events tables

deployment_secrets holds one Fernet-sealed value per (deployment, key); the
plaintext never reaches the database. deployment_events is the append-only
audit trail. Both cascade away with their deployment.

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-17
"""

import sqlalchemy as sa

from alembic import op

revision = "0003"
down_revision = "0002"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "deployment_secrets",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("deployment_id", sa.UUID(), nullable=False),
        sa.Column("key", sa.String(253), nullable=False),
        sa.Column("encrypted_value", sa.LargeBinary(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["deployment_id"],
            ["deployments.id"],
            name="fk_deployment_secrets_deployment_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_deployment_secrets"),
        sa.UniqueConstraint(
            "deployment_id", "key", name="uq_deployment_secrets_deployment_key"
        ),
    )
    op.create_index(
        "ix_deployment_secrets_deployment_id", "deployment_secrets", ["deployment_id"]
    )

    op.create_table(
        "deployment_events",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("deployment_id", sa.UUID(), nullable=False),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["deployment_id"],
            ["deployments.id"],
            name="fk_deployment_events_deployment_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_deployment_events"),
    )
    op.create_index(
        "ix_deployment_events_deployment_created",
        "deployment_events",
        ["deployment_id", "created_at"],
    )


def downgrade():
    op.drop_index("ix_deployment_events_deployment_created", table_name="deployment_events")
    op.drop_table("deployment_events")
    op.drop_index("ix_deployment_secrets_deployment_id", table_name="deployment_secrets")
    op.drop_table("deployment_secrets")
