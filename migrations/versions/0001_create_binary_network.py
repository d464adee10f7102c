"""create binary network tables

Revision ID: 0001_create_binary_network
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_create_binary_network"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    node_status = sa.Enum(
        "pending_approval",
        "active",
        "rejected",
        name="node_status",
        native_enum=False,
    )

    op.create_table(
        "tree_nodes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("sponsor_id", sa.String(length=36), nullable=True),
        sa.Column("parent_id", sa.String(length=36), nullable=True),
        sa.Column("left_child_id", sa.String(length=36), nullable=True),
        sa.Column("right_child_id", sa.String(length=36), nullable=True),
        sa.Column(
            "position",
            sa.Enum("left", "right", "root", name="leg_position", native_enum=False),
            nullable=True,
        ),
        sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "package_amount",
            sa.Numeric(12, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "volume_contribution",
            sa.Numeric(14, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("status", node_status, nullable=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_tree_nodes"),
        sa.ForeignKeyConstraint(
            ["sponsor_id"],
            ["tree_nodes.id"],
            name="fk_tree_nodes_sponsor_id_tree_nodes",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["tree_nodes.id"],
            name="fk_tree_nodes_parent_id_tree_nodes",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["left_child_id"],
            ["tree_nodes.id"],
            name="fk_tree_nodes_left_child_id_tree_nodes",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["right_child_id"],
            ["tree_nodes.id"],
            name="fk_tree_nodes_right_child_id_tree_nodes",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("left_child_id", name="uq_tree_nodes_left_child_id"),
        sa.UniqueConstraint("right_child_id", name="uq_tree_nodes_right_child_id"),
        sa.UniqueConstraint(
            "parent_id", "position", name="uq_tree_nodes_parent_slot"
        ),
        sa.CheckConstraint("level >= 0", name="ck_tree_nodes_level_non_negative"),
        sa.CheckConstraint(
            "left_child_id IS NULL OR right_child_id IS NULL "
            "OR left_child_id <> right_child_id",
            name="ck_tree_nodes_distinct_children",
        ),
    )
    op.create_index("ix_tree_nodes_parent_id", "tree_nodes", ["parent_id"])
    op.create_index("ix_tree_nodes_sponsor_id", "tree_nodes", ["sponsor_id"])
    op.create_index("ix_tree_nodes_status", "tree_nodes", ["status"])

    op.create_table(
        "pending_recruits",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recruiter_id", sa.String(length=36), nullable=False),
        sa.Column("upline_id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("mobile", sa.String(length=40), nullable=True),
        sa.Column(
            "package_amount",
            sa.Numeric(12, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "proposed_direction",
            sa.Enum(
                "left", "right", "root", name="recruit_direction", native_enum=False
            ),
            nullable=True,
        ),
        sa.Column(
            "upline_decision",
            sa.Enum(
                "pending",
                "approved",
                "rejected",
                name="upline_decision",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(
                "awaiting_upline",
                "awaiting_admin",
                "committed",
                "rejected",
                name="recruit_status",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column(
            "created_by_admin",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("node_id", sa.String(length=36), nullable=True),
        sa.Column("placement_parent_id", sa.String(length=36), nullable=True),
        sa.Column(
            "placement_position",
            sa.Enum(
                "left",
                "right",
                "root",
                name="recruit_placement_position",
                native_enum=False,
            ),
            nullable=True,
        ),
        sa.Column("upline_decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_pending_recruits"),
        sa.ForeignKeyConstraint(
            ["recruiter_id"],
            ["tree_nodes.id"],
            name="fk_pending_recruits_recruiter_id_tree_nodes",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["upline_id"],
            ["tree_nodes.id"],
            name="fk_pending_recruits_upline_id_tree_nodes",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["node_id"],
            ["tree_nodes.id"],
            name="fk_pending_recruits_node_id_tree_nodes",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["placement_parent_id"],
            ["tree_nodes.id"],
            name="fk_pending_recruits_placement_parent_id_tree_nodes",
            ondelete="SET NULL",
        ),
        sa.UniqueConstraint("node_id", name="uq_pending_recruits_node_id"),
    )
    op.create_index("ix_pending_recruits_status", "pending_recruits", ["status"])
    op.create_index(
        "ix_pending_recruits_upline_id_status",
        "pending_recruits",
        ["upline_id", "status"],
    )
    op.create_index(
        "ix_pending_recruits_recruiter_id", "pending_recruits", ["recruiter_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_pending_recruits_recruiter_id", table_name="pending_recruits")
    op.drop_index(
        "ix_pending_recruits_upline_id_status", table_name="pending_recruits"
    )
    op.drop_index("ix_pending_recruits_status", table_name="pending_recruits")
    op.drop_table("pending_recruits")

    op.drop_index("ix_tree_nodes_status", table_name="tree_nodes")
    op.drop_index("ix_tree_nodes_sponsor_id", table_name="tree_nodes")
    op.drop_index("ix_tree_nodes_parent_id", table_name="tree_nodes")
    op.drop_table("tree_nodes")
