"""Initial sweep queue, mismatch, tick-run, and cursor tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "work_items",
        sa.Column("object_id", sa.String(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("claimed_by", sa.String(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("object_id"),
    )
    op.create_index("ix_work_items_seq", "work_items", ["seq"], unique=True)
    op.create_index("ix_work_items_status", "work_items", ["status"])
    op.create_index("idx_work_items_queue", "work_items", ["status", "seq"])

    op.create_table(
        "work_item_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("object_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_work_item_events_object_id", "work_item_events", ["object_id"])
    op.create_index("ix_work_item_events_event_type", "work_item_events", ["event_type"])
    op.create_index(
        "idx_work_item_events_object_time",
        "work_item_events",
        ["object_id", "created_at"],
    )

    op.create_table(
        "checksum_mismatches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("object_id", sa.String(), nullable=False),
        sa.Column("datastream_id", sa.String(), nullable=False),
        sa.Column("checksum_type", sa.String(), nullable=True),
        sa.Column("expected_checksum", sa.String(), nullable=True),
        sa.Column("occurrences", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("first_detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_checksum_mismatches_object_id", "checksum_mismatches", ["object_id"])
    op.create_index(
        "uq_checksum_mismatches_open",
        "checksum_mismatches",
        ["object_id", "datastream_id"],
        unique=True,
        sqlite_where=sa.text("resolved_at IS NULL"),
    )

    op.create_table(
        "tick_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("computed_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("enqueued_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("succeeded_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("recovered_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_tick_runs_status", "tick_runs", ["status"])

    op.create_table(
        "sweep_cursors",
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("offset", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("sweep_cursors")
    op.drop_index("ix_tick_runs_status", table_name="tick_runs")
    op.drop_table("tick_runs")
    op.drop_index("uq_checksum_mismatches_open", table_name="checksum_mismatches")
    op.drop_index("ix_checksum_mismatches_object_id", table_name="checksum_mismatches")
    op.drop_table("checksum_mismatches")
    op.drop_index("idx_work_item_events_object_time", table_name="work_item_events")
    op.drop_index("ix_work_item_events_event_type", table_name="work_item_events")
    op.drop_index("ix_work_item_events_object_id", table_name="work_item_events")
    op.drop_table("work_item_events")
    op.drop_index("idx_work_items_queue", table_name="work_items")
    op.drop_index("ix_work_items_status", table_name="work_items")
    op.drop_index("ix_work_items_seq", table_name="work_items")
    op.drop_table("work_items")
