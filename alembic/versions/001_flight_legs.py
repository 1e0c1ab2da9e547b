"""Create flight_legs table.

Revision ID: 001
Revises:
Create Date: 2026-10-12
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "flight_legs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ident", sa.String(80), nullable=False),
        sa.Column("anchor_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dep_code", sa.String(8), nullable=False, server_default=""),
        sa.Column("flight_number", sa.String(16), nullable=True),
        sa.Column("callsign", sa.String(16), nullable=True),
        sa.Column("operating_code", sa.String(16), nullable=True),
        sa.Column("operating_flight_number", sa.String(16), nullable=True),
        sa.Column("airline", sa.String(128), nullable=True),
        sa.Column("aircraft_reg", sa.String(16), nullable=True),
        sa.Column("aircraft_type", sa.String(16), nullable=True),
        sa.Column("arr_code", sa.String(8), nullable=True),
        sa.Column("actual_arr_code", sa.String(8), nullable=True),
        sa.Column("scheduled_departure_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_departure_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_departure_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_arrival_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_arrival_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_arrival_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delay_minutes", sa.Integer, nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="scheduled"),
        sa.Column("status_source", sa.String(16), nullable=False, server_default="provider"),
        sa.Column("source", sa.String(32), nullable=False, server_default=""),
        sa.Column("codeshares_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("is_codeshare", sa.Boolean, nullable=False, server_default=sa.text("0")),
        sa.Column("raw_hash", sa.String(64), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "ident", "anchor_utc", "dep_code", name="uq_flight_legs_natural_key"
        ),
    )
    op.create_index(
        "ix_flight_legs_arr_sta", "flight_legs", ["arr_code", "scheduled_arrival_utc"]
    )
    op.create_index(
        "ix_flight_legs_dep_std", "flight_legs", ["dep_code", "scheduled_departure_utc"]
    )


def downgrade() -> None:
    op.drop_index("ix_flight_legs_dep_std", table_name="flight_legs")
    op.drop_index("ix_flight_legs_arr_sta", table_name="flight_legs")
    op.drop_table("flight_legs")
