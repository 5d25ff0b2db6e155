"""ride_engine_schema

Revision ID: 5b7e2c9d41a0
Revises: 
Create Date: 2026-10-19 10:12:03.512880

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b7e2c9d41a0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ride_type = sa.Enum("OFFER", "REQUEST", name="ridetype")
ride_status = sa.Enum("OPEN", "BOOKED", "COMPLETED", "CANCELLED", name="ridestatus")
traffic_level = sa.Enum("LOW", "MODERATE", "HEAVY", name="trafficlevel")


def upgrade() -> None:
    """Create tables: user, ride, pendingbooking, chatmessage."""
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("university", sa.String(), nullable=True),
        sa.Column("bio", sa.String(), nullable=True),
        sa.Column("trust_score", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("rides_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancellations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_verified_student", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("location_name", sa.String(), nullable=True),
        sa.Column("location_address", sa.String(), nullable=True),
        sa.Column("location_lat", sa.Float(), nullable=True),
        sa.Column("location_lng", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "ride",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ride_type", ride_type, nullable=False),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("from_name", sa.String(), nullable=False),
        sa.Column("from_address", sa.String(), nullable=False),
        sa.Column("from_lat", sa.Float(), nullable=False),
        sa.Column("from_lng", sa.Float(), nullable=False),
        sa.Column("to_name", sa.String(), nullable=False),
        sa.Column("to_address", sa.String(), nullable=False),
        sa.Column("to_lat", sa.Float(), nullable=False),
        sa.Column("to_lng", sa.Float(), nullable=False),
        sa.Column("time_label", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("seats", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", ride_status, nullable=False, server_default="OPEN"),
        sa.Column("trip_distance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("trip_duration", sa.String(), nullable=False, server_default=""),
        sa.Column("traffic_level", traffic_level, nullable=False, server_default="LOW"),
        sa.Column("route_geometry", sa.JSON(), nullable=True),
        sa.Column("passenger_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=True),
        sa.Column("verification_code", sa.String(), nullable=True),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ride_host_id", "ride", ["host_id"])
    op.create_index("ix_ride_status", "ride", ["status"])
    op.create_index("ix_ride_passenger_id", "ride", ["passenger_id"])
    op.create_table(
        "pendingbooking",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ride_id", sa.Integer(), sa.ForeignKey("ride.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pendingbooking_ride_id", "pendingbooking", ["ride_id"])
    op.create_index("ix_pendingbooking_user_id", "pendingbooking", ["user_id"])
    op.create_table(
        "chatmessage",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("conversation_key", sa.String(), nullable=False),
        sa.Column("sender_id", sa.String(), nullable=False),
        sa.Column("text", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chatmessage_conversation_key", "chatmessage", ["conversation_key"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_chatmessage_conversation_key", table_name="chatmessage")
    op.drop_table("chatmessage")
    op.drop_index("ix_pendingbooking_user_id", table_name="pendingbooking")
    op.drop_index("ix_pendingbooking_ride_id", table_name="pendingbooking")
    op.drop_table("pendingbooking")
    op.drop_index("ix_ride_passenger_id", table_name="ride")
    op.drop_index("ix_ride_status", table_name="ride")
    op.drop_index("ix_ride_host_id", table_name="ride")
    op.drop_table("ride")
    op.drop_table("user")
    traffic_level.drop(op.get_bind(), checkfirst=True)
    ride_status.drop(op.get_bind(), checkfirst=True)
    ride_type.drop(op.get_bind(), checkfirst=True)
