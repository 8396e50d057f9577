"""initial takeoff schema

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-19 09:12:41.302118

Users, projects, maps, measurements, cost estimates and cost items.
Creates each table only if missing so it can run against databases that
Base.metadata.create_all() already populated.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MAP_FILE_TYPES = ("CAD", "PDF", "IMAGE")
MAP_STATUSES = ("UPLOADING", "PROCESSING", "READY", "ERROR")
MEASUREMENT_TYPES = ("DISTANCE", "PERIMETER", "AREA", "VOLUME", "ANGLE")
COST_CATEGORIES = ("MATERIAL", "LABOR", "EQUIPMENT", "OVERHEAD", "OTHER")


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("password_hash", sa.String(), nullable=False),
            sa.Column("full_name", sa.String(), nullable=True),
            sa.Column("is_admin", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if not _table_exists("projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    if not _table_exists("maps"):
        op.create_table(
            "maps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("file_type", sa.Enum(*MAP_FILE_TYPES, name="mapfiletype"), nullable=False),
            sa.Column("original_file_name", sa.String(), nullable=False),
            sa.Column("storage_path", sa.String(), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False),
            sa.Column("mime_type", sa.String(), nullable=False),
            sa.Column("status", sa.Enum(*MAP_STATUSES, name="mapstatus"), nullable=False),
            sa.Column("processing_error", sa.Text(), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("pixel_distance", sa.Float(), nullable=True),
            sa.Column("real_distance", sa.Float(), nullable=True),
            sa.Column("scale_unit", sa.String(), nullable=True),
            sa.Column("scale_factor", sa.Float(), nullable=True),
            sa.Column("calibration_version", sa.Integer(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("uploaded_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_maps_project_id", "maps", ["project_id"])
        op.create_index("ix_maps_name", "maps", ["name"])

    if not _table_exists("measurements"):
        op.create_table(
            "measurements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("map_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("type", sa.Enum(*MEASUREMENT_TYPES, name="measurementtype"), nullable=False),
            sa.Column("points", sa.JSON(), nullable=False),
            sa.Column("height", sa.Float(), nullable=True),
            sa.Column("value", sa.Float(), nullable=False),
            sa.Column("unit", sa.String(), nullable=False),
            sa.Column("display_value", sa.String(), nullable=False),
            sa.Column("color", sa.String(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("calibration_version_at_creation", sa.Integer(), nullable=False),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["map_id"], ["maps.id"]),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_measurements_map_id", "measurements", ["map_id"])
        op.create_index("ix_measurements_project_id", "measurements", ["project_id"])

    if not _table_exists("cost_estimates"):
        op.create_table(
            "cost_estimates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("map_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("measurement_ids", sa.JSON(), nullable=True),
            sa.Column("subtotal", sa.Float(), nullable=True),
            sa.Column("tax_rate", sa.Float(), nullable=True),
            sa.Column("tax_amount", sa.Float(), nullable=True),
            sa.Column("total", sa.Float(), nullable=True),
            sa.Column("currency", sa.String(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["map_id"], ["maps.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_cost_estimates_project_id", "cost_estimates", ["project_id"])
        op.create_index("ix_cost_estimates_map_id", "cost_estimates", ["map_id"])

    if not _table_exists("cost_items"):
        op.create_table(
            "cost_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("estimate_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("category", sa.Enum(*COST_CATEGORIES, name="costcategory"), nullable=False),
            sa.Column("unit_cost", sa.Float(), nullable=True),
            sa.Column("unit", sa.String(), nullable=False),
            sa.Column("quantity", sa.Float(), nullable=True),
            sa.Column("total_cost", sa.Float(), nullable=True),
            sa.ForeignKeyConstraint(["estimate_id"], ["cost_estimates.id"]),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade() -> None:
    for table_name in ["cost_items", "cost_estimates", "measurements", "maps", "projects", "users"]:
        if _table_exists(table_name):
            op.drop_table(table_name)
