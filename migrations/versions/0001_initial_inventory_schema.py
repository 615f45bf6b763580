"""initial inventory schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create users, settings, categories, custom fields, locations, items and audit logs."""
    # Check if tables already exist (idempotent)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("name", sa.String(255), nullable=True),
            sa.Column("password_hash", sa.String(255), nullable=True),
            sa.Column("role", sa.String(16), nullable=False, server_default="EDITOR"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "settings" not in existing_tables:
        op.create_table(
            "settings",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("azure_client_id", sa.String(255), nullable=True),
            sa.Column("azure_tenant_id", sa.String(255), nullable=True),
            sa.Column("azure_client_secret", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "categories" not in existing_tables:
        op.create_table(
            "categories",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "custom_fields" not in existing_tables:
        op.create_table(
            "custom_fields",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("category_id", sa.String(32), sa.ForeignKey("categories.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("type", sa.String(16), nullable=False, server_default="text"),
            sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("options", _json(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_custom_fields_category", "custom_fields", ["category_id"])

    if "locations" not in existing_tables:
        op.create_table(
            "locations",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("parent_id", sa.String(32), sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=True),
            sa.Column("path", sa.String(2048), nullable=False, server_default="/"),
            sa.Column("full_path", sa.String(2048), nullable=False, unique=True),
            sa.Column("level", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_locations_parent", "locations", ["parent_id"])
        op.create_index("idx_locations_path", "locations", ["path"])

    if "items" not in existing_tables:
        op.create_table(
            "items",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("qr_code", sa.String(64), nullable=False, unique=True),
            sa.Column("category_id", sa.String(32), sa.ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("location_id", sa.String(32), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("custom_fields", _json(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_items_name", "items", ["name"])
        op.create_index("idx_items_category", "items", ["category_id"])
        op.create_index("idx_items_location", "items", ["location_id"])
        op.create_index("idx_items_updated_at", "items", ["updated_at"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("action", sa.String(32), nullable=False),
            sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("user_email", sa.String(320), nullable=True),
            sa.Column("item_id", sa.String(32), sa.ForeignKey("items.id", ondelete="SET NULL"), nullable=True),
            sa.Column("details_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_audit_logs_created_at", "audit_logs", ["created_at"])
        op.create_index("idx_audit_logs_item", "audit_logs", ["item_id"])
        op.create_index("idx_audit_logs_user", "audit_logs", ["user_id"])


def downgrade() -> None:
    """Drop all inventory tables."""
    op.drop_table("audit_logs")
    op.drop_table("items")
    op.drop_table("locations")
    op.drop_table("custom_fields")
    op.drop_table("categories")
    op.drop_table("settings")
    op.drop_table("users")
