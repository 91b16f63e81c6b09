"""
Create dual-state entity tables and versions table.

Every entity table is keyed by (id, is_published): a draft row and, once
published, a published row share the same id. Child tables reference their
parent on the same side through composite foreign keys.

Revision ID: 5f0c2a9d7e14
Revises:
Create Date: 2026-10-18 09:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5f0c2a9d7e14"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _dual_state_columns() -> list[sa.Column]:
    """Key, hash, and timestamp columns shared by every entity table."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("clock_timestamp()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("clock_timestamp()"),
            nullable=False,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _primary_key(table_name: str) -> sa.PrimaryKeyConstraint:
    return sa.PrimaryKeyConstraint("id", "is_published", name=f"pk_{table_name}")


def _parent_fk(column: str, parent_table: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column, "is_published"],
        [f"{parent_table}.id", f"{parent_table}.is_published"],
        ondelete="CASCADE",
    )


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "page_folders",
        *_dual_state_columns(),
        sa.Column("page_folder_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("settings", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _primary_key("page_folders"),
    )
    op.create_index(
        "ix_page_folders_parent",
        "page_folders",
        ["page_folder_id", "is_published"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "pages",
        *_dual_state_columns(),
        sa.Column("page_folder_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("is_index", sa.Boolean(), nullable=False),
        sa.Column("is_dynamic", sa.Boolean(), nullable=False),
        sa.Column("error_page", sa.Integer(), nullable=True),
        sa.Column("settings", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _primary_key("pages"),
        _parent_fk("page_folder_id", "page_folders"),
    )
    op.create_index(
        "ix_pages_slug",
        "pages",
        ["slug", "is_published"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "page_layers",
        *_dual_state_columns(),
        sa.Column("page_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("layers", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("generated_css", sa.Text(), nullable=True),
        _primary_key("page_layers"),
        _parent_fk("page_id", "pages"),
    )
    op.create_index(
        "ix_page_layers_page",
        "page_layers",
        ["page_id", "is_published"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "components",
        *_dual_state_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("layers", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _primary_key("components"),
    )
    op.create_index(
        "ix_components_name",
        "components",
        ["name", "is_published"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "layer_styles",
        *_dual_state_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("classes", sa.Text(), nullable=False),
        sa.Column("design", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _primary_key("layer_styles"),
    )
    op.create_index(op.f("ix_layer_styles_name"), "layer_styles", ["name"], unique=False)

    op.create_table(
        "fonts",
        *_dual_state_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("family", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("variants", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("weights", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("file_hash", sa.String(length=64), nullable=True),
        _primary_key("fonts"),
    )
    op.create_index(op.f("ix_fonts_name"), "fonts", ["name"], unique=False)

    op.create_table(
        "locales",
        *_dual_state_columns(),
        sa.Column("code", sa.String(length=10), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        _primary_key("locales"),
    )
    op.create_index(op.f("ix_locales_code"), "locales", ["code"], unique=False)

    op.create_table(
        "asset_folders",
        *_dual_state_columns(),
        sa.Column("asset_folder_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("depth", sa.Integer(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        _primary_key("asset_folders"),
    )

    op.create_table(
        "assets",
        *_dual_state_columns(),
        sa.Column("asset_folder_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("public_url", sa.Text(), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        _primary_key("assets"),
        _parent_fk("asset_folder_id", "asset_folders"),
    )

    op.create_table(
        "collections",
        *_dual_state_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sorting", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        _primary_key("collections"),
    )

    op.create_table(
        "collection_fields",
        *_dual_state_columns(),
        sa.Column("collection_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("settings", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _primary_key("collection_fields"),
        _parent_fk("collection_id", "collections"),
    )

    op.create_table(
        "collection_items",
        *_dual_state_columns(),
        sa.Column("collection_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("manual_order", sa.Integer(), nullable=False),
        sa.Column("values", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _primary_key("collection_items"),
        _parent_fk("collection_id", "collections"),
    )

    op.create_table(
        "versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action_type", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("redo", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("undo", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("snapshot", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("previous_hash", sa.String(length=64), nullable=True),
        sa.Column("current_hash", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=100), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("clock_timestamp()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_versions_entity_created",
        "versions",
        ["entity_type", "entity_id", "created_at"],
    )
    op.create_index("ix_versions_session_id", "versions", ["session_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_versions_session_id", table_name="versions")
    op.drop_index("ix_versions_entity_created", table_name="versions")
    op.drop_table("versions")
    op.drop_table("collection_items")
    op.drop_table("collection_fields")
    op.drop_table("collections")
    op.drop_table("assets")
    op.drop_table("asset_folders")
    op.drop_index(op.f("ix_locales_code"), table_name="locales")
    op.drop_table("locales")
    op.drop_index(op.f("ix_fonts_name"), table_name="fonts")
    op.drop_table("fonts")
    op.drop_index(op.f("ix_layer_styles_name"), table_name="layer_styles")
    op.drop_table("layer_styles")
    op.drop_index("ix_components_name", table_name="components")
    op.drop_table("components")
    op.drop_index("ix_page_layers_page", table_name="page_layers")
    op.drop_table("page_layers")
    op.drop_index("ix_pages_slug", table_name="pages")
    op.drop_table("pages")
    op.drop_index("ix_page_folders_parent", table_name="page_folders")
    op.drop_table("page_folders")
