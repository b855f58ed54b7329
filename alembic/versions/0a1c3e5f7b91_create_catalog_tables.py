"""create_catalog_tables

Revision ID: 0a1c3e5f7b91
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0a1c3e5f7b91"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True)


def upgrade() -> None:
    op.create_table(
        "merchants",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "brands",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "categories",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("parent_id", sa.UUID(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["parent_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "loyalty_partners",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("configuration", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("brand_id", sa.UUID(), nullable=True),
        sa.Column("specifications", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default="DRAFT"),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "product_categories",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("category_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "category_id", name="uq_product_categories_product_category"),
    )
    op.create_table(
        "variants",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("internal_sku", sa.Text(), nullable=False),
        sa.Column("gtin", sa.Text(), nullable=True),
        sa.Column("mpn", sa.Text(), nullable=True),
        sa.Column("attributes", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("option_key", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("internal_sku"),
        sa.UniqueConstraint("product_id", "option_key", name="uq_variants_product_option_key"),
    )
    op.create_index("ix_variants_gtin", "variants", ["gtin"])
    op.create_table(
        "product_media",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("staging_media_id", sa.UUID(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "staging_products",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("merchant_id", sa.UUID(), nullable=False),
        sa.Column("external_product_id", sa.Text(), nullable=True),
        sa.Column("raw_title", sa.Text(), nullable=True),
        sa.Column("raw_vendor", sa.Text(), nullable=True),
        sa.Column("raw_description", sa.Text(), nullable=True),
        sa.Column("raw_product_type", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("suggested_product_id", sa.UUID(), nullable=True),
        sa.Column("match_confidence_score", sa.Integer(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_staging_products_status", "staging_products", ["status"])
    op.create_table(
        "staging_variants",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("staging_product_id", sa.UUID(), nullable=False),
        sa.Column("external_variant_id", sa.Text(), nullable=True),
        sa.Column("raw_sku", sa.Text(), nullable=True),
        sa.Column("raw_barcode", sa.Text(), nullable=True),
        sa.Column("raw_price_minor", sa.BigInteger(), nullable=True),
        sa.Column("raw_options", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("raw_inventory_quantity", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("matched_variant_id", sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(["staging_product_id"], ["staging_products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "staging_media",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("staging_product_id", sa.UUID(), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["staging_product_id"], ["staging_products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "merchant_offers",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("merchant_id", sa.UUID(), nullable=False),
        sa.Column("variant_id", sa.UUID(), nullable=False),
        sa.Column("external_product_id", sa.Text(), nullable=True),
        sa.Column("external_variant_id", sa.Text(), nullable=True),
        sa.Column("merchant_sku", sa.Text(), nullable=True),
        sa.Column("currency_code", sa.Text(), nullable=False, server_default="INR"),
        sa.Column("cached_price_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("cached_settlement_price_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("margin_rule_id", sa.UUID(), nullable=True),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("offer_status", sa.Text(), nullable=False, server_default="LIVE"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["variant_id"], ["variants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "variant_id", name="uq_merchant_offers_merchant_variant"),
    )
    op.create_table(
        "margin_rules",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("merchant_id", sa.UUID(), nullable=False),
        sa.Column("brand_id", sa.UUID(), nullable=True),
        sa.Column("category_id", sa.UUID(), nullable=True),
        sa.Column("margin_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("margin_percentage >= 0 AND margin_percentage <= 100", name="ck_margin_rules_percentage_range"),
    )
    op.create_index("ix_margin_rules_merchant_active", "margin_rules", ["merchant_id", "is_active"])
    op.create_table(
        "point_conversion_rules",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("partner_id", sa.UUID(), nullable=False),
        sa.Column("currency_code", sa.Text(), nullable=False, server_default="INR"),
        sa.Column("points_to_currency_rate", sa.Numeric(12, 6), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["partner_id"], ["loyalty_partners.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("points_to_currency_rate > 0", name="ck_point_conversion_rules_rate_positive"),
    )
    op.create_index("ix_point_conversion_rules_partner_currency", "point_conversion_rules", ["partner_id", "currency_code"])
    op.create_table(
        "offer_price_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("offer_id", sa.UUID(), nullable=False),
        sa.Column("old_price_minor", sa.BigInteger(), nullable=True),
        sa.Column("new_price_minor", sa.BigInteger(), nullable=False),
        sa.Column("old_settlement_price_minor", sa.BigInteger(), nullable=True),
        sa.Column("new_settlement_price_minor", sa.BigInteger(), nullable=False),
        sa.Column("margin_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("margin_rule_id", sa.UUID(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["offer_id"], ["merchant_offers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("offer_price_logs")
    op.drop_index("ix_point_conversion_rules_partner_currency", table_name="point_conversion_rules")
    op.drop_table("point_conversion_rules")
    op.drop_index("ix_margin_rules_merchant_active", table_name="margin_rules")
    op.drop_table("margin_rules")
    op.drop_table("merchant_offers")
    op.drop_table("staging_media")
    op.drop_table("staging_variants")
    op.drop_index("ix_staging_products_status", table_name="staging_products")
    op.drop_table("staging_products")
    op.drop_table("product_media")
    op.drop_index("ix_variants_gtin", table_name="variants")
    op.drop_table("variants")
    op.drop_table("product_categories")
    op.drop_table("products")
    op.drop_table("loyalty_partners")
    op.drop_table("categories")
    op.drop_table("brands")
    op.drop_table("merchants")
