from datetime import datetime
from decimal import Decimal
import uuid

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Integer, Numeric, Text, UniqueConstraint, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class CatalogBase(DeclarativeBase):
    pass


# 상태값 (영속 계약이므로 문자열 그대로 유지)
PRODUCT_STATUSES = ("DRAFT", "ACTIVE", "ARCHIVED")
STAGING_STATUSES = ("PENDING", "AUTO_MATCHED", "NEEDS_REVIEW", "APPROVED", "REJECTED")
STAGING_OPEN_STATUSES = ("PENDING", "AUTO_MATCHED", "NEEDS_REVIEW")
OFFER_STATUSES = ("LIVE", "PENDING_REVIEW")


# ==================== 참조 데이터 (CRUD는 외부 관리) ====================

class Merchant(CatalogBase):
    __tablename__ = "merchants"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Brand(CatalogBase):
    __tablename__ = "brands"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Category(CatalogBase):
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class LoyaltyPartner(CatalogBase):
    __tablename__ = "loyalty_partners"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    configuration: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ==================== 마스터 카탈로그 ====================

class Product(CatalogBase):
    """
    정합화가 끝난 마스터 상품. 코어에서는 삭제하지 않습니다.
    """
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    brand_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("brands.id"), nullable=True)
    specifications: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="DRAFT")  # DRAFT, ACTIVE, ARCHIVED
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    variants: Mapped[list["Variant"]] = relationship(
        "Variant", back_populates="product", order_by="Variant.created_at"
    )
    category_links: Mapped[list["ProductCategory"]] = relationship(
        "ProductCategory", back_populates="product", order_by="ProductCategory.position", cascade="all, delete-orphan"
    )
    media: Mapped[list["ProductMedia"]] = relationship(
        "ProductMedia", back_populates="product", order_by="ProductMedia.position"
    )

    @property
    def category_ids(self) -> list[uuid.UUID]:
        return [link.category_id for link in self.category_links]

    @property
    def primary_category_id(self) -> uuid.UUID | None:
        """마진 규칙 조회에 사용하는 대표 카테고리 (position이 가장 작은 항목)"""
        return self.category_links[0].category_id if self.category_links else None


class ProductCategory(CatalogBase):
    __tablename__ = "product_categories"
    __table_args__ = (
        UniqueConstraint("product_id", "category_id", name="uq_product_categories_product_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    category_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped["Product"] = relationship("Product", back_populates="category_links")


class Variant(CatalogBase):
    """
    마스터 variant. 생성 이후 attributes는 변경하지 않으며 활성 상태만 바뀝니다.
    option_key는 canonical key를 저장해 상품 내 중복 조합을 DB 레벨에서도 막습니다.
    """
    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint("product_id", "option_key", name="uq_variants_product_option_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    internal_sku: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    gtin: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    mpn: Mapped[str | None] = mapped_column(Text, nullable=True)
    attributes: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    option_key: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    product: Mapped["Product"] = relationship("Product", back_populates="variants")


class ProductMedia(CatalogBase):
    __tablename__ = "product_media"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    staging_media_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    product: Mapped["Product"] = relationship("Product", back_populates="media")


# ==================== 스테이징 (머천트 피드 원본) ====================

class StagingProduct(CatalogBase):
    """
    머천트 피드에서 수집된 미정합 상품. raw_* 필드는 수정하지 않습니다.
    APPROVED/REJECTED 전환은 ReconciliationDecision으로 단 한 번만 일어납니다.
    """
    __tablename__ = "staging_products"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)
    external_product_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_vendor: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_product_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING", index=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_product_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    match_confidence_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    variants: Mapped[list["StagingVariant"]] = relationship(
        "StagingVariant", back_populates="staging_product", order_by="StagingVariant.position"
    )
    media: Mapped[list["StagingMedia"]] = relationship(
        "StagingMedia", back_populates="staging_product", order_by="StagingMedia.position"
    )


class StagingVariant(CatalogBase):
    __tablename__ = "staging_variants"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    staging_product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("staging_products.id"), nullable=False)
    external_variant_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_sku: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_barcode: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_price_minor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    raw_options: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    raw_inventory_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched_variant_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    staging_product: Mapped["StagingProduct"] = relationship("StagingProduct", back_populates="variants")


class StagingMedia(CatalogBase):
    __tablename__ = "staging_media"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    staging_product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("staging_products.id"), nullable=False)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    staging_product: Mapped["StagingProduct"] = relationship("StagingProduct", back_populates="media")


# ==================== 오퍼 / 가격 ====================

class MerchantOffer(CatalogBase):
    __tablename__ = "merchant_offers"
    __table_args__ = (
        UniqueConstraint("merchant_id", "variant_id", name="uq_merchant_offers_merchant_variant"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)
    variant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("variants.id"), nullable=False)
    external_product_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_variant_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant_sku: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency_code: Mapped[str] = mapped_column(Text, nullable=False, default="INR")
    cached_price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cached_settlement_price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    margin_rule_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    current_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    offer_status: Mapped[str] = mapped_column(Text, nullable=False, default="LIVE")  # LIVE, PENDING_REVIEW
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    variant: Mapped["Variant"] = relationship("Variant")


class MarginRule(CatalogBase):
    """
    머천트별 마진 규칙. brand/category가 비어 있으면 더 넓은 범위에 적용됩니다.
    """
    __tablename__ = "margin_rules"
    __table_args__ = (
        Index("ix_margin_rules_merchant_active", "merchant_id", "is_active"),
        CheckConstraint("margin_percentage >= 0 AND margin_percentage <= 100", name="ck_margin_rules_percentage_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=False)
    brand_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("brands.id"), nullable=True)
    category_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True)
    margin_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PointConversionRule(CatalogBase):
    """
    파트너별 포인트 환산율. points_to_currency_rate = 1포인트의 통화 가치 (major 단위).
    동일 (partner, currency, 시점)에 활성 규칙은 하나여야 하며, DB 제약이 아니라 resolver가 보장합니다.
    """
    __tablename__ = "point_conversion_rules"
    __table_args__ = (
        Index("ix_point_conversion_rules_partner_currency", "partner_id", "currency_code"),
        CheckConstraint("points_to_currency_rate > 0", name="ck_point_conversion_rules_rate_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    partner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("loyalty_partners.id"), nullable=False)
    currency_code: Mapped[str] = mapped_column(Text, nullable=False, default="INR")
    points_to_currency_rate: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OfferPriceLog(CatalogBase):
    """
    오퍼 가격 캐시 변경 이력
    """
    __tablename__ = "offer_price_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    offer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("merchant_offers.id"), nullable=False)
    old_price_minor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    new_price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    old_settlement_price_minor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    new_settlement_price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    margin_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    margin_rule_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)  # OFFER_CREATED, MARGIN_CHANGED, BASE_PRICE_CHANGED
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
