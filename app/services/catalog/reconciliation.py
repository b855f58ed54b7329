"""
정합화 결정 처리기 (ReconciliationDecisionProcessor)

스테이징 상품에 대한 관리자 결정(REJECT / CREATE_NEW / LINK_EXISTING)을 마스터 카탈로그에 반영하는 단일 진입점입니다.

처리 순서:
1. 스테이징 상품 잠금 + 상태 확인 (APPROVED/REJECTED는 종결 상태)
2. 검증 (쓰기 전에 모두 끝냄) - 대상 상품의 variant는 잠근 뒤 현재 값으로 중복 검사
3. savepoint 안에서 상품/variant/오퍼/미디어 생성, 스테이징 상태 전환

실패 시 savepoint가 롤백되므로 부분 반영은 없습니다.
"""
from __future__ import annotations

import logging
import re
import unicodedata
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import (
    STAGING_OPEN_STATUSES,
    Brand,
    Category,
    MerchantOffer,
    Product,
    ProductCategory,
    ProductMedia,
    StagingProduct,
    StagingVariant,
    Variant,
)
from app.schemas.review import CreateNewDecision, LinkExistingDecision, RejectDecision
from app.services.catalog.option_set import OptionAttributes, cross_product, derive_option_definition
from app.services.catalog.variant_matcher import (
    MasterVariantView,
    StagingVariantView,
    VariantPlan,
    build_variant_plan,
)
from app.services.errors import (
    DuplicateVariantConflict,
    InvalidStateTransition,
    NotFoundError,
    OfferConflict,
    ValidationError,
)
from app.services.pricing.offer_pricing import REASON_BASE_PRICE_CHANGED, REASON_MARGIN_CHANGED, OfferPricingService
from app.services.pricing.validity import utcnow
from app.settings import settings

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
FALLBACK_SLUG = "product"


@dataclass
class DecisionResult:
    staging_product_id: uuid.UUID
    status: str
    master_product_id: Optional[uuid.UUID] = None
    created_variant_ids: list[uuid.UUID] = field(default_factory=list)
    created_offer_ids: list[uuid.UUID] = field(default_factory=list)
    updated_offer_ids: list[uuid.UUID] = field(default_factory=list)


def slugify(text: str | None) -> str:
    """제목 → URL-safe slug (영숫자 외 문자는 '-'로 치환)"""
    if not text:
        return ""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")


def is_valid_slug(slug: str | None) -> bool:
    return bool(slug) and SLUG_PATTERN.match(slug) is not None


def generate_internal_sku() -> str:
    return f"{settings.internal_sku_prefix}-{uuid.uuid4().hex[:12].upper()}"


def _integrity_target(exc: IntegrityError) -> str:
    """제약 이름(PostgreSQL) 또는 테이블.컬럼(SQLite) 기준으로 위반 대상 판별"""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if "uq_merchant_offers_merchant_variant" in message or "merchant_offers." in message:
        return "offer"
    if "uq_variants_product_option_key" in message or "variants.option_key" in message:
        return "variant_option"
    if "products_slug" in message or "products.slug" in message:
        return "slug"
    return "unknown"


class ReconciliationDecisionProcessor:
    def __init__(self, session: Session):
        self.session = session
        self.pricing = OfferPricingService(session)

    # ==================== 진입점 ====================

    def submit(self, staging_product_id: uuid.UUID, decision: Any) -> DecisionResult:
        staging = self._lock_staging(staging_product_id)
        if staging.status not in STAGING_OPEN_STATUSES:
            raise InvalidStateTransition(
                f"스테이징 상품 {staging_product_id}은(는) 이미 {staging.status} 상태입니다.",
                current_status=staging.status,
                requested_action=decision.action,
            )

        if isinstance(decision, RejectDecision):
            return self._reject(staging, decision)
        if isinstance(decision, CreateNewDecision):
            return self._create_new(staging, decision)
        if isinstance(decision, LinkExistingDecision):
            return self._link_existing(staging, decision)
        raise ValidationError(f"알 수 없는 결정 유형입니다: {getattr(decision, 'action', None)}", field="action")

    def _lock_staging(self, staging_product_id: uuid.UUID) -> StagingProduct:
        stmt = select(StagingProduct).where(StagingProduct.id == staging_product_id).with_for_update()
        staging = self.session.scalars(stmt).first()
        if staging is None:
            raise NotFoundError(
                f"스테이징 상품을 찾을 수 없습니다: {staging_product_id}",
                entity="StagingProduct",
                entity_id=staging_product_id,
            )
        return staging

    def _flush(self, offer: Optional[MerchantOffer] = None) -> None:
        try:
            self.session.flush()
        except IntegrityError as e:
            target = _integrity_target(e)
            if target == "offer":
                raise OfferConflict(
                    "동일 머천트/variant 오퍼가 동시에 생성되었습니다. 다시 시도하세요.",
                    merchant_id=offer.merchant_id if offer is not None else None,
                    variant_id=offer.variant_id if offer is not None else None,
                ) from e
            if target == "variant_option":
                # 어느 조합이 겹쳤는지는 savepoint 롤백 후 _explain_variant_race에서 채움
                raise DuplicateVariantConflict(
                    "동일한 옵션 조합의 variant가 동시에 추가되었습니다.", option_key=""
                ) from e
            if target == "slug":
                raise ValidationError("이미 사용 중인 slug입니다.", field="slug") from e
            raise

    # ==================== REJECT ====================

    def _reject(self, staging: StagingProduct, decision: RejectDecision) -> DecisionResult:
        reason = (decision.rejection_reason or "").strip()
        if not reason:
            raise ValidationError("반려 사유는 필수입니다.", field="rejection_reason")

        with self.session.begin_nested():
            staging.status = "REJECTED"
            staging.rejection_reason = reason
            staging.admin_notes = decision.admin_notes
            self._flush()

        logger.info(f"[Reconciliation] 반려 staging={staging.id} reason={reason}")
        return DecisionResult(staging_product_id=staging.id, status=staging.status)

    # ==================== CREATE_NEW ====================

    def _resolve_slug(self, decision: CreateNewDecision, title: str) -> str:
        explicit = (decision.slug or "").strip()
        if explicit:
            if not is_valid_slug(explicit):
                raise ValidationError(
                    "slug는 영소문자/숫자와 하이픈만 사용할 수 있습니다.", field="slug", actual_value=explicit
                )
            if self._slug_taken(explicit):
                raise ValidationError("이미 사용 중인 slug입니다.", field="slug", actual_value=explicit)
            return explicit

        base = slugify(title) or FALLBACK_SLUG
        candidate = base
        suffix = 2
        while self._slug_taken(candidate):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _slug_taken(self, slug: str) -> bool:
        return self.session.scalar(select(func.count()).select_from(Product).where(Product.slug == slug)) > 0

    def _validate_references(self, brand_id: Optional[uuid.UUID], category_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
        if brand_id is not None and self.session.get(Brand, brand_id) is None:
            raise ValidationError(f"브랜드를 찾을 수 없습니다: {brand_id}", field="brand_id", actual_value=brand_id)

        unique_ids = list(dict.fromkeys(category_ids))
        if unique_ids:
            found = set(self.session.scalars(select(Category.id).where(Category.id.in_(unique_ids))).all())
            missing = [c for c in unique_ids if c not in found]
            if missing:
                raise ValidationError(
                    f"카테고리를 찾을 수 없습니다: {', '.join(str(m) for m in missing)}",
                    field="category_ids",
                    actual_value=missing,
                )
        return unique_ids

    def _validate_media(self, staging: StagingProduct, selected_media_ids: Sequence[uuid.UUID], extra_urls: Sequence[str]):
        by_id = {m.id: m for m in staging.media}
        selected = []
        for media_id in selected_media_ids:
            if media_id not in by_id:
                raise ValidationError(
                    f"스테이징 상품의 미디어가 아닙니다: {media_id}", field="selected_media_ids", actual_value=media_id
                )
            if by_id[media_id] in selected:
                raise ValidationError(
                    f"미디어가 중복 선택되었습니다: {media_id}", field="selected_media_ids", actual_value=media_id
                )
            selected.append(by_id[media_id])
        urls = [u.strip() for u in extra_urls if u and u.strip()]
        return selected, urls

    def _create_new(self, staging: StagingProduct, decision: CreateNewDecision) -> DecisionResult:
        title = (decision.title or "").strip()
        if not title:
            raise ValidationError("상품명은 필수입니다.", field="title")
        slug = self._resolve_slug(decision, title)
        category_ids = self._validate_references(decision.brand_id, decision.category_ids)
        selected_media, extra_urls = self._validate_media(staging, decision.selected_media_ids, decision.extra_media_urls)

        staging_views = [StagingVariantView.from_model(sv) for sv in staging.variants]
        definition = decision.options_definition
        if definition is None:
            definition = derive_option_definition(sv.attributes for sv in staging_views)
        combos = [OptionAttributes(c) for c in cross_product(definition)] or [OptionAttributes({})]

        # 조합별로 처음 일치한 스테이징 variant가 오퍼/식별자 출처
        source_by_key: dict[str, StagingVariant] = {}
        for sv, view in zip(staging.variants, staging_views):
            source_by_key.setdefault(view.option_key, sv)

        result = DecisionResult(staging_product_id=staging.id, status="APPROVED")
        with self.session.begin_nested():
            product = Product(
                id=uuid.uuid4(),
                title=title,
                slug=slug,
                description=decision.description,
                brand_id=decision.brand_id,
                specifications=dict(decision.specifications),
                status=decision.status,
            )
            self.session.add(product)
            for position, category_id in enumerate(category_ids):
                product.category_links.append(ProductCategory(category_id=category_id, position=position))
            self._flush()

            created: list[tuple[Variant, Optional[StagingVariant]]] = []
            for attributes in combos:
                source = source_by_key.get(attributes.canonical_key)
                variant = Variant(
                    id=uuid.uuid4(),
                    product_id=product.id,
                    internal_sku=generate_internal_sku(),
                    gtin=source.raw_barcode if source else None,
                    mpn=source.raw_sku if source else None,
                    attributes=attributes.to_dict(),
                    option_key=attributes.canonical_key,
                )
                self.session.add(variant)
                created.append((variant, source))
                result.created_variant_ids.append(variant.id)
            self._flush()

            for variant, source in created:
                if source is None:
                    continue
                offer = self._create_offer(staging, source, variant, product)
                result.created_offer_ids.append(offer.id)

            self._add_media(product, selected_media, extra_urls, start_position=0)

            staging.status = "APPROVED"
            staging.admin_notes = decision.admin_notes
            self._flush()

        result.master_product_id = product.id
        logger.info(
            f"[Reconciliation] 신규 상품 생성 staging={staging.id} product={product.id} slug={slug} "
            f"variants={len(result.created_variant_ids)} offers={len(result.created_offer_ids)}"
        )
        return result

    # ==================== LINK_EXISTING ====================

    def _link_existing(self, staging: StagingProduct, decision: LinkExistingDecision) -> DecisionResult:
        if decision.master_product_id is None:
            raise ValidationError("연결할 마스터 상품은 필수입니다.", field="master_product_id")
        product = self.session.get(Product, decision.master_product_id)
        if product is None:
            raise NotFoundError(
                f"마스터 상품을 찾을 수 없습니다: {decision.master_product_id}",
                entity="Product",
                entity_id=decision.master_product_id,
            )

        # 커밋 시점의 variant 집합으로 중복 검사 (UI 로딩 시점 스냅샷 사용 금지)
        locked_variants = self._load_master_variants(product.id)
        existing_views = [MasterVariantView.from_model(v) for v in locked_variants]
        variants_by_id = {v.id: v for v in locked_variants}

        staging_by_id = {sv.id: sv for sv in staging.variants}
        plan = build_variant_plan(
            existing_views,
            [StagingVariantView.from_model(sv) for sv in staging.variants],
            decision.variant_mapping,
            decision.options_definition,
        )
        selected_media, extra_urls = self._validate_media(staging, decision.selected_media_ids, decision.extra_media_urls)

        result = DecisionResult(staging_product_id=staging.id, status="APPROVED", master_product_id=product.id)
        try:
            with self.session.begin_nested():
                for staging_variant_id, master_variant_id in plan.links:
                    source = staging_by_id[staging_variant_id]
                    variant = variants_by_id[master_variant_id]
                    offer, created = self._upsert_offer(staging, source, variant, product)
                    (result.created_offer_ids if created else result.updated_offer_ids).append(offer.id)
                    source.matched_variant_id = variant.id

                new_variants: list[tuple[Variant, StagingVariant]] = []
                for staging_variant_id, attributes in plan.add_new:
                    source = staging_by_id[staging_variant_id]
                    variant = Variant(
                        id=uuid.uuid4(),
                        product_id=product.id,
                        internal_sku=generate_internal_sku(),
                        gtin=source.raw_barcode,
                        mpn=source.raw_sku,
                        attributes=attributes.to_dict(),
                        option_key=attributes.canonical_key,
                    )
                    self.session.add(variant)
                    new_variants.append((variant, source))
                    result.created_variant_ids.append(variant.id)

                for attributes in plan.additional:
                    variant = Variant(
                        id=uuid.uuid4(),
                        product_id=product.id,
                        internal_sku=generate_internal_sku(),
                        attributes=attributes.to_dict(),
                        option_key=attributes.canonical_key,
                    )
                    self.session.add(variant)
                    result.created_variant_ids.append(variant.id)
                self._flush()

                for variant, source in new_variants:
                    offer = self._create_offer(staging, source, variant, product)
                    result.created_offer_ids.append(offer.id)

                start = self.session.scalar(
                    select(func.coalesce(func.max(ProductMedia.position) + 1, 0)).where(ProductMedia.product_id == product.id)
                )
                self._add_media(product, selected_media, extra_urls, start_position=start or 0)

                staging.status = "APPROVED"
                staging.admin_notes = decision.admin_notes
                self._flush()
        except DuplicateVariantConflict as e:
            raise self._explain_variant_race(product, plan) from e

        logger.info(
            f"[Reconciliation] 기존 상품 연결 staging={staging.id} product={product.id} "
            f"links={len(plan.links)} add_new={len(plan.add_new)} additional={len(plan.additional)} "
            f"skipped={len(plan.skipped)}"
        )
        return result

    def _load_master_variants(self, product_id: uuid.UUID) -> list[Variant]:
        return list(self.session.scalars(
            select(Variant).where(Variant.product_id == product_id).with_for_update()
        ).all())

    def _explain_variant_race(self, product: Product, plan: VariantPlan) -> DuplicateVariantConflict:
        """
        검증 이후 다른 트랜잭션이 같은 조합을 먼저 커밋해 유니크 제약에 걸린 경우.
        savepoint 롤백 뒤 현재 variant를 다시 읽어 어느 조합이 겹쳤는지 찾습니다.
        """
        planned: dict[str, tuple[Optional[uuid.UUID], OptionAttributes]] = {}
        for staging_variant_id, attributes in plan.add_new:
            planned.setdefault(attributes.canonical_key, (staging_variant_id, attributes))
        for attributes in plan.additional:
            planned.setdefault(attributes.canonical_key, (None, attributes))

        hit = self.session.scalars(
            select(Variant)
            .where(Variant.product_id == product.id, Variant.option_key.in_(list(planned)))
            .order_by(Variant.created_at)
        ).first()
        if hit is None:
            return DuplicateVariantConflict(
                f"마스터 상품 {product.id}에 동일한 옵션 조합의 variant가 동시에 추가되었습니다.",
                option_key="",
            )

        staging_variant_id, attributes = planned[hit.option_key]
        logger.warning(
            f"[Reconciliation] variant 동시 추가 충돌 product={product.id} key={hit.option_key} "
            f"staging_variant={staging_variant_id} existing={hit.id}"
        )
        return DuplicateVariantConflict(
            f"옵션 {attributes.to_dict()}의 variant {hit.id}가 검증 이후 먼저 추가되었습니다. 매핑을 다시 확인하세요.",
            option_key=hit.option_key,
            staging_variant_id=staging_variant_id,
            existing_variant_id=hit.id,
            attributes=attributes.to_dict(),
        )

    # ==================== 오퍼 / 미디어 ====================

    def _find_offer(self, merchant_id: uuid.UUID, variant_id: uuid.UUID) -> Optional[MerchantOffer]:
        return self.session.scalars(
            select(MerchantOffer).where(
                MerchantOffer.merchant_id == merchant_id,
                MerchantOffer.variant_id == variant_id,
            )
        ).first()

    def _create_offer(
        self,
        staging: StagingProduct,
        source: StagingVariant,
        variant: Variant,
        product: Product,
    ) -> MerchantOffer:
        """오퍼 유일성은 유니크 제약으로 보장 (위반 시 OfferConflict)"""
        offer = MerchantOffer(
            id=uuid.uuid4(),
            merchant_id=staging.merchant_id,
            variant_id=variant.id,
            external_product_id=staging.external_product_id,
            external_variant_id=source.external_variant_id,
            merchant_sku=source.raw_sku,
            currency_code=settings.default_currency_code,
            cached_price_minor=source.raw_price_minor or 0,
            cached_settlement_price_minor=source.raw_price_minor or 0,
            current_stock=source.raw_inventory_quantity or 0,
            offer_status=settings.default_offer_status,
            is_active=True,
            last_synced_at=utcnow(),
        )
        self.session.add(offer)
        self._flush(offer)
        self.pricing.price_new_offer(offer, product)
        source.matched_variant_id = variant.id
        return offer

    def _upsert_offer(
        self,
        staging: StagingProduct,
        source: StagingVariant,
        variant: Variant,
        product: Product,
    ) -> tuple[MerchantOffer, bool]:
        existing = self._find_offer(staging.merchant_id, variant.id)
        if existing is None:
            return self._create_offer(staging, source, variant, product), True

        # 이미 있는 오퍼는 피드 값으로 갱신 후 재계산
        old_price = existing.cached_price_minor
        existing.external_product_id = staging.external_product_id
        existing.external_variant_id = source.external_variant_id
        existing.merchant_sku = source.raw_sku or existing.merchant_sku
        existing.cached_price_minor = source.raw_price_minor or 0
        existing.current_stock = source.raw_inventory_quantity or 0
        existing.is_active = True
        existing.last_synced_at = utcnow()
        margin = self.pricing.resolve_margin_for(staging.merchant_id, product)
        reason = REASON_BASE_PRICE_CHANGED if old_price != existing.cached_price_minor else REASON_MARGIN_CHANGED
        self.pricing.apply_pricing(existing, margin, reason, old_price_minor=old_price)
        return existing, False

    def _add_media(self, product: Product, selected_media: Sequence[Any], extra_urls: Sequence[str], start_position: int) -> None:
        """선택된 스테이징 미디어(선택 순서) → 관리자 입력 URL(입력 순서)"""
        position = start_position
        for media in selected_media:
            self.session.add(ProductMedia(
                product_id=product.id, url=media.source_url, position=position, staging_media_id=media.id,
            ))
            position += 1
        for url in extra_urls:
            self.session.add(ProductMedia(product_id=product.id, url=url, position=position))
            position += 1
