"""
리뷰 서비스 (관리자 리뷰 화면용 파사드)

- match_variants: 마스터 상품 variant와 스테이징 variant 매칭 제안
- submit_reconciliation_decision: 결정 커밋 (오퍼 충돌 시 재시도)
- list_review_queue: 결정 대기 중인 스테이징 상품 목록
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.models import STAGING_OPEN_STATUSES, STAGING_STATUSES, Merchant, Product, StagingProduct, StagingVariant, Variant
from app.services.catalog.reconciliation import DecisionResult, ReconciliationDecisionProcessor
from app.services.catalog.variant_matcher import (
    MasterVariantView,
    StagingVariantView,
    VariantMatchResult,
    match_variants,
)
from app.services.errors import NotFoundError, OfferConflict, ValidationError
from app.settings import settings

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, session: Session):
        self.session = session

    def _get_staging(self, staging_product_id: uuid.UUID) -> StagingProduct:
        staging = self.session.get(StagingProduct, staging_product_id)
        if staging is None:
            raise NotFoundError(
                f"스테이징 상품을 찾을 수 없습니다: {staging_product_id}",
                entity="StagingProduct",
                entity_id=staging_product_id,
            )
        return staging

    def match_variants(
        self,
        master_product_id: Optional[uuid.UUID],
        staging_product_id: uuid.UUID,
    ) -> VariantMatchResult:
        """
        대상 마스터 상품을 지정하지 않으면 스테이징 상품의 추천 상품(suggested_product_id)을 사용합니다.
        """
        staging = self._get_staging(staging_product_id)
        target_id = master_product_id or staging.suggested_product_id
        if target_id is None:
            raise ValidationError("매칭할 마스터 상품이 지정되지 않았습니다.", field="target_product_id")

        product = self.session.get(Product, target_id)
        if product is None:
            raise NotFoundError(f"마스터 상품을 찾을 수 없습니다: {target_id}", entity="Product", entity_id=target_id)

        master_variants = self.session.scalars(
            select(Variant).where(Variant.product_id == product.id, Variant.is_active.is_(True)).order_by(Variant.created_at)
        ).all()
        existing = [MasterVariantView.from_model(v) for v in master_variants]
        incoming = [
            StagingVariantView.from_model(sv, suggested_master_variant_id=sv.matched_variant_id)
            for sv in staging.variants
        ]

        result = match_variants(staging.id, product.id, existing, incoming)
        logger.info(f"[Review] variant 매칭 staging={staging.id} product={product.id} summary={result.summary}")
        return result

    @retry(
        stop=stop_after_attempt(settings.offer_conflict_retry_count),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        retry=retry_if_exception_type(OfferConflict),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"[Review] 오퍼 충돌로 결정 재시도 중... ({retry_state.attempt_number}회째): {retry_state.outcome.exception()}"
        ),
    )
    def submit_reconciliation_decision(self, staging_product_id: uuid.UUID, decision: Any) -> DecisionResult:
        return ReconciliationDecisionProcessor(self.session).submit(staging_product_id, decision)

    def list_review_queue(
        self,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """추천 신뢰도 높은 순, 최근 수집 순"""
        if status is not None and status not in STAGING_STATUSES:
            raise ValidationError(f"알 수 없는 상태값입니다: {status}", field="status", actual_value=status)
        statuses = (status,) if status else STAGING_OPEN_STATUSES
        page_size = limit or settings.review_queue_page_size

        variant_count = (
            select(func.count(StagingVariant.id))
            .where(StagingVariant.staging_product_id == StagingProduct.id)
            .correlate(StagingProduct)
            .scalar_subquery()
        )
        stmt = (
            select(StagingProduct, Merchant.name, variant_count)
            .join(Merchant, Merchant.id == StagingProduct.merchant_id)
            .where(StagingProduct.status.in_(statuses))
            .order_by(
                func.coalesce(StagingProduct.match_confidence_score, 0).desc(),
                StagingProduct.created_at.desc(),
            )
            .limit(page_size)
            .offset(offset)
        )

        items = []
        for staging, merchant_name, count in self.session.execute(stmt).all():
            items.append({
                "staging_id": staging.id,
                "merchant_id": staging.merchant_id,
                "merchant_name": merchant_name,
                "raw_title": staging.raw_title,
                "status": staging.status,
                "match_confidence": staging.match_confidence_score or 0,
                "suggested_master_id": staging.suggested_product_id,
                "variant_count": count or 0,
                "created_at": staging.created_at,
            })
        return items
