import uuid
from typing import List

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.db import get_session
from app.schemas.review import (
    DecisionPayload,
    DecisionResultResponse,
    MasterVariantResponse,
    OptionDefinitionItem,
    ReviewQueueItemResponse,
    VariantMatchResponse,
    VariantMatchRowResponse,
)
from app.services.catalog.review_service import ReviewService
from app.services.catalog.variant_matcher import VariantMatchResult
from app.services.errors import CatalogError

router = APIRouter()


def _to_match_response(result: VariantMatchResult) -> VariantMatchResponse:
    return VariantMatchResponse(
        staging_product_id=result.staging_product_id,
        master_product_id=result.master_product_id,
        master_variants=[
            MasterVariantResponse(
                id=v.id,
                internal_sku=v.internal_sku or "",
                gtin=v.gtin,
                mpn=v.mpn,
                attributes=v.attributes.to_dict(),
                option_key=v.option_key,
            )
            for v in result.master_variants
        ],
        matches=[
            VariantMatchRowResponse(
                staging_variant_id=row.staging_variant.id,
                raw_sku=row.staging_variant.raw_sku,
                raw_barcode=row.staging_variant.raw_barcode,
                raw_price_minor=row.staging_variant.raw_price_minor,
                staging_options=row.staging_variant.attributes.to_dict(),
                option_key=row.staging_variant.option_key,
                suggested_master_variant_id=row.suggestion.master_variant_id,
                match_reason=row.suggestion.match_reason,
                proposed_choice=row.proposed_choice,
            )
            for row in result.rows
        ],
        merged_options=[OptionDefinitionItem(name=d.name, values=list(d.values)) for d in result.merged_options],
        combination_count=result.combination_count,
        summary=result.summary,
    )


@router.get("/queue", response_model=List[ReviewQueueItemResponse])
def list_review_queue(
    session: Session = Depends(get_session),
    status: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    try:
        return ReviewService(session).list_review_queue(status=status, limit=limit, offset=offset)
    except CatalogError as e:
        raise to_http_exception(e)


@router.get("/{staging_id}/variants", response_model=VariantMatchResponse)
def get_variant_matches(
    staging_id: uuid.UUID,
    session: Session = Depends(get_session),
    target_product_id: uuid.UUID | None = Query(default=None, alias="targetProductId"),
):
    """
    스테이징 variant별 연결 후보와 기본 선택(Link/AddNew)을 반환합니다.
    targetProductId가 없으면 스테이징 상품의 추천 마스터 상품을 사용합니다.
    """
    try:
        result = ReviewService(session).match_variants(target_product_id, staging_id)
    except CatalogError as e:
        raise to_http_exception(e)
    return _to_match_response(result)


@router.post("/{staging_id}/decision", response_model=DecisionResultResponse)
def submit_decision(
    staging_id: uuid.UUID,
    decision: DecisionPayload = Body(..., discriminator="action"),
    session: Session = Depends(get_session),
):
    """
    정합화 결정 커밋 (REJECT / CREATE_NEW / LINK_EXISTING).
    실패하면 아무것도 반영되지 않습니다.
    """
    try:
        result = ReviewService(session).submit_reconciliation_decision(staging_id, decision)
    except CatalogError as e:
        raise to_http_exception(e)
    return DecisionResultResponse.model_validate(result)
