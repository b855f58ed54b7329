import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.db import get_session
from app.schemas.pricing import (
    ConversionRateIn,
    ConversionResolutionResponse,
    ConversionRuleResponse,
    MarginResolutionResponse,
    MarginRuleCreateIn,
    MarginRuleResponse,
    OfferRepriceItem,
    PointsResponse,
    RepriceResponse,
)
from app.services.errors import CatalogError
from app.services.pricing import points, rule_admin
from app.services.pricing.conversion_resolver import ConversionRateResolver
from app.services.pricing.margin_resolver import MarginResolver
from app.services.pricing.offer_pricing import OfferPricingService
from app.settings import settings

router = APIRouter()


@router.get("/margin", response_model=MarginResolutionResponse)
def resolve_margin(
    session: Session = Depends(get_session),
    merchant_id: uuid.UUID = Query(alias="merchantId"),
    brand_id: uuid.UUID | None = Query(default=None, alias="brandId"),
    category_id: uuid.UUID | None = Query(default=None, alias="categoryId"),
    as_of: datetime | None = Query(default=None, alias="asOf"),
):
    resolution = MarginResolver(session).resolve(merchant_id, brand_id, category_id, as_of)
    return MarginResolutionResponse(
        percent=resolution.percent,
        rule_id=resolution.rule_id,
        found=resolution.found,
        specificity_rank=resolution.specificity_rank,
        reason_codes=resolution.reason_codes,
    )


@router.post("/margin-rules", response_model=MarginRuleResponse, status_code=201)
def create_margin_rule(payload: MarginRuleCreateIn, session: Session = Depends(get_session)):
    try:
        rule = rule_admin.create_margin_rule(
            session,
            merchant_id=payload.merchant_id,
            margin_percentage=payload.margin_percentage,
            valid_from=payload.valid_from,
            brand_id=payload.brand_id,
            category_id=payload.category_id,
            valid_to=payload.valid_to,
        )
    except CatalogError as e:
        raise to_http_exception(e)
    return MarginRuleResponse.model_validate(rule)


@router.post("/margin-rules/{rule_id}/deactivate", response_model=MarginRuleResponse)
def deactivate_margin_rule(rule_id: uuid.UUID, session: Session = Depends(get_session)):
    try:
        rule = rule_admin.deactivate_margin_rule(session, rule_id)
    except CatalogError as e:
        raise to_http_exception(e)
    return MarginRuleResponse.model_validate(rule)


@router.get("/partners/{partner_id}/rate", response_model=ConversionResolutionResponse)
def get_conversion_rate(
    partner_id: uuid.UUID,
    session: Session = Depends(get_session),
    currency_code: str | None = Query(default=None, alias="currencyCode"),
    as_of: datetime | None = Query(default=None, alias="asOf"),
):
    code = (currency_code or settings.default_currency_code).upper()
    try:
        history = rule_admin.list_conversion_rules(session, partner_id)
    except CatalogError as e:
        raise to_http_exception(e)

    resolution = ConversionRateResolver(session).resolve(partner_id, code, as_of)
    return ConversionResolutionResponse(
        partner_id=partner_id,
        currency_code=code,
        rate=resolution.rate,
        rule_id=resolution.rule_id,
        found=resolution.found,
        overlapping_rule_ids=resolution.overlapping_rule_ids,
        reason_codes=resolution.reason_codes,
        history=[ConversionRuleResponse.model_validate(r) for r in history],
    )


@router.post("/partners/{partner_id}/rate", response_model=ConversionRuleResponse, status_code=201)
def set_conversion_rate(partner_id: uuid.UUID, payload: ConversionRateIn, session: Session = Depends(get_session)):
    try:
        rule = rule_admin.set_conversion_rate(
            session, partner_id, payload.points_to_currency_rate, payload.currency_code
        )
    except CatalogError as e:
        raise to_http_exception(e)
    return ConversionRuleResponse.model_validate(rule)


@router.get("/points", response_model=PointsResponse)
def convert_to_points(
    amount_minor: int = Query(alias="amountMinor", ge=0),
    rate: Decimal = Query(),
    currency_code: str | None = Query(default=None, alias="currencyCode"),
):
    try:
        value = points.to_points(amount_minor, rate, settings.get_minor_units(currency_code))
    except CatalogError as e:
        raise to_http_exception(e)
    return PointsResponse(amount_minor=amount_minor, rate=rate, points=value)


@router.post("/merchants/{merchant_id}/reprice", response_model=RepriceResponse)
def reprice_merchant(
    merchant_id: uuid.UUID,
    session: Session = Depends(get_session),
    as_of: datetime | None = Query(default=None, alias="asOf"),
):
    """마진 규칙 변경 후 머천트 오퍼 정산가 일괄 재계산"""
    changes = OfferPricingService(session).reprice_merchant_offers(merchant_id, as_of)
    return RepriceResponse(
        merchant_id=merchant_id,
        total=len(changes),
        changed=sum(1 for c in changes if c.changed),
        offers=[
            OfferRepriceItem(
                offer_id=c.offer_id,
                old_settlement_price_minor=c.old_settlement_price_minor,
                new_settlement_price_minor=c.new_settlement_price_minor,
                margin_percent=c.margin.percent,
                margin_rule_id=c.margin.rule_id,
            )
            for c in changes
        ],
    )
