"""
마진 규칙 / 포인트 환산율 관리

- 같은 (merchant, brand, category) 범위의 활성 마진 규칙은 하나만 허용 (DuplicateRuleScope)
- 환산율 변경은 기존 활성 규칙을 종료(valid_to=now)하고 새 규칙을 추가하는 방식으로 이력을 남김
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Brand, Category, LoyaltyPartner, MarginRule, Merchant, PointConversionRule
from app.services.errors import DuplicateRuleScope, NotFoundError, ValidationError
from app.services.pricing.points import to_decimal
from app.services.pricing.validity import ensure_utc, utcnow
from app.settings import settings

logger = logging.getLogger(__name__)


def _require(session: Session, model: Any, entity_id: Any, label: str) -> Any:
    obj = session.get(model, entity_id)
    if obj is None:
        raise NotFoundError(f"{label}을(를) 찾을 수 없습니다: {entity_id}", entity=model.__name__, entity_id=entity_id)
    return obj


def find_active_scope_rule(
    session: Session,
    merchant_id: uuid.UUID,
    brand_id: Optional[uuid.UUID],
    category_id: Optional[uuid.UUID],
    exclude_id: Optional[uuid.UUID] = None,
) -> Optional[MarginRule]:
    stmt = select(MarginRule).where(
        MarginRule.merchant_id == merchant_id,
        MarginRule.brand_id.is_(None) if brand_id is None else MarginRule.brand_id == brand_id,
        MarginRule.category_id.is_(None) if category_id is None else MarginRule.category_id == category_id,
        MarginRule.is_active.is_(True),
    )
    if exclude_id is not None:
        stmt = stmt.where(MarginRule.id != exclude_id)
    return session.scalars(stmt.limit(1)).first()


def create_margin_rule(
    session: Session,
    merchant_id: Optional[uuid.UUID],
    margin_percentage: Any,
    valid_from: Optional[datetime],
    brand_id: Optional[uuid.UUID] = None,
    category_id: Optional[uuid.UUID] = None,
    valid_to: Optional[datetime] = None,
) -> MarginRule:
    """
    마진 규칙 생성.

    Raises:
        ValidationError: merchant/valid_from 누락, 마진율 범위(0~100) 위반, valid_to < valid_from
        NotFoundError: merchant/brand/category 없음
        DuplicateRuleScope: 같은 범위의 활성 규칙이 이미 있음
    """
    if merchant_id is None:
        raise ValidationError("머천트는 필수입니다.", field="merchant_id")
    if margin_percentage is None:
        raise ValidationError("마진율은 필수입니다.", field="margin_percentage")

    margin = to_decimal(margin_percentage, field="margin_percentage")
    if not margin.is_finite() or margin < 0 or margin > 100:
        raise ValidationError(
            "마진율은 0에서 100 사이여야 합니다.", field="margin_percentage", actual_value=margin_percentage
        )
    if valid_from is None:
        raise ValidationError("적용 시작일(valid_from)은 필수입니다.", field="valid_from")
    if valid_to is not None and ensure_utc(valid_to) < ensure_utc(valid_from):
        raise ValidationError("적용 종료일은 시작일 이후여야 합니다.", field="valid_to", actual_value=valid_to)

    _require(session, Merchant, merchant_id, "머천트")
    if brand_id is not None:
        _require(session, Brand, brand_id, "브랜드")
    if category_id is not None:
        _require(session, Category, category_id, "카테고리")

    existing = find_active_scope_rule(session, merchant_id, brand_id, category_id)
    if existing is not None:
        raise DuplicateRuleScope(
            "같은 범위의 활성 마진 규칙이 이미 있습니다. 기존 규칙을 비활성화하거나 수정하세요.",
            existing_rule_id=existing.id,
        )

    rule = MarginRule(
        merchant_id=merchant_id,
        brand_id=brand_id,
        category_id=category_id,
        margin_percentage=margin.quantize(Decimal("0.01")),
        valid_from=valid_from,
        valid_to=valid_to,
        is_active=True,
    )
    session.add(rule)
    session.flush()
    logger.info(
        f"[RuleAdmin] 마진 규칙 생성 id={rule.id} merchant={merchant_id} brand={brand_id} "
        f"category={category_id} margin={rule.margin_percentage}%"
    )
    return rule


def deactivate_margin_rule(session: Session, rule_id: uuid.UUID) -> MarginRule:
    rule = _require(session, MarginRule, rule_id, "마진 규칙")
    if rule.is_active:
        rule.is_active = False
        session.flush()
        logger.info(f"[RuleAdmin] 마진 규칙 비활성화 id={rule_id}")
    return rule


def set_conversion_rate(
    session: Session,
    partner_id: uuid.UUID,
    rate: Any,
    currency_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PointConversionRule:
    """
    파트너 환산율 변경. 같은 통화의 활성 규칙을 모두 종료하고 새 활성 규칙을 만듭니다.
    """
    rate_dec = to_decimal(rate, field="points_to_currency_rate") if rate is not None else None
    if rate_dec is None or not rate_dec.is_finite() or rate_dec <= 0:
        raise ValidationError(
            "points_to_currency_rate는 0보다 커야 합니다.", field="points_to_currency_rate", actual_value=rate
        )

    code = (currency_code or settings.default_currency_code).strip().upper()
    if not settings.is_supported_currency(code):
        raise ValidationError(
            f"지원하지 않는 통화입니다. 다음 중 하나여야 합니다: {', '.join(settings.supported_currency_codes)}",
            field="currency_code",
            actual_value=currency_code,
        )

    partner = _require(session, LoyaltyPartner, partner_id, "파트너")
    at = now or utcnow()

    active_rules = session.scalars(
        select(PointConversionRule).where(
            PointConversionRule.partner_id == partner_id,
            PointConversionRule.currency_code == code,
            PointConversionRule.is_active.is_(True),
        )
    ).all()
    for old in active_rules:
        old.is_active = False
        old.valid_to = at

    rule = PointConversionRule(
        partner_id=partner_id,
        currency_code=code,
        points_to_currency_rate=rate_dec,
        valid_from=at,
        is_active=True,
    )
    session.add(rule)
    session.flush()
    logger.info(
        f"[RuleAdmin] 환산율 변경 partner={partner.name} currency={code} rate={rate_dec} "
        f"(종료된 규칙 {len(active_rules)}개)"
    )
    return rule


def list_conversion_rules(session: Session, partner_id: uuid.UUID) -> list[PointConversionRule]:
    """활성 우선, valid_from 최신순 이력"""
    _require(session, LoyaltyPartner, partner_id, "파트너")
    stmt = (
        select(PointConversionRule)
        .where(PointConversionRule.partner_id == partner_id)
        .order_by(PointConversionRule.is_active.desc(), PointConversionRule.valid_from.desc())
    )
    return list(session.scalars(stmt).all())
