"""
포인트 환산율 해석기

(partner, currency, 시점)에 활성인 PointConversionRule을 하나 고릅니다.
동시에 여러 규칙이 활성이면 데이터 정합성 문제이므로 경고를 남기고 valid_from이 가장 늦은 규칙을 씁니다.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import PointConversionRule
from app.services.errors import NO_APPLICABLE_RULE, NotFoundError
from app.services.pricing import points
from app.services.pricing.validity import is_within_window, sort_timestamp, utcnow

logger = logging.getLogger(__name__)

OVERLAPPING_RULES = "OVERLAPPING_RULES"


@dataclass
class ConversionResolution:
    rate: Optional[Decimal] = None
    rule_id: Optional[uuid.UUID] = None
    currency_code: Optional[str] = None
    overlapping_rule_ids: list[uuid.UUID] = field(default_factory=list)
    reason_codes: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.rule_id is not None

    def to_points(self, amount_minor: int, minor_units: int = 2) -> int:
        if self.rate is None:
            raise NotFoundError("적용 가능한 환산율이 없습니다.", entity="PointConversionRule")
        return points.to_points(amount_minor, self.rate, minor_units)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rate": str(self.rate) if self.rate is not None else None,
            "rule_id": str(self.rule_id) if self.rule_id else None,
            "currency_code": self.currency_code,
            "found": self.found,
            "overlapping_rule_ids": [str(r) for r in self.overlapping_rule_ids],
            "reason_codes": list(self.reason_codes),
        }


def select_conversion_rules(
    rules: Iterable[Any],
    partner_id: uuid.UUID,
    currency_code: str,
    as_of: Optional[datetime] = None,
) -> list[Any]:
    """활성 + 유효기간 내 규칙을 우선순위 순으로 (valid_from 최신 > created_at 최신 > id)"""
    at = as_of or utcnow()
    code = (currency_code or "").strip().upper()
    active = [
        r for r in rules
        if r.partner_id == partner_id
        and (r.currency_code or "").upper() == code
        and r.is_active
        and is_within_window(r.valid_from, r.valid_to, at)
    ]
    return sorted(
        active,
        key=lambda r: (-sort_timestamp(r.valid_from), -sort_timestamp(getattr(r, "created_at", None)), str(r.id)),
    )


def resolve_from_rules(
    rules: Iterable[Any],
    partner_id: uuid.UUID,
    currency_code: str,
    as_of: Optional[datetime] = None,
) -> ConversionResolution:
    ordered = select_conversion_rules(rules, partner_id, currency_code, as_of)
    code = (currency_code or "").strip().upper()
    if not ordered:
        return ConversionResolution(currency_code=code, reason_codes=[NO_APPLICABLE_RULE])

    chosen = ordered[0]
    resolution = ConversionResolution(
        rate=Decimal(str(chosen.points_to_currency_rate)),
        rule_id=chosen.id,
        currency_code=code,
    )
    if len(ordered) > 1:
        resolution.overlapping_rule_ids = [r.id for r in ordered[1:]]
        resolution.reason_codes.append(OVERLAPPING_RULES)
        logger.warning(
            f"[ConversionRate] partner={partner_id} currency={code}에 활성 환산 규칙이 {len(ordered)}개입니다. "
            f"가장 최근 규칙 {chosen.id}를 사용합니다 (나머지: {[str(r.id) for r in ordered[1:]]})"
        )
    return resolution


class ConversionRateResolver:
    def __init__(self, session: Session):
        self.session = session

    def resolve(
        self,
        partner_id: uuid.UUID,
        currency_code: str,
        as_of: Optional[datetime] = None,
    ) -> ConversionResolution:
        code = (currency_code or "").strip().upper()
        stmt = select(PointConversionRule).where(
            PointConversionRule.partner_id == partner_id,
            PointConversionRule.currency_code == code,
            PointConversionRule.is_active.is_(True),
        )
        rules = self.session.scalars(stmt).all()
        return resolve_from_rules(rules, partner_id, code, as_of)
