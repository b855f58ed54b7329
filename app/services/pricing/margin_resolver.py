"""
마진 규칙 해석기 (MarginResolver)

(merchant, brand?, category?, 시점) 조합에 적용할 마진 규칙 하나를 고릅니다.

후보: 해당 머천트의 활성 규칙 중 유효기간이 시점을 포함하고, brand/category가 지정된 경우 질의 값과 같은 규칙
순위: brand+category(0) > brand만(1) > category만(2) > 둘 다 없음(3)
동순위: valid_from 최신 > created_at 최신 > id (전순서)

규칙이 없으면 예외 없이 0%와 NO_APPLICABLE_RULE 사유를 돌려줍니다.
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

from app.models import MarginRule
from app.services.errors import NO_APPLICABLE_RULE
from app.services.pricing.validity import is_within_window, sort_timestamp, utcnow

logger = logging.getLogger(__name__)

RANK_BRAND_AND_CATEGORY = 0
RANK_BRAND_ONLY = 1
RANK_CATEGORY_ONLY = 2
RANK_MERCHANT_WIDE = 3


@dataclass
class MarginResolution:
    percent: Decimal
    rule_id: Optional[uuid.UUID] = None
    specificity_rank: Optional[int] = None
    reason_codes: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.rule_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "percent": str(self.percent),
            "rule_id": str(self.rule_id) if self.rule_id else None,
            "found": self.found,
            "specificity_rank": self.specificity_rank,
            "reason_codes": list(self.reason_codes),
        }


def specificity_rank(rule: Any) -> int:
    has_brand = rule.brand_id is not None
    has_category = rule.category_id is not None
    if has_brand and has_category:
        return RANK_BRAND_AND_CATEGORY
    if has_brand:
        return RANK_BRAND_ONLY
    if has_category:
        return RANK_CATEGORY_ONLY
    return RANK_MERCHANT_WIDE


def rule_applies(
    rule: Any,
    merchant_id: uuid.UUID,
    brand_id: Optional[uuid.UUID],
    category_id: Optional[uuid.UUID],
    as_of: datetime,
) -> bool:
    if rule.merchant_id != merchant_id or not rule.is_active:
        return False
    if not is_within_window(rule.valid_from, rule.valid_to, as_of):
        return False
    # 규칙에 지정된 범위는 질의 값과 정확히 같아야 함 (질의에 값이 없으면 불일치)
    if rule.brand_id is not None and rule.brand_id != brand_id:
        return False
    if rule.category_id is not None and rule.category_id != category_id:
        return False
    return True


def _ranking_key(rule: Any) -> tuple:
    return (
        specificity_rank(rule),
        -sort_timestamp(rule.valid_from),
        -sort_timestamp(getattr(rule, "created_at", None)),
        str(rule.id),
    )


def select_margin_rule(
    rules: Iterable[Any],
    merchant_id: uuid.UUID,
    brand_id: Optional[uuid.UUID] = None,
    category_id: Optional[uuid.UUID] = None,
    as_of: Optional[datetime] = None,
) -> Optional[Any]:
    """후보 규칙 중 가장 구체적인 규칙 (없으면 None)"""
    at = as_of or utcnow()
    candidates = [r for r in rules if rule_applies(r, merchant_id, brand_id, category_id, at)]
    if not candidates:
        return None
    return min(candidates, key=_ranking_key)


def resolve_from_rules(
    rules: Iterable[Any],
    merchant_id: uuid.UUID,
    brand_id: Optional[uuid.UUID] = None,
    category_id: Optional[uuid.UUID] = None,
    as_of: Optional[datetime] = None,
) -> MarginResolution:
    rule = select_margin_rule(rules, merchant_id, brand_id, category_id, as_of)
    if rule is None:
        return MarginResolution(percent=Decimal("0"), reason_codes=[NO_APPLICABLE_RULE])
    return MarginResolution(
        percent=Decimal(str(rule.margin_percentage)),
        rule_id=rule.id,
        specificity_rank=specificity_rank(rule),
    )


class MarginResolver:
    def __init__(self, session: Session):
        self.session = session

    def load_rules(self, merchant_id: uuid.UUID) -> list[MarginRule]:
        stmt = select(MarginRule).where(MarginRule.merchant_id == merchant_id, MarginRule.is_active.is_(True))
        return list(self.session.scalars(stmt).all())

    def resolve(
        self,
        merchant_id: uuid.UUID,
        brand_id: Optional[uuid.UUID] = None,
        category_id: Optional[uuid.UUID] = None,
        as_of: Optional[datetime] = None,
    ) -> MarginResolution:
        resolution = resolve_from_rules(self.load_rules(merchant_id), merchant_id, brand_id, category_id, as_of)
        if not resolution.found:
            logger.debug(
                f"[MarginResolver] 적용 규칙 없음 merchant={merchant_id} brand={brand_id} category={category_id}"
            )
        return resolution
