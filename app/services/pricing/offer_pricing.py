"""
오퍼 가격 캐시 관리

오퍼의 cached_settlement_price_minor는 (정가, 마진 규칙)에서 파생된 값입니다.
마진 규칙이나 정가가 바뀌면 다시 계산하고, 값이 바뀐 경우 OfferPriceLog를 남깁니다.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import MerchantOffer, OfferPriceLog, Product, Variant
from app.services.errors import NotFoundError, ValidationError
from app.services.pricing import points
from app.services.pricing.conversion_resolver import ConversionRateResolver
from app.services.pricing.margin_resolver import MarginResolution, MarginResolver, resolve_from_rules
from app.services.pricing.validity import utcnow
from app.settings import settings

logger = logging.getLogger(__name__)

REASON_OFFER_CREATED = "OFFER_CREATED"
REASON_MARGIN_CHANGED = "MARGIN_CHANGED"
REASON_BASE_PRICE_CHANGED = "BASE_PRICE_CHANGED"


@dataclass
class OfferPriceChange:
    offer_id: uuid.UUID
    old_settlement_price_minor: Optional[int]
    new_settlement_price_minor: int
    margin: MarginResolution

    @property
    def changed(self) -> bool:
        return self.old_settlement_price_minor != self.new_settlement_price_minor


@dataclass
class PointsQuote:
    offer_id: uuid.UUID
    currency_code: str
    list_price_minor: int
    settlement_price_minor: int
    margin_percent: Decimal
    margin_rule_id: Optional[uuid.UUID]
    conversion_rule_id: Optional[uuid.UUID]
    rate: Optional[Decimal]
    points: Optional[int]
    reason_codes: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "offer_id": str(self.offer_id),
            "currency_code": self.currency_code,
            "list_price_minor": self.list_price_minor,
            "settlement_price_minor": self.settlement_price_minor,
            "margin_percent": str(self.margin_percent),
            "margin_rule_id": str(self.margin_rule_id) if self.margin_rule_id else None,
            "conversion_rule_id": str(self.conversion_rule_id) if self.conversion_rule_id else None,
            "rate": str(self.rate) if self.rate is not None else None,
            "points": self.points,
            "reason_codes": self.reason_codes,
        }


class OfferPricingService:
    def __init__(self, session: Session):
        self.session = session
        self.margin_resolver = MarginResolver(session)

    def _product_for(self, offer: MerchantOffer) -> Product:
        variant = offer.variant or self.session.get(Variant, offer.variant_id)
        if variant is None:
            raise NotFoundError(f"오퍼의 variant를 찾을 수 없습니다: {offer.variant_id}", entity="Variant", entity_id=offer.variant_id)
        return variant.product

    def resolve_margin_for(
        self,
        merchant_id: uuid.UUID,
        product: Product,
        as_of: Optional[datetime] = None,
        rules: Optional[list] = None,
    ) -> MarginResolution:
        """상품의 브랜드와 대표 카테고리 기준 마진"""
        if rules is not None:
            return resolve_from_rules(rules, merchant_id, product.brand_id, product.primary_category_id, as_of)
        return self.margin_resolver.resolve(merchant_id, product.brand_id, product.primary_category_id, as_of)

    def apply_pricing(
        self,
        offer: MerchantOffer,
        margin: MarginResolution,
        reason: str,
        old_price_minor: Optional[int] = None,
    ) -> OfferPriceChange:
        """캐시 갱신 + 변경 이력 기록 (신규 오퍼는 항상 기록)"""
        old_settlement = offer.cached_settlement_price_minor if reason != REASON_OFFER_CREATED else None
        new_settlement = points.settlement_price(offer.cached_price_minor or 0, margin.percent)

        change = OfferPriceChange(
            offer_id=offer.id,
            old_settlement_price_minor=old_settlement,
            new_settlement_price_minor=new_settlement,
            margin=margin,
        )
        if reason == REASON_OFFER_CREATED:
            logged_old_price = None
        elif old_price_minor is not None:
            logged_old_price = old_price_minor
        else:
            logged_old_price = offer.cached_price_minor

        price_changed = old_price_minor is not None and old_price_minor != offer.cached_price_minor
        if change.changed or price_changed or offer.margin_rule_id != margin.rule_id:
            self.session.add(OfferPriceLog(
                offer_id=offer.id,
                old_price_minor=logged_old_price,
                new_price_minor=offer.cached_price_minor or 0,
                old_settlement_price_minor=old_settlement,
                new_settlement_price_minor=new_settlement,
                margin_percentage=margin.percent,
                margin_rule_id=margin.rule_id,
                reason=reason,
            ))

        offer.cached_settlement_price_minor = new_settlement
        offer.margin_rule_id = margin.rule_id
        return change

    def price_new_offer(self, offer: MerchantOffer, product: Product, as_of: Optional[datetime] = None) -> OfferPriceChange:
        margin = self.resolve_margin_for(offer.merchant_id, product, as_of)
        if not margin.found:
            logger.warning(
                f"[OfferPricing] 마진 규칙 없음 merchant={offer.merchant_id} product={product.id} → 0% 적용"
            )
        return self.apply_pricing(offer, margin, REASON_OFFER_CREATED)

    def price_offer(self, offer: MerchantOffer, as_of: Optional[datetime] = None) -> OfferPriceChange:
        product = self._product_for(offer)
        margin = self.resolve_margin_for(offer.merchant_id, product, as_of)
        return self.apply_pricing(offer, margin, REASON_MARGIN_CHANGED)

    def reprice_merchant_offers(self, merchant_id: uuid.UUID, as_of: Optional[datetime] = None) -> list[OfferPriceChange]:
        """머천트의 활성 오퍼 전체 재계산 (마진 규칙 변경 후 호출)"""
        at = as_of or utcnow()
        rules = self.margin_resolver.load_rules(merchant_id)
        offers = self.session.scalars(
            select(MerchantOffer).where(MerchantOffer.merchant_id == merchant_id, MerchantOffer.is_active.is_(True))
        ).all()

        changes: list[OfferPriceChange] = []
        for offer in offers:
            product = self._product_for(offer)
            margin = self.resolve_margin_for(merchant_id, product, at, rules=rules)
            changes.append(self.apply_pricing(offer, margin, REASON_MARGIN_CHANGED))

        self.session.flush()
        changed = sum(1 for c in changes if c.changed)
        logger.info(f"[OfferPricing] merchant={merchant_id} 오퍼 {len(changes)}개 재계산, 정산가 변경 {changed}개")
        return changes

    def update_base_price(
        self,
        offer_id: uuid.UUID,
        new_price_minor: int,
        as_of: Optional[datetime] = None,
    ) -> OfferPriceChange:
        if new_price_minor is None or int(new_price_minor) < 0:
            raise ValidationError("가격은 0 이상이어야 합니다.", field="new_price_minor", actual_value=new_price_minor)

        offer = self.session.get(MerchantOffer, offer_id)
        if offer is None:
            raise NotFoundError(f"오퍼를 찾을 수 없습니다: {offer_id}", entity="MerchantOffer", entity_id=offer_id)

        old_price = offer.cached_price_minor
        offer.cached_price_minor = int(new_price_minor)
        offer.last_synced_at = utcnow()
        product = self._product_for(offer)
        margin = self.resolve_margin_for(offer.merchant_id, product, as_of)
        change = self.apply_pricing(offer, margin, REASON_BASE_PRICE_CHANGED, old_price_minor=old_price)
        self.session.flush()
        return change

    def quote_points(
        self,
        offer_id: uuid.UUID,
        partner_id: uuid.UUID,
        as_of: Optional[datetime] = None,
    ) -> PointsQuote:
        """정산가와 파트너 환산율로 포인트 가격 산정 (환산 규칙이 없으면 points=None)"""
        offer = self.session.get(MerchantOffer, offer_id)
        if offer is None:
            raise NotFoundError(f"오퍼를 찾을 수 없습니다: {offer_id}", entity="MerchantOffer", entity_id=offer_id)

        at = as_of or utcnow()
        product = self._product_for(offer)
        margin = self.resolve_margin_for(offer.merchant_id, product, at)
        settlement = points.settlement_price(offer.cached_price_minor or 0, margin.percent)

        conversion = ConversionRateResolver(self.session).resolve(partner_id, offer.currency_code, at)
        quoted_points = None
        if conversion.found:
            quoted_points = conversion.to_points(settlement, settings.get_minor_units(offer.currency_code))

        return PointsQuote(
            offer_id=offer.id,
            currency_code=offer.currency_code,
            list_price_minor=offer.cached_price_minor or 0,
            settlement_price_minor=settlement,
            margin_percent=margin.percent,
            margin_rule_id=margin.rule_id,
            conversion_rule_id=conversion.rule_id,
            rate=conversion.rate,
            points=quoted_points,
            reason_codes=margin.reason_codes + conversion.reason_codes,
        )
