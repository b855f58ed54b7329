import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class MarginRuleCreateIn(BaseModel):
    merchant_id: Optional[uuid.UUID] = None
    brand_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    margin_percentage: Optional[Decimal] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class MarginRuleResponse(BaseModel):
    id: uuid.UUID
    merchant_id: uuid.UUID
    brand_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    margin_percentage: Decimal
    valid_from: datetime
    valid_to: Optional[datetime] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class MarginResolutionResponse(BaseModel):
    """규칙이 없으면 percent=0, rule_id=None, found=False"""
    percent: Decimal
    rule_id: Optional[uuid.UUID] = None
    found: bool
    specificity_rank: Optional[int] = None
    reason_codes: List[str] = []


class ConversionRateIn(BaseModel):
    points_to_currency_rate: Optional[Decimal] = None
    currency_code: Optional[str] = None


class ConversionRuleResponse(BaseModel):
    id: uuid.UUID
    partner_id: uuid.UUID
    currency_code: str
    points_to_currency_rate: Decimal
    valid_from: datetime
    valid_to: Optional[datetime] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ConversionResolutionResponse(BaseModel):
    partner_id: uuid.UUID
    currency_code: str
    rate: Optional[Decimal] = None
    rule_id: Optional[uuid.UUID] = None
    found: bool
    overlapping_rule_ids: List[uuid.UUID] = []
    reason_codes: List[str] = []
    history: List[ConversionRuleResponse] = []


class PointsResponse(BaseModel):
    amount_minor: int
    rate: Decimal
    points: int


class OfferRepriceItem(BaseModel):
    offer_id: uuid.UUID
    old_settlement_price_minor: Optional[int] = None
    new_settlement_price_minor: int
    margin_percent: Decimal
    margin_rule_id: Optional[uuid.UUID] = None


class RepriceResponse(BaseModel):
    merchant_id: uuid.UUID
    total: int
    changed: int
    offers: List[OfferRepriceItem]
