"""
상품 리뷰(정합화) 결정 스키마.

관리자 화면의 세 갈래 흐름(매칭/신규 생성/반려)은 ReconciliationDecision 하나의 태그드 유니온으로 표현되며,
커밋은 ReconciliationDecisionProcessor.submit() 한 곳에서만 처리합니다.
"""
import uuid
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class OptionDefinitionItem(BaseModel):
    name: str
    values: List[str] = Field(default_factory=list)


# ==================== variant 매핑 선택지 ====================

class LinkChoice(BaseModel):
    """기존 마스터 variant에 연결"""
    type: Literal["link"] = "link"
    master_variant_id: uuid.UUID


class AddNewChoice(BaseModel):
    """대상 마스터 상품에 새 variant 추가"""
    type: Literal["add_new"] = "add_new"
    attributes: dict[str, str] = Field(default_factory=dict)


class SkipChoice(BaseModel):
    """이번 결정에서 제외"""
    type: Literal["skip"] = "skip"


VariantChoice = Annotated[Union[LinkChoice, AddNewChoice, SkipChoice], Field(discriminator="type")]


class VariantRowChoice(BaseModel):
    staging_variant_id: uuid.UUID
    choice: VariantChoice


# ==================== 결정 (태그드 유니온) ====================

class RejectDecision(BaseModel):
    action: Literal["REJECT"] = "REJECT"
    rejection_reason: str = ""
    admin_notes: Optional[str] = None


class CreateNewDecision(BaseModel):
    action: Literal["CREATE_NEW"] = "CREATE_NEW"
    title: str = ""
    slug: Optional[str] = None  # 비어 있으면 title에서 생성
    description: Optional[str] = None
    brand_id: Optional[uuid.UUID] = None
    category_ids: List[uuid.UUID] = Field(default_factory=list)
    specifications: dict[str, str] = Field(default_factory=dict)
    status: Literal["DRAFT", "ACTIVE"] = "ACTIVE"
    options_definition: Optional[List[OptionDefinitionItem]] = None  # None이면 스테이징 variant 속성에서 도출
    selected_media_ids: List[uuid.UUID] = Field(default_factory=list)
    extra_media_urls: List[str] = Field(default_factory=list)
    admin_notes: Optional[str] = None


class LinkExistingDecision(BaseModel):
    action: Literal["LINK_EXISTING"] = "LINK_EXISTING"
    master_product_id: Optional[uuid.UUID] = None
    variant_mapping: List[VariantRowChoice] = Field(default_factory=list)
    options_definition: Optional[List[OptionDefinitionItem]] = None  # 관리자가 편집한 병합 옵션 정의
    selected_media_ids: List[uuid.UUID] = Field(default_factory=list)
    extra_media_urls: List[str] = Field(default_factory=list)
    admin_notes: Optional[str] = None


DecisionPayload = Union[RejectDecision, CreateNewDecision, LinkExistingDecision]
ReconciliationDecision = Annotated[DecisionPayload, Field(discriminator="action")]

decision_adapter = TypeAdapter(ReconciliationDecision)


# ==================== 응답 ====================

class DecisionResultResponse(BaseModel):
    staging_product_id: uuid.UUID
    status: str
    master_product_id: Optional[uuid.UUID] = None
    created_variant_ids: List[uuid.UUID] = []
    created_offer_ids: List[uuid.UUID] = []
    updated_offer_ids: List[uuid.UUID] = []

    model_config = ConfigDict(from_attributes=True)


class MasterVariantResponse(BaseModel):
    id: uuid.UUID
    internal_sku: str
    gtin: Optional[str] = None
    mpn: Optional[str] = None
    attributes: dict[str, str]
    option_key: str


class VariantMatchRowResponse(BaseModel):
    staging_variant_id: uuid.UUID
    raw_sku: Optional[str] = None
    raw_barcode: Optional[str] = None
    raw_price_minor: Optional[int] = None
    staging_options: dict[str, str]
    option_key: str
    suggested_master_variant_id: Optional[uuid.UUID] = None
    match_reason: str
    proposed_choice: VariantChoice


class VariantMatchResponse(BaseModel):
    staging_product_id: uuid.UUID
    master_product_id: uuid.UUID
    master_variants: List[MasterVariantResponse]
    matches: List[VariantMatchRowResponse]
    merged_options: List[OptionDefinitionItem]
    combination_count: int
    summary: dict[str, int]


class ReviewQueueItemResponse(BaseModel):
    staging_id: uuid.UUID
    merchant_id: uuid.UUID
    merchant_name: Optional[str] = None
    raw_title: Optional[str] = None
    status: str
    match_confidence: int = 0
    suggested_master_id: Optional[uuid.UUID] = None
    variant_count: int = 0
    created_at: Optional[datetime] = None
