"""
Variant 매처 (VariantMatcher)

마스터 상품의 기존 variant와 스테이징 상품의 신규 variant를 비교해 행별 제안(Link / AddNew / Skip)을 만들고,
관리자가 확정한 매핑을 커밋 직전에 검증합니다.

검증 규칙:
- AddNew 조합의 canonical key가 기존 variant와 같으면 DuplicateVariantConflict (부분 커밋 없음)
- 편집된 옵션 정의의 조합 중 기존/AddNew에 없는 조합은 "추가 variant" (오퍼 없이 생성)
- 실제 작업이 하나도 없으면 EmptyDecisionError
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from app.schemas.review import AddNewChoice, LinkChoice, SkipChoice, VariantRowChoice
from app.services.catalog.option_set import (
    OptionAttributes,
    OptionDimension,
    cross_product,
    cross_product_count,
    derive_option_definition,
    merge_option_definitions,
)
from app.services.errors import DuplicateVariantConflict, EmptyDecisionError, ValidationError

logger = logging.getLogger(__name__)

MATCH_BARCODE = "BARCODE_MATCH"
MATCH_SKU = "SKU_MATCH"
MATCH_OPTIONS = "OPTION_MATCH"
MATCH_HINT = "UPSTREAM_HINT"
MATCH_NONE = "NONE"


@dataclass(frozen=True)
class MasterVariantView:
    id: uuid.UUID
    attributes: OptionAttributes
    internal_sku: Optional[str] = None
    gtin: Optional[str] = None
    mpn: Optional[str] = None

    @property
    def option_key(self) -> str:
        return self.attributes.canonical_key

    @classmethod
    def from_model(cls, variant: Any) -> "MasterVariantView":
        return cls(
            id=variant.id,
            attributes=OptionAttributes(variant.attributes or {}),
            internal_sku=variant.internal_sku,
            gtin=variant.gtin,
            mpn=variant.mpn,
        )


@dataclass(frozen=True)
class StagingVariantView:
    id: uuid.UUID
    attributes: OptionAttributes
    raw_sku: Optional[str] = None
    raw_barcode: Optional[str] = None
    raw_price_minor: Optional[int] = None
    suggested_master_variant_id: Optional[uuid.UUID] = None  # 상위 단계에서 붙는 힌트 (불투명 값)

    @property
    def option_key(self) -> str:
        return self.attributes.canonical_key

    @classmethod
    def from_model(cls, staging_variant: Any, suggested_master_variant_id: Optional[uuid.UUID] = None) -> "StagingVariantView":
        return cls(
            id=staging_variant.id,
            attributes=OptionAttributes(staging_variant.raw_options or {}),
            raw_sku=staging_variant.raw_sku,
            raw_barcode=staging_variant.raw_barcode,
            raw_price_minor=staging_variant.raw_price_minor,
            suggested_master_variant_id=suggested_master_variant_id,
        )


@dataclass(frozen=True)
class MatchSuggestion:
    staging_variant_id: uuid.UUID
    master_variant_id: Optional[uuid.UUID]
    match_reason: str


@dataclass
class VariantMatchRow:
    staging_variant: StagingVariantView
    suggestion: MatchSuggestion
    proposed_choice: LinkChoice | AddNewChoice | SkipChoice


@dataclass
class VariantMatchResult:
    staging_product_id: uuid.UUID
    master_product_id: uuid.UUID
    master_variants: list[MasterVariantView]
    rows: list[VariantMatchRow]
    merged_options: list[OptionDimension]
    combination_count: int

    @property
    def summary(self) -> dict[str, int]:
        matched = sum(1 for r in self.rows if r.suggestion.master_variant_id is not None)
        return {
            "total": len(self.rows),
            "matched": matched,
            "unmatched": len(self.rows) - matched,
            "combinations": self.combination_count,
        }


@dataclass
class VariantPlan:
    """검증을 통과한 매핑 (커밋 대상)"""
    links: list[tuple[uuid.UUID, uuid.UUID]] = field(default_factory=list)  # (staging_variant_id, master_variant_id)
    add_new: list[tuple[uuid.UUID, OptionAttributes]] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)
    additional: list[OptionAttributes] = field(default_factory=list)

    @property
    def net_action_count(self) -> int:
        return len(self.links) + len(self.add_new) + len(self.additional)


def _same_code(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip() == b.strip() and a.strip() != ""


def suggest_matches(
    existing: Sequence[MasterVariantView],
    incoming: Sequence[StagingVariantView],
) -> dict[uuid.UUID, MatchSuggestion]:
    """
    스테이징 variant별 연결 후보 추천.
    우선순위: 상위 힌트 > 바코드(GTIN) 일치 > SKU(internal_sku/mpn) 일치 > 옵션 canonical key 일치
    """
    existing_ids = {v.id for v in existing}
    by_key: dict[str, MasterVariantView] = {}
    for v in existing:
        by_key.setdefault(v.option_key, v)

    suggestions: dict[uuid.UUID, MatchSuggestion] = {}
    for sv in incoming:
        if sv.suggested_master_variant_id is not None and sv.suggested_master_variant_id in existing_ids:
            suggestions[sv.id] = MatchSuggestion(sv.id, sv.suggested_master_variant_id, MATCH_HINT)
            continue

        match = next((mv for mv in existing if _same_code(sv.raw_barcode, mv.gtin)), None)
        if match:
            suggestions[sv.id] = MatchSuggestion(sv.id, match.id, MATCH_BARCODE)
            continue

        match = next(
            (mv for mv in existing if _same_code(sv.raw_sku, mv.internal_sku) or _same_code(sv.raw_sku, mv.mpn)),
            None,
        )
        if match:
            suggestions[sv.id] = MatchSuggestion(sv.id, match.id, MATCH_SKU)
            continue

        match = by_key.get(sv.option_key)
        if match:
            suggestions[sv.id] = MatchSuggestion(sv.id, match.id, MATCH_OPTIONS)
            continue

        suggestions[sv.id] = MatchSuggestion(sv.id, None, MATCH_NONE)

    return suggestions


def propose_choice(staging_variant: StagingVariantView, suggestion: Optional[MatchSuggestion] = None):
    """힌트(추천)가 있으면 Link, 없으면 원본 옵션 속성으로 AddNew"""
    master_variant_id = suggestion.master_variant_id if suggestion else staging_variant.suggested_master_variant_id
    if master_variant_id is not None:
        return LinkChoice(master_variant_id=master_variant_id)
    return AddNewChoice(attributes=staging_variant.attributes.to_dict())


def match_variants(
    staging_product_id: uuid.UUID,
    master_product_id: uuid.UUID,
    existing: Sequence[MasterVariantView],
    incoming: Sequence[StagingVariantView],
) -> VariantMatchResult:
    suggestions = suggest_matches(existing, incoming)
    rows = [
        VariantMatchRow(
            staging_variant=sv,
            suggestion=suggestions[sv.id],
            proposed_choice=propose_choice(sv, suggestions[sv.id]),
        )
        for sv in incoming
    ]
    merged = merge_option_definitions(
        derive_option_definition(v.attributes for v in existing),
        derive_option_definition(v.attributes for v in incoming),
    )
    return VariantMatchResult(
        staging_product_id=staging_product_id,
        master_product_id=master_product_id,
        master_variants=list(existing),
        rows=rows,
        merged_options=merged,
        combination_count=cross_product_count(merged),
    )


def find_duplicate_conflict(
    existing: Sequence[MasterVariantView],
    add_new: Iterable[tuple[uuid.UUID, OptionAttributes]],
) -> Optional[DuplicateVariantConflict]:
    """
    AddNew 조합이 기존 variant 또는 같은 결정 안의 다른 AddNew와 겹치는지 확인합니다.
    첫 번째 충돌을 예외 객체로 반환하며, 충돌이 없으면 None.
    """
    existing_by_key: dict[str, MasterVariantView] = {}
    for v in existing:
        existing_by_key.setdefault(v.option_key, v)

    claimed: dict[str, uuid.UUID] = {}
    for staging_variant_id, attributes in add_new:
        key = attributes.canonical_key
        hit = existing_by_key.get(key)
        if hit is not None:
            return DuplicateVariantConflict(
                f"스테이징 variant {staging_variant_id}의 옵션 {attributes.to_dict()}이(가) "
                f"기존 variant {hit.id} ({hit.attributes.to_dict()})와 중복됩니다.",
                option_key=key,
                staging_variant_id=staging_variant_id,
                existing_variant_id=hit.id,
                attributes=attributes.to_dict(),
            )
        if key in claimed:
            return DuplicateVariantConflict(
                f"스테이징 variant {staging_variant_id}와 {claimed[key]}가 같은 옵션 조합 {attributes.to_dict()}을(를) 추가하려 합니다.",
                option_key=key,
                staging_variant_id=staging_variant_id,
                attributes=attributes.to_dict(),
            )
        claimed[key] = staging_variant_id
    return None


def compute_additional_variants(
    options_definition: Optional[Iterable[Any]],
    existing: Sequence[MasterVariantView],
    add_new_attributes: Iterable[OptionAttributes],
) -> list[OptionAttributes]:
    """편집된 옵션 정의의 조합 중 기존 variant에도 AddNew에도 없는 조합 (가격 출처가 없어 오퍼 없이 생성)"""
    if not options_definition:
        return []

    covered = {v.option_key for v in existing}
    covered.update(a.canonical_key for a in add_new_attributes)

    additional: list[OptionAttributes] = []
    for combo in cross_product(options_definition):
        attributes = OptionAttributes(combo)
        if attributes.canonical_key in covered:
            continue
        covered.add(attributes.canonical_key)
        additional.append(attributes)
    return additional


def build_variant_plan(
    existing: Sequence[MasterVariantView],
    incoming: Sequence[StagingVariantView],
    variant_mapping: Sequence[VariantRowChoice],
    options_definition: Optional[Iterable[Any]] = None,
) -> VariantPlan:
    """
    관리자가 확정한 매핑을 검증하고 커밋 계획을 만듭니다. 아무것도 쓰지 않습니다.

    Raises:
        ValidationError: 알 수 없는/중복된 스테이징 variant, 누락된 행, 대상 상품 밖의 Link
        DuplicateVariantConflict: AddNew 조합이 기존 variant 또는 다른 AddNew와 중복
        EmptyDecisionError: 실제 작업이 하나도 없음
    """
    incoming_by_id = {sv.id: sv for sv in incoming}
    existing_ids = {v.id for v in existing}

    seen: set[uuid.UUID] = set()
    linked_targets: dict[uuid.UUID, uuid.UUID] = {}
    plan = VariantPlan()
    for row in variant_mapping:
        if row.staging_variant_id not in incoming_by_id:
            raise ValidationError(
                f"스테이징 상품에 속하지 않은 variant입니다: {row.staging_variant_id}",
                field="variant_mapping.staging_variant_id",
                actual_value=row.staging_variant_id,
            )
        if row.staging_variant_id in seen:
            raise ValidationError(
                f"같은 스테이징 variant에 대한 선택이 중복되었습니다: {row.staging_variant_id}",
                field="variant_mapping.staging_variant_id",
                actual_value=row.staging_variant_id,
            )
        seen.add(row.staging_variant_id)

        choice = row.choice
        if isinstance(choice, LinkChoice):
            if choice.master_variant_id not in existing_ids:
                raise ValidationError(
                    f"variant {choice.master_variant_id}는 대상 마스터 상품에 속하지 않습니다.",
                    field="variant_mapping.choice.master_variant_id",
                    actual_value=choice.master_variant_id,
                )
            # 한 머천트는 variant당 오퍼 하나
            if choice.master_variant_id in linked_targets:
                raise ValidationError(
                    f"스테이징 variant {linked_targets[choice.master_variant_id]}와 {row.staging_variant_id}가 "
                    f"같은 마스터 variant {choice.master_variant_id}에 연결되었습니다.",
                    field="variant_mapping.choice.master_variant_id",
                    actual_value=choice.master_variant_id,
                )
            linked_targets[choice.master_variant_id] = row.staging_variant_id
            plan.links.append((row.staging_variant_id, choice.master_variant_id))
        elif isinstance(choice, AddNewChoice):
            plan.add_new.append((row.staging_variant_id, OptionAttributes(choice.attributes)))
        else:
            plan.skipped.append(row.staging_variant_id)

    missing = [sv_id for sv_id in incoming_by_id if sv_id not in seen]
    if missing:
        raise ValidationError(
            "모든 스테이징 variant에 대해 Link / AddNew / Skip 중 하나를 선택해야 합니다.",
            field="variant_mapping",
            missing_staging_variant_ids=[str(m) for m in missing],
        )

    conflict = find_duplicate_conflict(existing, plan.add_new)
    if conflict is not None:
        raise conflict

    plan.additional = compute_additional_variants(
        options_definition, existing, (attrs for _, attrs in plan.add_new)
    )

    if plan.net_action_count == 0:
        raise EmptyDecisionError(skipped=len(plan.skipped))

    logger.debug(
        f"[VariantMatcher] plan links={len(plan.links)} add_new={len(plan.add_new)} "
        f"skipped={len(plan.skipped)} additional={len(plan.additional)}"
    )
    return plan
