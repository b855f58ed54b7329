"""
Variant 매처 단위 테스트

추천 우선순위, 매핑 검증(중복 조합/누락 행/대상 밖 Link), 추가 조합 계산을 DB 없이 검증합니다.
"""
import uuid

import pytest

from app.schemas.review import AddNewChoice, LinkChoice, SkipChoice, VariantRowChoice
from app.services.catalog.option_set import OptionAttributes
from app.services.catalog.variant_matcher import (
    MATCH_BARCODE,
    MATCH_HINT,
    MATCH_NONE,
    MATCH_OPTIONS,
    MATCH_SKU,
    MasterVariantView,
    StagingVariantView,
    build_variant_plan,
    compute_additional_variants,
    match_variants,
    propose_choice,
    suggest_matches,
)
from app.services.errors import DuplicateVariantConflict, EmptyDecisionError, ValidationError


def master(attributes, gtin=None, internal_sku=None, mpn=None):
    return MasterVariantView(
        id=uuid.uuid4(),
        attributes=OptionAttributes(attributes),
        internal_sku=internal_sku or f"MV-{uuid.uuid4().hex[:8]}",
        gtin=gtin,
        mpn=mpn,
    )


def staging(attributes, raw_barcode=None, raw_sku=None, hint=None):
    return StagingVariantView(
        id=uuid.uuid4(),
        attributes=OptionAttributes(attributes),
        raw_sku=raw_sku,
        raw_barcode=raw_barcode,
        raw_price_minor=10000,
        suggested_master_variant_id=hint,
    )


def row(staging_variant, choice):
    return VariantRowChoice(staging_variant_id=staging_variant.id, choice=choice)


@pytest.mark.unit
class TestSuggestMatches:
    """연결 후보 추천"""

    def test_barcode_beats_options(self):
        red = master({"Color": "Red"}, gtin="8801234567890")
        blue = master({"Color": "Blue"})
        # 옵션은 Blue지만 바코드가 Red와 일치
        sv = staging({"Color": "Blue"}, raw_barcode=" 8801234567890 ")

        suggestion = suggest_matches([red, blue], [sv])[sv.id]
        assert suggestion.master_variant_id == red.id
        assert suggestion.match_reason == MATCH_BARCODE

    def test_sku_matches_internal_sku_or_mpn(self):
        by_sku = master({"Color": "Red"}, internal_sku="MV-RED")
        by_mpn = master({"Color": "Blue"}, mpn="MPN-BLUE")
        sv1 = staging({}, raw_sku="MV-RED")
        sv2 = staging({}, raw_sku="MPN-BLUE")

        suggestions = suggest_matches([by_sku, by_mpn], [sv1, sv2])
        assert suggestions[sv1.id].master_variant_id == by_sku.id
        assert suggestions[sv1.id].match_reason == MATCH_SKU
        assert suggestions[sv2.id].master_variant_id == by_mpn.id

    def test_option_key_match(self):
        red = master({"Color": "Red", "Size": "M"})
        sv = staging({"size": "m ", "COLOR": "red"})

        suggestion = suggest_matches([red], [sv])[sv.id]
        assert suggestion.master_variant_id == red.id
        assert suggestion.match_reason == MATCH_OPTIONS

    def test_upstream_hint_wins_when_it_points_inside_product(self):
        red = master({"Color": "Red"})
        blue = master({"Color": "Blue"})
        sv = staging({"Color": "Red"}, hint=blue.id)
        assert suggest_matches([red, blue], [sv])[sv.id].match_reason == MATCH_HINT

        # 다른 상품의 variant를 가리키는 힌트는 무시
        stray = staging({"Color": "Red"}, hint=uuid.uuid4())
        assert suggest_matches([red, blue], [stray])[stray.id].master_variant_id == red.id

    def test_no_match(self):
        sv = staging({"Color": "Green"})
        suggestion = suggest_matches([master({"Color": "Red"})], [sv])[sv.id]
        assert suggestion.master_variant_id is None
        assert suggestion.match_reason == MATCH_NONE

    def test_proposed_choice(self):
        red = master({"Color": "Red"})
        matched = staging({"Color": "Red"})
        unmatched = staging({"Color": "Green"})
        suggestions = suggest_matches([red], [matched, unmatched])

        assert propose_choice(matched, suggestions[matched.id]) == LinkChoice(master_variant_id=red.id)
        assert propose_choice(unmatched, suggestions[unmatched.id]) == AddNewChoice(attributes={"Color": "Green"})


@pytest.mark.unit
class TestMatchVariants:
    """variant 매칭 결과 요약"""

    def test_summary_and_merged_options(self):
        existing = [master({"Color": "Red", "Size": "S"}), master({"Color": "Red", "Size": "M"})]
        incoming = [staging({"Color": "Red", "Size": "M"}), staging({"Color": "Blue", "Size": "M"})]

        result = match_variants(uuid.uuid4(), uuid.uuid4(), existing, incoming)

        assert result.summary == {"total": 2, "matched": 1, "unmatched": 1, "combinations": 4}
        assert [d.name for d in result.merged_options] == ["Color", "Size"]
        assert result.rows[1].proposed_choice.type == "add_new"


@pytest.mark.unit
class TestBuildVariantPlan:
    """확정 매핑 검증"""

    def test_link_add_new_and_skip(self):
        red = master({"Color": "Red"})
        sv_red = staging({"Color": "Red"})
        sv_blue = staging({"Color": "Blue"})
        sv_green = staging({"Color": "Green"})

        plan = build_variant_plan(
            [red],
            [sv_red, sv_blue, sv_green],
            [
                row(sv_red, LinkChoice(master_variant_id=red.id)),
                row(sv_blue, AddNewChoice(attributes={"Color": "Blue"})),
                row(sv_green, SkipChoice()),
            ],
        )

        assert plan.links == [(sv_red.id, red.id)]
        assert [attrs.to_dict() for _, attrs in plan.add_new] == [{"Color": "Blue"}]
        assert plan.skipped == [sv_green.id]
        assert plan.additional == []
        assert plan.net_action_count == 2

    def test_add_new_duplicate_of_existing_is_conflict(self):
        """기존 Red에 "red " 추가 → 충돌"""
        red = master({"Color": "Red"})
        sv = staging({"Color": "red "})

        with pytest.raises(DuplicateVariantConflict) as excinfo:
            build_variant_plan([red], [sv], [row(sv, AddNewChoice(attributes={"Color": "red "}))])

        assert excinfo.value.existing_variant_id == red.id
        assert excinfo.value.option_key == "color=red"
        assert excinfo.value.staging_variant_id == sv.id

    def test_delimiter_in_value_is_not_a_duplicate(self):
        existing = master({"Pack": "2", "Size": "L"})
        sv = staging({"Pack": "2|size=L"})

        plan = build_variant_plan([existing], [sv], [row(sv, AddNewChoice(attributes={"Pack": "2|size=L"}))])

        assert [attrs.to_dict() for _, attrs in plan.add_new] == [{"Pack": "2|size=L"}]
        assert plan.add_new[0][1].canonical_key != existing.option_key

    def test_two_add_new_with_same_key_is_conflict(self):
        sv1 = staging({"Color": "Blue"})
        sv2 = staging({"Color": "BLUE"})

        with pytest.raises(DuplicateVariantConflict) as excinfo:
            build_variant_plan(
                [master({"Color": "Red"})],
                [sv1, sv2],
                [
                    row(sv1, AddNewChoice(attributes={"Color": "Blue"})),
                    row(sv2, AddNewChoice(attributes={"Color": "BLUE"})),
                ],
            )
        assert excinfo.value.existing_variant_id is None

    def test_all_skip_is_empty_decision(self):
        sv1 = staging({"Color": "Red"})
        sv2 = staging({"Color": "Blue"})

        with pytest.raises(EmptyDecisionError):
            build_variant_plan([master({"Color": "Red"})], [sv1, sv2], [row(sv1, SkipChoice()), row(sv2, SkipChoice())])

    def test_all_skip_with_additional_combination_is_not_empty(self):
        red = master({"Color": "Red"})
        sv = staging({"Color": "Red"})

        plan = build_variant_plan(
            [red],
            [sv],
            [row(sv, SkipChoice())],
            options_definition=[{"name": "Color", "values": ["Red", "Black"]}],
        )

        assert [a.to_dict() for a in plan.additional] == [{"Color": "Black"}]
        assert plan.net_action_count == 1

    def test_missing_row_is_rejected(self):
        sv1 = staging({"Color": "Red"})
        sv2 = staging({"Color": "Blue"})

        with pytest.raises(ValidationError) as excinfo:
            build_variant_plan([], [sv1, sv2], [row(sv1, AddNewChoice(attributes={"Color": "Red"}))])
        assert excinfo.value.context["missing_staging_variant_ids"] == [str(sv2.id)]

    def test_unknown_staging_variant_is_rejected(self):
        sv = staging({"Color": "Red"})
        foreign = staging({"Color": "Red"})

        with pytest.raises(ValidationError):
            build_variant_plan([], [sv], [row(foreign, SkipChoice())])

    def test_duplicate_row_is_rejected(self):
        sv = staging({"Color": "Red"})

        with pytest.raises(ValidationError):
            build_variant_plan([], [sv], [row(sv, SkipChoice()), row(sv, SkipChoice())])

    def test_link_outside_target_product_is_rejected(self):
        sv = staging({"Color": "Red"})

        with pytest.raises(ValidationError) as excinfo:
            build_variant_plan([master({"Color": "Red"})], [sv], [row(sv, LinkChoice(master_variant_id=uuid.uuid4()))])
        assert excinfo.value.field == "variant_mapping.choice.master_variant_id"

    def test_two_links_to_same_variant_are_rejected(self):
        red = master({"Color": "Red"})
        sv1 = staging({"Color": "Red"})
        sv2 = staging({"Color": "red"})

        with pytest.raises(ValidationError):
            build_variant_plan(
                [red],
                [sv1, sv2],
                [row(sv1, LinkChoice(master_variant_id=red.id)), row(sv2, LinkChoice(master_variant_id=red.id))],
            )


@pytest.mark.unit
class TestAdditionalVariants:
    """편집된 옵션 정의의 추가 조합"""

    def test_uncovered_combinations_only(self):
        existing = [master({"Color": "Red", "Size": "S"})]
        add_new = [OptionAttributes({"Color": "Blue", "Size": "S"})]
        definition = [{"name": "Color", "values": ["Red", "Blue"]}, {"name": "Size", "values": ["S", "M"]}]

        additional = compute_additional_variants(definition, existing, add_new)

        assert [a.to_dict() for a in additional] == [
            {"Color": "Red", "Size": "M"},
            {"Color": "Blue", "Size": "M"},
        ]

    def test_no_definition_means_no_additional(self):
        assert compute_additional_variants(None, [master({"Color": "Red"})], []) == []
        assert compute_additional_variants([], [], []) == []
