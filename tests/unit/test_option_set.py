"""
옵션 셋 단위 테스트

canonical key 정규화, 옵션 조합(cross product) 계산, 옵션 정의 도출/병합을 검증합니다.
"""
import pytest

from app.schemas.review import OptionDefinitionItem
from app.services.catalog.option_set import (
    OptionAttributes,
    OptionDimension,
    canonical_key,
    cross_product,
    cross_product_count,
    derive_option_definition,
    merge_option_definitions,
)


@pytest.mark.unit
class TestCanonicalKey:
    """canonical key 정규화"""

    def test_invariant_under_case_whitespace_and_order(self):
        a = {"Color": "Red", "Size": "M"}
        b = {" size ": "m", "COLOR": " red"}
        assert canonical_key(a) == canonical_key(b) == "color=red|size=m"

    def test_sku_key_is_ignored(self):
        assert canonical_key({"SKU": "ABC-1", "Color": "Red"}) == "color=red"
        assert canonical_key({"sku": "ABC-1"}) == ""

    def test_empty_map_is_empty_key(self):
        assert canonical_key({}) == ""
        assert canonical_key(None) == ""

    def test_none_value_normalizes_to_empty(self):
        assert canonical_key({"Color": None}) == "color="

    def test_delimiters_inside_values_are_escaped(self):
        packed = {"Pack": "2|size=L"}
        split = {"Pack": "2", "Size": "L"}
        assert canonical_key(split) == "pack=2|size=l"
        assert canonical_key(packed) == "pack=2\\|size\\=l"
        assert canonical_key(packed) != canonical_key(split)

    def test_backslash_is_escaped(self):
        assert canonical_key({"Note": "a\\|b"}) == "note=a\\\\\\|b"
        assert canonical_key({"Note": "a\\|b"}) != canonical_key({"Note": "a|b"})
        assert canonical_key({"a=b": "c"}) != canonical_key({"a": "b=c"})

    def test_first_of_same_normalized_keys_wins(self):
        assert canonical_key({"Color": "Red", "color ": "Blue"}) == "color=red"


@pytest.mark.unit
class TestOptionAttributes:
    """OptionAttributes 값 타입"""

    def test_equality_and_hash_follow_canonical_key(self):
        a = OptionAttributes({"Color": "Red"})
        b = OptionAttributes({"color": "red "})
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_keeps_declared_order_and_trims(self):
        attrs = OptionAttributes({" Size ": " M ", "Color": "Red"})
        assert list(attrs) == ["Size", "Color"]
        assert attrs.to_dict() == {"Size": "M", "Color": "Red"}

    def test_compares_with_plain_mapping(self):
        assert OptionAttributes({"Color": "Red"}) == {"COLOR": "red"}

    def test_is_empty(self):
        assert OptionAttributes({}).is_empty
        assert OptionAttributes({"SKU": "X"}).is_empty
        assert not OptionAttributes({"Color": "Red"}).is_empty

    def test_keys_differing_in_case_or_whitespace_are_merged(self):
        attrs = OptionAttributes({"Color": "Red", "color ": "Blue", "Size": "M"})
        assert attrs.to_dict() == {"Color": "Red", "Size": "M"}
        assert len(attrs) == 2
        assert attrs.canonical_key == "color=red|size=m"

    def test_values_with_delimiters_are_distinct(self):
        assert OptionAttributes({"Pack": "2|size=L"}) != OptionAttributes({"Pack": "2", "Size": "L"})


@pytest.mark.unit
class TestCrossProduct:
    """옵션 조합 계산"""

    def test_count_is_product_of_value_counts(self):
        definition = [
            {"name": "Color", "values": ["Red", "Blue", "Green"]},
            {"name": "Size", "values": ["S", "M"]},
            {"name": "Material", "values": ["Cotton", "Linen"]},
        ]
        combos = cross_product(definition)
        assert len(combos) == 12
        assert cross_product_count(definition) == 12

    def test_declaration_order_is_preserved(self):
        combos = cross_product([
            OptionDimension("Color", ("Red", "Blue")),
            OptionDimension("Size", ("S", "M")),
        ])
        assert combos == [
            {"Color": "Red", "Size": "S"},
            {"Color": "Red", "Size": "M"},
            {"Color": "Blue", "Size": "S"},
            {"Color": "Blue", "Size": "M"},
        ]

    def test_blank_name_and_empty_values_are_excluded(self):
        definition = [
            {"name": "Color", "values": ["Red", "Blue"]},
            {"name": "   ", "values": ["X", "Y"]},
            {"name": "Size", "values": []},
        ]
        assert cross_product(definition) == [{"Color": "Red"}, {"Color": "Blue"}]
        assert cross_product_count(definition) == 2

    def test_all_options_excluded_gives_empty(self):
        assert cross_product([{"name": "Size", "values": []}]) == []
        assert cross_product([]) == []
        assert cross_product(None) == []
        assert cross_product_count([{"name": "", "values": ["A"]}]) == 0

    def test_duplicate_values_are_collapsed(self):
        definition = [{"name": "Color", "values": ["Red", "red ", "Blue"]}]
        assert cross_product(definition) == [{"Color": "Red"}, {"Color": "Blue"}]

    def test_accepts_pydantic_items(self):
        definition = [
            OptionDefinitionItem(name="Color", values=["Red"]),
            OptionDefinitionItem(name="Size", values=["S", "M"]),
        ]
        assert cross_product_count(definition) == 2

    def test_count_without_materializing(self):
        definition = [{"name": f"Opt{i}", "values": [str(v) for v in range(10)]} for i in range(6)]
        assert cross_product_count(definition) == 10 ** 6


@pytest.mark.unit
class TestOptionDefinitions:
    """옵션 정의 도출/병합"""

    def test_derive_keeps_first_seen_order(self):
        definition = derive_option_definition([
            {"Color": "Red", "Size": "S"},
            {"color": "Blue", "Size": "M", "SKU": "ignored"},
            {"Size": "s"},
        ])
        assert definition == [
            OptionDimension("Color", ("Red", "Blue")),
            OptionDimension("Size", ("S", "M")),
        ]

    def test_merge_is_union(self):
        existing = [OptionDimension("Color", ("Red",))]
        incoming = [{"name": "color", "values": ["Red", "Blue"]}, {"name": "Size", "values": ["L"]}]
        merged = merge_option_definitions(existing, incoming)
        assert merged == [
            OptionDimension("Color", ("Red", "Blue")),
            OptionDimension("Size", ("L",)),
        ]
