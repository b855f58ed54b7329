"""
옵션 셋 (OptionSet)

variant 옵션 속성의 canonical key 생성과 옵션 정의의 전체 조합(cross product) 계산을 담당합니다.
두 속성 맵은 canonical key가 같을 때에만 "같은 variant"로 간주합니다.
"""
from __future__ import annotations

import itertools
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

RESERVED_KEYS = frozenset({"sku"})
PAIR_DELIMITER = "|"
KEY_VALUE_SEPARATOR = "="
ESCAPE_CHAR = "\\"


def _normalize(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _escape(text: str) -> str:
    """구분자(|, =)와 이스케이프 문자 자체를 백슬래시로 이스케이프"""
    for ch in (ESCAPE_CHAR, PAIR_DELIMITER, KEY_VALUE_SEPARATOR):
        text = text.replace(ch, ESCAPE_CHAR + ch)
    return text


def canonical_key(attributes: Mapping[str, Any] | None) -> str:
    """
    속성 맵의 canonical key.

    SKU 키를 제외하고 키/값을 trim + 소문자화한 뒤 키 기준으로 정렬해 `key=value|key=value` 형태로 만듭니다.
    키/값 안의 `\\`, `|`, `=`는 백슬래시로 이스케이프하므로 서로 다른 속성 맵이 같은 key가 되지 않습니다.
    정규화 후 같은 이름이 되는 키가 여러 개면 처음 나온 값을 씁니다.
    빈 맵은 빈 문자열이며, "구분 옵션 없음"을 뜻합니다.
    """
    if not attributes:
        return ""

    pairs: dict[str, str] = {}
    for raw_key, raw_value in attributes.items():
        key = _normalize(raw_key)
        if not key or key in RESERVED_KEYS:
            continue
        pairs.setdefault(key, _normalize(raw_value))

    return PAIR_DELIMITER.join(
        f"{_escape(k)}{KEY_VALUE_SEPARATOR}{_escape(pairs[k])}" for k in sorted(pairs)
    )


class OptionAttributes(Mapping):
    """
    variant 옵션 속성 값 타입 (선언 순서를 유지하는 불변 str→str 맵).
    동등성과 해시는 canonical key 기준입니다.
    대소문자/공백만 다른 키는 하나로 합치며, 처음 나온 키 표기와 값을 유지합니다.
    """

    __slots__ = ("_items", "_key")

    def __init__(self, attributes: Mapping[str, Any] | None = None):
        items: dict[str, str] = {}
        seen: set[str] = set()
        for raw_key, raw_value in (attributes or {}).items():
            key = str(raw_key).strip()
            if not key or key.lower() in seen:
                continue
            seen.add(key.lower())
            items[key] = "" if raw_value is None else str(raw_value).strip()
        self._items = items
        self._key = canonical_key(items)

    @property
    def canonical_key(self) -> str:
        return self._key

    @property
    def is_empty(self) -> bool:
        return self._key == ""

    def to_dict(self) -> dict[str, str]:
        return dict(self._items)

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, OptionAttributes):
            return self._key == other._key
        if isinstance(other, Mapping):
            return self._key == canonical_key(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._key)

    def __repr__(self) -> str:
        return f"OptionAttributes({self._items!r})"


@dataclass(frozen=True)
class OptionDimension:
    """옵션 정의의 한 축 (예: Color → [Red, Blue])"""
    name: str
    values: tuple[str, ...] = ()


def coerce_option_definition(definition: Iterable[Any] | None) -> list[OptionDimension]:
    """dict / pydantic 모델 / OptionDimension 혼용 입력을 OptionDimension 리스트로 변환"""
    dims: list[OptionDimension] = []
    for item in definition or []:
        if isinstance(item, OptionDimension):
            dims.append(item)
            continue
        if isinstance(item, Mapping):
            name = item.get("name")
            values = item.get("values")
        else:
            name = getattr(item, "name", None)
            values = getattr(item, "values", None)
        dims.append(OptionDimension(name=str(name or ""), values=tuple(str(v) for v in (values or []) if v is not None)))
    return dims


def _effective_dimensions(definition: Iterable[Any] | None) -> list[tuple[str, list[str]]]:
    """
    조합 계산에 실제로 쓰이는 축만 남깁니다.
    이름이 비었거나 예약 키(SKU)인 축, 값이 하나도 없는 축은 제외합니다.
    같은 이름(대소문자 무시)의 축은 첫 번째 축에 합치고, 값 중복도 대소문자/공백 무시로 제거합니다.
    """
    return [(dim.name, list(dim.values)) for dim in merge_option_definitions(definition) if dim.values]


def cross_product(definition: Iterable[Any] | None) -> list[dict[str, str]]:
    """
    옵션 정의의 전체 조합.

    n개 축의 값 개수가 v1..vn이면 ∏vi개의 속성 맵을 반환합니다. 축 선언 순서를 따르며 결과는 항상 동일합니다.
    제외되지 않은 축이 하나도 없으면 빈 리스트입니다. 코어에서는 상한을 두지 않습니다.
    """
    dims = _effective_dimensions(definition)
    if not dims:
        return []

    names = [name for name, _ in dims]
    return [dict(zip(names, combo)) for combo in itertools.product(*(values for _, values in dims))]


def cross_product_count(definition: Iterable[Any] | None) -> int:
    """조합을 만들지 않고 전체 조합 수만 계산 (리포팅용)"""
    dims = _effective_dimensions(definition)
    if not dims:
        return 0
    return math.prod(len(values) for _, values in dims)


def derive_option_definition(attribute_maps: Iterable[Mapping[str, Any] | None]) -> list[OptionDimension]:
    """
    variant 속성 맵들로부터 옵션 정의를 도출합니다 (처음 등장한 순서 유지).
    옵션 정의는 별도로 저장하지 않고 매번 variant 속성에서 다시 계산합니다.
    """
    order: list[str] = []
    names: dict[str, str] = {}
    values: dict[str, list[str]] = {}
    seen: dict[str, set[str]] = {}

    for attributes in attribute_maps:
        for raw_key, raw_value in (attributes or {}).items():
            name = str(raw_key).strip()
            norm_name = name.lower()
            if not name or norm_name in RESERVED_KEYS:
                continue
            if norm_name not in names:
                order.append(norm_name)
                names[norm_name] = name
                values[norm_name] = []
                seen[norm_name] = set()
            value = "" if raw_value is None else str(raw_value).strip()
            if not value or value.lower() in seen[norm_name]:
                continue
            seen[norm_name].add(value.lower())
            values[norm_name].append(value)

    return [OptionDimension(name=names[n], values=tuple(values[n])) for n in order]


def merge_option_definitions(*definitions: Iterable[Any] | None) -> list[OptionDimension]:
    """여러 옵션 정의의 합집합 (기존 마스터 옵션 + 신규 스테이징 옵션)"""
    order: list[str] = []
    merged: dict[str, tuple[str, list[str], set[str]]] = {}
    for definition in definitions:
        for dim in coerce_option_definition(definition):
            name = dim.name.strip()
            norm_name = name.lower()
            if not name or norm_name in RESERVED_KEYS:
                continue
            if norm_name not in merged:
                order.append(norm_name)
                merged[norm_name] = (name, [], set())
            _, values, seen = merged[norm_name]
            for raw_value in dim.values:
                value = raw_value.strip()
                if value and value.lower() not in seen:
                    seen.add(value.lower())
                    values.append(value)

    return [OptionDimension(name=merged[n][0], values=tuple(merged[n][1])) for n in order]
