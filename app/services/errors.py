"""
Catalog / Pricing Exception Classes

정합화 결정 및 가격 산정 과정의 구조화된 예외 정의.
모든 예외는 to_dict()로 API 응답 본문을 만들 수 있습니다.
"""
from typing import Optional, Dict, Any


# resolver가 규칙을 찾지 못했을 때 결과 객체에 실리는 사유 코드 (예외 아님)
NO_APPLICABLE_RULE = "NO_APPLICABLE_RULE"


class CatalogError(Exception):
    """
    Base exception for all catalog/pricing errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        context: 추가 컨텍스트 정보
        recoverable: 재시도로 해결될 수 있는지 여부
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable
        }


class ValidationError(CatalogError):
    """
    필수값 누락, 잘못된 slug, 범위를 벗어난 마진/환산율 등 입력 검증 실패.
    호출자에게 그대로 전달되며 자동 재시도하지 않습니다.
    """

    def __init__(self, message: str, field: Optional[str] = None, actual_value: Optional[Any] = None, **kwargs):
        context = {
            "field": field,
            "actual_value": str(actual_value) if actual_value is not None else None,
        }
        context.update(kwargs)
        super().__init__(message=message, error_code="VALIDATION_ERROR", context=context)
        self.field = field
        self.actual_value = actual_value


class NotFoundError(CatalogError):
    def __init__(self, message: str, entity: Optional[str] = None, entity_id: Optional[Any] = None):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            context={"entity": entity, "entity_id": str(entity_id) if entity_id is not None else None},
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateVariantConflict(CatalogError):
    """
    새로 추가하려는 variant 조합이 기존 마스터 variant의 canonical key와 충돌.

    Attributes:
        staging_variant_id: 충돌한 스테이징 variant (추가 조합이면 None)
        existing_variant_id: 충돌 대상 마스터 variant (같은 결정 안의 중복이면 None)
        option_key: 충돌한 canonical key
    """

    def __init__(
        self,
        message: str,
        option_key: str,
        staging_variant_id: Optional[Any] = None,
        existing_variant_id: Optional[Any] = None,
        attributes: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            message=message,
            error_code="DUPLICATE_VARIANT_CONFLICT",
            context={
                "option_key": option_key,
                "staging_variant_id": str(staging_variant_id) if staging_variant_id is not None else None,
                "existing_variant_id": str(existing_variant_id) if existing_variant_id is not None else None,
                "attributes": attributes or {},
            },
        )
        self.option_key = option_key
        self.staging_variant_id = staging_variant_id
        self.existing_variant_id = existing_variant_id


class EmptyDecisionError(CatalogError):
    """LINK_EXISTING 결정에 실제로 반영할 작업이 하나도 없음"""

    def __init__(self, message: str = "반영할 variant 작업이 없습니다 (모두 Skip, 추가 조합 없음)", **kwargs):
        super().__init__(message=message, error_code="EMPTY_DECISION", context=kwargs)


class OfferConflict(CatalogError):
    """
    (merchant, variant) 오퍼 유일성 위반. 동시성 경합으로 발생하므로 재조회 후 1회 재시도 대상입니다.
    """

    def __init__(self, message: str, merchant_id: Optional[Any] = None, variant_id: Optional[Any] = None):
        super().__init__(
            message=message,
            error_code="OFFER_CONFLICT",
            context={
                "merchant_id": str(merchant_id) if merchant_id is not None else None,
                "variant_id": str(variant_id) if variant_id is not None else None,
            },
            recoverable=True,
        )
        self.merchant_id = merchant_id
        self.variant_id = variant_id


class InvalidStateTransition(CatalogError):
    """종결 상태(APPROVED/REJECTED)의 스테이징 상품에 다시 결정을 적용하려는 경우"""

    def __init__(self, message: str, current_status: str, requested_action: str):
        super().__init__(
            message=message,
            error_code="INVALID_STATE_TRANSITION",
            context={"current_status": current_status, "requested_action": requested_action},
        )
        self.current_status = current_status
        self.requested_action = requested_action


class DuplicateRuleScope(CatalogError):
    """같은 (merchant, brand, category) 범위에 이미 활성 마진 규칙이 존재"""

    def __init__(self, message: str, existing_rule_id: Optional[Any] = None):
        super().__init__(
            message=message,
            error_code="DUPLICATE_RULE_SCOPE",
            context={"existing_rule_id": str(existing_rule_id) if existing_rule_id is not None else None},
        )
        self.existing_rule_id = existing_rule_id
