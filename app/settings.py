from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # database_url: str = "postgresql+psycopg://rewards@/rewards_catalog?host=/var/run/postgresql&port=5432"
    database_url: str = "postgresql+psycopg://localhost/rewards_catalog"
    db_auto_create_tables: bool = False

    # 통화/포인트
    default_currency_code: str = "INR"
    supported_currency_codes: list[str] = ["INR", "USD", "EUR", "GBP"]
    currency_minor_units: dict[str, int] = {
        "INR": 2,
        "USD": 2,
        "EUR": 2,
        "GBP": 2,
    }

    # 리뷰/정합화
    offer_conflict_retry_count: int = 2  # tenacity 시도 횟수 (최초 1회 + 재시도 1회)
    default_offer_status: str = "LIVE"
    internal_sku_prefix: str = "MV"
    option_preview_limit: int = 200  # UI 미리보기 표시 한도 (코어는 전체 조합 수를 계산)
    review_queue_page_size: int = 50

    log_level: str = "INFO"

    def get_minor_units(self, currency_code: str | None) -> int:
        """통화별 소수 자릿수 (미등록 통화는 2자리로 간주)"""
        if not currency_code:
            return 2
        return self.currency_minor_units.get(currency_code.strip().upper(), 2)

    def is_supported_currency(self, currency_code: str | None) -> bool:
        if not currency_code:
            return False
        return currency_code.strip().upper() in self.supported_currency_codes

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if v and not v.startswith("postgresql"):
            raise ValueError("DB URL은 'postgresql'로 시작해야 합니다.")
        return v

    @field_validator("supported_currency_codes")
    @classmethod
    def validate_currency_codes(cls, v: list[str]) -> list[str]:
        codes = [c.strip().upper() for c in v if c and c.strip()]
        if not codes:
            raise ValueError("지원 통화는 최소 1개 이상이어야 합니다.")
        for code in codes:
            if len(code) != 3 or not code.isalpha():
                raise ValueError(f"통화 코드는 3자리 영문이어야 합니다: {code}")
        return codes

    @field_validator("default_currency_code")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("기본 통화 코드는 3자리 영문이어야 합니다.")
        return code

    @field_validator("offer_conflict_retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        if not 1 <= v <= 5:
            raise ValueError("offer_conflict_retry_count는 1에서 5 사이여야 합니다.")
        return v

    @field_validator("default_offer_status")
    @classmethod
    def validate_offer_status(cls, v: str) -> str:
        if v not in ("LIVE", "PENDING_REVIEW"):
            raise ValueError("default_offer_status는 LIVE 또는 PENDING_REVIEW여야 합니다.")
        return v

    @field_validator("option_preview_limit", "review_queue_page_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("값은 1 이상이어야 합니다.")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
