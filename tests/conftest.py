"""Pytest configuration and fixtures."""

import uuid

import pytest
from sqlalchemy import JSON, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import (
    Brand,
    CatalogBase,
    Category,
    LoyaltyPartner,
    Merchant,
    Product,
    ProductCategory,
    StagingMedia,
    StagingProduct,
    StagingVariant,
    Variant,
)
from app.services.catalog.option_set import canonical_key


# 테스트용 메모리 SQLite 엔진 (TestClient 스레드와 같은 DB를 공유하도록 StaticPool)
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False  # 테스트 로그 줄이기
)


# pysqlite는 자체 트랜잭션 처리 때문에 SAVEPOINT(begin_nested)가 깨지므로 BEGIN을 직접 발행
@event.listens_for(test_engine, "connect")
def _sqlite_disable_implicit_begin(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _sqlite_emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                # JSONB → JSON으로 변경 (SQLite 호환)
                column.type = JSON()


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 새로운 메모리 DB 생성.
    """
    _patch_jsonb_to_json(CatalogBase)
    CatalogBase.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
        session.commit()  # 테스트 성공 시 commit
    except Exception:
        session.rollback()  # 실패 시 rollback
        raise
    finally:
        session.close()
        # 모든 테이블 삭제
        CatalogBase.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """
    기존 코드 호환용 alias.
    test_session과 동일하게 동작.
    """
    yield test_session


# ==================== 데이터 팩토리 ====================

@pytest.fixture
def catalog_factory(test_session: Session):
    """
    카탈로그 테스트 데이터를 만드는 헬퍼 모음.
    모든 헬퍼는 flush까지 수행합니다.
    """
    return CatalogFactory(test_session)


class CatalogFactory:
    def __init__(self, session: Session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def merchant(self, name: str = "Acme Store") -> Merchant:
        return self._save(Merchant(id=uuid.uuid4(), name=name))

    def brand(self, name: str = "Acme") -> Brand:
        return self._save(Brand(id=uuid.uuid4(), name=name, slug=f"{name.lower()}-{uuid.uuid4().hex[:6]}"))

    def category(self, name: str = "Shoes") -> Category:
        return self._save(Category(id=uuid.uuid4(), name=name, slug=f"{name.lower()}-{uuid.uuid4().hex[:6]}"))

    def partner(self, name: str = "HDFC Rewards") -> LoyaltyPartner:
        return self._save(LoyaltyPartner(id=uuid.uuid4(), name=name))

    def product(self, title: str = "Runner Shoe", brand=None, categories=(), variants=(), slug: str | None = None) -> Product:
        product = Product(
            id=uuid.uuid4(),
            title=title,
            slug=slug or f"runner-shoe-{uuid.uuid4().hex[:6]}",
            brand_id=brand.id if brand else None,
            specifications={},
            status="ACTIVE",
        )
        for position, category in enumerate(categories):
            product.category_links.append(ProductCategory(category_id=category.id, position=position))
        self._save(product)
        for attributes in variants:
            self.variant(product, attributes)
        return product

    def variant(self, product: Product, attributes: dict, gtin: str | None = None, mpn: str | None = None) -> Variant:
        return self._save(Variant(
            id=uuid.uuid4(),
            product_id=product.id,
            internal_sku=f"MV-{uuid.uuid4().hex[:10].upper()}",
            gtin=gtin,
            mpn=mpn,
            attributes=dict(attributes),
            option_key=canonical_key(attributes),
        ))

    def staging(
        self,
        merchant: Merchant,
        variants=(),
        media_urls=(),
        status: str = "NEEDS_REVIEW",
        title: str = "Runner Shoe (merchant feed)",
        suggested_product: Product | None = None,
        confidence: int | None = None,
    ) -> StagingProduct:
        """variants: dict(raw_options=..., raw_price_minor=..., raw_sku=..., raw_barcode=...) 목록"""
        staging = self._save(StagingProduct(
            id=uuid.uuid4(),
            merchant_id=merchant.id,
            external_product_id="ext-1001",
            raw_title=title,
            status=status,
            suggested_product_id=suggested_product.id if suggested_product else None,
            match_confidence_score=confidence,
        ))
        for position, data in enumerate(variants):
            self._save(StagingVariant(
                id=uuid.uuid4(),
                staging_product_id=staging.id,
                external_variant_id=f"ext-v-{position}",
                raw_sku=data.get("raw_sku"),
                raw_barcode=data.get("raw_barcode"),
                raw_price_minor=data.get("raw_price_minor", 10000),
                raw_options=data.get("raw_options"),
                raw_inventory_quantity=data.get("raw_inventory_quantity", 5),
                position=position,
            ))
        for position, url in enumerate(media_urls):
            self._save(StagingMedia(id=uuid.uuid4(), staging_product_id=staging.id, source_url=url, position=position))
        self.session.refresh(staging)
        return staging


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (in-memory SQLite)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
