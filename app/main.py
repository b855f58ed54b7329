import logging

from fastapi import FastAPI

from app.api.endpoints import health as health_endpoint, pricing, review
from app.db import engine
from app.models import CatalogBase
from app.settings import settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Rewards Catalog Engine")

app.include_router(review.router, prefix="/api/review", tags=["Review"])
app.include_router(pricing.router, prefix="/api/pricing", tags=["Pricing"])
app.include_router(health_endpoint.router, prefix="/api/health", tags=["Health"])


@app.on_event("startup")
def on_startup() -> None:
    # Auto-create tables (Alembic 사용이 기본)
    if settings.db_auto_create_tables:
        CatalogBase.metadata.create_all(bind=engine)
        logger.info("[Startup] 테이블 자동 생성 완료")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
