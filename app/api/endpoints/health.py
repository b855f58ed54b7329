import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.db import get_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/db")
def get_db_health(session: Session = Depends(get_session)):
    """
    데이터베이스 연결 상태를 확인합니다.
    """
    db_ok = False
    try:
        db_ok = session.execute(text("SELECT 1")).scalar_one() == 1
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "ok" if db_ok else "error",
    }
