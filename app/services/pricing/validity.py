from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """naive datetime(SQLite 등)은 UTC로 간주"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_within_window(valid_from: datetime | None, valid_to: datetime | None, as_of: datetime) -> bool:
    """valid_from <= as_of <= valid_to (valid_to가 없으면 종료 없음)"""
    at = ensure_utc(as_of)
    start = ensure_utc(valid_from)
    end = ensure_utc(valid_to)
    if start is None or start > at:
        return False
    if end is not None and at > end:
        return False
    return True


def sort_timestamp(value: datetime | None) -> float:
    """정렬용 타임스탬프 (없으면 가장 오래된 것으로 취급)"""
    normalized = ensure_utc(value)
    return normalized.timestamp() if normalized is not None else float("-inf")
