"""
API 엔드포인트 통합 테스트 (TestClient + in-memory SQLite)

도메인 예외가 HTTP 상태 코드와 error.to_dict() 본문으로 변환되는지 확인합니다.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.db import get_session
from app.main import app


@pytest.fixture
def client(test_session):
    def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def iso_days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


@pytest.mark.integration
class TestReviewApi:

    def test_queue_and_variant_matches(self, client, catalog_factory):
        merchant = catalog_factory.merchant()
        product = catalog_factory.product(variants=[{"Color": "Red"}])
        staging = catalog_factory.staging(
            merchant, suggested_product=product, confidence=80, variants=[{"raw_options": {"Color": "Red"}}]
        )

        queue = client.get("/api/review/queue")
        assert queue.status_code == 200
        assert queue.json()[0]["staging_id"] == str(staging.id)
        assert queue.json()[0]["match_confidence"] == 80

        matches = client.get(f"/api/review/{staging.id}/variants")
        assert matches.status_code == 200
        body = matches.json()
        assert body["master_product_id"] == str(product.id)
        assert body["matches"][0]["match_reason"] == "OPTION_MATCH"
        assert body["matches"][0]["proposed_choice"]["type"] == "link"
        assert body["summary"]["matched"] == 1

    def test_reject_then_conflict(self, client, catalog_factory):
        staging = catalog_factory.staging(catalog_factory.merchant())
        url = f"/api/review/{staging.id}/decision"

        first = client.post(url, json={"action": "REJECT", "rejection_reason": "카탈로그 정책 위반"})
        assert first.status_code == 200
        assert first.json()["status"] == "REJECTED"

        second = client.post(url, json={"action": "REJECT", "rejection_reason": "again"})
        assert second.status_code == 409
        assert second.json()["detail"]["error_code"] == "INVALID_STATE_TRANSITION"

    def test_create_new(self, client, catalog_factory):
        staging = catalog_factory.staging(
            catalog_factory.merchant(), variants=[{"raw_options": {"Size": "S"}}, {"raw_options": {"Size": "M"}}]
        )

        response = client.post(f"/api/review/{staging.id}/decision", json={"action": "CREATE_NEW", "title": "Court Classic"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "APPROVED"
        assert len(body["created_variant_ids"]) == 2
        assert len(body["created_offer_ids"]) == 2

    def test_error_status_codes(self, client, catalog_factory):
        merchant = catalog_factory.merchant()
        product = catalog_factory.product(variants=[{"Color": "Red"}])
        staging = catalog_factory.staging(merchant, variants=[{"raw_options": {"Color": "Red"}}])
        url = f"/api/review/{staging.id}/decision"
        sv_id = str(staging.variants[0].id)

        missing_title = client.post(url, json={"action": "CREATE_NEW", "title": ""})
        assert missing_title.status_code == 400
        assert missing_title.json()["detail"]["context"]["field"] == "title"

        all_skip = client.post(url, json={
            "action": "LINK_EXISTING",
            "master_product_id": str(product.id),
            "variant_mapping": [{"staging_variant_id": sv_id, "choice": {"type": "skip"}}],
        })
        assert all_skip.status_code == 422
        assert all_skip.json()["detail"]["error_code"] == "EMPTY_DECISION"

        duplicate = client.post(url, json={
            "action": "LINK_EXISTING",
            "master_product_id": str(product.id),
            "variant_mapping": [{"staging_variant_id": sv_id, "choice": {"type": "add_new", "attributes": {"color": "RED"}}}],
        })
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["error_code"] == "DUPLICATE_VARIANT_CONFLICT"

        not_found = client.post(f"/api/review/{uuid.uuid4()}/decision", json={"action": "REJECT", "rejection_reason": "x"})
        assert not_found.status_code == 404

        unknown_action = client.post(url, json={"action": "MERGE"})
        assert unknown_action.status_code == 422


@pytest.mark.integration
class TestPricingApi:

    def test_margin_rule_lifecycle(self, client, catalog_factory):
        merchant = catalog_factory.merchant()
        payload = {"merchant_id": str(merchant.id), "margin_percentage": "4.75", "valid_from": iso_days_ago(1)}

        created = client.post("/api/pricing/margin-rules", json=payload)
        assert created.status_code == 201
        rule_id = created.json()["id"]

        duplicate = client.post("/api/pricing/margin-rules", json=payload)
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["context"]["existing_rule_id"] == rule_id

        resolved = client.get("/api/pricing/margin", params={"merchantId": str(merchant.id)})
        assert resolved.status_code == 200
        assert resolved.json()["found"] is True
        assert resolved.json()["rule_id"] == rule_id

        deactivated = client.post(f"/api/pricing/margin-rules/{rule_id}/deactivate")
        assert deactivated.json()["is_active"] is False
        assert client.get("/api/pricing/margin", params={"merchantId": str(merchant.id)}).json()["found"] is False

    def test_margin_rule_validation(self, client, catalog_factory):
        merchant = catalog_factory.merchant()

        out_of_range = client.post("/api/pricing/margin-rules", json={
            "merchant_id": str(merchant.id), "margin_percentage": "150", "valid_from": iso_days_ago(1),
        })
        assert out_of_range.status_code == 400

        unknown_merchant = client.post("/api/pricing/margin-rules", json={
            "merchant_id": str(uuid.uuid4()), "margin_percentage": "5", "valid_from": iso_days_ago(1),
        })
        assert unknown_merchant.status_code == 404

    def test_partner_rate(self, client, catalog_factory):
        partner = catalog_factory.partner()
        url = f"/api/pricing/partners/{partner.id}/rate"

        assert client.get(url).json()["found"] is False
        assert client.post(url, json={"points_to_currency_rate": "0.25"}).status_code == 201
        assert client.post(url, json={"points_to_currency_rate": "0"}).status_code == 400

        body = client.get(url).json()
        assert body["found"] is True
        assert body["currency_code"] == "INR"
        assert len(body["history"]) == 1

        assert client.get(f"/api/pricing/partners/{uuid.uuid4()}/rate").status_code == 404

    def test_points_conversion(self, client):
        assert client.get("/api/pricing/points", params={"amountMinor": 10000, "rate": "0.25"}).json()["points"] == 400
        assert client.get("/api/pricing/points", params={"amountMinor": 10001, "rate": "0.25"}).json()["points"] == 401
        assert client.get("/api/pricing/points", params={"amountMinor": 10000, "rate": "0"}).status_code == 400

    def test_reprice(self, client, catalog_factory):
        merchant = catalog_factory.merchant()

        response = client.post(f"/api/pricing/merchants/{merchant.id}/reprice")

        assert response.status_code == 200
        assert response.json() == {"merchant_id": str(merchant.id), "total": 0, "changed": 0, "offers": []}


@pytest.mark.integration
def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/api/health/db").json()["database"] == "ok"
