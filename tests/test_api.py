"""API tests for contract and notification endpoints"""
from datetime import timedelta

from .conftest import SIGNATURE, mint_token


def create_booking_contract(client, auth, booking):
    response = client.post(
        "/contracts",
        json={"engagementType": "booking", "engagementId": booking.id},
        headers=auth.buyer,
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get("/contracts")
        assert response.status_code in (401, 403)

    def test_expired_token(self, client, buyer):
        token = mint_token(buyer.id, expires_in=timedelta(minutes=-5))
        response = client.get("/contracts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_malformed_token(self, client):
        response = client.get("/contracts", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_unknown_profile(self, client):
        token = mint_token("00000000-0000-0000-0000-000000000000")
        response = client.get("/contracts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestContractEndpoints:
    def test_create_is_idempotent(self, client, auth, booking):
        first = create_booking_contract(client, auth, booking)
        second = create_booking_contract(client, auth, booking)

        assert first["created"] is True
        assert first["status"] == "pending_buyer"
        assert second == {**first, "created": False}

    def test_invalid_engagement_type(self, client, auth, booking):
        response = client.post(
            "/contracts",
            json={"engagementType": "invoice", "engagementId": booking.id},
            headers=auth.buyer,
        )
        assert response.status_code == 422

    def test_full_signing_flow(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]

        response = client.post(f"/contracts/{contract_id}/sign", json={}, headers=auth.buyer)
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "pending_seller"
        assert response.json()["signedAtBuyer"] is not None

        response = client.post(
            f"/contracts/{contract_id}/sign",
            json={"signatureData": SIGNATURE, "signatureMethod": "drawn"},
            headers=auth.seller,
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "executed"
        assert body["executedAt"] is not None

        detail = client.get(f"/contracts/{contract_id}", headers=auth.seller).json()
        assert detail["role"] == "seller"
        assert detail["bindingTerms"]["warranty_days"] == 90
        assert {s["signature_method"] for s in detail["signatures"]} == {"digital", "drawn"}
        assert detail["versionCount"] == 1

        notifications = client.get("/notifications", headers=auth.buyer).json()
        assert [n["notification_type"] for n in notifications] == ["contract_executed"]

    def test_list_filters_by_status(self, client, auth, booking):
        create_booking_contract(client, auth, booking)

        assert len(client.get("/contracts", headers=auth.seller).json()) == 1
        assert client.get("/contracts?status=executed", headers=auth.buyer).json() == []
        assert client.get("/contracts", headers=auth.outsider).json() == []

    def test_outsider_gets_not_found(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]
        response = client.get(f"/contracts/{contract_id}", headers=auth.outsider)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_error_message_follows_accept_language(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]
        client.post(f"/contracts/{contract_id}/sign", json={}, headers=auth.buyer)

        english = client.post(f"/contracts/{contract_id}/sign", json={}, headers=auth.buyer)
        arabic = client.post(
            f"/contracts/{contract_id}/sign",
            json={},
            headers={**auth.buyer, "Accept-Language": "ar-SA,ar;q=0.9,en;q=0.8"},
        )

        assert english.status_code == arabic.status_code == 409
        assert english.json()["detail"]["message"] == "You have already signed this contract"
        assert arabic.json()["detail"]["message"] == "لقد قمت بتوقيع هذا العقد بالفعل"
        assert arabic.json()["detail"]["code"] == "invalid_state"

    def test_withdraw(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]
        client.post(f"/contracts/{contract_id}/sign", json={}, headers=auth.buyer)

        response = client.post(f"/contracts/{contract_id}/withdraw", headers=auth.buyer)
        assert response.status_code == 200
        assert client.get(f"/contracts/{contract_id}", headers=auth.buyer).status_code == 404

        again = client.post(f"/contracts/{contract_id}/withdraw", headers=auth.buyer)
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "already_resolved"

    def test_reject(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]
        response = client.post(f"/contracts/{contract_id}/reject", headers=auth.seller)
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

        sign = client.post(f"/contracts/{contract_id}/sign", json={}, headers=auth.buyer)
        assert sign.status_code == 409

    def test_edit_binding_terms(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]

        response = client.patch(
            f"/contracts/{contract_id}/binding-terms",
            json={"warranty_days": 180, "use_deposit_escrow": True},
            headers=auth.buyer,
        )
        assert response.status_code == 200, response.text
        assert response.json()["version"] == 2

        detail = client.get(f"/contracts/{contract_id}", headers=auth.buyer).json()
        assert detail["bindingTerms"]["warranty_days"] == 180
        assert detail["bindingTerms"]["use_deposit_escrow"] is True

        seller_edit = client.patch(
            f"/contracts/{contract_id}/binding-terms",
            json={"warranty_days": 1},
            headers=auth.seller,
        )
        assert seller_edit.status_code == 409

    def test_orphaned_signatures_empty(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]
        client.post(f"/contracts/{contract_id}/sign", json={}, headers=auth.buyer)
        response = client.get(f"/contracts/{contract_id}/orphaned-signatures", headers=auth.buyer)
        assert response.status_code == 200
        assert response.json() == []


class TestNotificationEndpoints:
    def test_mark_read(self, client, auth, booking):
        contract_id = create_booking_contract(client, auth, booking)["contractId"]
        client.post(f"/contracts/{contract_id}/reject", headers=auth.seller)

        notifications = client.get("/notifications", headers=auth.buyer).json()
        assert len(notifications) == 1
        notification_id = notifications[0]["id"]

        response = client.post(f"/notifications/{notification_id}/read", headers=auth.buyer)
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        assert client.get("/notifications?unread_only=true", headers=auth.buyer).json() == []
        other = client.post(f"/notifications/{notification_id}/read", headers=auth.seller)
        assert other.status_code == 404
