import hashlib
import hmac
import json
import time

import pytest

from app.webhook_security import WebhookSignatureError, verify_stripe_signature

SECRET = "whsec_test_secret"


def sign(payload: bytes, secret: str = SECRET, timestamp=None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.".encode("utf-8") + payload, hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestVerifyStripeSignature:
    payload = b'{"id": "evt_1", "type": "ping"}'

    def test_valid_signature(self):
        verify_stripe_signature(self.payload, sign(self.payload), SECRET)

    def test_any_matching_v1_signature_is_accepted(self):
        header = sign(self.payload) + ",v1=deadbeef"
        verify_stripe_signature(self.payload, header, SECRET)

    def test_tampered_payload(self):
        header = sign(self.payload)
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(b'{"id": "evt_2"}', header, SECRET)

    def test_wrong_secret(self):
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(self.payload, sign(self.payload, secret="other"), SECRET)

    def test_timestamp_outside_tolerance(self):
        header = sign(self.payload, timestamp=1_700_000_000)
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(self.payload, header, SECRET, now=1_700_000_301)

    def test_timestamp_at_tolerance_edge(self):
        header = sign(self.payload, timestamp=1_700_000_000)
        verify_stripe_signature(self.payload, header, SECRET, now=1_700_000_300)

    @pytest.mark.parametrize("header", [None, "", "v1=abc", "t=123", "garbage"])
    def test_malformed_headers(self, header):
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(self.payload, header, SECRET)

    def test_missing_secret(self):
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(self.payload, sign(self.payload), None)


def post_event(client, event: dict, signature=True):
    payload = json.dumps(event).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if signature:
        headers["stripe-signature"] = sign(payload)
    return client.post("/webhooks/stripe", content=payload, headers=headers)


class TestStripeWebhookEndpoint:
    def test_missing_signature(self, client):
        response = post_event(client, {"type": "ping"}, signature=False)
        assert response.status_code == 400
        assert response.json() == {"error": "No signature"}

    def test_invalid_signature(self, client):
        response = client.post(
            "/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": f"t={int(time.time())},v1=0000"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}

    def test_unknown_event_is_acknowledged(self, client):
        response = post_event(client, {"id": "evt_1", "type": "invoice.created", "data": {"object": {}}})
        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_checkout_completed_upgrades_user(self, client, db, user):
        event = {
            "id": "evt_checkout",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "customer": "cus_123",
                    "subscription": "sub_123",
                    "metadata": {"user_id": str(user.id), "plan": "team"},
                }
            },
        }
        assert post_event(client, event).status_code == 200

        db.expire_all()
        db.refresh(user)
        assert user.plan == "team"
        assert user.subscription_status == "active"
        assert user.stripe_customer_id == "cus_123"
        assert user.stripe_subscription_id == "sub_123"

    def test_subscription_updated_maps_price_to_plan(self, client, db, user):
        user.stripe_customer_id = "cus_123"
        user.plan = "pro"
        user.pending_plan = "team"
        db.commit()

        event = {
            "type": "customer.subscription.updated",
            "data": {
                "object": {
                    "id": "sub_123",
                    "customer": "cus_123",
                    "status": "active",
                    "items": {"data": [{"price": {"id": "price_team_monthly"}}]},
                }
            },
        }
        assert post_event(client, event).status_code == 200

        db.expire_all()
        db.refresh(user)
        assert user.plan == "team"
        assert user.pending_plan is None

    def test_inactive_subscription_falls_back_to_free(self, client, db, user):
        user.stripe_customer_id = "cus_123"
        user.plan = "pro"
        db.commit()

        event = {
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_123", "customer": "cus_123", "status": "past_due"}},
        }
        assert post_event(client, event).status_code == 200

        db.expire_all()
        db.refresh(user)
        assert user.plan == "free"
        assert user.subscription_status == "past_due"

    def test_subscription_deleted(self, client, db, user):
        user.stripe_customer_id = "cus_123"
        user.plan = "pro"
        user.subscription_status = "active"
        db.commit()

        event = {
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_123", "customer": "cus_123"}},
        }
        assert post_event(client, event).status_code == 200

        db.expire_all()
        db.refresh(user)
        assert user.plan == "free"
        assert user.subscription_status == "canceled"
