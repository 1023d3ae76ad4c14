import pytest
import requests
import stripe

from api.integration import providers
from api.integration.models import Integration


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


@pytest.mark.django_db
class TestIntegrations:
    def test_admin_only(self, manager_client):
        assert manager_client.get("/api/integrations/").status_code == 403

    def test_list_creates_every_provider(self, admin_client):
        data = admin_client.get("/api/integrations/").json()["data"]
        assert len(data) == len(Integration.PROVIDER_CHOICES)
        assert all(item["is_connected"] is False for item in data)

    def test_invalid_provider(self, admin_client):
        response = admin_client.get("/api/integrations/myspace/")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid integration provider"

    def test_api_key_required(self, admin_client):
        response = admin_client.post("/api/integrations/stripe/connect/", {}, format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "API key is required for this integration"

    def test_connect_with_api_key_hides_token(self, admin_client):
        response = admin_client.post("/api/integrations/stripe/connect/", {"api_key": "sk_live_x"}, format="json")
        assert response.status_code == 200

        data = admin_client.get("/api/integrations/stripe/").json()["data"]
        assert data["is_connected"] is True
        assert "access_token" not in data

    def test_oauth_connect_returns_authorize_url(self, admin_client):
        response = admin_client.post(
            "/api/integrations/google_calendar/connect/",
            {"client_id": "cid", "client_secret": "shh"},
            format="json",
        )

        data = response.json()["data"]
        assert data["oauth_url"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert "client_id=cid" in data["oauth_url"]
        config = admin_client.get("/api/integrations/google_calendar/").json()["data"]["config"]
        assert config["client_secret"] == "********"

    def test_paypal_needs_both_credentials(self, admin_client):
        response = admin_client.post("/api/integrations/paypal/connect/", {"client_id": "cid"}, format="json")
        assert response.json()["error"] == "Client ID and Secret are required for PayPal"

    def test_oauth_callback_stores_tokens(self, anon_client, monkeypatch, settings):
        settings.BASE_URL_ADMIN = "https://admin.example.com"
        Integration.objects.create(provider=Integration.PROVIDER_ZAPIER, config={"client_id": "cid"})
        monkeypatch.setattr(
            providers.requests,
            "post",
            lambda *args, **kwargs: FakeResponse({"access_token": "tok", "refresh_token": "ref", "expires_in": 3600}),
        )

        response = anon_client.get("/api/integrations/zapier/callback/", {"code": "abc"})

        assert response.status_code == 302
        assert response["Location"] == "https://admin.example.com/settings/integrations?connected=ZAPIER"
        integration = Integration.objects.get(provider=Integration.PROVIDER_ZAPIER)
        assert integration.is_connected is True
        assert integration.access_token == "tok"
        assert integration.token_expires_at is not None

    def test_oauth_callback_failure_redirects_with_error(self, anon_client, monkeypatch, settings):
        settings.BASE_URL_ADMIN = "https://admin.example.com"
        Integration.objects.create(provider=Integration.PROVIDER_MAILCHIMP, config={"client_id": "cid"})
        monkeypatch.setattr(providers.requests, "post", lambda *args, **kwargs: FakeResponse({}, status_code=401))

        response = anon_client.get("/api/integrations/mailchimp/callback/", {"code": "abc"})

        assert response["Location"].endswith("?error=MAILCHIMP")
        assert Integration.objects.get(provider=Integration.PROVIDER_MAILCHIMP).last_error

    def test_test_requires_connection(self, admin_client):
        Integration.objects.create(provider=Integration.PROVIDER_STRIPE)
        response = admin_client.post("/api/integrations/stripe/test/")
        assert response.json()["error"] == "Integration is not connected"

    def test_stripe_test_connection(self, admin_client, monkeypatch):
        Integration.objects.create(provider=Integration.PROVIDER_STRIPE, is_connected=True, access_token="sk_x")
        monkeypatch.setattr(stripe.Balance, "retrieve", lambda **kwargs: {"object": "balance"})

        body = admin_client.post("/api/integrations/stripe/test/").json()

        assert body == {"success": True, "data": {"success": True, "message": "Stripe API key is valid"}}
        assert Integration.objects.get(provider=Integration.PROVIDER_STRIPE).last_sync_at is not None

    def test_failed_test_records_error(self, admin_client, monkeypatch):
        Integration.objects.create(provider=Integration.PROVIDER_STRIPE, is_connected=True, access_token="bad")

        def reject(**kwargs):
            raise stripe.AuthenticationError("Invalid API Key provided")

        monkeypatch.setattr(stripe.Balance, "retrieve", reject)

        body = admin_client.post("/api/integrations/stripe/test/").json()

        assert body["success"] is False
        assert body["data"]["message"] == "Invalid API Key provided"

    def test_disconnect_clears_tokens(self, admin_client):
        Integration.objects.create(provider=Integration.PROVIDER_STRIPE, is_connected=True, access_token="sk_x")
        admin_client.post("/api/integrations/stripe/disconnect/")
        integration = Integration.objects.get(provider=Integration.PROVIDER_STRIPE)
        assert integration.is_connected is False
        assert integration.access_token is None

    def test_update_config(self, admin_client):
        response = admin_client.put("/api/integrations/twilio/config/", {"account_sid": "AC1"}, format="json")
        assert response.json()["data"]["config"] == {"account_sid": "AC1"}
