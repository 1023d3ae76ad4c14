"""
Provider specifics for third-party integrations: OAuth endpoints, token
exchange and connection checks.
"""
import logging
from urllib.parse import urlencode

import requests
import stripe

from api.integration.models import Integration

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10

API_KEY_PROVIDERS = (Integration.PROVIDER_STRIPE, Integration.PROVIDER_TWILIO)

OAUTH_PROVIDERS = {
    Integration.PROVIDER_MAILCHIMP: {
        "authorize_url": "https://login.mailchimp.com/oauth2/authorize",
        "token_url": "https://login.mailchimp.com/oauth2/token",
    },
    Integration.PROVIDER_GOOGLE_CALENDAR: {
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "scope": "https://www.googleapis.com/auth/calendar",
    },
    Integration.PROVIDER_QUICKBOOKS: {
        "authorize_url": "https://appcenter.intuit.com/connect/oauth2",
        "token_url": "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer",
        "scope": "com.intuit.quickbooks.accounting",
        "basic_auth": True,
    },
    Integration.PROVIDER_ZAPIER: {
        "authorize_url": "https://zapier.com/oauth/authorize",
        "token_url": "https://zapier.com/oauth/token/",
    },
}

# Authenticated GET used to check that stored credentials still work
TEST_ENDPOINTS = {
    Integration.PROVIDER_MAILCHIMP: ("https://login.mailchimp.com/oauth2/metadata", "OAuth"),
    Integration.PROVIDER_GOOGLE_CALENDAR: ("https://www.googleapis.com/calendar/v3/users/me/calendarList", "Bearer"),
    Integration.PROVIDER_QUICKBOOKS: ("https://accounts.platform.intuit.com/v1/openid_connect/userinfo", "Bearer"),
    Integration.PROVIDER_ZAPIER: ("https://zapier.com/api/v4/profiles/me/", "Bearer"),
}

PAYPAL_TOKEN_URL = "https://api-m.paypal.com/v1/oauth2/token"
TWILIO_ACCOUNT_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}.json"


class ProviderError(Exception):
    pass


def authorize_url(provider, client_id, redirect_uri):
    endpoints = OAUTH_PROVIDERS[provider]
    params = {"response_type": "code", "client_id": client_id, "redirect_uri": redirect_uri}
    if endpoints.get("scope"):
        params["scope"] = endpoints["scope"]
    return f"{endpoints['authorize_url']}?{urlencode(params)}"


def exchange_code(integration, code):
    """Trade an authorization code for tokens at the provider's token endpoint."""
    endpoints = OAUTH_PROVIDERS.get(integration.provider)
    if endpoints is None:
        raise ProviderError(f"{integration.provider} does not use OAuth")

    config = integration.config or {}
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": config.get("redirect_uri", ""),
    }
    auth = None
    if endpoints.get("basic_auth"):
        auth = (config.get("client_id", ""), config.get("client_secret", ""))
    else:
        data["client_id"] = config.get("client_id", "")
        data["client_secret"] = config.get("client_secret", "")

    try:
        response = requests.post(
            endpoints["token_url"],
            data=data,
            auth=auth,
            headers={"Accept": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as e:
        logger.warning("Token exchange failed for %s: %s", integration.provider, e)
        raise ProviderError(f"Token exchange failed: {e}")
    except ValueError:
        raise ProviderError("Token endpoint returned invalid JSON")

    if "access_token" not in payload:
        raise ProviderError(payload.get("error_description") or payload.get("error") or "No access token returned")
    return payload


def test_connection(integration):
    """Return a human readable success message or raise ProviderError."""
    provider = integration.provider
    config = integration.config or {}

    if provider == Integration.PROVIDER_STRIPE:
        try:
            stripe.Balance.retrieve(api_key=integration.access_token)
        except stripe.StripeError as e:
            raise ProviderError(str(e))
        return "Stripe API key is valid"

    try:
        if provider == Integration.PROVIDER_TWILIO:
            sid = config.get("account_sid")
            if not sid:
                raise ProviderError("Twilio account_sid is missing from the integration config")
            response = requests.get(
                TWILIO_ACCOUNT_URL.format(sid=sid),
                auth=(sid, integration.access_token or ""),
                timeout=REQUEST_TIMEOUT,
            )
        elif provider == Integration.PROVIDER_PAYPAL:
            response = requests.post(
                PAYPAL_TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(config.get("client_id", ""), config.get("client_secret", "")),
                timeout=REQUEST_TIMEOUT,
            )
        else:
            url, scheme = TEST_ENDPOINTS[provider]
            response = requests.get(
                url,
                headers={"Authorization": f"{scheme} {integration.access_token}"},
                timeout=REQUEST_TIMEOUT,
            )
        response.raise_for_status()
    except requests.RequestException as e:
        raise ProviderError(str(e))

    return f"{integration.get_provider_display()} connection test passed"
