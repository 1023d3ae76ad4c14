import logging
from datetime import timedelta
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect
from django.utils import timezone
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from api.activity.utils import log_activity
from api.exceptions import BadRequest
from api.integration import providers
from api.integration.models import Integration
from api.integration.serializers import ConnectSerializer, IntegrationSerializer
from api.permissions import IsAdmin
from api.utils import success

logger = logging.getLogger(__name__)

VALID_PROVIDERS = [value for value, _label in Integration.PROVIDER_CHOICES]


def _provider(value):
    provider = (value or "").upper()
    if provider not in VALID_PROVIDERS:
        raise BadRequest("Invalid integration provider")
    return provider


class IntegrationViewSet(viewsets.GenericViewSet):
    serializer_class = IntegrationSerializer
    queryset = Integration.objects.all()
    lookup_field = "provider"
    lookup_value_regex = "[A-Za-z_]+"
    pagination_class = None

    def get_permissions(self):
        if self.action == "callback":
            return [AllowAny()]
        return [IsAuthenticated(), IsAdmin()]

    def get_integration(self, provider, create=True):
        provider = _provider(provider)
        if create:
            integration, _created = Integration.objects.get_or_create(provider=provider)
            return integration
        integration = Integration.objects.filter(provider=provider).first()
        if integration is None:
            raise NotFound("Integration not found")
        return integration

    def list(self, request):
        existing = set(Integration.objects.values_list("provider", flat=True))
        Integration.objects.bulk_create(
            [Integration(provider=provider) for provider in VALID_PROVIDERS if provider not in existing],
            ignore_conflicts=True,
        )
        return success(IntegrationSerializer(Integration.objects.order_by("provider"), many=True).data)

    def retrieve(self, request, provider=None):
        return success(IntegrationSerializer(self.get_integration(provider)).data)

    @action(detail=True, methods=["post"])
    def connect(self, request, provider=None):
        integration = self.get_integration(provider)
        serializer = ConnectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        now = timezone.now()

        if integration.provider in providers.API_KEY_PROVIDERS:
            if not data.get("api_key"):
                raise BadRequest("API key is required for this integration")
            integration.access_token = data["api_key"]
            integration.is_enabled = True
            integration.is_connected = True
            integration.connected_at = now
            integration.last_error = None
            integration.save()
            log_activity(request, "INTEGRATION_CONNECTED", "integration", integration.pk, integration.provider)
            return success(message=f"{integration.provider} connected successfully")

        if integration.provider in providers.OAUTH_PROVIDERS:
            if not data.get("client_id"):
                raise BadRequest("Client ID is required for OAuth integrations")
            redirect_uri = data.get("redirect_uri") or (
                f"{settings.BASE_URL_BACKEND}/api/integrations/{integration.provider}/callback/"
            )
            integration.config = {
                **(integration.config or {}),
                "client_id": data["client_id"],
                "client_secret": data.get("client_secret"),
                "redirect_uri": redirect_uri,
            }
            integration.save()
            return success({
                "oauth_url": providers.authorize_url(integration.provider, data["client_id"], redirect_uri),
                "message": "Redirect user to OAuth URL to complete connection",
            })

        # PayPal: client credentials only
        if not data.get("client_id") or not data.get("client_secret"):
            raise BadRequest("Client ID and Secret are required for PayPal")
        integration.config = {
            **(integration.config or {}),
            "client_id": data["client_id"],
            "client_secret": data["client_secret"],
        }
        integration.is_enabled = True
        integration.is_connected = True
        integration.connected_at = now
        integration.last_error = None
        integration.save()
        log_activity(request, "INTEGRATION_CONNECTED", "integration", integration.pk, integration.provider)
        return success(message="PayPal connected successfully")

    @action(detail=True, methods=["get"])
    def callback(self, request, provider=None):
        oauth_error = request.query_params.get("error")
        if oauth_error:
            raise BadRequest(f"OAuth error: {oauth_error}")
        code = request.query_params.get("code")
        if not code:
            raise BadRequest("Authorization code is required")

        integration = self.get_integration(provider, create=False)
        admin_url = f"{settings.BASE_URL_ADMIN}/settings/integrations"

        try:
            tokens = providers.exchange_code(integration, code)
        except providers.ProviderError as e:
            integration.last_error = str(e)
            integration.save(update_fields=["last_error", "updated_at"])
            return HttpResponseRedirect(f"{admin_url}?{urlencode({'error': integration.provider})}")

        expires_in = tokens.get("expires_in")
        integration.access_token = tokens["access_token"]
        integration.refresh_token = tokens.get("refresh_token")
        integration.token_expires_at = timezone.now() + timedelta(seconds=int(expires_in)) if expires_in else None
        integration.is_enabled = True
        integration.is_connected = True
        integration.connected_at = timezone.now()
        integration.last_error = None
        integration.save()
        logger.info("OAuth connection completed for %s", integration.provider)

        return HttpResponseRedirect(f"{admin_url}?{urlencode({'connected': integration.provider})}")

    @action(detail=True, methods=["post"])
    def disconnect(self, request, provider=None):
        integration = self.get_integration(provider)
        integration.is_enabled = False
        integration.is_connected = False
        integration.access_token = None
        integration.refresh_token = None
        integration.token_expires_at = None
        integration.connected_at = None
        integration.last_sync_at = None
        integration.save()
        log_activity(request, "INTEGRATION_DISCONNECTED", "integration", integration.pk, integration.provider)
        return success(message=f"{integration.provider} disconnected successfully")

    @action(detail=True, methods=["put"])
    def config(self, request, provider=None):
        integration = self.get_integration(provider)
        if not isinstance(request.data, dict):
            raise BadRequest("Config must be a JSON object")
        integration.config = dict(request.data)
        integration.save(update_fields=["config", "updated_at"])
        return success(IntegrationSerializer(integration).data)

    @action(detail=True, methods=["post"])
    def test(self, request, provider=None):
        integration = self.get_integration(provider, create=False)
        if not integration.is_connected:
            raise BadRequest("Integration is not connected")

        try:
            message = providers.test_connection(integration)
        except providers.ProviderError as e:
            integration.last_error = str(e)
            integration.save(update_fields=["last_error", "updated_at"])
            return Response({"success": False, "data": {"success": False, "message": str(e)}})

        integration.last_sync_at = timezone.now()
        integration.last_error = None
        integration.save(update_fields=["last_sync_at", "last_error", "updated_at"])
        return Response({"success": True, "data": {"success": True, "message": message}})
