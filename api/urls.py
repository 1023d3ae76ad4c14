from django.urls import include, path
from rest_framework.routers import DefaultRouter

from api.activity.views import ActivityLogViewSet
from api.booking.views import BookingViewSet
from api.conversation.views import ConversationViewSet
from api.document.views import DocumentViewSet
from api.integration.views import IntegrationViewSet
from api.invoice.views import InvoiceViewSet
from api.promo.views import PromoCodeViewSet
from api.stats import views as stats
from api.trash import views as trash
from api.user.views import CustomerViewSet
from api.vehicle.views import VehicleViewSet

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")
router.register(r"vehicles", VehicleViewSet, basename="vehicle")
router.register(r"invoices", InvoiceViewSet, basename="invoice")
router.register(r"conversations", ConversationViewSet, basename="conversation")
router.register(r"integrations", IntegrationViewSet, basename="integration")
router.register(r"documents", DocumentViewSet, basename="document")
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"promos", PromoCodeViewSet, basename="promo")
router.register(r"activity", ActivityLogViewSet, basename="activity")

urlpatterns = [
    path("stats/dashboard/", stats.DashboardStatsView.as_view(), name="stats-dashboard"),
    path("stats/revenue/", stats.RevenueStatsView.as_view(), name="stats-revenue"),
    path("stats/fleet/", stats.FleetStatsView.as_view(), name="stats-fleet"),
    path("trash/", trash.TrashSummaryView.as_view(), name="trash-summary"),
    path("trash/empty/", trash.TrashEmptyView.as_view(), name="trash-empty"),
    path("trash/<str:entity_type>/", trash.TrashListView.as_view(), name="trash-list"),
    path("trash/<str:entity_type>/<str:pk>/restore/", trash.TrashRestoreView.as_view(), name="trash-restore"),
    path("trash/<str:entity_type>/<str:pk>/permanent/", trash.TrashPermanentDeleteView.as_view(), name="trash-permanent"),
    path("", include(router.urls)),
]
