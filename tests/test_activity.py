from datetime import timedelta

import pytest
from django.utils import timezone

from api.activity.models import ActivityLog


def log(actor, action, entity_type="booking", entity_id="b-1", description="", days_ago=0):
    entry = ActivityLog.objects.create(
        actor=actor, action=action, entity_type=entity_type, entity_id=entity_id, description=description
    )
    if days_ago:
        ActivityLog.objects.filter(pk=entry.pk).update(created_at=timezone.now() - timedelta(days=days_ago))
    return entry


@pytest.mark.django_db
class TestActivityLog:
    def test_customers_cannot_read(self, customer_client):
        assert customer_client.get("/api/activity/").status_code == 403

    def test_list_with_filters(self, support_client, customer, other_customer):
        log(customer, "BOOKING_CREATED", description="Weekend trip")
        log(customer, "LOGIN", entity_type="user", entity_id=str(customer.pk))
        log(other_customer, "BOOKING_CREATED", entity_id="b-2")

        everything = support_client.get("/api/activity/").json()["data"]
        by_action = support_client.get("/api/activity/", {"action": "BOOKING_CREATED"}).json()["data"]
        by_user = support_client.get("/api/activity/", {"user_id": str(customer.pk)}).json()["data"]
        searched = support_client.get("/api/activity/", {"search": "weekend"}).json()["data"]

        assert everything["total"] == 3
        assert by_action["total"] == 2
        assert by_user["total"] == 2
        assert searched["total"] == 1
        assert searched["items"][0]["actor"]["email"] == customer.email

    def test_date_range(self, support_client, customer):
        log(customer, "LOGIN", days_ago=10)
        log(customer, "LOGIN")

        start = (timezone.now() - timedelta(days=2)).date().isoformat()
        data = support_client.get("/api/activity/", {"start_date": start}).json()["data"]

        assert data["total"] == 1

    def test_for_user_and_entity(self, support_client, customer, other_customer):
        log(customer, "BOOKING_UPDATED", entity_id="b-1")
        log(other_customer, "BOOKING_UPDATED", entity_id="b-1")
        log(other_customer, "INVOICE_CREATED", entity_type="invoice", entity_id="i-1")

        by_user = support_client.get(f"/api/activity/user/{other_customer.pk}/").json()["data"]
        by_entity = support_client.get("/api/activity/entity/booking/b-1/").json()["data"]

        assert by_user["total"] == 2
        assert by_entity["total"] == 2

    def test_unknown_user(self, support_client):
        response = support_client.get("/api/activity/user/6f1c2f0e-8a3c-4f53-9a8e-0d4b3c2a1f00/")
        assert response.status_code == 404

    def test_stats_for_managers(self, support_client, manager_client, customer, other_customer):
        log(customer, "LOGIN")
        log(customer, "BOOKING_CREATED")
        log(other_customer, "LOGIN")
        log(None, "LOGIN_FAILED", entity_type="user", entity_id=None)
        log(customer, "LOGIN", days_ago=30)

        assert support_client.get("/api/activity/stats/").status_code == 403
        data = manager_client.get("/api/activity/stats/").json()["data"]

        assert data["period"]["days"] == 7
        assert data["action_counts"] == {"LOGIN": 2, "BOOKING_CREATED": 1, "LOGIN_FAILED": 1}
        assert data["failed_logins"] == 1
        assert data["active_users"][0]["user"]["email"] == customer.email
        assert data["active_users"][0]["count"] == 2

    def test_action_names(self, support_client, customer):
        log(customer, "LOGIN")
        log(customer, "BOOKING_CREATED")
        log(customer, "LOGIN")

        assert support_client.get("/api/activity/actions/").json()["data"] == ["BOOKING_CREATED", "LOGIN"]
