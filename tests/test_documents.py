import pytest
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile

from api.document.models import Document


def license_scan(name="front.jpg", content_type="image/jpeg", size=64):
    return SimpleUploadedFile(name, b"\xff\xd8" + b"0" * size, content_type=content_type)


@pytest.fixture
def document(customer_client):
    response = customer_client.post(
        "/api/documents/upload/", {"type": "DRIVERS_LICENSE_FRONT", "file": license_scan()}
    )
    return Document.objects.get(pk=response.json()["data"]["id"])


@pytest.mark.django_db
class TestDocuments:
    def test_upload_stores_file(self, customer_client, customer):
        response = customer_client.post("/api/documents/upload/", {"type": "PASSPORT", "file": license_scan()})

        assert response.status_code == 201
        document = Document.objects.get()
        assert document.user == customer
        assert document.status == Document.STATUS_PENDING
        assert default_storage.exists(document.file_path)

    def test_upload_rejects_other_types(self, customer_client):
        response = customer_client.post(
            "/api/documents/upload/",
            {"type": "PASSPORT", "file": license_scan("notes.txt", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid file type")

    def test_upload_size_limit(self, customer_client):
        response = customer_client.post(
            "/api/documents/upload/",
            {"type": "PASSPORT", "file": license_scan(size=10 * 1024 * 1024)},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("File too large")

    def test_upload_requires_file(self, customer_client):
        response = customer_client.post("/api/documents/upload/", {"type": "PASSPORT"})
        assert response.json()["error"] == "No file provided"

    def test_booking_must_be_owned(self, other_client, booking):
        response = other_client.post(
            "/api/documents/upload/",
            {"type": "PASSPORT", "booking_id": str(booking.pk), "file": license_scan()},
        )
        assert response.status_code == 400

    def test_list_scoping(self, customer_client, other_client, support_client, document):
        assert customer_client.get("/api/documents/").json()["data"]["total"] == 1
        assert other_client.get("/api/documents/").json()["data"]["total"] == 0
        assert support_client.get("/api/documents/", {"status": "PENDING"}).json()["data"]["total"] == 1

    def test_other_customer_gets_404(self, other_client, document):
        response = other_client.get(f"/api/documents/{document.pk}/")
        assert response.status_code == 404
        assert response.json()["error"] == "Document not found"

    def test_verify(self, support_client, support, document):
        response = support_client.patch(
            f"/api/documents/{document.pk}/verify/", {"status": "VERIFIED", "notes": "Looks good"}, format="json"
        )

        assert response.status_code == 200
        document.refresh_from_db()
        assert document.status == Document.STATUS_VERIFIED
        assert document.verified_by == support
        assert document.verified_at is not None

    def test_reject_leaves_verifier_empty(self, support_client, document):
        support_client.patch(f"/api/documents/{document.pk}/verify/", {"status": "REJECTED"}, format="json")
        document.refresh_from_db()
        assert document.status == Document.STATUS_REJECTED
        assert document.verified_at is None

    def test_customer_cannot_verify(self, customer_client, document):
        response = customer_client.patch(f"/api/documents/{document.pk}/verify/", {"status": "VERIFIED"}, format="json")
        assert response.status_code == 403

    def test_owner_deletes_pending(self, customer_client, document):
        response = customer_client.delete(f"/api/documents/{document.pk}/")
        assert response.status_code == 200
        assert Document.all_objects.get(pk=document.pk).deleted_at is not None
        assert default_storage.exists(document.file_path)

    def test_owner_cannot_delete_verified(self, customer_client, document):
        Document.objects.filter(pk=document.pk).update(status=Document.STATUS_VERIFIED)
        response = customer_client.delete(f"/api/documents/{document.pk}/")
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot delete a verified document"

    def test_manager_deletes_verified(self, manager_client, document):
        Document.objects.filter(pk=document.pk).update(status=Document.STATUS_VERIFIED)
        assert manager_client.delete(f"/api/documents/{document.pk}/").status_code == 200

    def test_support_cannot_delete_others(self, support_client, document):
        assert support_client.delete(f"/api/documents/{document.pk}/").status_code == 404

    def test_download_url(self, customer_client, document):
        data = customer_client.get(f"/api/documents/{document.pk}/download/").json()["data"]
        assert data["file_name"] == "front.jpg"
        assert data["url"].startswith("http://testserver/media/documents/")
