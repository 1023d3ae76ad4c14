"""
Entities that can sit in the trash. Each entry knows its model, what to
search on, how to describe a row, and which stored files go with it.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from django.db import transaction
from django.db.models import ProtectedError, Q

from api.booking.models import Booking
from api.conversation.models import Conversation
from api.document.models import Document
from api.invoice.models import Invoice
from api.review.models import Review
from api.storage import delete_stored_file
from api.user.models import User
from api.vehicle.models import Vehicle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrashEntity:
    name: str
    model: type
    search_fields: tuple
    describe: Callable
    related: tuple = ()
    cleanup: Optional[Callable] = None

    def deleted(self):
        return self.model.all_objects.deleted().select_related("deleted_by", *self.related)

    def search(self, queryset, term):
        if not term:
            return queryset
        query = Q()
        for name in self.search_fields:
            query |= Q(**{f"{name}__icontains": term})
        return queryset.filter(query)

    def purge(self, instance):
        """
        Hard-delete a trashed row, then its stored files.
        Raises ProtectedError while other rows still point at it.
        """
        instance.hard_delete()
        if self.cleanup is not None:
            self.cleanup(instance)

    def purge_all(self, queryset):
        """
        Purge every row of `queryset`, each in its own savepoint.
        Rows still referenced by other records are skipped.
        Returns (purged, skipped).
        """
        purged = skipped = 0
        for instance in queryset:
            try:
                with transaction.atomic():
                    self.purge(instance)
            except ProtectedError:
                logger.info("Kept %s %s: other records still reference it", self.name, instance.pk)
                skipped += 1
            else:
                purged += 1
        return purged, skipped


def _full_name(user):
    if user is None:
        return None
    return f"{user.first_name} {user.last_name}".strip() or user.email


def _describe_review(review):
    return f"{review.rating}/5 by {_full_name(review.user)} for {review.vehicle.make} {review.vehicle.model}"


def _describe_document(document):
    return f"{document.get_type_display()} ({document.file_name}) of {_full_name(document.user)}"


def _describe_invoice(invoice):
    return f"{invoice.invoice_number} for {_full_name(invoice.customer)}"


def _describe_conversation(conversation):
    return f"{conversation.subject} with {_full_name(conversation.customer)}"


def _describe_booking(booking):
    return (
        f"{booking.vehicle.make} {booking.vehicle.model} for {_full_name(booking.user)}, "
        f"{booking.start_date:%Y-%m-%d} to {booking.end_date:%Y-%m-%d}"
    )


def _describe_vehicle(vehicle):
    return f"{vehicle.year} {vehicle.make} {vehicle.model} ({vehicle.license_plate})"


def _describe_user(user):
    return f"{_full_name(user)} <{user.email}>"


def _delete_document_file(document):
    delete_stored_file(document.file_path)


def _delete_avatar(user):
    delete_stored_file(user.avatar)


def _delete_vehicle_images(vehicle):
    for path in vehicle.images or []:
        delete_stored_file(path)


ENTITIES = {
    entity.name: entity
    for entity in (
        TrashEntity(
            "reviews", Review, ("comment", "user__email", "vehicle__make", "vehicle__model"),
            _describe_review, related=("user", "vehicle"),
        ),
        TrashEntity(
            "documents", Document, ("file_name", "type", "user__email"),
            _describe_document, related=("user",), cleanup=_delete_document_file,
        ),
        TrashEntity(
            "invoices", Invoice, ("invoice_number", "customer__email", "customer__last_name"),
            _describe_invoice, related=("customer",),
        ),
        TrashEntity(
            "conversations", Conversation, ("subject", "customer__email"),
            _describe_conversation, related=("customer",),
        ),
        TrashEntity(
            "bookings", Booking, ("user__email", "vehicle__make", "vehicle__model", "vehicle__license_plate"),
            _describe_booking, related=("user", "vehicle"),
        ),
        TrashEntity(
            "vehicles", Vehicle, ("make", "model", "license_plate", "vin"),
            _describe_vehicle, cleanup=_delete_vehicle_images,
        ),
        TrashEntity(
            "users", User, ("email", "first_name", "last_name"),
            _describe_user, cleanup=_delete_avatar,
        ),
    )
}

# Children before parents: bookings, invoices and the rest protect their vehicle and user.
EMPTY_ORDER = ("reviews", "documents", "invoices", "conversations", "bookings", "vehicles", "users")


def get_entity(name):
    return ENTITIES.get(name)
