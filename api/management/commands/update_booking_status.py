import logging

import pytz
from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from api.booking.models import Booking

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Start confirmed bookings whose pickup time has passed and complete active ones whose return time has passed"

    def handle(self, *args, **options):
        business_tz = pytz.timezone(settings.BUSINESS_TIME_ZONE)
        now = timezone.now().astimezone(business_tz)
        self.stdout.write(f"Current time in {business_tz.zone}: {now:%Y-%m-%d %H:%M %Z}")

        started = Booking.objects.filter(
            status=Booking.STATUS_CONFIRMED, start_date__lte=now
        ).update(status=Booking.STATUS_ACTIVE, updated_at=now)

        completed = Booking.objects.filter(
            status=Booking.STATUS_ACTIVE, end_date__lte=now
        ).update(status=Booking.STATUS_COMPLETED, updated_at=now)

        if started or completed:
            logger.info("Booking status sweep: %d started, %d completed", started, completed)
            self.stdout.write(self.style.SUCCESS(
                f"Updated {started} bookings to active and {completed} bookings to completed"
            ))
        else:
            self.stdout.write("No bookings needed updates")
