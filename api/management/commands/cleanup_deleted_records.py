import logging
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from api.trash.registry import EMPTY_ORDER, ENTITIES

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Permanently delete records that have been in the trash longer than the retention period"

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Only report what would be deleted")
        parser.add_argument(
            "--days",
            type=int,
            default=settings.SOFT_DELETE_RETENTION_DAYS,
            help="Retention period in days",
        )

    def handle(self, *args, **options):
        cutoff = timezone.now() - timedelta(days=options["days"])
        dry_run = options["dry_run"]
        total = skipped = 0

        for name in EMPTY_ORDER:
            entity = ENTITIES[name]
            expired = entity.deleted().filter(deleted_at__lt=cutoff)
            if dry_run:
                count, kept = expired.count(), 0
            else:
                count, kept = entity.purge_all(expired)
            if count or kept:
                self.stdout.write(f"{name}: {count}" + (f" ({kept} kept, still referenced)" if kept else ""))
            total += count
            skipped += kept

        if dry_run:
            self.stdout.write(self.style.WARNING(f"Dry run: {total} records would be permanently deleted"))
        else:
            logger.info("Purged %d records deleted before %s, kept %d", total, cutoff.isoformat(), skipped)
            self.stdout.write(self.style.SUCCESS(f"Permanently deleted {total} records"))
