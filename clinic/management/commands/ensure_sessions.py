from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from django.utils.dateparse import parse_date

from clinic.services.sessions import ensure_sessions_for_date


class Command(BaseCommand):
    help = "Create the day's appointment sessions from the hospital session templates."

    def add_arguments(self, parser):
        parser.add_argument("--date", help="YYYY-MM-DD, defaults to today")
        parser.add_argument("--days", type=int, default=1, help="number of consecutive days to prepare")

    def handle(self, *args, **options):
        start = timezone.localdate()
        if options.get("date"):
            start = parse_date(options["date"])
            if start is None:
                raise CommandError(f"invalid date {options['date']!r}, expected YYYY-MM-DD")
        if options["days"] < 1:
            raise CommandError("--days must be at least 1")

        for offset in range(options["days"]):
            day = start + timedelta(days=offset)
            sessions = ensure_sessions_for_date(day)
            codes = ", ".join(s.short_code for s in sessions) or "none"
            self.stdout.write(self.style.SUCCESS(f"{day}: {len(sessions)} sessions ({codes})"))
