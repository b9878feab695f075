"""Print a fresh random key for PORTAL_HMAC_KEY.

Usage:
    python manage.py generate_portal_hmac_key
    python manage.py generate_portal_hmac_key --env

Needs an existing key to start Django, so use it for rotation; for the very
first key see formulate/settings/development.py.

Changing the key invalidates every outstanding PIN session cookie and makes
new IP hashes incomparable with stored ones. Rotate deliberately.
"""
from django.core.management.base import BaseCommand

from apps.portal.config import generate_key


class Command(BaseCommand):
    help = "Generate a random key for PORTAL_HMAC_KEY."

    def add_arguments(self, parser):
        parser.add_argument(
            "--env",
            action="store_true",
            help="Print as a PORTAL_HMAC_KEY=... line ready for a .env file.",
        )

    def handle(self, *args, **options):
        key = generate_key()
        if options["env"]:
            self.stdout.write(f"PORTAL_HMAC_KEY={key}")
        else:
            self.stdout.write(key)
