from datetime import datetime, timezone

from django.core.management.base import BaseCommand

from loginguard.honeypot import SecretRotator


class Command(BaseCommand):
    help = 'Generate a new login honeypot prefix right away'

    def handle(self, *args, **options):
        secret = SecretRotator.from_settings().reset()
        generated = datetime.fromtimestamp(secret.generated_at, tz=timezone.utc)
        self.stdout.write(self.style.SUCCESS(
            f'Honeypot prefix rotated at {generated:%Y-%m-%d %H:%M:%S} UTC'
        ))
