"""
Management command to delete expired notifications.
"""

from django.core.management.base import BaseCommand

from apps.communication.models import Notification
from apps.communication.services import NotificationService


class Command(BaseCommand):
    help = 'Delete notifications whose expiry time has passed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report how many notifications would be deleted',
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            count = Notification.objects.expired().count()
            self.stdout.write(f'{count} expired notifications would be deleted')
            return

        deleted = NotificationService.cleanup_expired()
        self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} expired notifications'))
