"""
Management command to re-send undelivered document request e-mails.

Usage:
    python manage.py notify_document_requests

A document request is recorded before its e-mail goes out; rows left with
``docs_notified=False`` by a failed send are picked up here.
"""

from django.core.management.base import BaseCommand

from accounts.approval import retry_document_requests


class Command(BaseCommand):
    help = 'Re-send document request e-mails that were recorded but never delivered'

    def handle(self, *args, **options):
        sent, failed = retry_document_requests()
        message = f'Document requests: {sent} sent, {failed} failed.'
        if failed:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))
