"""
Management command to wait for an order's payment to settle.

Usage:
    python manage.py wait_for_payment <order_id> [--attempts N] [--delay SECONDS]

Polls the stored order state the same way the confirmation page does and
exits non-zero if the payment is still processing when the budget runs out.
"""

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from baklava_wholesale.context import AuthContext
from baklava_wholesale.exceptions import NotFoundError
from orders.polling import order_state, poll_until_settled


class Command(BaseCommand):
    help = 'Poll an order until its payment settles or the attempt budget is spent'

    def add_arguments(self, parser):
        parser.add_argument('order_id', help='Order UUID')
        parser.add_argument(
            '--attempts',
            type=int,
            default=settings.CONFIRMATION_POLL_ATTEMPTS,
            help=f'Number of reads (default: {settings.CONFIRMATION_POLL_ATTEMPTS})',
        )
        parser.add_argument(
            '--delay',
            type=float,
            default=settings.CONFIRMATION_POLL_DELAY,
            help=f'Seconds between reads (default: {settings.CONFIRMATION_POLL_DELAY})',
        )

    def handle(self, *args, **options):
        ctx = AuthContext.system()
        order_id = options['order_id']
        try:
            result = poll_until_settled(
                lambda: order_state(ctx, order_id),
                attempts=options['attempts'],
                delay=options['delay'],
            )
        except NotFoundError:
            raise CommandError(f'Order {order_id} not found.')
        except ValueError as exc:
            raise CommandError(str(exc))

        message = f'Order {order_id}: {result.outcome} after {result.attempts} attempt(s).'
        if not result.settled:
            raise CommandError(message)
        self.stdout.write(self.style.SUCCESS(message))
