from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from payments.polling import StatusPoller, http_fetcher, local_fetcher


class Command(BaseCommand):
    help = "Poll the status of an STK push until it succeeds, fails or times out."

    def add_arguments(self, parser):
        parser.add_argument('checkout_request_id')
        parser.add_argument('--url', help="Poll a running server at this base URL instead of in-process.")
        parser.add_argument('--interval', type=float, default=settings.MPESA_POLL_INTERVAL)
        parser.add_argument('--attempts', type=int, default=settings.MPESA_POLL_MAX_ATTEMPTS)
        parser.add_argument('--delay', type=float, default=settings.MPESA_POLL_INITIAL_DELAY)

    def handle(self, *args, **options):
        checkout_request_id = options['checkout_request_id']
        if options['url']:
            fetch = http_fetcher(options['url'], checkout_request_id)
        else:
            fetch = local_fetcher(checkout_request_id)

        poller = StatusPoller(
            fetch,
            interval=options['interval'],
            max_attempts=options['attempts'],
            initial_delay=options['delay'],
        )
        try:
            outcome = poller.run()
        except KeyboardInterrupt:
            poller.cancel()
            raise CommandError("Polling cancelled.")

        if outcome.state == 'success':
            receipt = (outcome.result or {}).get('mpesaReceiptNumber')
            suffix = f" Receipt: {receipt}" if receipt else ""
            self.stdout.write(self.style.SUCCESS(f"{outcome.message}{suffix}"))
        elif outcome.state == 'failed':
            raise CommandError(outcome.message)
        else:
            self.stdout.write(self.style.WARNING(outcome.message))
