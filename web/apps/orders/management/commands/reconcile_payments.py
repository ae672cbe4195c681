"""Resolve payment intents that no watcher finished.

Watchers live in the web process; when it restarts, queued or sleeping
watchers are lost and their intents stay ``PENDING`` with stock still
reserved. This command runs the same watcher for each of them, in the
foreground, rebuilding the reservations from the intent snapshot.
"""

from django.core.management.base import BaseCommand

from apps.orders import providers
from apps.orders.mapping import pending_from_snapshot
from apps.orders.repository import PaymentIntentRepository


class Command(BaseCommand):
    help = "Run the confirmation watcher for every PENDING payment intent."

    def add_arguments(self, parser):
        parser.add_argument(
            "--no-wait",
            action="store_true",
            help="Check intents whose payment window is still open right away.",
        )
        parser.add_argument("--limit", type=int, default=0, help="Process at most this many intents.")

    def handle(self, *args, **options):
        watcher = providers.build_watcher()
        if options["no_wait"]:
            watcher.delay_secs = 0

        intents = PaymentIntentRepository().pending()
        if options["limit"]:
            intents = intents[: options["limit"]]

        counts: dict[str, int] = {}
        for intent in list(intents):
            pending = pending_from_snapshot(intent.payment_id, intent.created_at, intent.snapshot)
            outcome = watcher.run(pending)
            counts[outcome.value] = counts.get(outcome.value, 0) + 1
            self.stdout.write(f"{intent.payment_id} {outcome.value}")

        summary = ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "nothing to do"
        self.stdout.write(self.style.SUCCESS(summary))
