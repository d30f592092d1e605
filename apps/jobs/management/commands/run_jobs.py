from __future__ import annotations

import signal
import time

from django.conf import settings  # type: ignore
from django.core.management.base import BaseCommand  # type: ignore

from apps.jobs import runner


class Command(BaseCommand):
    help = "Process queued jobs until stopped (SIGTERM/SIGINT finish the current batch first)"

    def add_arguments(self, parser):  # type: ignore
        parser.add_argument("--queue", default="default")
        parser.add_argument("--once", action="store_true", help="Run a single batch and exit")
        parser.add_argument("--sleep", type=int, default=None, help="Seconds to wait when the queue is idle")

    def handle(self, *args, **options):  # type: ignore
        queue = options["queue"]
        sleep = options["sleep"] if options["sleep"] is not None else settings.JOB_POLL_INTERVAL
        self._stopping = False

        if options["once"]:
            self._report(runner.run_once(queue))
            return

        signal.signal(signal.SIGTERM, self._stop)
        signal.signal(signal.SIGINT, self._stop)
        self.stdout.write(f"Processing queue '{queue}'")

        while not self._stopping:
            counts = runner.run_once(queue)
            if any(counts.values()):
                self._report(counts)
                continue
            # sleep in short steps so a signal is honoured promptly
            for _ in range(sleep * 10):
                if self._stopping:
                    break
                time.sleep(0.1)

        self.stdout.write("Stopped")

    def _stop(self, signum, frame):  # type: ignore
        self._stopping = True

    def _report(self, counts: dict[str, int]) -> None:
        self.stdout.write(
            f"processed={counts['processed']} failed={counts['failed']} dead={counts['dead']}"
        )
