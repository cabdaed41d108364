"""Client-side status polling.

Repeatedly asks for the status of a checkout until it turns terminal, the
attempt budget runs out, or the caller cancels. Nothing here writes to the
transaction store; a timeout is only what the payer observes.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from .models import Transaction
from .services.stk import query_status

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Payment timeout after {duration}. Please check your M-Pesa messages or try again."
UNVERIFIED_MESSAGE = "Unable to verify payment status. Please contact support."
CANCELLED_MESSAGE = "Payment status check cancelled."


@dataclass
class PollOutcome:
    state: str  # success | failed | timeout | error | cancelled
    message: str
    attempts: int
    result: Optional[dict] = None

    @property
    def is_terminal(self):
        return self.state in (Transaction.Status.SUCCESS, Transaction.Status.FAILED)


def _describe(seconds):
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes and not secs:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs} second{'s' if secs != 1 else ''}"


class StatusPoller:
    """Poll ``fetch`` every ``interval`` seconds, at most ``max_attempts`` times.

    ``fetch`` returns a dict with a ``status`` key (the query endpoint's
    response). ``pending`` means keep going; ``success``/``failed`` stop the
    loop. Exceptions raised by ``fetch`` use up an attempt.
    """

    def __init__(self, fetch: Callable[[], dict], interval: float = 10, max_attempts: int = 60,
                 initial_delay: float = 5, is_terminal: Optional[Callable[[dict], bool]] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.fetch = fetch
        self.interval = interval
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.is_terminal = is_terminal or self._terminal_status
        self._cancelled = threading.Event()
        self._thread = None
        self.outcome: Optional[PollOutcome] = None

    @staticmethod
    def _terminal_status(result):
        return result.get('status') in Transaction.TERMINAL_STATUSES

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()

    def run(self) -> PollOutcome:
        attempts = 0
        last_error: Any = None
        delay = self.initial_delay

        while attempts < self.max_attempts:
            # wait() returns True as soon as cancel() is called
            if self._cancelled.wait(delay):
                return self._finish(PollOutcome('cancelled', CANCELLED_MESSAGE, attempts))
            delay = self.interval
            attempts += 1
            try:
                result = self.fetch()
            except Exception as e:
                logger.warning("Polling error on attempt %s/%s: %s", attempts, self.max_attempts, e)
                last_error = e
                continue
            last_error = None

            if self.is_terminal(result):
                state = result.get('status')
                if state == Transaction.Status.SUCCESS:
                    message = "Payment received."
                else:
                    message = result.get('resultDesc') or "Payment failed"
                return self._finish(PollOutcome(state, message, attempts, result))
            logger.debug("Attempt %s/%s: still pending", attempts, self.max_attempts)

        if last_error is not None:
            return self._finish(PollOutcome('error', UNVERIFIED_MESSAGE, attempts))
        duration = _describe(self.interval * self.max_attempts)
        return self._finish(PollOutcome('timeout', TIMEOUT_MESSAGE.format(duration=duration), attempts))

    def _finish(self, outcome):
        self.outcome = outcome
        return outcome

    def start(self):
        """Run in a background thread; ``join()`` or ``cancel()`` later."""
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        return self

    def join(self, timeout=None) -> Optional[PollOutcome]:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.outcome


def http_fetcher(base_url, checkout_request_id, session=None, timeout=30):
    """Build a fetch callable that hits the query endpoint over HTTP."""
    session = session or requests.Session()
    url = f"{base_url.rstrip('/')}/payments/mpesa/query/"

    def fetch():
        resp = session.post(url, json={"checkoutRequestId": checkout_request_id}, timeout=timeout)
        resp.raise_for_status()
        return resp.json()

    return fetch


def local_fetcher(checkout_request_id, gateway=None):
    """Build a fetch callable that runs the status query in-process."""
    def fetch():
        result = query_status(checkout_request_id, gateway=gateway)
        return {**result, 'transaction': result['transaction'].as_dict()}

    return fetch
