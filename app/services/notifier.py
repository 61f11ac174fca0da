"""Best-effort owner notifications, delivered off the request path."""

import logging
from concurrent.futures import ThreadPoolExecutor

import requests

logger = logging.getLogger(__name__)


class Notifier:
    """Queue notification deliveries on a small worker pool.

    notify() never raises; delivery failures are logged by a done-callback
    on the returned future.
    """

    def __init__(self, notify_url=None, api_key=None, timeout=None, max_workers=2):
        self.notify_url = notify_url
        self.api_key = api_key
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='notify')

    def notify(self, owner, payload):
        """Enqueue a notification for `owner`. Returns the Future, or None if skipped."""
        if not self.notify_url or not self.api_key:
            logger.warning('Notifications not configured (NOTIFY_URL/INTERNAL_API_KEY); skipping %s',
                           payload.get('type'))
            return None
        if not owner:
            logger.warning('Notification %s has no owner; skipping', payload.get('type'))
            return None

        body = dict(payload, userId=owner)
        future = self._executor.submit(self._deliver, body)
        future.add_done_callback(self._log_failure)
        return future

    def _deliver(self, body):
        resp = requests.post(
            self.notify_url,
            json=body,
            headers={'Authorization': f'Bearer {self.api_key}'},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.status_code

    @staticmethod
    def _log_failure(future):
        exc = future.exception()
        if exc is not None:
            logger.warning('Notification delivery failed: %s', exc)

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)
