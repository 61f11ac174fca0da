"""Gmail API client used by the send and sync workflows."""

import html
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional

import google_auth_httplib2
import httplib2
from dateutil import parser as dateutil_parser
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.errors import TransportError

# Sent-folder candidates for the inbox sync
SENT_QUERY = 'in:sent (apply OR application OR "applied" OR "resume")'


@dataclass
class MailMessage:
    """A Gmail message resource, normalized once at the API boundary."""

    id: str
    thread_id: Optional[str] = None
    subject: str = ''
    from_address: str = ''
    to_address: str = ''
    snippet: str = ''
    body: str = ''
    headers: dict = field(default_factory=dict)
    label_ids: List[str] = field(default_factory=list)
    received_at: Optional[datetime] = None
    raw: dict = field(default_factory=dict)

    def header(self, name):
        return self.headers.get(name.lower())

    @property
    def search_text(self):
        """Lower-cased subject and body, the text the matcher scans."""
        return f'{self.subject or ""} {self.body or ""}'.lower()


def _to_naive_utc(value):
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _parse_date_header(date_str):
    """Parse a Date header; returns naive UTC or None."""
    if not date_str:
        return None
    try:
        return _to_naive_utc(parsedate_to_datetime(date_str))
    except (TypeError, ValueError):
        pass
    try:
        return _to_naive_utc(dateutil_parser.parse(date_str))
    except (ValueError, OverflowError):
        return None


def normalize_message(full: dict) -> MailMessage:
    """Convert a format=full Gmail message into a MailMessage.

    Only the snippet is used as the body; MIME part decoding is out of scope.
    """
    header_list = (full.get('payload') or {}).get('headers') or []
    headers = {}
    for h in header_list:
        name = str(h.get('name', '')).lower()
        if name and name not in headers:
            headers[name] = h.get('value') or ''

    received_at = None
    internal_date = full.get('internalDate')
    if internal_date:
        try:
            received_at = _to_naive_utc(datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc))
        except (TypeError, ValueError):
            received_at = None
    if received_at is None:
        received_at = _parse_date_header(headers.get('date'))

    snippet = html.unescape(full.get('snippet') or '')

    return MailMessage(
        id=str(full.get('id')),
        thread_id=full.get('threadId'),
        subject=headers.get('subject', ''),
        from_address=headers.get('from', ''),
        to_address=headers.get('to', ''),
        snippet=snippet,
        body=snippet,
        headers=headers,
        label_ids=list(full.get('labelIds') or []),
        received_at=received_at,
        raw=full,
    )


class GmailClient:
    """Thin bearer-token wrapper over the Gmail v1 API.

    Every call is a single request; nothing is retried here. Non-2xx
    responses surface as TransportError.
    """

    def __init__(self, timeout=None):
        self.timeout = timeout

    def _service(self, access_token):
        credentials = Credentials(token=access_token)
        http = google_auth_httplib2.AuthorizedHttp(
            credentials, http=httplib2.Http(timeout=self.timeout)
        )
        return build('gmail', 'v1', http=http, cache_discovery=False)

    def _execute(self, request):
        try:
            return request.execute()
        except HttpError as e:
            body = e.content.decode('utf-8', errors='replace') if isinstance(e.content, bytes) else e.content
            raise TransportError(e.resp.status, body) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise TransportError(None, str(e), message=f'Gmail request failed: {e}') from e

    def send(self, access_token, envelope) -> dict:
        """Send a base64url RFC 822 envelope. Returns {'id', 'threadId', 'labelIds'}."""
        service = self._service(access_token)
        return self._execute(
            service.users().messages().send(userId='me', body={'raw': envelope})
        )

    def list_messages(self, access_token, query, max_results=None) -> List[dict]:
        """Message refs ({'id', 'threadId'}) matching a Gmail search query."""
        service = self._service(access_token)
        params = {'userId': 'me', 'q': query}
        if max_results:
            params['maxResults'] = max_results
        results = self._execute(service.users().messages().list(**params))
        return results.get('messages', []) or []

    def get_message(self, access_token, message_id) -> dict:
        service = self._service(access_token)
        return self._execute(
            service.users().messages().get(userId='me', id=message_id, format='full')
        )

    def get_thread(self, access_token, thread_id) -> List[dict]:
        """All messages of a conversation, oldest first."""
        service = self._service(access_token)
        thread = self._execute(
            service.users().threads().get(userId='me', id=thread_id, format='full')
        )
        return thread.get('messages', []) or []

    def get_profile(self, access_token) -> dict:
        service = self._service(access_token)
        return self._execute(service.users().getProfile(userId='me'))
