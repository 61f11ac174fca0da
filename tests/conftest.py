"""
Shared fixtures and in-memory fakes for the Gmail tracker tests.

External collaborators (Google token endpoint, Gmail API, PDF renderer,
notification hook) are replaced with small fakes that record their calls.
"""

import json
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app import create_app
from app.errors import TransportError
from app.extensions import db as _db
from app.models import Application, Job, OAuthCredential
from app.services.application_sync import ApplicationSync
from app.services.token_manager import TokenManager


# ============================================================
# App / client fixtures
# ============================================================


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()
    app.extensions['notifier'].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


# ============================================================
# Fakes
# ============================================================


class FakeTokenTransport:
    """Stands in for google.auth.transport.requests.Request."""

    def __init__(self, status=200, payload=None, on_call=None):
        self.status = status
        self.payload = payload if payload is not None else {
            'access_token': 'fresh-access', 'expires_in': 3599, 'token_type': 'Bearer',
        }
        self.on_call = on_call
        self.calls = []

    def __call__(self, url, method='GET', body=None, headers=None, timeout=None, **kwargs):
        self.calls.append({'url': url, 'method': method, 'body': body, 'headers': headers})
        if self.on_call:
            self.on_call()
        data = self.payload if isinstance(self.payload, (bytes, str)) else json.dumps(self.payload)
        if isinstance(data, str):
            data = data.encode('utf-8')
        return SimpleNamespace(status=self.status, data=data, headers={})


class FakeGmail:
    """In-memory Gmail API."""

    def __init__(self):
        self.messages = {}
        self.threads = {}
        self.refs = []
        self.sent = []
        self.fail_get = set()
        self.fail_send = None
        self.get_calls = []
        self.thread_calls = []
        self.profile = {'emailAddress': 'profile@example.com'}

    def add(self, message, listed=True):
        self.messages[message['id']] = message
        if listed:
            self.refs.append({'id': message['id'], 'threadId': message.get('threadId')})
        return message

    def send(self, access_token, envelope):
        if self.fail_send:
            raise self.fail_send
        n = len(self.sent) + 1
        self.sent.append({'access_token': access_token, 'envelope': envelope})
        return {'id': f'sent-{n}', 'threadId': f'thread-{n}', 'labelIds': ['SENT']}

    def list_messages(self, access_token, query, max_results=None):
        return list(self.refs)

    def get_message(self, access_token, message_id):
        self.get_calls.append(message_id)
        if message_id in self.fail_get:
            raise TransportError(500, 'backend error')
        return self.messages[message_id]

    def get_thread(self, access_token, thread_id):
        self.thread_calls.append(thread_id)
        return self.threads.get(thread_id, [])

    def get_profile(self, access_token):
        return self.profile


class FakeRenderer:
    def __init__(self, pdf=b'%PDF-1.4 fake resume', fail=False):
        self.pdf = pdf
        self.fail = fail
        self.rendered = []

    def ensure_pdf(self, resume_id):
        if self.fail:
            raise TransportError(500, 'renderer down')
        self.rendered.append(resume_id)
        return f'https://storage.test/{resume_id}.pdf'

    def download(self, url):
        return self.pdf


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, owner, payload):
        self.sent.append((owner, payload))


def build_gmail_message(id, subject='', snippet='', to='', sender='me@example.com',
                        thread_id=None, labels=('SENT',), internal_date='1700000000000'):
    """Build a format=full Gmail message resource."""
    return {
        'id': id,
        'threadId': thread_id or f'thread-of-{id}',
        'labelIds': list(labels),
        'snippet': snippet,
        'internalDate': internal_date,
        'payload': {
            'headers': [
                {'name': 'Subject', 'value': subject},
                {'name': 'From', 'value': sender},
                {'name': 'To', 'value': to},
            ],
        },
    }


# ============================================================
# Factories
# ============================================================


@pytest.fixture
def make_credential(db):
    def _make(owner='user-1', expires_at='future', refresh_token='refresh-1',
              access_token='access-1', email='me@example.com', sub='sub-1'):
        if expires_at == 'future':
            expires_at = datetime.utcnow() + timedelta(hours=1)
        credential = OAuthCredential(
            owner=owner,
            provider='google',
            provider_user_id=sub,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            raw={'userinfo': {'sub': sub, 'email': email, 'name': 'Me'}} if email else {},
        )
        db.session.add(credential)
        db.session.commit()
        return credential
    return _make


@pytest.fixture
def make_application(db):
    def _make(owner='user-1', job_id='j1', job_title='Backend Engineer', company='Acme',
              job_url=None, contact_email=None, thread_id=None, email_message_id=None,
              status='Applied'):
        application = Application(
            owner=owner,
            job_id=job_id,
            resume_id='r1',
            status=status,
            job_title=job_title,
            company=company,
            job_url=job_url,
            contact_email=contact_email,
            thread_id=thread_id,
            email_message_id=email_message_id,
        )
        db.session.add(application)
        db.session.commit()
        return application
    return _make


@pytest.fixture
def make_job(db):
    def _make(id='j1', title='Backend Engineer', company='Acme', url=None, contact_email=None):
        job = Job(id=id, title=title, company=company, url=url, contact_email=contact_email)
        db.session.add(job)
        db.session.commit()
        return job
    return _make


# ============================================================
# Workflow wiring
# ============================================================


@pytest.fixture
def token_transport():
    return FakeTokenTransport()


@pytest.fixture
def gmail():
    return FakeGmail()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def sync(app, token_transport, gmail, renderer, notifier, monkeypatch):
    """An ApplicationSync over fakes, also served to the API routes."""
    workflow = ApplicationSync(
        token_manager=TokenManager(transport=token_transport),
        gmail=gmail,
        renderer=renderer,
        notifier=notifier,
        message_limit=app.config['SYNC_MESSAGE_LIMIT'],
    )
    monkeypatch.setattr('app.services.application_sync.build_application_sync', lambda: workflow)
    return workflow


@pytest.fixture
def gmail_message():
    return build_gmail_message


@pytest.fixture
def transport_factory():
    return FakeTokenTransport
