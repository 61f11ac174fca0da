"""Tests for POST /api/v1/applications/send."""

import email

from sqlalchemy.exc import SQLAlchemyError

from app.errors import TransportError
from app.models import Application, ApplicationEvent, EmailMessage, Job
from app.services.application_sync import ApplicationSync
from app.services.mail_composer import decode_envelope

JOB = {'id': 'j1', 'title': 'Backend Engineer', 'company': 'Acme', 'contact_email': 'hr@acme.com'}


def _payload(credential_id, job=None, **extra):
    body = {'job': job or JOB, 'resumeId': 'r1', 'senderAccountId': credential_id, 'owner': 'user-1'}
    body.update(extra)
    return body


def test_send_creates_application_and_audit_trail(client, sync, gmail, notifier, make_credential):
    credential = make_credential()

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 200
    data = resp.get_json()
    assert data['success'] is True
    assert data['sent']['id'] == 'sent-1'
    assert data['application']['status'] == 'Applied'
    assert data['application']['email_message_id'] == 'sent-1'
    assert data['application']['thread_id'] == 'thread-1'
    assert data['application']['contact_email'] == 'hr@acme.com'

    assert len(gmail.sent) == 1
    assert gmail.sent[0]['access_token'] == 'access-1'
    parsed = email.message_from_bytes(decode_envelope(gmail.sent[0]['envelope']))
    assert parsed['To'] == 'hr@acme.com'
    assert parsed['From'] == 'me@example.com'
    assert parsed['Subject'] == 'Application: Backend Engineer at Acme'
    assert parsed.get_payload()[1].get_filename() == 'r1.pdf'

    application = Application.query.one()
    assert application.owner == 'user-1'
    events = application.events.all()
    assert [e.type for e in events] == ['sent']
    assert events[0].message_id == 'sent-1'
    assert Job.query.filter_by(id='j1').one().title == 'Backend Engineer'
    outbound = EmailMessage.query.one()
    assert outbound.direction == 'outbound'
    assert outbound.message_id == 'sent-1'

    assert len(notifier.sent) == 1
    owner, notification = notifier.sent[0]
    assert owner == 'user-1'
    assert notification['type'] == 'application_sent'
    assert notification['payload']['applicationId'] == application.id


def test_missing_recipient_sends_nothing(client, sync, gmail, renderer, notifier, make_credential):
    credential = make_credential()
    job = {'id': 'j1', 'title': 'Backend Engineer', 'company': 'Acme',
           'apply_url': 'https://jobs.acme.com/1'}

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id, job=job))

    assert resp.status_code == 400
    data = resp.get_json()
    assert data['error'] == 'no recipient'
    assert data['applyUrl'] == 'https://jobs.acme.com/1'
    assert gmail.sent == []
    assert renderer.rendered == []
    assert notifier.sent == []
    assert Application.query.count() == 0
    assert ApplicationEvent.query.count() == 0


def test_provider_specific_email_field_is_used(client, sync, gmail, make_credential):
    credential = make_credential()
    job = {'id': 'j2', 'position': 'SRE', 'company': {'name': 'Globex'}, 'apply_email': 'jobs@globex.com'}

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id, job=job))

    assert resp.status_code == 200
    parsed = email.message_from_bytes(decode_envelope(gmail.sent[0]['envelope']))
    assert parsed['To'] == 'jobs@globex.com'
    application = Application.query.one()
    assert application.job_title == 'SRE'
    assert application.company == 'Globex'


def test_to_email_override_wins(client, sync, gmail, make_credential):
    credential = make_credential()

    resp = client.post('/api/v1/applications/send',
                       json=_payload(credential.id, toEmail='cto@acme.com', subject='Hello'))

    assert resp.status_code == 200
    parsed = email.message_from_bytes(decode_envelope(gmail.sent[0]['envelope']))
    assert parsed['To'] == 'cto@acme.com'
    assert parsed['Subject'] == 'Hello'


def test_missing_fields_are_rejected(client, sync, gmail):
    resp = client.post('/api/v1/applications/send', json={'job': JOB})

    assert resp.status_code == 400
    errors = resp.get_json()['errors']
    assert 'resumeId' in errors
    assert 'senderAccountId' in errors
    assert gmail.sent == []


def test_unknown_sender_account_is_404(client, sync, gmail):
    resp = client.post('/api/v1/applications/send', json=_payload(999))

    assert resp.status_code == 404
    assert gmail.sent == []


def test_sender_account_of_another_owner_is_403(client, sync, gmail, make_credential):
    credential = make_credential(owner='someone-else')

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 403
    assert gmail.sent == []


def test_expired_credential_without_refresh_token_is_401(client, sync, gmail, make_credential):
    credential = make_credential(expires_at=None, refresh_token=None)

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'no refresh token'
    assert gmail.sent == []


def test_renderer_failure_is_502(client, sync, gmail, renderer, make_credential):
    renderer.fail = True
    credential = make_credential()

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 502
    assert resp.get_json()['error'] == 'Failed to generate resume PDF'
    assert gmail.sent == []


def test_gmail_rejection_is_502_and_records_nothing(client, sync, gmail, make_credential):
    gmail.fail_send = TransportError(400, '{"error": "invalidArgument"}')
    credential = make_credential()

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 502
    data = resp.get_json()
    assert data['status'] == 400
    assert 'invalidArgument' in data['details']
    assert Application.query.count() == 0
    assert EmailMessage.query.count() == 0


def test_bookkeeping_failure_after_send_still_reports_success(client, sync, gmail, notifier,
                                                               make_credential, monkeypatch):
    credential = make_credential()

    def broken(*args, **kwargs):
        raise SQLAlchemyError('database is locked')

    monkeypatch.setattr(ApplicationSync, '_create_application', broken)

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 200
    data = resp.get_json()
    assert data['success'] is True
    assert data['sent']['id'] == 'sent-1'
    assert data['application'] is None
    assert len(gmail.sent) == 1
    assert Application.query.count() == 0
    assert ApplicationEvent.query.count() == 0
    assert notifier.sent == []


def test_sender_falls_back_to_profile_address(client, sync, gmail, make_credential):
    credential = make_credential(email=None)

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 200
    parsed = email.message_from_bytes(decode_envelope(gmail.sent[0]['envelope']))
    assert parsed['From'] == 'profile@example.com'


def test_subject_with_line_break_is_rejected_before_sending(client, sync, gmail, renderer, make_credential):
    credential = make_credential()

    resp = client.post('/api/v1/applications/send',
                       json=_payload(credential.id, subject='Hello\r\nBcc: victim@evil.com'))

    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid subject'
    assert gmail.sent == []
    assert renderer.rendered == []
    assert Application.query.count() == 0


def test_job_title_with_line_break_is_rejected(client, sync, gmail, make_credential):
    credential = make_credential()
    job = dict(JOB, title='Engineer\r\nBcc: victim@evil.com')

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id, job=job))

    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid subject'
    assert gmail.sent == []


def test_failing_notifier_does_not_fail_the_send(client, sync, gmail, make_credential):
    class BrokenNotifier:
        def notify(self, owner, payload):
            raise RuntimeError('executor has been shut down')

    sync.notifier = BrokenNotifier()
    credential = make_credential()

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 200
    assert resp.get_json()['application']['status'] == 'Applied'
    assert len(gmail.sent) == 1
    assert Application.query.count() == 1


def test_send_without_owner_is_400(client, sync, gmail, make_credential):
    credential = make_credential()
    body = _payload(credential.id)
    del body['owner']

    resp = client.post('/api/v1/applications/send', json=body)

    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Missing owner'
    assert gmail.sent == []


def test_owner_parameter_is_ignored_unless_trusted(app, client, sync, gmail, make_credential):
    app.config['TRUST_OWNER_PARAM'] = False
    credential = make_credential()

    resp = client.post('/api/v1/applications/send', json=_payload(credential.id))

    assert resp.status_code == 400
    assert gmail.sent == []

    with client.session_transaction() as sess:
        sess['user_id'] = 'user-1'
    resp = client.post('/api/v1/applications/send', json=_payload(credential.id, owner='someone-else'))

    assert resp.status_code == 200
    assert Application.query.one().owner == 'user-1'
