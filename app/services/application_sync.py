"""Send-application and inbox-sync workflows.

Both workflows span three systems with no shared transaction (Google's token
endpoint, the Gmail API and our database). Once an email has been sent, it is
the fact of record: bookkeeping failures after that point are logged and do
not turn the send into an error.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from flask import current_app
from marshmallow import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.errors import AccessError, NotFoundError, TransportError, ValidationError
from app.extensions import db
from app.models import Application, ApplicationEvent, EmailMessage, Job
from app.models.application import (
    EVENT_EMAIL_RECEIVED,
    EVENT_SENT,
    EVENT_STATUS_CHANGE,
    STATUS_APPLIED,
)
from app.schemas import JobSchema
from app.services import credential_store
from app.services.application_matcher import MatchResult, correlate, infer_status
from app.services.gmail_client import SENT_QUERY, GmailClient, normalize_message
from app.services.mail_composer import OutboundMessage, compose, validate_header, validate_recipient
from app.services.resume_renderer import ResumeRenderer
from app.services.token_manager import TokenManager

MATCH_THREAD = 'thread'


@dataclass
class SendResult:
    sent: dict
    application: Optional[Application] = None
    email_message: Optional[EmailMessage] = None


@dataclass
class SyncResult:
    found: int = 0
    items: List[dict] = field(default_factory=list)
    failed: int = 0


def default_subject(job):
    return f"Application: {job.get('title')} at {job.get('company')}"


def default_body(job):
    return (
        f"<p>Hi,</p><p>Please find my resume for the {job.get('title')} role at "
        f"{job.get('company')}.</p><p>Best regards,</p>"
    )


class ApplicationSync:
    """Drive the send and sync workflows over the injected collaborators."""

    def __init__(self, token_manager, gmail, renderer, notifier, message_limit=50):
        self.token_manager = token_manager
        self.gmail = gmail
        self.renderer = renderer
        self.notifier = notifier
        self.message_limit = message_limit

    # --- Send workflow ---

    def send_application(self, owner, job, resume_id, sender_account_id,
                         subject=None, body_html=None, to_email=None):
        """Email a resume for a job from a linked mailbox and start tracking it.

        Args:
            owner: Requesting user id, or None to act as the credential's owner
            job: Job payload as received from the client
            resume_id: Resume reference; the PDF is named after it
            sender_account_id: OAuthCredential id of the mailbox to send from
            subject, body_html, to_email: Optional overrides

        Returns:
            SendResult
        """
        try:
            normalized_job = JobSchema().load(job or {})
        except SchemaValidationError as err:
            raise ValidationError('Invalid job', details={'errors': err.messages}) from err

        # Validate before touching any external system
        try:
            recipient = validate_recipient(to_email or normalized_job.get('contact_email'))
        except ValidationError as e:
            current_app.logger.warning('No recipient email for job %s', normalized_job.get('id'))
            e.details['applyUrl'] = normalized_job.get('url')
            raise
        final_subject = validate_header('Subject', subject or default_subject(normalized_job))
        validate_header('Filename', resume_id)

        credential = credential_store.get_credential(sender_account_id)
        if credential is None:
            raise NotFoundError('Sender account not found')
        if owner and credential.owner and owner != credential.owner:
            raise AccessError('Sender account does not belong to owner')
        owner = owner or credential.owner

        credential = self.token_manager.ensure_valid(credential)
        access_token = credential.access_token

        try:
            pdf_url = self.renderer.ensure_pdf(resume_id)
        except TransportError as e:
            raise TransportError(e.status, e.body, message='Failed to generate resume PDF') from e
        attachment = self.renderer.download(pdf_url)

        sender = self._sender_address(credential, access_token)
        final_body = body_html or default_body(normalized_job)

        envelope = compose(OutboundMessage(
            sender=sender,
            to=recipient,
            subject=final_subject,
            body_html=final_body,
            attachment=attachment,
            attachment_filename=f'{resume_id}.pdf',
        ))

        current_app.logger.info('Sending application email from %s to %s', sender, recipient)
        sent = self.gmail.send(access_token, envelope)
        current_app.logger.info('Gmail accepted message %s', sent.get('id'))

        # Everything below is bookkeeping for an email that has already gone out
        result = SendResult(sent=sent)
        now = datetime.utcnow()

        result.email_message = self._persist('email message', lambda: self._add(EmailMessage(
            owner=owner,
            provider=credential.provider,
            message_id=sent.get('id') or str(uuid.uuid4()),
            thread_id=sent.get('threadId'),
            direction='outbound',
            from_address=sender,
            to_address=recipient,
            subject=final_subject,
            body=final_body,
            raw=sent,
            received_at=now,
        )))

        result.application = self._persist('application', lambda: self._create_application(
            owner, job, normalized_job, resume_id, sender_account_id, sent, recipient, now
        ))

        if result.application is not None:
            application_id = result.application.id
            self._persist('sent event', lambda: self._add(ApplicationEvent(
                application_id=application_id,
                owner=owner,
                type=EVENT_SENT,
                message_id=sent.get('id'),
                payload={'message_id': sent.get('id'), 'subject': final_subject},
            )))
            self._notify(owner, {
                'type': 'application_sent',
                'priority': 'info',
                'title': 'Application sent',
                'message': 'Your application{} was sent successfully.'.format(
                    f" for {normalized_job['title']}" if normalized_job.get('title') else ''
                ),
                'url': f'/applications/{application_id}',
                'payload': {'applicationId': application_id, 'messageId': sent.get('id')},
            })

        return result

    def _sender_address(self, credential, access_token):
        email = credential.display_email()
        if email:
            return email
        try:
            email = self.gmail.get_profile(access_token).get('emailAddress')
        except TransportError as e:
            current_app.logger.warning('Gmail profile lookup failed: %s', e)
        return email or 'me'

    def _create_application(self, owner, job, normalized_job, resume_id, sender_account_id,
                            sent, recipient, now):
        job_id = normalized_job.get('id')
        if job_id:
            self._upsert_job(job, normalized_job)
        return self._add(Application(
            owner=owner,
            job_id=job_id,
            resume_id=resume_id,
            status=STATUS_APPLIED,
            email_message_id=sent.get('id'),
            thread_id=sent.get('threadId'),
            job_title=normalized_job.get('title'),
            company=normalized_job.get('company'),
            job_url=normalized_job.get('url'),
            contact_email=normalized_job.get('contact_email') or recipient,
            data={'job': job, 'resumeId': resume_id, 'senderAccountId': sender_account_id},
            applied_date=now,
        ))

    @staticmethod
    def _upsert_job(job, normalized_job):
        record = db.session.get(Job, normalized_job['id'])
        if record is None:
            record = Job(id=normalized_job['id'])
            db.session.add(record)
        for name in ('title', 'company', 'url', 'contact_email'):
            if normalized_job.get(name):
                setattr(record, name, normalized_job[name])
        record.data = job
        return record

    # --- Inbox sync workflow ---

    def sync_inbox(self, owner, credential_id=None):
        """Correlate recent Sent-folder mail and thread replies with applications.

        Processes at most `message_limit` candidates. A failure on one
        message is logged and the rest of the batch carries on.
        """
        credential = self._sync_credential(owner, credential_id)
        credential = self.token_manager.ensure_valid(credential)
        access_token = credential.access_token

        applications = Application.query.filter_by(owner=owner).order_by(Application.id.asc()).all()
        jobs = Job.query.all()
        result = SyncResult()

        self.sync_threads(owner, access_token, applications, result)

        refs = self.gmail.list_messages(access_token, SENT_QUERY)
        current_app.logger.info('Sync for %s: %d candidate messages', owner, len(refs))

        for ref in refs[:self.message_limit]:
            message_id = ref.get('id')
            try:
                item = self._process_candidate(owner, access_token, message_id, applications, jobs)
            except Exception as e:
                db.session.rollback()
                result.failed += 1
                current_app.logger.warning('Failed to process message %s: %s', message_id, e)
                continue
            if item is not None:
                result.items.append(item)

        result.found = len(result.items)
        return result

    def _sync_credential(self, owner, credential_id):
        if credential_id is not None:
            credential = credential_store.get_credential(credential_id)
            if credential is None:
                raise NotFoundError('Linked account not found')
            if credential.owner != owner:
                raise AccessError('Linked account does not belong to owner')
            return credential
        credentials = credential_store.list_credentials(owner)
        if not credentials:
            raise NotFoundError('No oauth provider found for user')
        return credentials[0]

    def sync_threads(self, owner, access_token, applications, result):
        """Walk the conversations of the most recent tracked applications for replies.

        At most `message_limit` threads are fetched per run, newest applications first.
        """
        threaded = sorted((a for a in applications if a.thread_id), key=lambda a: a.id, reverse=True)
        for application in threaded[:self.message_limit]:
            try:
                messages = self.gmail.get_thread(access_token, application.thread_id)
            except TransportError as e:
                current_app.logger.warning('Failed to fetch thread %s: %s', application.thread_id, e)
                continue

            for full in messages:
                message_id = full.get('id')
                if not message_id or str(message_id) == str(application.email_message_id):
                    continue
                try:
                    if self._already_stored(message_id):
                        continue
                    message = normalize_message(full)
                    self._store_message(owner, message)
                    match = MatchResult(application, infer_status(message.search_text), MATCH_THREAD)
                    notification = self._apply_match(owner, message, match)
                    db.session.commit()
                except Exception as e:
                    db.session.rollback()
                    result.failed += 1
                    current_app.logger.warning('Failed to process thread message %s: %s', message_id, e)
                    continue
                self._notify(owner, notification)
                result.items.append(self._summary(message, match))

    def _process_candidate(self, owner, access_token, message_id, applications, jobs):
        """Fetch, store and correlate one message. Returns a summary, or None if seen before."""
        if self._already_stored(message_id):
            return None

        message = normalize_message(self.gmail.get_message(access_token, message_id))
        self._store_message(owner, message)

        match = correlate(message, applications, jobs)
        notification = None
        if match.matched:
            current_app.logger.info('Message %s matched application %s by %s',
                                    message.id, match.application.id, match.matched_by)
            notification = self._apply_match(owner, message, match)
        else:
            db.session.add(ApplicationEvent(
                application_id=None,
                owner=owner,
                type=EVENT_EMAIL_RECEIVED,
                message_id=message.id,
                payload={'email_message_id': message.id, 'subject': message.subject,
                         'snippet': message.snippet},
            ))
        db.session.commit()

        self._notify(owner, notification)
        return self._summary(message, match)

    @staticmethod
    def _already_stored(message_id):
        return EmailMessage.query.filter_by(message_id=str(message_id)).first() is not None

    @staticmethod
    def _store_message(owner, message):
        record = EmailMessage(
            owner=owner,
            provider='google',
            message_id=message.id,
            thread_id=message.thread_id,
            direction='outbound' if 'SENT' in message.label_ids else 'inbound',
            from_address=message.from_address,
            to_address=message.to_address,
            subject=message.subject,
            body=message.body,
            headers=message.headers,
            raw=message.raw,
            received_at=message.received_at,
        )
        db.session.add(record)
        return record

    def _apply_match(self, owner, message, match):
        """Patch the matched application and queue its events. Caller commits.

        Returns the notification to send after commit, if the status changed.
        """
        application = match.application
        previous = application.status
        application.parsed_from_email = True
        application.last_synced_at = datetime.utcnow()
        if not application.thread_id and message.thread_id:
            application.thread_id = message.thread_id

        db.session.add(ApplicationEvent(
            application_id=application.id,
            owner=owner,
            type=EVENT_EMAIL_RECEIVED,
            message_id=message.id,
            payload={'email_message_id': message.id, 'subject': message.subject,
                     'snippet': message.snippet, 'matched_by': match.matched_by},
        ))

        if not match.status_hint or match.status_hint == previous:
            return None

        application.status = match.status_hint
        db.session.add(ApplicationEvent(
            application_id=application.id,
            owner=owner,
            type=EVENT_STATUS_CHANGE,
            message_id=message.id,
            payload={'from': previous, 'to': match.status_hint, 'reason': 'Detected from email',
                     'matched_by': match.matched_by},
        ))
        return {
            'type': 'application_status_change',
            'priority': 'important',
            'title': 'Application status updated',
            'message': 'Your application{} is now {}'.format(
                f' for {application.job_title}' if application.job_title else '', match.status_hint
            ),
            'url': f'/applications/{application.id}',
            'payload': {'applicationId': application.id, 'from': previous, 'to': match.status_hint},
        }

    @staticmethod
    def _summary(message, match):
        return {
            'message_id': message.id,
            'thread_id': message.thread_id,
            'subject': message.subject,
            'matched_application_id': match.application.id if match.application else None,
            'matched_by': match.matched_by,
            'status_hint': match.status_hint,
        }

    # --- Helpers ---

    @staticmethod
    def _add(record):
        db.session.add(record)
        db.session.commit()
        return record

    @staticmethod
    def _persist(label, write):
        """Run a post-send write; failures are logged and yield None."""
        try:
            return write()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.warning('Failed to persist %s after send: %s', label, e)
            return None

    def _notify(self, owner, payload):
        if not payload:
            return
        try:
            self.notifier.notify(owner, payload)
        except Exception as e:
            current_app.logger.warning('Notification dispatch failed: %s', e)


def build_application_sync():
    """Wire an ApplicationSync from the current app's configuration."""
    cfg = current_app.config
    timeout = cfg.get('HTTP_TIMEOUT')
    return ApplicationSync(
        token_manager=TokenManager(timeout=timeout),
        gmail=GmailClient(timeout=timeout),
        renderer=ResumeRenderer(cfg['RESUME_RENDER_URL'], timeout=timeout),
        notifier=current_app.extensions['notifier'],
        message_limit=cfg.get('SYNC_MESSAGE_LIMIT', 50),
    )
