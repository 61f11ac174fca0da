"""Job, application and application event models."""

from datetime import datetime
from app.extensions import db

STATUS_APPLIED = 'Applied'
STATUS_INTERVIEWING = 'Interviewing'
STATUS_OFFER = 'Offer'
STATUS_REJECTED = 'Rejected'
STATUSES = [STATUS_APPLIED, STATUS_INTERVIEWING, STATUS_OFFER, STATUS_REJECTED]

EVENT_SENT = 'sent'
EVENT_EMAIL_RECEIVED = 'email_received'
EVENT_STATUS_CHANGE = 'status_change'
EVENT_TYPES = [EVENT_SENT, EVENT_EMAIL_RECEIVED, EVENT_STATUS_CHANGE]


class Job(db.Model):
    """A job posting known to the tracker, keyed by its external reference."""

    __tablename__ = 'jobs'

    id = db.Column(db.String(255), primary_key=True)
    title = db.Column(db.String(255), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    url = db.Column(db.Text, nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    data = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Job {self.id} {self.title} - {self.company}>'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'company': self.company,
            'url': self.url,
            'contact_email': self.contact_email,
        }


class Application(db.Model):
    """Model for tracking a job application sent through a linked mailbox."""

    __tablename__ = 'applications'

    id = db.Column(db.Integer, primary_key=True)
    owner = db.Column(db.String(255), nullable=True, index=True)
    job_id = db.Column(db.String(255), nullable=True)
    resume_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(50), nullable=False, default=STATUS_APPLIED)

    # Correlation keys back to the sent message
    email_message_id = db.Column(db.String(255), nullable=True)
    thread_id = db.Column(db.String(255), nullable=True, index=True)

    # Denormalized job fields used by the matcher
    job_title = db.Column(db.String(255), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    job_url = db.Column(db.Text, nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    data = db.Column(db.JSON, nullable=True)

    applied_date = db.Column(db.DateTime, default=datetime.utcnow)
    parsed_from_email = db.Column(db.Boolean, default=False)
    last_synced_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = db.relationship(
        'ApplicationEvent',
        backref='application',
        lazy='dynamic',
        order_by='ApplicationEvent.id',
    )

    def __repr__(self):
        return f'<Application {self.id} {self.company} - {self.job_title} ({self.status})>'

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'owner': self.owner,
            'job_id': self.job_id,
            'resume_id': self.resume_id,
            'status': self.status,
            'email_message_id': self.email_message_id,
            'thread_id': self.thread_id,
            'job_title': self.job_title,
            'company': self.company,
            'job_url': self.job_url,
            'contact_email': self.contact_email,
            'applied_date': self.applied_date.isoformat() if self.applied_date else None,
            'parsed_from_email': self.parsed_from_email,
            'last_synced_at': self.last_synced_at.isoformat() if self.last_synced_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class ApplicationEvent(db.Model):
    """Append-only audit trail entry. A NULL application_id marks an unmatched email."""

    __tablename__ = 'application_events'

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(db.Integer, db.ForeignKey('applications.id'), nullable=True, index=True)
    owner = db.Column(db.String(255), nullable=True, index=True)
    type = db.Column(db.String(50), nullable=False)  # sent, email_received, status_change
    message_id = db.Column(db.String(255), nullable=True, index=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<ApplicationEvent {self.type} app={self.application_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'application_id': self.application_id,
            'type': self.type,
            'message_id': self.message_id,
            'payload': self.payload,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
