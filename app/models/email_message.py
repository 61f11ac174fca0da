"""Stored mail messages seen by the send and sync workflows."""

from datetime import datetime
from app.extensions import db


class EmailMessage(db.Model):
    """Raw mail record, keyed by the provider's message id."""

    __tablename__ = 'email_messages'

    id = db.Column(db.Integer, primary_key=True)
    owner = db.Column(db.String(255), nullable=True, index=True)
    provider = db.Column(db.String(50), default='google')
    message_id = db.Column(db.String(255), unique=True, nullable=False)
    thread_id = db.Column(db.String(255), nullable=True)
    direction = db.Column(db.String(20), default='inbound')  # outbound, inbound

    from_address = db.Column(db.String(255))
    to_address = db.Column(db.String(255))
    subject = db.Column(db.Text)
    body = db.Column(db.Text)
    headers = db.Column(db.JSON, nullable=True)
    raw = db.Column(db.JSON, nullable=True)

    received_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'provider': self.provider,
            'message_id': self.message_id,
            'thread_id': self.thread_id,
            'direction': self.direction,
            'from_address': self.from_address,
            'to_address': self.to_address,
            'subject': self.subject,
            'received_at': self.received_at.isoformat() if self.received_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
