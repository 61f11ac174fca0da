"""Database models."""

from app.models.application import Job, Application, ApplicationEvent
from app.models.credential import OAuthCredential
from app.models.email_message import EmailMessage

__all__ = [
    'Job',
    'Application',
    'ApplicationEvent',
    'OAuthCredential',
    'EmailMessage',
]
