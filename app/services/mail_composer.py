"""Build the Gmail send envelope for an application email."""

import base64
import logging
import re
import uuid
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.errors import ValidationError

EMAIL_SHAPE = re.compile(r'\S+@\S+\.\S+')
LINE_BREAK = re.compile(r'[\r\n]')

logger = logging.getLogger(__name__)


@dataclass
class OutboundMessage:
    """One outbound application email. Never persisted as-is."""

    sender: str
    to: str
    subject: str
    body_html: str
    attachment: bytes
    attachment_filename: str


def validate_recipient(address):
    """Return the trimmed address, or raise if it does not look like an email."""
    address = (address or '').strip()
    if not EMAIL_SHAPE.search(address):
        raise ValidationError('no recipient')
    if LINE_BREAK.search(address):
        raise ValidationError('invalid recipient')
    return address


def validate_header(name, value):
    """Return the header value, or raise if it carries CR or LF."""
    if value and LINE_BREAK.search(value):
        logger.warning('Rejected %s header containing a line break', name)
        raise ValidationError(f'invalid {name.lower()}')
    return value


def new_boundary():
    return f'----=_jobtracker_{uuid.uuid4().hex}'


def build_mime(message: OutboundMessage) -> MIMEMultipart:
    """multipart/mixed with exactly one HTML part and one PDF attachment."""
    mime = MIMEMultipart('mixed', boundary=new_boundary())
    mime['From'] = message.sender
    mime['To'] = message.to
    mime['Subject'] = message.subject

    mime.attach(MIMEText(message.body_html or '', 'html', 'utf-8'))

    attachment = MIMEApplication(message.attachment, _subtype='pdf')
    attachment.add_header('Content-Disposition', 'attachment', filename=message.attachment_filename)
    mime.attach(attachment)
    return mime


def encode_envelope(mime) -> str:
    """Gmail's send API wants the RFC 822 bytes as unpadded base64url."""
    return base64.urlsafe_b64encode(mime.as_bytes()).decode('ascii').rstrip('=')


def compose(message: OutboundMessage) -> str:
    """Validate and encode an OutboundMessage into a transport envelope."""
    validate_recipient(message.to)
    validate_header('From', message.sender)
    validate_header('Subject', message.subject)
    validate_header('Filename', message.attachment_filename)
    envelope = encode_envelope(build_mime(message))
    logger.debug('Composed %d byte envelope with %s attachment', len(envelope), message.attachment_filename)
    return envelope


def decode_envelope(envelope: str) -> bytes:
    """Inverse of encode_envelope; restores the stripped padding."""
    padding = '=' * (-len(envelope) % 4)
    return base64.urlsafe_b64decode(envelope + padding)
