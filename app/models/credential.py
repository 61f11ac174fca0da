"""Linked mailbox OAuth credential model."""

from datetime import datetime
from app.extensions import db


class OAuthCredential(db.Model):
    """OAuth grant for one linked mailbox. An owner may link several accounts."""

    __tablename__ = 'oauth_credentials'
    __table_args__ = (
        db.UniqueConstraint('owner', 'provider', 'provider_user_id', name='uq_credential_identity'),
    )

    id = db.Column(db.Integer, primary_key=True)
    owner = db.Column(db.String(255), nullable=False, index=True)
    provider = db.Column(db.String(50), nullable=False, default='google')
    provider_user_id = db.Column(db.String(255), nullable=True)  # "sub" claim, immutable once set

    # OAuth tokens (encrypted in production)
    access_token = db.Column(db.Text, nullable=True)
    refresh_token = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)  # naive UTC; NULL means assume expired
    raw = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<OAuthCredential {self.provider}:{self.provider_user_id} owner={self.owner}>'

    def _claims(self):
        raw = self.raw or {}
        claims = raw.get('userinfo')
        return claims if isinstance(claims, dict) else {}

    def display_email(self):
        """Best known email address for the linked mailbox."""
        raw = self.raw or {}
        return self._claims().get('email') or raw.get('email') or None

    def display_name(self):
        raw = self.raw or {}
        return self._claims().get('name') or raw.get('name') or None

    def to_dict(self):
        """Sanitized view; tokens are never serialized."""
        return {
            'id': self.id,
            'provider': self.provider,
            'provider_user_id': self.provider_user_id,
            'name': self.display_name(),
            'email': self.display_email(),
            'picture': self._claims().get('picture') or (self.raw or {}).get('picture'),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'is_connected': bool(self.refresh_token or self.access_token),
        }
