"""Data access for linked mailbox credentials."""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.errors import PersistenceError
from app.extensions import db
from app.models import OAuthCredential

PROVIDER_GOOGLE = 'google'


def get_credential(credential_id):
    """Fetch a credential row by id, or None."""
    return db.session.get(OAuthCredential, credential_id)


def list_credentials(owner, provider=PROVIDER_GOOGLE):
    """All linked accounts for an owner, oldest first."""
    return (
        OAuthCredential.query
        .filter_by(owner=owner, provider=provider)
        .order_by(OAuthCredential.created_at.asc(), OAuthCredential.id.asc())
        .all()
    )


def save_linked_account(owner, provider, provider_user_id, tokens):
    """Create or refresh the credential row after a successful code exchange.

    Args:
        owner: Owning user id
        provider: Provider tag, e.g. "google"
        provider_user_id: Stable subject id from the identity token
        tokens: dict with access_token, refresh_token, expires_at and raw

    Returns:
        The persisted OAuthCredential
    """
    credential = None
    if provider_user_id:
        credential = OAuthCredential.query.filter_by(
            owner=owner, provider=provider, provider_user_id=provider_user_id
        ).first()

    if credential is None:
        credential = OAuthCredential(
            owner=owner,
            provider=provider,
            provider_user_id=provider_user_id,
        )
        db.session.add(credential)

    credential.access_token = tokens.get('access_token')
    credential.expires_at = tokens.get('expires_at')
    credential.raw = tokens.get('raw')
    # Google only returns a refresh token on first consent; keep the one we have
    if tokens.get('refresh_token'):
        credential.refresh_token = tokens['refresh_token']

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f'Failed to save linked account: {e}') from e

    return credential


def update_tokens(credential, expected_expires_at, access_token, expires_at, raw, refresh_token=None):
    """Persist a refresh result if nobody else refreshed the row first.

    The write is conditional on the stored expires_at still matching
    expected_expires_at, so two racing refreshes cannot clobber each other.

    Returns:
        True if the row was updated, False if the stored expiry had moved on.
    """
    values = {
        OAuthCredential.access_token: access_token,
        OAuthCredential.expires_at: expires_at,
        OAuthCredential.raw: raw,
    }
    if refresh_token:
        values[OAuthCredential.refresh_token] = refresh_token

    query = OAuthCredential.query.filter(OAuthCredential.id == credential.id)
    if expected_expires_at is None:
        query = query.filter(OAuthCredential.expires_at.is_(None))
    else:
        query = query.filter(OAuthCredential.expires_at == expected_expires_at)

    try:
        updated = query.update(values, synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f'Failed to persist refreshed token: {e}') from e

    if not updated:
        current_app.logger.info(
            'Credential %s was refreshed concurrently; using stored token', credential.id
        )
    return bool(updated)


def delete_credential(owner, credential_id):
    """Unlink an account. Only rows owned by `owner` are removed."""
    try:
        deleted = OAuthCredential.query.filter_by(id=credential_id, owner=owner).delete()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f'Failed to remove linked account: {e}') from e
    return bool(deleted)
