"""Access token lifecycle for linked mailbox credentials."""

import json
from datetime import datetime, timedelta
from urllib.parse import urlencode

from flask import current_app
from google.auth.transport.requests import Request

from app.errors import CredentialError
from app.services import credential_store
from app.services.google_oauth import DEFAULT_TOKEN_LIFETIME, get_client_credentials


class TokenManager:
    """Keep a stored access token usable, refreshing it against Google when due.

    There is no in-memory token cache: the credential store stays the single
    source of truth, and concurrent refreshes are reconciled there.
    """

    def __init__(self, transport=None, timeout=None):
        """
        Args:
            transport: google.auth transport callable; a requests-backed
                Request() is used when omitted
            timeout: Seconds to wait on the token endpoint
        """
        self.transport = transport or Request()
        self.timeout = timeout

    def ensure_valid(self, credential):
        """Return a credential whose access token can be used right now.

        A token whose expiry is still in the future is returned untouched,
        without any network call.
        """
        now = datetime.utcnow()
        if credential.expires_at is not None and credential.expires_at > now:
            return credential

        if not credential.refresh_token:
            raise CredentialError('no refresh token')

        # Read before the network call; the row may change underneath us
        expected_expires_at = credential.expires_at
        credential_id = credential.id
        base_raw = dict(credential.raw or {})

        token_json = self._request_refresh(credential.refresh_token)

        expires_in = token_json.get('expires_in') or DEFAULT_TOKEN_LIFETIME
        expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in))
        raw = base_raw
        raw.update({k: v for k, v in token_json.items() if k not in ('access_token', 'refresh_token')})

        updated = credential_store.update_tokens(
            credential,
            expected_expires_at,
            access_token=token_json['access_token'],
            expires_at=expires_at,
            raw=raw,
            refresh_token=token_json.get('refresh_token'),
        )
        if updated:
            current_app.logger.info('Refreshed access token for credential %s', credential_id)
        # On a lost race the winner's stored token is authoritative
        return credential_store.get_credential(credential_id)

    def _request_refresh(self, refresh_token):
        """POST a refresh_token grant to the token endpoint. Returns the token JSON."""
        try:
            client_id, client_secret, token_uri = get_client_credentials()
        except ValueError as e:
            raise CredentialError(str(e)) from e

        body = urlencode({
            'client_id': client_id,
            'client_secret': client_secret,
            'refresh_token': refresh_token,
            'grant_type': 'refresh_token',
        })
        timeout = self.timeout or current_app.config.get('HTTP_TIMEOUT')
        response = self.transport(
            url=token_uri,
            method='POST',
            body=body,
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
            timeout=timeout,
        )

        data = response.data.decode('utf-8', errors='replace') if isinstance(response.data, bytes) else response.data
        if not 200 <= response.status < 300:
            current_app.logger.warning('Token refresh failed with status %s', response.status)
            raise CredentialError('refresh failed', provider_status=response.status, body=data)

        try:
            token_json = json.loads(data)
        except (TypeError, ValueError) as e:
            raise CredentialError('refresh failed', provider_status=response.status, body=data) from e
        if not token_json.get('access_token'):
            raise CredentialError('refresh failed', provider_status=response.status, body=data)
        return token_json
