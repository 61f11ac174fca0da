"""Google OAuth service for linking Gmail accounts."""

import os
import json
from datetime import datetime, timedelta
from flask import current_app
from google.auth import jwt
from google_auth_oauthlib.flow import Flow

# openid/email/profile give us a stable subject id; send + readonly cover both workflows
SCOPES = [
    'openid',
    'https://www.googleapis.com/auth/userinfo.email',
    'https://www.googleapis.com/auth/userinfo.profile',
    'https://www.googleapis.com/auth/gmail.send',
    'https://www.googleapis.com/auth/gmail.readonly',
]

AUTH_URI = 'https://accounts.google.com/o/oauth2/auth'

# Assumed access token lifetime when the token endpoint omits expires_in
DEFAULT_TOKEN_LIFETIME = 3600


def get_client_config():
    """Get OAuth client configuration from app config or a client secrets file."""
    client_id = current_app.config.get('GOOGLE_CLIENT_ID')
    client_secret = current_app.config.get('GOOGLE_CLIENT_SECRET')

    if client_id and client_secret:
        return {
            'web': {
                'client_id': client_id,
                'client_secret': client_secret,
                'auth_uri': AUTH_URI,
                'token_uri': current_app.config['GOOGLE_TOKEN_URI'],
                'redirect_uris': [current_app.config['GOOGLE_OAUTH_REDIRECT']],
            }
        }

    # Fall back to credentials file
    creds_file = current_app.config.get('GOOGLE_CREDENTIALS_FILE')
    if creds_file and os.path.exists(creds_file):
        with open(creds_file, 'r') as f:
            return json.load(f)

    return None


def get_client_credentials():
    """Return (client_id, client_secret, token_uri) for token endpoint calls."""
    client_config = get_client_config()
    if not client_config:
        raise ValueError(
            "Google OAuth not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET "
            "environment variables, or provide a credentials.json file."
        )
    web_config = client_config.get('web', client_config.get('installed', {}))
    token_uri = web_config.get('token_uri') or current_app.config['GOOGLE_TOKEN_URI']
    return web_config['client_id'], web_config['client_secret'], token_uri


def create_oauth_flow(redirect_uri=None, code_verifier=None):
    """Create OAuth flow for Google sign-in."""
    client_config = get_client_config()
    if not client_config:
        raise ValueError(
            "Google OAuth not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET "
            "environment variables, or provide a credentials.json file."
        )

    return Flow.from_client_config(
        client_config,
        scopes=SCOPES,
        redirect_uri=redirect_uri or current_app.config['GOOGLE_OAUTH_REDIRECT'],
        code_verifier=code_verifier,
        autogenerate_code_verifier=code_verifier is None,
    )


def get_authorization_url():
    """Get the Google OAuth authorization URL.

    Returns:
        (authorization_url, state, code_verifier); the verifier must be kept
        for the callback's code exchange.
    """
    flow = create_oauth_flow()

    # access_type=offline and prompt=consent are what make Google issue a refresh token
    authorization_url, state = flow.authorization_url(
        access_type='offline',
        include_granted_scopes='false',
        prompt='consent'
    )

    return authorization_url, state, flow.code_verifier


def decode_identity(id_token):
    """Read the claims of an identity token returned by the token endpoint.

    The token comes straight from Google over TLS, so the signature is not
    re-verified here.
    """
    if not id_token:
        return {}
    try:
        return jwt.decode(id_token, verify=False)
    except ValueError as e:
        current_app.logger.debug(f"ID token decode failed: {e}")
        return {}


def exchange_code_for_tokens(authorization_code, code_verifier=None):
    """Exchange an authorization code for tokens and the account identity.

    Returns:
        dict with provider_user_id, access_token, refresh_token, expires_at, raw
    """
    flow = create_oauth_flow(code_verifier=code_verifier)
    token = dict(flow.fetch_token(code=authorization_code))

    claims = decode_identity(token.get('id_token'))
    expires_in = token.get('expires_in') or DEFAULT_TOKEN_LIFETIME
    expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in))

    raw = {k: v for k, v in token.items() if k not in ('access_token', 'refresh_token')}
    raw['userinfo'] = {k: claims.get(k) for k in ('sub', 'email', 'name', 'picture') if claims.get(k)}

    return {
        'provider_user_id': claims.get('sub'),
        'access_token': token.get('access_token'),
        'refresh_token': token.get('refresh_token'),
        'expires_at': expires_at,
        'raw': raw,
    }
