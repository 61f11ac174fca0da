"""API endpoints for linking Gmail accounts and syncing the mailbox."""

from flask import request, jsonify, redirect, session, current_app

from app.api import api_bp
from app.services import application_sync, credential_store
from app.services.credential_store import PROVIDER_GOOGLE
from app.services.google_oauth import get_authorization_url, exchange_code_for_tokens
from app.services.user_service import get_current_user_id, resolve_owner

# Only the first few match results are echoed back to the caller
SYNC_ITEMS_SAMPLE = 10


def _complete_redirect(**params):
    base = current_app.config['OAUTH_COMPLETE_REDIRECT']
    query = '&'.join(f'{k}={v}' for k, v in params.items())
    return redirect(f"{base}{'&' if '?' in base else '?'}{query}")


@api_bp.route('/gmail/oauth/start', methods=['GET'])
def start_oauth():
    """Start Google OAuth flow - returns URL to redirect user to."""
    owner = resolve_owner()
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    try:
        auth_url, state, code_verifier = get_authorization_url()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    session['oauth_state'] = state
    session['oauth_code_verifier'] = code_verifier
    session['oauth_owner'] = owner
    return jsonify({'authorization_url': auth_url})


@api_bp.route('/gmail/oauth/callback', methods=['GET'])
def oauth_callback():
    """Handle Google OAuth callback and link the account to its owner."""
    error = request.args.get('error')
    if error:
        return _complete_redirect(gmail_error=error)

    code = request.args.get('code')
    if not code:
        return _complete_redirect(gmail_error='missing_code')

    expected_state = session.pop('oauth_state', None)
    if expected_state and request.args.get('state') != expected_state:
        return _complete_redirect(gmail_error='state_mismatch')

    owner = session.pop('oauth_owner', None) or get_current_user_id()
    if not owner:
        return _complete_redirect(gmail_error='missing_owner')

    try:
        tokens = exchange_code_for_tokens(code, code_verifier=session.pop('oauth_code_verifier', None))
        if not tokens.get('provider_user_id'):
            current_app.logger.warning('Code exchange returned no identity token for %s', owner)
            return _complete_redirect(gmail_error='missing_identity')

        credential = credential_store.save_linked_account(
            owner, PROVIDER_GOOGLE, tokens['provider_user_id'], tokens
        )
    except Exception as e:
        current_app.logger.error(f'Failed to connect Gmail: {e}')
        return _complete_redirect(gmail_error='exchange_failed')

    current_app.logger.info('Linked Gmail account %s for %s', credential.id, owner)
    return _complete_redirect(gmail='connected')


@api_bp.route('/gmail/accounts', methods=['GET'])
def list_gmail_accounts():
    """List the owner's linked Gmail accounts (no tokens)."""
    owner = resolve_owner()
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    accounts = credential_store.list_credentials(owner)
    return jsonify({'accounts': [a.to_dict() for a in accounts]})


@api_bp.route('/gmail/status', methods=['GET'])
def gmail_status():
    """Check whether the owner has any Gmail account connected."""
    owner = resolve_owner()
    if not owner:
        return jsonify({'connected': False, 'error': 'Missing owner'}), 400

    accounts = credential_store.list_credentials(owner)
    return jsonify({
        'connected': bool(accounts),
        'accounts': [a.to_dict() for a in accounts],
    })


@api_bp.route('/gmail/accounts/<int:id>', methods=['DELETE'])
def remove_gmail_account(id):
    """Unlink a Gmail account belonging to the owner."""
    owner = resolve_owner()
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    if not credential_store.delete_credential(owner, id):
        return jsonify({'error': 'Account not found'}), 404
    return jsonify({'success': True})


@api_bp.route('/gmail/sync', methods=['POST'])
def sync_gmail():
    """Correlate recent mailbox messages with tracked applications."""
    data = request.get_json(silent=True) or {}
    owner = resolve_owner(data)
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    sync = application_sync.build_application_sync()
    result = sync.sync_inbox(owner, credential_id=data.get('accountId'))

    return jsonify({
        'found': result.found,
        'failed': result.failed,
        'items': result.items[:SYNC_ITEMS_SAMPLE],
    })
