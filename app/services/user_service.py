"""User service for resolving the owner of a request."""

from flask import current_app, request, session


def get_current_user_id():
    """Get the current logged-in user's ID.

    Returns:
        str or None: The user's ID if logged in, None otherwise.
    """
    return session.get('user_id')


def resolve_owner(data=None):
    """Owner for this request: the session user, else an explicit `owner` parameter.

    The explicit parameter is only honoured when TRUST_OWNER_PARAM is set;
    it lets any caller act as any owner, so production deployments keep it off
    and rely on the session.

    Args:
        data: Parsed JSON body, if any

    Returns:
        str or None
    """
    owner = get_current_user_id()
    if owner:
        return owner
    if not current_app.config.get('TRUST_OWNER_PARAM'):
        return None
    owner = request.args.get('owner')
    if not owner and isinstance(data, dict):
        owner = data.get('owner')
    return owner or None
