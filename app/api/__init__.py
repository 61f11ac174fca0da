"""API Blueprint registration."""

from flask import Blueprint, jsonify, current_app

from app.errors import SyncError

api_bp = Blueprint('api', __name__)


@api_bp.errorhandler(SyncError)
def handle_sync_error(error):
    """Render workflow errors as JSON with their status code."""
    if error.status_code >= 500:
        current_app.logger.error('%s: %s', type(error).__name__, error.message)
    else:
        current_app.logger.info('%s: %s', type(error).__name__, error.message)
    return jsonify(error.to_dict()), error.status_code


from app.api import applications, email, jobs
