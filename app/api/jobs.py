"""Job posting helper routes."""

from flask import current_app, jsonify, request
from marshmallow import ValidationError

from app.api import api_bp
from app.schemas.application import RecipientLookupSchema
from app.services.recipient_finder import RecipientFinder


@api_bp.route('/jobs/recipients', methods=['POST'])
def find_recipients():
    """List candidate contact emails and the apply link for a job posting."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({'error': 'Invalid job payload'}), 400

    try:
        data = RecipientLookupSchema().load(body)
    except ValidationError as err:
        return jsonify({'error': 'Invalid job payload', 'errors': err.messages}), 400

    finder = RecipientFinder(timeout=current_app.config.get('HTTP_TIMEOUT'))
    candidates = finder.find(data['job'], fetch_pages=data['fetch_page'])
    return jsonify(candidates.to_dict())
