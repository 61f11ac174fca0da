"""API endpoints for job applications."""

from flask import request, jsonify
from marshmallow import ValidationError

from app.api import api_bp
from app.extensions import db
from app.models import Application, ApplicationEvent
from app.models.application import EVENT_EMAIL_RECEIVED, EVENT_STATUS_CHANGE
from app.schemas import SendApplicationSchema, StatusUpdateSchema
from app.services import application_sync
from app.services.user_service import resolve_owner


@api_bp.route('/applications/send', methods=['POST'])
def send_application():
    """Email a resume for a job from a linked Gmail account."""
    schema = SendApplicationSchema()

    try:
        data = schema.load(request.get_json(silent=True) or {})
    except ValidationError as err:
        return jsonify({'error': 'Missing required fields', 'errors': err.messages}), 400

    owner = resolve_owner(data)
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    sync = application_sync.build_application_sync()
    result = sync.send_application(
        owner,
        data['job'],
        data['resume_id'],
        data['sender_account_id'],
        subject=data.get('subject'),
        body_html=data.get('body_html'),
        to_email=data.get('to_email'),
    )

    return jsonify({
        'success': True,
        'sent': result.sent,
        'application': result.application.to_dict() if result.application else None,
    })


@api_bp.route('/applications', methods=['GET'])
def list_applications():
    """List the owner's applications with optional status filter."""
    owner = resolve_owner()
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    status = request.args.get('status')
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 20, type=int)

    query = Application.query.filter_by(owner=owner)
    if status:
        query = query.filter(Application.status.in_(status.split(',')))

    pagination = query.order_by(Application.applied_date.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )

    return jsonify({
        'applications': [a.to_dict() for a in pagination.items],
        'total': pagination.total,
        'pages': pagination.pages,
        'current_page': page,
        'per_page': per_page,
    })


@api_bp.route('/applications/<int:id>', methods=['GET'])
def get_application(id):
    """Get a single application by ID."""
    owner = resolve_owner()
    application = Application.query.filter_by(id=id, owner=owner).first_or_404()
    return jsonify(application.to_dict())


@api_bp.route('/applications/<int:id>/events', methods=['GET'])
def list_application_events(id):
    """Audit trail of one application, oldest first."""
    owner = resolve_owner()
    application = Application.query.filter_by(id=id, owner=owner).first_or_404()
    return jsonify({'events': [e.to_dict() for e in application.events]})


@api_bp.route('/applications/<int:id>/status', methods=['PATCH'])
def update_application_status(id):
    """Manually override the status of an application."""
    owner = resolve_owner()
    application = Application.query.filter_by(id=id, owner=owner).first_or_404()

    try:
        data = StatusUpdateSchema().load(request.get_json(silent=True) or {})
    except ValidationError as err:
        return jsonify({'errors': err.messages}), 400

    previous = application.status
    if data['status'] != previous:
        application.status = data['status']
        db.session.add(ApplicationEvent(
            application_id=application.id,
            owner=owner,
            type=EVENT_STATUS_CHANGE,
            payload={'from': previous, 'to': data['status'], 'reason': 'Manual update'},
        ))
    db.session.commit()

    return jsonify(application.to_dict())


@api_bp.route('/events/unmatched', methods=['GET'])
def list_unmatched_events():
    """Inbound emails that did not match any application."""
    owner = resolve_owner()
    if not owner:
        return jsonify({'error': 'Missing owner'}), 400

    events = (
        ApplicationEvent.query
        .filter_by(owner=owner, type=EVENT_EMAIL_RECEIVED)
        .filter(ApplicationEvent.application_id.is_(None))
        .order_by(ApplicationEvent.created_at.desc())
        .limit(100)
        .all()
    )
    return jsonify({'events': [e.to_dict() for e in events]})
