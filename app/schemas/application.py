"""Schemas for the send-application workflow."""

from marshmallow import Schema, fields, validate, pre_load, EXCLUDE

from app.models.application import STATUSES

# Field name variants seen in job payloads from different job boards
CONTACT_EMAIL_KEYS = ('contact_email', 'apply_email', 'email', 'contactEmail', 'applyEmail', 'emailAddress')
URL_KEYS = ('url', 'apply_url', 'link', 'redirect_url')


class JobSchema(Schema):
    """A job payload, normalized to one set of explicit optional fields."""

    class Meta:
        unknown = EXCLUDE

    id = fields.String(allow_none=True, load_default=None)
    title = fields.String(allow_none=True, load_default=None)
    company = fields.String(allow_none=True, load_default=None)
    url = fields.String(allow_none=True, load_default=None)
    contact_email = fields.String(allow_none=True, load_default=None)

    @pre_load
    def normalize(self, data, **kwargs):
        """Collapse provider-specific field names into the schema's fields."""
        if not isinstance(data, dict):
            return data
        company = data.get('company')
        if isinstance(company, dict):
            company_name = company.get('name') or company.get('display_name')
            company_email = company.get('email') or company.get('contact_email')
        else:
            company_name, company_email = company, None

        job_id = data.get('id')
        return {
            'id': str(job_id) if job_id is not None else None,
            'title': data.get('title') or data.get('position'),
            'company': company_name,
            'url': next((data[k] for k in URL_KEYS if data.get(k)), None),
            'contact_email': next((data[k] for k in CONTACT_EMAIL_KEYS if data.get(k)), company_email),
        }


class SendApplicationSchema(Schema):
    """Request body for POST /applications/send."""

    class Meta:
        unknown = EXCLUDE

    job = fields.Dict(required=True)
    resume_id = fields.String(required=True, data_key='resumeId', validate=validate.Length(min=1))
    sender_account_id = fields.Integer(required=True, data_key='senderAccountId')
    subject = fields.String(allow_none=True, load_default=None)
    body_html = fields.String(allow_none=True, load_default=None, data_key='bodyHtml')
    to_email = fields.String(allow_none=True, load_default=None, data_key='toEmail')
    owner = fields.String(allow_none=True, load_default=None)


class StatusUpdateSchema(Schema):
    """Request body for a manual status override."""

    status = fields.String(required=True, validate=validate.OneOf(STATUSES))


class RecipientLookupSchema(Schema):
    """Request body for POST /jobs/recipients: `{job, fetchPage}` or a bare job."""

    class Meta:
        unknown = EXCLUDE

    job = fields.Dict(required=True)
    fetch_page = fields.Boolean(load_default=True, data_key='fetchPage')

    @pre_load
    def wrap_bare_job(self, data, **kwargs):
        if isinstance(data, dict) and not isinstance(data.get('job'), dict):
            return {'job': data, 'fetchPage': data.get('fetchPage', True)}
        return data
