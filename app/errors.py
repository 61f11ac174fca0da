"""Error taxonomy for the Gmail integration workflows."""


class SyncError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class CredentialError(SyncError):
    """Missing, invalid or unrefreshable OAuth credential. The user must re-link."""

    status_code = 401

    def __init__(self, message, provider_status=None, body=None):
        super().__init__(message)
        self.provider_status = provider_status
        self.body = body

    def to_dict(self):
        data = super().to_dict()
        if self.provider_status is not None:
            data['provider_status'] = self.provider_status
        return data


class ValidationError(SyncError):
    """Caller input is missing or malformed."""

    status_code = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self):
        data = super().to_dict()
        data.update(self.details)
        return data


class TransportError(SyncError):
    """Non-2xx response from an external API."""

    status_code = 502

    def __init__(self, status, body, message=None):
        super().__init__(message or f'External API returned {status}')
        self.status = status
        self.body = body

    def to_dict(self):
        return {'error': self.message, 'status': self.status, 'details': self.body}


class PersistenceError(SyncError):
    """Datastore write failure."""

    status_code = 500


class NotFoundError(SyncError):
    status_code = 404


class AccessError(SyncError):
    """The caller does not own the referenced resource."""

    status_code = 403
