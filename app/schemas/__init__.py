"""Marshmallow schemas for validation and normalization."""

from app.schemas.application import JobSchema, SendApplicationSchema, StatusUpdateSchema

__all__ = [
    'JobSchema',
    'SendApplicationSchema',
    'StatusUpdateSchema',
]
