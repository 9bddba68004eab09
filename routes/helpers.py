# routes/helpers.py
"""
Shared helper functions for API routes.
"""

import logging
from datetime import datetime
from flask import current_app, jsonify, request
from services.compliance import ComplianceError
from services.esign import ESignError

logger = logging.getLogger(__name__)


def error_response(message, status_code, errors=None):
    body = {'success': False, 'error': message}
    if errors:
        body['errors'] = errors
    return jsonify(body), status_code


def service_error_response(e):
    """Map a compliance or e-sign exception to its JSON error response."""
    errors = getattr(e, 'errors', None)
    if isinstance(e, (ComplianceError, ESignError)):
        return error_response(str(e), e.status_code, errors)
    logger.exception(f"Unexpected error: {e}")
    return error_response('Internal server error', 500)


def get_json_body():
    """The request's JSON object, or None if the body is not a JSON object."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else None


def parse_iso_datetime(value):
    """Parse 'YYYY-MM-DD' or an ISO timestamp; None stays None."""
    if value in (None, ''):
        return None
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1]
    parsed = datetime.fromisoformat(text)
    # Stored ranges are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def get_esign_services():
    return current_app.extensions['esign']


def get_lifecycle_manager():
    return get_esign_services()['manager']
