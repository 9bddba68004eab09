# routes/decorators.py
"""
Shared decorators for API routes.
"""

import hmac
from functools import wraps
from flask import request, jsonify, g, current_app, abort


def org_required(f):
    """Require the X-Org-Id header and expose it as g.org_id."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        org_id = (request.headers.get('X-Org-Id') or '').strip()
        if not org_id:
            return jsonify({'success': False, 'error': 'X-Org-Id header is required'}), 400
        g.org_id = org_id
        return f(*args, **kwargs)
    return decorated_function


def max_body_size(config_key):
    """Reject bodies larger than app.config[config_key] bytes with 413."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limit = current_app.config[config_key]
            if request.content_length is not None and request.content_length > limit:
                abort(413)
            if len(request.get_data(cache=True)) > limit:
                abort(413)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _supplied_worker_secret():
    header_secret = request.headers.get('X-Worker-Secret')
    if header_secret:
        return header_secret.strip()
    authorization = request.headers.get('Authorization') or ''
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def worker_secret_required(f):
    """Gate worker endpoints on WORKER_SECRET; unset means always 401."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('WORKER_SECRET')
        supplied = _supplied_worker_secret()
        if not expected or not supplied or not hmac.compare_digest(
                str(expected).encode('utf-8'), supplied.encode('utf-8')):
            return jsonify({'success': False, 'error': 'Invalid worker secret.'}), 401
        return f(*args, **kwargs)
    return decorated_function
