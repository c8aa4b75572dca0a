"""API key authentication for the canvas service."""

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def api_key_required(f):
    """Decorator that requires the X-API-Key header when API_KEY is configured."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        # Allow OPTIONS requests (CORS preflight) without authentication
        if request.method == 'OPTIONS':
            return f(*args, **kwargs)

        expected = current_app.config.get('API_KEY')
        if not expected:
            return f(*args, **kwargs)

        provided = request.headers.get('X-API-Key', '')
        if not hmac.compare_digest(provided, expected):
            return jsonify({"error": "Authentication required"}), 401

        return f(*args, **kwargs)
    return wrapper
