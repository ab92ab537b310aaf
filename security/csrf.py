import hmac
from flask import request, jsonify

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

# state-changing requests with no cookie session to protect
CSRF_EXEMPT_PATHS = {
    "/health",
    "/payment/stripe-webhook",
}

def require_csrf():
    """Double-submit check: the header must echo the csrf cookie."""
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token or not hmac.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed"), 403
    return None
