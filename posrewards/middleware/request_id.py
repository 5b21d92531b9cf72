"""
Request ID tracking.

Each request gets an id (the caller's X-Request-ID when present) that is
echoed back in the response and stamped on every log line.
"""
import uuid

from flask import g, request


def init_request_id_tracking(app):
    @app.before_request
    def assign_request_id():
        incoming = request.headers.get('X-Request-ID', '').strip()
        g.request_id = incoming[:64] if incoming else uuid.uuid4().hex[:16]

    @app.after_request
    def echo_request_id(response):
        request_id = getattr(g, 'request_id', None)
        if request_id:
            response.headers['X-Request-ID'] = request_id
        return response
