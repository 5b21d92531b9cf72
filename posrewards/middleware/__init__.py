"""
Middleware package for POS Rewards.
"""
from .auth import require_auth, decode_session_token
from .request_id import init_request_id_tracking

__all__ = ['require_auth', 'decode_session_token', 'init_request_id_tracking']
