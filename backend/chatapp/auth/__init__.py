"""Caller identity for REST endpoints.

Authentication itself (login, tokens, sessions) is handled upstream; by the
time a request reaches this service the authenticated user ID is carried
in the X-User-Id header.
"""

from .dependencies import USER_ID_HEADER, get_current_user_id

__all__ = ["USER_ID_HEADER", "get_current_user_id"]
