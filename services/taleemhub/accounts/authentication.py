"""Resolve the caller identity established by the session gateway."""
from __future__ import annotations

from rest_framework import authentication, exceptions

from .models import User


class HeaderUserAuthentication(authentication.BaseAuthentication):
    """Authenticate with the ``X-User-Id`` header set after login.

    Session handling belongs to the gateway in front of this service; here we
    only turn the verified id into an active :class:`User`.
    """

    header = "HTTP_X_USER_ID"

    def authenticate(self, request):  # type: ignore[override]
        user_id = request.META.get(self.header)
        if not user_id:
            return None
        user = User.objects.filter(id=user_id, is_active=True).first()
        if user is None:
            raise exceptions.AuthenticationFailed("Unknown or inactive user.")
        return (user, None)

    def authenticate_header(self, request) -> str:  # type: ignore[override]
        return "X-User-Id"
