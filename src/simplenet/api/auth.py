"""Admin token check for the usage dashboard endpoint."""

from __future__ import annotations

import secrets


class AdminAuthError(Exception):
    """Authentication error with HTTP-compatible metadata."""

    def __init__(self, detail: str, status_code: int = 401) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


def require_admin_token(provided: str | None, expected: str | None) -> None:
    """Validate the ``X-Admin-Token`` header value.

    Raises:
        AdminAuthError: 403 when no token is configured (dashboard
            disabled), 401 when the header is missing, 403 when it does
            not match.
    """
    if not expected:
        raise AdminAuthError("Admin dashboard is disabled", status_code=403)
    if not provided:
        raise AdminAuthError("Missing X-Admin-Token header", status_code=401)
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise AdminAuthError("Invalid admin token", status_code=403)
