"""Tests for the admin token check."""

from __future__ import annotations

import pytest

from simplenet.api.auth import AdminAuthError, require_admin_token


def test_matching_token_passes() -> None:
    require_admin_token("s3cret", "s3cret")


@pytest.mark.parametrize(
    ("provided", "expected", "status"),
    [
        (None, "s3cret", 401),
        ("", "s3cret", 401),
        ("wrong", "s3cret", 403),
        ("anything", None, 403),
        (None, None, 403),
    ],
)
def test_rejections(provided: str | None, expected: str | None, status: int) -> None:
    with pytest.raises(AdminAuthError) as exc_info:
        require_admin_token(provided, expected)
    assert exc_info.value.status_code == status
