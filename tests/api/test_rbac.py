"""Table-driven RBAC tests.

Each row: method, path, role (None = anonymous), expected status.  Every
role is a real seeded user so endpoints that look the caller up succeed.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from lms.context import AppContext
from tests.conftest import bearer, seed_user

_RBAC_CASES = [
    # catalog is public
    ("GET", "/courses", None, 200),
    ("GET", "/courses", "student", 200),
    # any authenticated user
    ("GET", "/auth/me", "student", 200),
    ("GET", "/auth/me", "teacher", 200),
    ("GET", "/auth/me", None, 401),
    ("GET", "/enrollments/my-courses", "student", 200),
    ("GET", "/enrollments/my-courses", None, 401),
    ("GET", "/payments/history", "student", 200),
    ("GET", "/payments/history", None, 401),
    # admin only
    ("GET", "/users", "admin", 200),
    ("GET", "/users", "teacher", 403),
    ("GET", "/users", "student", 403),
    ("GET", "/users", None, 401),
    ("GET", "/payments", "admin", 200),
    ("GET", "/payments", "student", 403),
    ("GET", "/admin/enrollments", "admin", 200),
    ("GET", "/admin/enrollments", "teacher", 403),
    ("GET", "/admin/revenue", "admin", 200),
    ("GET", "/admin/revenue", "teacher", 403),
    # teacher or admin
    ("GET", "/admin/analytics", "admin", 200),
    ("GET", "/admin/analytics", "teacher", 200),
    ("GET", "/admin/analytics", "student", 403),
    ("GET", "/admin/analytics", None, 401),
    # students only
    ("POST", "/enrollments", "teacher", 403),
    ("POST", "/enrollments", "admin", 403),
]


@pytest.mark.parametrize(
    ("method", "path", "role", "expected"),
    _RBAC_CASES,
    ids=[f"{m} {p} as {r or 'anon'}" for m, p, r, _ in _RBAC_CASES],
)
def test_rbac(
    client: TestClient,
    ctx: AppContext,
    method: str,
    path: str,
    role: str | None,
    expected: int,
) -> None:
    headers = bearer(ctx, seed_user(ctx, role=role)) if role else {}
    body = {"courseId": "00000000-0000-0000-0000-000000000000"}
    resp = client.request(
        method, path, headers=headers, json=body if method == "POST" else None
    )
    assert resp.status_code == expected, resp.text
