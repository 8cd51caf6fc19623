"""/users endpoints: ownership rules and admin listing."""

from __future__ import annotations

from fastapi.testclient import TestClient

from lms.context import AppContext
from lms.models.user import User
from tests.conftest import PASSWORD, bearer, run, seed_user


def test_admin_lists_users_paginated(
    client: TestClient, ctx: AppContext, admin: User, student: User, teacher: User
) -> None:
    resp = client.get("/users", params={"limit": 2}, headers=bearer(ctx, admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert len(body["items"]) == 2
    assert body["totalPages"] == 2


def test_admin_filters_users_by_role(
    client: TestClient, ctx: AppContext, admin: User, student: User, teacher: User
) -> None:
    resp = client.get("/users", params={"role": "teacher"}, headers=bearer(ctx, admin))
    emails = [u["email"] for u in resp.json()["items"]]
    assert emails == [teacher.email]


def test_admin_filters_users_by_active_flag(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    run(ctx.users.set_active(student.id, False))
    resp = client.get(
        "/users", params={"isActive": "false"}, headers=bearer(ctx, admin)
    )
    assert [u["id"] for u in resp.json()["items"]] == [str(student.id)]


def test_list_users_rejects_unknown_role(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.get("/users", params={"role": "wizard"}, headers=bearer(ctx, admin))
    assert resp.status_code == 400


def test_student_cannot_list_users(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    resp = client.get("/users", headers=bearer(ctx, student))
    assert resp.status_code == 403


def test_user_reads_own_profile(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    resp = client.get(f"/users/{student.id}", headers=bearer(ctx, student))
    assert resp.status_code == 200
    assert resp.json()["name"] == student.name


def test_user_cannot_read_someone_else(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    other = seed_user(ctx)
    resp = client.get(f"/users/{other.id}", headers=bearer(ctx, student))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You can only access your own resource"


def test_admin_reads_any_profile(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    resp = client.get(f"/users/{student.id}", headers=bearer(ctx, admin))
    assert resp.status_code == 200


def test_get_unknown_user_is_404(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.get(
        "/users/00000000-0000-0000-0000-000000000000", headers=bearer(ctx, admin)
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "User not found"


def test_update_profile(client: TestClient, ctx: AppContext, student: User) -> None:
    resp = client.put(
        f"/users/{student.id}",
        json={"name": "Samantha", "bio": "Learning things", "avatarUrl": "http://x/a.png"},
        headers=bearer(ctx, student),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Samantha"
    assert body["bio"] == "Learning things"
    assert body["avatarUrl"] == "http://x/a.png"
    assert body["email"] == student.email


def test_update_profile_cannot_change_role(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    resp = client.put(
        f"/users/{student.id}", json={"role": "admin"}, headers=bearer(ctx, student)
    )
    assert resp.status_code == 200
    assert resp.json()["role"] == "student"


def test_change_password_then_login_with_new_one(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    resp = client.put(
        f"/users/{student.id}/password",
        json={"currentPassword": PASSWORD, "newPassword": "brand-new-pass"},
        headers=bearer(ctx, student),
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Password updated successfully"

    old = client.post("/auth/login", json={"email": student.email, "password": PASSWORD})
    assert old.status_code == 401
    new = client.post(
        "/auth/login", json={"email": student.email, "password": "brand-new-pass"}
    )
    assert new.status_code == 200


def test_change_password_wrong_current(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    resp = client.put(
        f"/users/{student.id}/password",
        json={"currentPassword": "nope-nope", "newPassword": "brand-new-pass"},
        headers=bearer(ctx, student),
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Current password is incorrect"


def test_admin_cannot_change_someone_elses_password(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    resp = client.put(
        f"/users/{student.id}/password",
        json={"currentPassword": PASSWORD, "newPassword": "brand-new-pass"},
        headers=bearer(ctx, admin),
    )
    assert resp.status_code == 403


def test_soft_delete_deactivates(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    resp = client.delete(f"/users/{student.id}", headers=bearer(ctx, student))
    assert resp.status_code == 200
    assert resp.json()["message"] == "User deactivated successfully"
    user = run(ctx.users.get_by_id(student.id))
    assert user is not None
    assert user.is_active is False


def test_admin_cannot_soft_delete_self(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.delete(f"/users/{admin.id}", headers=bearer(ctx, admin))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot deactivate your own account"
    assert run(ctx.users.get_by_id(admin.id)).is_active is True


def test_admin_soft_deletes_another_user(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    resp = client.delete(f"/users/{student.id}", headers=bearer(ctx, admin))
    assert resp.status_code == 200
    assert run(ctx.users.get_by_id(student.id)).is_active is False
