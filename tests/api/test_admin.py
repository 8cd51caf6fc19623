"""Admin user management, manual enrollment and reporting."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient

from lms.context import AppContext
from lms.models.course import Course
from lms.models.user import User
from tests.conftest import bearer, run, seed_course, seed_user

# ---- roles ----


def test_admin_changes_role(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    resp = client.put(
        f"/admin/users/{student.id}/role",
        json={"role": "Teacher"},
        headers=bearer(ctx, admin),
    )
    assert resp.status_code == 200
    assert resp.json()["role"] == "teacher"


def test_admin_cannot_change_own_role(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.put(
        f"/admin/users/{admin.id}/role",
        json={"role": "student"},
        headers=bearer(ctx, admin),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot change your own role"
    assert run(ctx.users.get_by_id(admin.id)).role == "admin"


def test_change_role_rejects_unknown_role(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    resp = client.put(
        f"/admin/users/{student.id}/role",
        json={"role": "superuser"},
        headers=bearer(ctx, admin),
    )
    assert resp.status_code == 400


def test_teacher_cannot_change_roles(
    client: TestClient, ctx: AppContext, teacher: User, student: User
) -> None:
    resp = client.put(
        f"/admin/users/{student.id}/role",
        json={"role": "admin"},
        headers=bearer(ctx, teacher),
    )
    assert resp.status_code == 403


# ---- activation and deletion ----


def test_toggle_active_flips_flag(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    headers = bearer(ctx, admin)
    first = client.put(f"/admin/users/{student.id}/toggle-active", headers=headers)
    assert first.json()["isActive"] is False
    second = client.put(f"/admin/users/{student.id}/toggle-active", headers=headers)
    assert second.json()["isActive"] is True


def test_admin_cannot_deactivate_self(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.put(
        f"/admin/users/{admin.id}/toggle-active", headers=bearer(ctx, admin)
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot deactivate your own account"


def test_hard_delete(
    client: TestClient, ctx: AppContext, admin: User, student: User
) -> None:
    resp = client.delete(f"/admin/users/{student.id}", headers=bearer(ctx, admin))
    assert resp.status_code == 200
    assert run(ctx.users.get_by_id(student.id)) is None


def test_admin_cannot_delete_self(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.delete(f"/admin/users/{admin.id}", headers=bearer(ctx, admin))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot delete your own account"


# ---- manual enrollment ----


def test_manual_enrollment_grants_access_and_counts(
    client: TestClient, ctx: AppContext, admin: User, student: User, course: Course
) -> None:
    resp = client.post(
        "/admin/enrollments/manual",
        json={"studentId": str(student.id), "courseId": str(course.id)},
        headers=bearer(ctx, admin),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["paymentStatus"] == "completed"
    assert body["accessGranted"] is True
    assert run(ctx.courses.get(course.id)).enrollment_count == 1

    check = client.get(
        f"/enrollments/check-access/{course.id}", headers=bearer(ctx, student)
    )
    assert check.json()["hasAccess"] is True


def test_manual_enrollment_twice_conflicts(
    client: TestClient, ctx: AppContext, admin: User, student: User, course: Course
) -> None:
    body = {"studentId": str(student.id), "courseId": str(course.id)}
    headers = bearer(ctx, admin)
    first = client.post("/admin/enrollments/manual", json=body, headers=headers)
    assert first.status_code == 201
    resp = client.post("/admin/enrollments/manual", json=body, headers=headers)
    assert resp.status_code == 409
    assert run(ctx.courses.get(course.id)).enrollment_count == 1


def test_manual_enrollment_unknown_student(
    client: TestClient, ctx: AppContext, admin: User, course: Course
) -> None:
    resp = client.post(
        "/admin/enrollments/manual",
        json={
            "studentId": "00000000-0000-0000-0000-000000000000",
            "courseId": str(course.id),
        },
        headers=bearer(ctx, admin),
    )
    assert resp.status_code == 404


def test_revoke_then_regrant_access(
    client: TestClient, ctx: AppContext, admin: User, student: User, course: Course
) -> None:
    headers = bearer(ctx, admin)
    created = client.post(
        "/admin/enrollments/manual",
        json={"studentId": str(student.id), "courseId": str(course.id)},
        headers=headers,
    ).json()

    revoked = client.put(
        f"/admin/enrollments/{created['id']}/access",
        json={"accessGranted": False},
        headers=headers,
    )
    assert revoked.status_code == 200
    assert revoked.json()["accessGranted"] is False
    check = client.get(
        f"/enrollments/check-access/{course.id}", headers=bearer(ctx, student)
    )
    assert check.json()["hasAccess"] is False

    expiry = (datetime.now(UTC) + timedelta(days=30)).isoformat()
    regranted = client.put(
        f"/admin/enrollments/{created['id']}/access",
        json={"accessGranted": True, "expiryDate": expiry},
        headers=headers,
    )
    assert regranted.json()["accessGranted"] is True
    assert regranted.json()["expiryDate"] is not None
    # regranting an already-completed enrollment does not count again
    assert run(ctx.courses.get(course.id)).enrollment_count == 1


def test_list_enrollments_filters_by_course(
    client: TestClient, ctx: AppContext, admin: User, teacher: User, student: User
) -> None:
    first = seed_course(ctx, teacher, title="First")
    second = seed_course(ctx, teacher, title="Second")
    headers = bearer(ctx, admin)
    for c in (first, second):
        client.post(
            "/admin/enrollments/manual",
            json={"studentId": str(student.id), "courseId": str(c.id)},
            headers=headers,
        )

    resp = client.get(
        "/admin/enrollments", params={"courseId": str(first.id)}, headers=headers
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["items"][0]["courseId"] == str(first.id)


# ---- reporting ----


def test_analytics_counts(
    client: TestClient, ctx: AppContext, admin: User, teacher: User, student: User
) -> None:
    paid = seed_course(ctx, teacher, title="Paid")
    seed_course(ctx, teacher, title="Draft", published=False)
    client.post(
        "/admin/enrollments/manual",
        json={"studentId": str(student.id), "courseId": str(paid.id)},
        headers=bearer(ctx, admin),
    )

    resp = client.get("/admin/analytics", headers=bearer(ctx, teacher))
    assert resp.status_code == 200
    body = resp.json()
    assert body["users"] == {"total": 3, "students": 1, "teachers": 1}
    assert body["courses"] == {"total": 2, "published": 1, "draft": 1}
    assert body["enrollments"]["total"] == 1
    assert body["enrollments"]["active"] == 1
    assert body["topCourses"][0]["title"] == "Paid"
    assert body["topCourses"][0]["enrollmentCount"] == 1


def test_analytics_forbidden_for_students(
    client: TestClient, ctx: AppContext, student: User
) -> None:
    assert client.get("/admin/analytics", headers=bearer(ctx, student)).status_code == 403


def test_revenue_rejects_unknown_period(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    resp = client.get(
        "/admin/revenue", params={"period": "decade"}, headers=bearer(ctx, admin)
    )
    assert resp.status_code == 400


def test_revenue_is_admin_only(
    client: TestClient, ctx: AppContext, teacher: User
) -> None:
    assert client.get("/admin/revenue", headers=bearer(ctx, teacher)).status_code == 403


def test_revenue_with_no_sales(
    client: TestClient, ctx: AppContext, admin: User
) -> None:
    seed_user(ctx)
    resp = client.get("/admin/revenue", headers=bearer(ctx, admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["period"] == "month"
    assert body["totalRevenue"] == 0
    assert body["totalTransactions"] == 0
    assert body["topCourses"] == []
