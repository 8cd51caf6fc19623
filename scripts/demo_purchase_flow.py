"""Demo: register -> buy a course -> webhook -> access, using TestClient.

Everything runs in memory; no database, Redis or payment provider needed.

Run with:
    python scripts/demo_purchase_flow.py
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from lms.context import build_context
from lms.core.config import load_settings
from lms.main import create_app
from lms.models.course import Course
from lms.models.user import ROLE_TEACHER, User
from lms.services import auth_service
from lms.services.payment_gateway import SIGNATURE_HEADER, sign_payload

STUDENT_EMAIL = "demo-student@example.com"
STUDENT_PASSWORD = "demo-pass-123"


def main() -> None:
    settings = load_settings()
    ctx = build_context(settings)
    client = TestClient(create_app(settings, ctx))

    # ── Seed a teacher and a published course ──────────────────────
    teacher = User.new(
        email="demo-teacher@example.com",
        password_hash=auth_service.hash_password("teacher-pass-123"),
        name="Demo Teacher",
        role=ROLE_TEACHER,
    )
    course = Course.new(
        title="Python for Data Work",
        instructor_id=teacher.id,
        description="Pandas, plotting and a bit of SQL",
        price=25.0,
    )

    async def seed() -> None:
        await ctx.users.add(teacher)
        await ctx.courses.add(course)
        await ctx.courses.update(course.id, status="published")

    asyncio.run(seed())

    # ── Step 1: register ────────────────────────────────────────────
    r = client.post(
        "/auth/register",
        json={
            "name": "Demo Student",
            "email": STUDENT_EMAIL,
            "password": STUDENT_PASSWORD,
        },
    )
    token = r.json()["accessToken"]
    headers = {"Authorization": f"Bearer {token}"}
    print(f"1. POST /auth/register          → {r.status_code}")

    # ── Step 2: access before paying ────────────────────────────────
    r = client.get(f"/enrollments/check-access/{course.id}", headers=headers)
    granted = r.json()["hasAccess"]
    print(f"2. GET  check-access (unpaid)   → {r.status_code}  hasAccess={granted}")

    # ── Step 3: start checkout ──────────────────────────────────────
    r = client.post(
        "/payments/initiate",
        json={"courseId": str(course.id), "method": "momo"},
        headers=headers,
    )
    payment = r.json()
    print(
        f"3. POST /payments/initiate      → {r.status_code}  "
        f"ref={payment['reference'][:24]}…  method={payment['method']}"
    )

    # ── Step 4: provider webhook (forged, then genuine) ─────────────
    body = {"reference": payment["reference"], "status": "success"}
    r = client.post(
        "/payments/webhook", json=body, headers={SIGNATURE_HEADER: "0" * 64}
    )
    print(f"4. POST /payments/webhook (bad) → {r.status_code}  {r.json()['detail']}")

    sig = sign_payload(body, settings.webhook_secret)
    r = client.post("/payments/webhook", json=body, headers={SIGNATURE_HEADER: sig})
    print(f"5. POST /payments/webhook       → {r.status_code}  {r.json()['message']}")

    # ── Step 5: replay ──────────────────────────────────────────────
    r = client.post("/payments/webhook", json=body, headers={SIGNATURE_HEADER: sig})
    print(f"6. POST /payments/webhook again → {r.status_code}  {r.json()['message']}")

    # ── Step 6: access after paying ─────────────────────────────────
    r = client.get(f"/enrollments/check-access/{course.id}", headers=headers)
    granted = r.json()["hasAccess"]
    print(f"7. GET  check-access (paid)     → {r.status_code}  hasAccess={granted}")

    r = client.get(f"/courses/{course.id}")
    count = r.json()["enrollmentCount"]
    print(f"8. GET  /courses/{{id}}           → enrollmentCount={count}")

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
