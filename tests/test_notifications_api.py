"""Notification endpoint tests through the ASGI app"""

from datetime import timedelta

import pytest

from tests.conftest import utc_today


@pytest.fixture
async def due_today(make_task):
    return await make_task(title="Pay rent", due_date=utc_today())


async def refresh(client, headers):
    response = await client.post("/notifications/refresh", headers=headers)
    assert response.status_code == 200
    return response.json()


async def list_notifications(client, headers):
    response = await client.get("/notifications/", headers=headers)
    assert response.status_code == 200
    return response.json()


async def test_requires_user_header(client):
    response = await client.get("/notifications/")

    assert response.status_code == 401
    assert response.json() == {"message": "Unauthorized"}


async def test_refresh_then_list(client, auth_headers, due_today, make_task):
    await make_task(title="Call bank", due_date=utc_today() + timedelta(days=2))

    data = await refresh(client, auth_headers)
    assert data["updates"] == 2
    assert data["throttled"] is False
    assert data["message"] == "Notifications updated successfully"

    notifications = await list_notifications(client, auth_headers)
    by_origin = {n["origin_id"]: n for n in notifications}
    assert by_origin[f"danger-{due_today.id}"]["message"] == '"Pay rent" is due today'
    assert by_origin[f"danger-{due_today.id}"]["urgency"] == "due_today"
    assert by_origin[f"danger-{due_today.id}"]["read"] is False
    assert len(by_origin) == 2


async def test_notifications_are_scoped_to_the_caller(client, auth_headers, due_today):
    await refresh(client, auth_headers)

    assert await list_notifications(client, {"X-User-Id": "someone-else"}) == []


async def test_second_refresh_is_throttled(client, auth_headers, due_today):
    await refresh(client, auth_headers)

    data = await refresh(client, auth_headers)

    assert data["throttled"] is True
    assert data["updates"] == 0


async def test_session_check_refreshes_once_per_day(client, auth_headers, due_today):
    response = await client.post(
        "/notifications/session-check", json={"last_check": None}, headers=auth_headers
    )
    assert response.status_code == 200
    first = response.json()
    assert first["first_session"] is True
    assert first["updates"] == 1
    assert first["watermark"] == utc_today().isoformat()
    assert first["next_refresh_at"].startswith(
        (utc_today() + timedelta(days=1)).isoformat()
    )

    response = await client.post(
        "/notifications/session-check",
        json={"last_check": first["watermark"]},
        headers=auth_headers,
    )
    second = response.json()
    assert second["first_session"] is False
    assert second["updates"] == 0

    response = await client.post(
        "/notifications/session-check",
        json={"last_check": (utc_today() - timedelta(days=1)).isoformat()},
        headers=auth_headers,
    )
    third = response.json()
    assert third["first_session"] is True
    assert third["updates"] == 0


async def test_mark_read_requires_id_or_all(client, auth_headers):
    response = await client.post("/notifications/mark-read", json={}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"message": "Missing id or all parameter"}


async def test_mark_read_unknown_id(client, auth_headers):
    response = await client.post(
        "/notifications/mark-read", json={"id": 999}, headers=auth_headers
    )

    assert response.status_code == 404
    assert response.json() == {"message": "Notification not found"}


async def test_mark_read_one_and_all(client, auth_headers, due_today, make_task):
    await make_task(title="Call bank", due_date=utc_today() + timedelta(days=1))
    await refresh(client, auth_headers)
    first, second = await list_notifications(client, auth_headers)

    response = await client.post(
        "/notifications/mark-read", json={"id": first["id"]}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Notification marked as read", "count": 1}

    states = {n["id"]: n["read"] for n in await list_notifications(client, auth_headers)}
    assert states == {first["id"]: True, second["id"]: False}

    response = await client.post(
        "/notifications/mark-read",
        json={"all": True, "mark_as_unread": True},
        headers=auth_headers,
    )
    assert response.json() == {"message": "All notifications marked as unread", "count": 2}
    assert not any(n["read"] for n in await list_notifications(client, auth_headers))


async def test_dismiss(client, auth_headers, due_today):
    await refresh(client, auth_headers)
    [notification] = await list_notifications(client, auth_headers)

    response = await client.post(
        "/notifications/dismiss", json={"id": notification["id"]}, headers=auth_headers
    )
    assert response.status_code == 200
    assert await list_notifications(client, auth_headers) == []

    response = await client.post(
        "/notifications/dismiss", json={"id": notification["id"]}, headers=auth_headers
    )
    assert response.status_code == 404


async def test_dismissed_notification_is_not_raised_again(client, auth_headers, due_today):
    await refresh(client, auth_headers)
    [notification] = await list_notifications(client, auth_headers)
    await client.post(
        "/notifications/dismiss", json={"id": notification["id"]}, headers=auth_headers
    )

    response = await client.post(
        "/notifications/session-check", json={"last_check": None}, headers=auth_headers
    )

    assert response.json()["updates"] == 0
    assert await list_notifications(client, auth_headers) == []


async def test_dismiss_for_task_mutes_until_unmuted(client, auth_headers, due_today):
    await refresh(client, auth_headers)

    response = await client.post(
        "/notifications/dismiss-for-task",
        json={"task_id": due_today.id},
        headers=auth_headers,
    )
    assert response.json() == {"message": "Notifications for task dismissed", "count": 1}
    assert await list_notifications(client, auth_headers) == []

    await client.post(
        "/notifications/session-check", json={"last_check": None}, headers=auth_headers
    )
    assert await list_notifications(client, auth_headers) == []

    response = await client.delete(
        f"/notifications/mute/{due_today.id}", headers=auth_headers
    )
    assert response.status_code == 204

    await client.post(
        "/notifications/session-check", json={"last_check": None}, headers=auth_headers
    )
    [notification] = await list_notifications(client, auth_headers)
    assert notification["origin_id"] == f"danger-{due_today.id}"


async def test_reset_deletes_everything(client, auth_headers, due_today):
    await refresh(client, auth_headers)

    response = await client.post("/notifications/reset", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Notification system reset", "count": 1}
    assert await list_notifications(client, auth_headers) == []
