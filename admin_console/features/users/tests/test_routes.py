from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_me_without_session(async_client: AsyncClient, rbac_identity: dict[str, Any]) -> None:
    response = await async_client.get("/users/me")

    assert response.status_code == 401
    assert response.json()["detail"] == "No active session"


@pytest.mark.asyncio
async def test_me_with_expired_token(async_client: AsyncClient, rbac_identity: dict[str, Any]) -> None:
    import jwt

    token = jwt.encode(
        {"userId": rbac_identity["support"].appwrite_id, "exp": 0},
        "test-secret-not-checked-by-the-service-0123456789",
        algorithm="HS256",
    )
    response = await async_client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


@pytest.mark.asyncio
async def test_me_returns_role_and_permissions(
    async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for
) -> None:
    response = await async_client.get("/users/me", headers=headers_for(rbac_identity["support"]))

    assert response.status_code == 200
    body = response.json()
    assert body["role_name"] == "SUPPORT"
    assert body["permissions"] == ["support.view"]
    assert body["admin_bypass"] is False


@pytest.mark.asyncio
async def test_me_without_role(async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for) -> None:
    response = await async_client.get("/users/me", headers=headers_for(rbac_identity["norole"]))

    assert response.status_code == 200
    assert response.json()["role_id"] is None
    assert response.json()["permissions"] == []


@pytest.mark.asyncio
async def test_assign_role_refreshes_cached_principal(
    async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for
) -> None:
    norole = rbac_identity["norole"]
    norole_headers = headers_for(norole)

    before = await async_client.get("/users/me", headers=norole_headers)
    assert before.json()["permissions"] == []

    assigned = await async_client.put(
        f"/users/{norole.id}/role",
        json={"role_id": rbac_identity["support_role"].id},
        headers=headers_for(rbac_identity["admin"]),
    )
    assert assigned.status_code == 200
    assert assigned.json()["role_id"] == rbac_identity["support_role"].id

    after = await async_client.get("/users/me", headers=norole_headers)
    assert after.json()["permissions"] == ["support.view"]


@pytest.mark.asyncio
async def test_assign_invalid_role(async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for) -> None:
    response = await async_client.put(
        f"/users/{rbac_identity['norole'].id}/role",
        json={"role_id": "missing"},
        headers=headers_for(rbac_identity["admin"]),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid role ID: missing"


@pytest.mark.asyncio
async def test_assign_role_requires_users_edit(
    async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for
) -> None:
    response = await async_client.put(
        f"/users/{rbac_identity['norole'].id}/role",
        json={"role_id": rbac_identity["support_role"].id},
        headers=headers_for(rbac_identity["support"]),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_user_permissions(async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for) -> None:
    headers = headers_for(rbac_identity["admin"])

    support = await async_client.get(f"/users/{rbac_identity['support'].id}/permissions", headers=headers)
    assert [p["key"] for p in support.json()] == ["support.view"]

    norole = await async_client.get(f"/users/{rbac_identity['norole'].id}/permissions", headers=headers)
    assert norole.json() == []


@pytest.mark.asyncio
async def test_get_unknown_user(async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for) -> None:
    response = await async_client.get("/users/missing", headers=headers_for(rbac_identity["admin"]))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_users_filters_by_role_and_status(
    async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for
) -> None:
    headers = headers_for(rbac_identity["admin"])

    everyone = await async_client.get("/users", headers=headers)
    assert everyone.status_code == 200
    assert [u["name"] for u in everyone.json()] == ["Ada Admin", "Nora Norole", "Sam Support"]

    support_staff = await async_client.get(
        "/users", params={"role_id": rbac_identity["support_role"].id}, headers=headers
    )
    assert [u["name"] for u in support_staff.json()] == ["Sam Support"]

    searched = await async_client.get("/users", params={"search": "nora"}, headers=headers)
    assert [u["name"] for u in searched.json()] == ["Nora Norole"]

    await async_client.put(
        f"/users/{rbac_identity['norole'].id}/status", json={"is_active": False}, headers=headers
    )
    inactive = await async_client.get("/users", params={"is_active": "false"}, headers=headers)
    assert [u["name"] for u in inactive.json()] == ["Nora Norole"]


@pytest.mark.asyncio
async def test_list_users_requires_users_view(
    async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for
) -> None:
    response = await async_client.get("/users", headers=headers_for(rbac_identity["support"]))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_deactivated_user_loses_access(
    async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for
) -> None:
    support = rbac_identity["support"]
    support_headers = headers_for(support)
    admin_headers = headers_for(rbac_identity["admin"])

    assert (await async_client.get("/users/me", headers=support_headers)).status_code == 200

    deactivated = await async_client.put(
        f"/users/{support.id}/status", json={"is_active": False}, headers=admin_headers
    )
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False

    refused = await async_client.get("/users/me", headers=support_headers)
    assert refused.status_code == 403

    reactivated = await async_client.put(
        f"/users/{support.id}/status", json={"is_active": True}, headers=admin_headers
    )
    assert reactivated.json()["is_active"] is True
    assert (await async_client.get("/users/me", headers=support_headers)).status_code == 200


@pytest.mark.asyncio
async def test_cannot_change_own_status(async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for) -> None:
    admin = rbac_identity["admin"]

    response = await async_client.put(
        f"/users/{admin.id}/status", json={"is_active": False}, headers=headers_for(admin)
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot change your own status"


@pytest.mark.asyncio
async def test_bulk_status_update(async_client: AsyncClient, rbac_identity: dict[str, Any], headers_for) -> None:
    headers = headers_for(rbac_identity["admin"])
    user_ids = [rbac_identity["support"].id, rbac_identity["norole"].id]

    updated = await async_client.put(
        "/users/status", json={"user_ids": user_ids, "is_active": False}, headers=headers
    )
    assert updated.status_code == 200
    assert [u["id"] for u in updated.json()] == user_ids
    assert all(u["is_active"] is False for u in updated.json())

    unknown = await async_client.put(
        "/users/status", json={"user_ids": ["missing"], "is_active": True}, headers=headers
    )
    assert unknown.status_code == 404
