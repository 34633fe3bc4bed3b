import pytest

from admin_console.features.permissions.capabilities import Capability
from admin_console.features.permissions.evaluator import AuthorizationEvaluator
from admin_console.features.permissions.exceptions import StoreUnavailable, ValidationError
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.store import PermissionStore


@pytest.mark.asyncio
async def test_wildcard_role_is_granted_any_capability(db, rbac_identity) -> None:
    evaluator = AuthorizationEvaluator(db)
    admin = rbac_identity["admin"]

    assert await evaluator.has_permission(admin.id, "products", "moderate")
    assert await evaluator.has_permission(admin.id, "never_seeded", "anything")


@pytest.mark.asyncio
async def test_user_without_role_is_denied_and_has_no_permissions(db, rbac_identity) -> None:
    evaluator = AuthorizationEvaluator(db)
    norole = rbac_identity["norole"]

    assert not await evaluator.has_permission(norole.id, "support", "view")
    assert not await evaluator.has_permission(norole.id, "all", "all")
    assert await evaluator.get_user_permissions(norole.id) == []


@pytest.mark.asyncio
async def test_unknown_user_is_denied(db, rbac_identity) -> None:
    assert not await AuthorizationEvaluator(db).has_permission("missing", "support", "view")


@pytest.mark.asyncio
async def test_support_scenario(db, rbac_identity) -> None:
    evaluator = AuthorizationEvaluator(db)
    support = rbac_identity["support"]
    permissions = rbac_identity["permissions"]

    assert await evaluator.has_permission(support.id, "support", "view")
    assert not await evaluator.has_permission(support.id, "products", "moderate")
    assert not await evaluator.has_permission(support.id, "support", "resolve")

    await RoleRegistry(db).update_role(
        rbac_identity["support_role"].id,
        permission_ids=[permissions["support.view"].id, permissions["support.resolve"].id],
    )
    await db.commit()

    assert await evaluator.has_permission(support.id, "support", "resolve")


@pytest.mark.asyncio
async def test_has_all_permissions_empty_list_is_granted(db, rbac_identity) -> None:
    evaluator = AuthorizationEvaluator(db)

    assert await evaluator.has_all_permissions(rbac_identity["support"].id, [])
    assert await evaluator.has_all_permissions(rbac_identity["norole"].id, [])


@pytest.mark.asyncio
async def test_has_all_permissions_single_matches_has_permission(db, rbac_identity) -> None:
    evaluator = AuthorizationEvaluator(db)
    support = rbac_identity["support"]

    for resource, action in [("support", "view"), ("products", "moderate")]:
        assert (
            await evaluator.has_all_permissions(support.id, [f"{resource}.{action}"])
            == await evaluator.has_permission(support.id, resource, action)
        )


@pytest.mark.asyncio
async def test_check_all_reports_first_denied_capability(db, rbac_identity) -> None:
    decision = await AuthorizationEvaluator(db).check_all(
        rbac_identity["support"].id, ["support.view", "products.moderate", "users.view"]
    )

    assert not decision.allowed
    assert decision.denied == Capability("products", "moderate")
    assert decision.error is None


@pytest.mark.asyncio
async def test_malformed_capability_is_a_validation_error(db, rbac_identity) -> None:
    with pytest.raises(ValidationError):
        await AuthorizationEvaluator(db).has_all_permissions(rbac_identity["admin"].id, ["usersview"])


@pytest.mark.asyncio
async def test_store_errors_fail_closed(db, rbac_identity, monkeypatch) -> None:
    async def unavailable(self, role_id, resource, action):
        raise StoreUnavailable("Store unavailable during check role permission")

    monkeypatch.setattr(PermissionStore, "role_has_capability", unavailable)

    decision = await AuthorizationEvaluator(db).check(rbac_identity["admin"].id, "users", "view")

    assert not decision.allowed
    assert isinstance(decision.error, StoreUnavailable)
    assert decision.reason.startswith("Could not verify users.view")


@pytest.mark.asyncio
async def test_get_user_permissions_lists_role_permissions(db, rbac_identity) -> None:
    permissions = await AuthorizationEvaluator(db).get_user_permissions(rbac_identity["support"].id)

    assert [p.key for p in permissions] == ["support.view"]
