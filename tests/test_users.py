import pytest

pytestmark = pytest.mark.asyncio


async def test_me_requires_session(client, db):
    r = await client.get("/v1/auth/me")
    assert r.status_code == 401
    client.cookies.set("trueservices_session", "not-a-signed-cookie")
    r = await client.get("/v1/auth/me")
    assert r.status_code == 401


async def test_me_returns_balance(client, user, login):
    from app.services import ledger as ledger_service
    await ledger_service.apply_ledger_entry(user.id, 1234, "deposit")
    login(user)
    r = await client.get("/v1/auth/me")
    assert r.status_code == 200
    assert r.json()["id"] == str(user.id)
    assert r.json()["balance"] == 12.34


async def test_session_invalidated_by_version(client, user, login):
    login(user)
    user.session_version += 1
    await user.save()
    r = await client.get("/v1/auth/me")
    assert r.status_code == 401


async def test_user_profile_access(client, user, admin, login):
    login(user)
    assert (await client.get(f"/v1/users/{user.id}")).status_code == 200
    assert (await client.get(f"/v1/users/{admin.id}")).status_code == 403
    login(admin)
    assert (await client.get(f"/v1/users/{user.id}")).json()["email"] == user.email
    r = await client.get("/v1/users/64b000000000000000000000")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "USER_NOT_FOUND"


async def test_balance_adjustment(client, user, admin, login):
    from app.models.audit_log import AuditLog
    login(user)
    r = await client.post(f"/v1/users/{user.id}/balance-adjustments", json={"amount": 5})
    assert r.status_code == 403

    login(admin)
    r = await client.post(f"/v1/users/{user.id}/balance-adjustments", json={"amount": 25.5, "note": "goodwill"})
    assert r.status_code == 200
    assert r.json()["balance"] == 25.5
    r = await client.post(f"/v1/users/{user.id}/balance-adjustments", json={"amount": -30})
    assert r.json()["error"]["code"] == "INSUFFICIENT_BALANCE"
    r = await client.post(f"/v1/users/{user.id}/balance-adjustments", json={"amount": 0})
    assert r.json()["error"]["code"] == "INVALID_AMOUNT"

    audit = await AuditLog.find(AuditLog.event_type == "balance_adjusted").to_list()
    assert len(audit) == 1
    assert audit[0].actor_id == str(admin.id)
    assert audit[0].metadata["note"] == "goodwill"


async def test_ledger_listing(client, user, admin, login):
    from app.services import ledger as ledger_service
    await ledger_service.apply_ledger_entry(user.id, 1000, "deposit", reference_type="transaction", reference_id="t1")
    await ledger_service.apply_ledger_entry(user.id, -400, "purchase", reference_type="order", reference_id="o1")
    login(user)
    r = await client.get(f"/v1/users/{user.id}/ledger")
    entries = r.json()["entries"]
    assert sorted((e["reason"], e["amount"]) for e in entries) == [("deposit", 10.0), ("purchase", -4.0)]
    login(admin)
    r = await client.get(f"/v1/users/{user.id}/ledger")
    assert len(r.json()["entries"]) == 2
