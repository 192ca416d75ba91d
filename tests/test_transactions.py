"""Transaction intake and admin endpoints."""

import pytest

pytestmark = pytest.mark.asyncio


def _body(user, **overrides):
    body = {
        "userId": str(user.id),
        "cryptocurrency": "bitcoin",
        "amount": 50.00,
        "transactionHash": "abc123",
    }
    body.update(overrides)
    return body


async def test_submit_creates_pending(client, user):
    r = await client.post("/v1/transactions", json=_body(user))
    assert r.status_code == 201
    data = r.json()
    assert data["status"] == "pending"
    assert data["amount"] == 50.0
    assert data["claimedAmount"] == 50.0
    assert data["transactionHash"] == "abc123"
    assert data["verifiedAt"] is None


async def test_submit_trims_hash(client, user):
    r = await client.post("/v1/transactions", json=_body(user, transactionHash="  abc123  "))
    assert r.status_code == 201
    assert r.json()["transactionHash"] == "abc123"


@pytest.mark.parametrize(
    "missing,code",
    [
        ("userId", "MISSING_USER_ID"),
        ("cryptocurrency", "MISSING_CRYPTOCURRENCY"),
        ("amount", "MISSING_AMOUNT"),
        ("transactionHash", "MISSING_TRANSACTION_HASH"),
    ],
)
async def test_submit_missing_fields(client, user, missing, code):
    body = _body(user)
    del body[missing]
    r = await client.post("/v1/transactions", json=body)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == code


async def test_submit_rejects_non_positive_amount(client, user):
    for amount in (0, -5):
        r = await client.post("/v1/transactions", json=_body(user, amount=amount))
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "INVALID_AMOUNT"


async def test_submit_rejects_non_numeric_amount(client, user):
    r = await client.post("/v1/transactions", json=_body(user, amount="fifty"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_submit_unknown_user(client, db):
    r = await client.post(
        "/v1/transactions",
        json={"userId": "64b000000000000000000000", "cryptocurrency": "bitcoin", "amount": 10, "transactionHash": "h1"},
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_USER_ID"


async def test_submit_unknown_cryptocurrency(client, user):
    r = await client.post("/v1/transactions", json=_body(user, cryptocurrency="monopoly-money"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_CRYPTOCURRENCY"


async def test_submit_cannot_preverify(client, user):
    r = await client.post("/v1/transactions", json=_body(user, status="verified"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_STATUS"


async def test_duplicate_hash_conflicts(client, user, admin):
    assert (await client.post("/v1/transactions", json=_body(user))).status_code == 201
    r = await client.post("/v1/transactions", json=_body(admin))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "DUPLICATE_TRANSACTION_HASH"


async def test_list_requires_session(client, user):
    r = await client.get("/v1/transactions")
    assert r.status_code == 401


async def test_list_only_own_for_users(client, user, admin, login):
    await client.post("/v1/transactions", json=_body(user, transactionHash="mine"))
    await client.post("/v1/transactions", json=_body(admin, transactionHash="theirs"))
    login(user)
    r = await client.get("/v1/transactions", params={"userId": str(admin.id)})
    assert r.status_code == 200
    hashes = [t["transactionHash"] for t in r.json()["items"]]
    assert hashes == ["mine"]


async def test_admin_lists_with_filters(client, user, admin, login):
    await client.post("/v1/transactions", json=_body(user, transactionHash="a"))
    await client.post("/v1/transactions", json=_body(user, transactionHash="b", cryptocurrency="ethereum"))
    login(admin)
    r = await client.get("/v1/transactions", params={"cryptocurrency": "ethereum"})
    assert [t["transactionHash"] for t in r.json()["items"]] == ["b"]


async def test_get_other_users_transaction_forbidden(client, user, admin, login):
    from app.models.user import User
    other = User(email="other@example.com")
    await other.insert()
    created = (await client.post("/v1/transactions", json=_body(other))).json()
    login(user)
    r = await client.get(f"/v1/transactions/{created['id']}")
    assert r.status_code == 403
    login(admin)
    r = await client.get(f"/v1/transactions/{created['id']}")
    assert r.status_code == 200


async def test_get_unknown_transaction(client, admin, login):
    login(admin)
    r = await client.get("/v1/transactions/64b000000000000000000000")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "TRANSACTION_NOT_FOUND"


async def test_admin_reject_and_reopen(client, user, admin, login):
    created = (await client.post("/v1/transactions", json=_body(user))).json()
    login(admin)
    r = await client.put(f"/v1/transactions/{created['id']}", json={"status": "rejected"})
    assert r.status_code == 200
    assert r.json()["status"] == "rejected"
    r = await client.put(f"/v1/transactions/{created['id']}", json={"status": "pending"})
    assert r.json()["status"] == "pending"


async def test_admin_cannot_hand_verify(client, user, admin, login):
    created = (await client.post("/v1/transactions", json=_body(user))).json()
    login(admin)
    r = await client.put(f"/v1/transactions/{created['id']}", json={"status": "verified"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"


async def test_update_requires_admin(client, user, login):
    created = (await client.post("/v1/transactions", json=_body(user))).json()
    login(user)
    r = await client.put(f"/v1/transactions/{created['id']}", json={"status": "rejected"})
    assert r.status_code == 403


async def test_delete_pending(client, user, admin, login):
    created = (await client.post("/v1/transactions", json=_body(user))).json()
    login(admin)
    r = await client.delete(f"/v1/transactions/{created['id']}")
    assert r.status_code == 200
    assert r.json()["transaction"]["id"] == created["id"]
    assert (await client.get(f"/v1/transactions/{created['id']}")).status_code == 404


async def _verified_transaction(client, user, explorer):
    from tests.conftest import DEPOSIT_ADDRESS
    created = (await client.post("/v1/transactions", json=_body(user))).json()
    explorer.add("abc123", DEPOSIT_ADDRESS, 125_000, confirmations=2)
    r = await client.post("/v1/transactions/verify", json={"transactionId": created["id"]})
    assert r.status_code == 200
    return created


async def test_verified_transaction_is_immutable(client, user, admin, deposit_address, explorer, login):
    created = await _verified_transaction(client, user, explorer)
    login(admin)
    r = await client.put(f"/v1/transactions/{created['id']}", json={"status": "rejected"})
    assert r.json()["error"]["code"] == "ALREADY_VERIFIED"
    r = await client.delete(f"/v1/transactions/{created['id']}")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "CANNOT_DELETE_VERIFIED"
    r = await client.get(f"/v1/transactions/{created['id']}")
    assert r.json()["status"] == "verified"


def _slow_reads(monkeypatch):
    """Delay the admin paths between reading a transaction and writing it."""
    import asyncio
    from app.services import transactions as transactions_service
    real_get = transactions_service.get_transaction

    async def slow_get(tx_id):
        tx = await real_get(tx_id)
        await asyncio.sleep(0.05)
        return tx

    monkeypatch.setattr(transactions_service, "get_transaction", slow_get)


async def test_admin_reject_loses_to_concurrent_verification(client, user, deposit_address, explorer, monkeypatch):
    import asyncio
    from beanie import PydanticObjectId
    from app.core.exceptions import ConflictError
    from app.models.transaction import Transaction
    from app.models.user import User
    from app.services import transactions as transactions_service
    from app.services import verification as verification_service
    from tests.conftest import DEPOSIT_ADDRESS

    created = (await client.post("/v1/transactions", json=_body(user))).json()
    explorer.add("abc123", DEPOSIT_ADDRESS, 125_000, confirmations=2)
    _slow_reads(monkeypatch)
    tx_id = PydanticObjectId(created["id"])

    results = await asyncio.gather(
        transactions_service.update_status(tx_id, "rejected"),
        verification_service.verify_transaction(created["id"], {"bitcoin": explorer}),
        return_exceptions=True,
    )
    assert isinstance(results[0], ConflictError)
    assert isinstance(results[1], verification_service.VerificationResult)
    tx = await Transaction.get(tx_id)
    assert tx.status == "verified"
    assert tx.verified_at is not None
    assert (await User.get(user.id)).balance_cents == 5000


async def test_admin_delete_loses_to_concurrent_verification(client, user, deposit_address, explorer, monkeypatch):
    import asyncio
    from beanie import PydanticObjectId
    from app.core.exceptions import ConflictError
    from app.models.transaction import Transaction
    from app.services import transactions as transactions_service
    from app.services import verification as verification_service
    from tests.conftest import DEPOSIT_ADDRESS

    created = (await client.post("/v1/transactions", json=_body(user))).json()
    explorer.add("abc123", DEPOSIT_ADDRESS, 125_000, confirmations=2)
    _slow_reads(monkeypatch)
    tx_id = PydanticObjectId(created["id"])

    results = await asyncio.gather(
        transactions_service.delete_transaction(tx_id),
        verification_service.verify_transaction(created["id"], {"bitcoin": explorer}),
        return_exceptions=True,
    )
    assert isinstance(results[0], ConflictError)
    assert (await Transaction.get(tx_id)).status == "verified"
