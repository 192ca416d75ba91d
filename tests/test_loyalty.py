import pytest

pytestmark = pytest.mark.asyncio


async def test_award_points(client, user, admin, login):
    from app.models.user import User
    login(admin)
    r = await client.post(
        "/v1/loyalty-rewards/process",
        json={"userId": str(user.id), "amount": 49.99, "orderId": "order-1"},
    )
    assert r.status_code == 200
    assert r.json()["pointsEarned"] == 49
    assert (await User.get(user.id)).loyalty_points == 49


async def test_award_is_idempotent_per_order(client, user, admin, login):
    from app.models.user import User
    login(admin)
    body = {"userId": str(user.id), "amount": 10, "orderId": "order-1"}
    first = await client.post("/v1/loyalty-rewards/process", json=body)
    second = await client.post("/v1/loyalty-rewards/process", json=body)
    assert first.json()["id"] == second.json()["id"]
    assert (await User.get(user.id)).loyalty_points == 10


async def test_award_validation(client, user, admin, login):
    login(user)
    r = await client.post("/v1/loyalty-rewards/process", json={"userId": str(user.id), "amount": 10})
    assert r.status_code == 403

    login(admin)
    r = await client.post("/v1/loyalty-rewards/process", json={"userId": str(user.id), "amount": 0})
    assert r.json()["error"]["code"] == "INVALID_AMOUNT"
    r = await client.post("/v1/loyalty-rewards/process", json={"amount": 5})
    assert r.json()["error"]["code"] == "MISSING_USER_ID"
    r = await client.post("/v1/loyalty-rewards/process", json={"userId": "64b000000000000000000000", "amount": 5})
    assert r.json()["error"]["code"] == "USER_NOT_FOUND"


async def test_list_own_rewards(client, user, admin, login):
    from app.services import loyalty as loyalty_service
    from decimal import Decimal
    await loyalty_service.award_points(user.id, Decimal("12.50"), description="Welcome order")
    login(user)
    r = await client.get("/v1/loyalty-rewards")
    assert [(i["pointsEarned"], i["description"]) for i in r.json()["items"]] == [(12, "Welcome order")]
    r = await client.get("/v1/loyalty-rewards", params={"userId": str(admin.id)})
    assert r.status_code == 403


async def test_concurrent_awards_for_one_order(user):
    import asyncio
    from decimal import Decimal
    from app.models.loyalty_reward import LoyaltyReward
    from app.models.user import User
    from app.services import loyalty as loyalty_service

    rewards = await asyncio.gather(
        loyalty_service.award_points(user.id, Decimal("10"), order_id="order-7"),
        loyalty_service.award_points(user.id, Decimal("10"), order_id="order-7"),
    )
    assert rewards[0].id == rewards[1].id
    assert await LoyaltyReward.find(LoyaltyReward.user_id == user.id).count() == 1
    assert (await User.get(user.id)).loyalty_points == 10


async def test_awards_without_order_are_independent(user):
    from decimal import Decimal
    from app.models.user import User
    from app.services import loyalty as loyalty_service

    await loyalty_service.award_points(user.id, Decimal("3"))
    await loyalty_service.award_points(user.id, Decimal("4"))
    assert (await User.get(user.id)).loyalty_points == 7
