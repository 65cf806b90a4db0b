from storefront.core import rate_limit
from storefront.core.config import settings


async def test_fixed_window_counts_per_identifier():
    assert await rate_limit.check_rate_limit("login", "1.2.3.4", 2, window_seconds=3600) == (True, 1)
    assert await rate_limit.check_rate_limit("login", "1.2.3.4", 2, window_seconds=3600) == (True, 0)
    assert await rate_limit.check_rate_limit("login", "1.2.3.4", 2, window_seconds=3600) == (False, 0)
    # outro IP e outro bucket têm contadores próprios
    assert (await rate_limit.check_rate_limit("login", "5.6.7.8", 2, window_seconds=3600))[0] is True
    assert (await rate_limit.check_rate_limit("register", "1.2.3.4", 2, window_seconds=3600))[0] is True


async def test_window_key_expires_with_ttl(fake_redis):
    await rate_limit.check_rate_limit("login", "ip", 5, window_seconds=3600)
    await rate_limit.check_rate_limit("login", "ip", 5, window_seconds=3600)

    keys = await fake_redis.keys("rl:login:ip:*")
    assert len(keys) == 1
    assert await fake_redis.get(keys[0]) == "2"
    assert 0 < await fake_redis.ttl(keys[0]) <= 3600


async def test_distinct_clients_do_not_accumulate_without_ttl(fake_redis):
    for i in range(50):
        await rate_limit.check_rate_limit("login", f"10.0.0.{i}", 10)
    keys = await fake_redis.keys("rl:login:*")
    assert len(keys) == 50
    assert all(await fake_redis.ttl(k) > 0 for k in keys)


async def test_redis_down_lets_requests_through(redis_server):
    redis_server.connected = False
    assert await rate_limit.check_rate_limit("login", "ip", 1) == (True, 1)
    assert await rate_limit.check_rate_limit("login", "ip", 1) == (True, 1)


async def test_login_is_rate_limited(client, customer, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_AUTH_PER_MINUTE", 3)
    body = {"email": customer.email, "password": "errada-123"}
    codes = [(await client.post("/api/v1/auth/login", json=body)).status_code for _ in range(4)]
    assert codes == [401, 401, 401, 429]

    r = await client.post("/api/v1/auth/login", json=body)
    assert r.json()["errorCode"] == "RATE_LIMITED"


async def test_forwarded_for_is_the_identifier(client, customer, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_AUTH_PER_MINUTE", 1)
    body = {"email": customer.email, "password": "errada-123"}
    r1 = await client.post("/api/v1/auth/login", json=body, headers={"x-forwarded-for": "10.0.0.1"})
    r2 = await client.post("/api/v1/auth/login", json=body, headers={"x-forwarded-for": "10.0.0.2"})
    assert (r1.status_code, r2.status_code) == (401, 401)
