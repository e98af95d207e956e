import json
import uuid
from unittest.mock import patch, AsyncMock

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

from recipeshare.infra.idempotency import (
    idempotency_clear_key,
    idempotency_precheck,
    idempotency_store_result,
)

# --- Mocking Redis ---

@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis_client(fake_redis):
    # Patch the get_redis used inside the idempotency module
    with patch("recipeshare.infra.idempotency.get_redis", return_value=fake_redis):
        yield


def _request(idem_key=None, body=b"", path="/api/recipes/r1", method="DELETE"):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": idem_key} if idem_key else {}
    req.method = method
    req.url.path = path
    req.body = AsyncMock(return_value=body)
    return req


@pytest.mark.asyncio
async def test_precheck_without_header_is_a_no_op():
    assert await idempotency_precheck(_request(), household_id="hh1", route_key="recipe_delete") is None


@pytest.mark.asyncio
async def test_idempotency_flow(fake_redis):
    idem_key = str(uuid.uuid4())
    req = _request(idem_key)

    # 1. First call claims the key
    res = await idempotency_precheck(req, household_id="hh1", route_key="recipe_delete")
    assert isinstance(res, tuple)
    rkey, rhash, _ = res
    assert rkey == f"recipeshare:idemp:hh1:recipe_delete:{idem_key}"
    assert json.loads(await fake_redis.get(rkey))["state"] == "processing"

    # 2. Concurrent duplicate -> 409
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(req, household_id="hh1", route_key="recipe_delete")
    assert exc.value.status_code == 409

    # 3. Store result
    await idempotency_store_result(rkey, rhash, status=200, body={"outcome": "deleted"})
    data = json.loads(await fake_redis.get(rkey))
    assert data["state"] == "done"
    assert data["status"] == 200

    # 4. Replay
    replay = await idempotency_precheck(req, household_id="hh1", route_key="recipe_delete")
    assert isinstance(replay, JSONResponse)
    assert json.loads(replay.body) == {"outcome": "deleted"}


@pytest.mark.asyncio
async def test_key_reused_with_different_payload(fake_redis):
    await idempotency_precheck(_request("k1", path="/api/recipes/r1"), household_id="hh1", route_key="recipe_delete")

    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(_request("k1", path="/api/recipes/r2"), household_id="hh1", route_key="recipe_delete")
    assert exc.value.status_code == 409
    assert "different request payload" in exc.value.detail


@pytest.mark.asyncio
async def test_keys_are_scoped_per_household(fake_redis):
    first = await idempotency_precheck(_request("k1"), household_id="hh1", route_key="recipe_delete")
    second = await idempotency_precheck(_request("k1"), household_id="hh2", route_key="recipe_delete")
    assert isinstance(first, tuple) and isinstance(second, tuple)
    assert first[0] != second[0]


@pytest.mark.asyncio
async def test_clear_key_allows_retry(fake_redis):
    rkey, _, _ = await idempotency_precheck(_request("k1"), household_id="hh1", route_key="recipe_delete")
    await idempotency_clear_key(rkey)

    again = await idempotency_precheck(_request("k1"), household_id="hh1", route_key="recipe_delete")
    assert isinstance(again, tuple)
