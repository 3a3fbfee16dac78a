import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from gymapp.schemas.schedule import AvailableSlot
from gymapp.services.cache_service import cache_service, tenant_key


def test_tenant_key_prefixes_client():
    assert tenant_key("gym-a", "class_types", 1, 20, "") == "gym-a:class_types:1:20:"


@pytest.mark.asyncio
async def test_without_redis_reads_from_db():
    fetch = AsyncMock(return_value=[{"start_time": "08:00", "end_time": "09:00"}])

    result = await cache_service.get_or_set(None, "gym-a:x", fetch, AvailableSlot, is_list=True)

    assert result == [{"start_time": "08:00", "end_time": "09:00"}]
    fetch.assert_awaited_once()


@pytest.mark.asyncio
async def test_cache_hit_skips_db():
    redis_client = AsyncMock()
    redis_client.get.return_value = json.dumps([{"start_time": "08:00", "end_time": "09:00"}])
    fetch = AsyncMock()

    result = await cache_service.get_or_set(redis_client, "gym-a:x", fetch, AvailableSlot, is_list=True)

    assert result == [AvailableSlot(start_time="08:00", end_time="09:00")]
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_miss_stores_serialized_value():
    redis_client = AsyncMock()
    redis_client.get.return_value = None
    fetch = AsyncMock(return_value=AvailableSlot(start_time="08:00", end_time="09:00"))

    await cache_service.get_or_set(redis_client, "gym-a:x", fetch, AvailableSlot, expiry_seconds=60)

    redis_client.set.assert_awaited_once_with(
        "gym-a:x", json.dumps({"start_time": "08:00", "end_time": "09:00"}), ex=60
    )


@pytest.mark.asyncio
async def test_redis_error_falls_back_to_db():
    redis_client = AsyncMock()
    redis_client.get.side_effect = ConnectionError("redis caído")
    fetch = AsyncMock(return_value=[])

    assert await cache_service.get_or_set(redis_client, "gym-a:x", fetch, AvailableSlot, is_list=True) == []


@pytest.mark.asyncio
async def test_invalidation_only_touches_the_tenant():
    async def scan_iter(match):
        for key in {"gym-a:class_types:*": ["gym-a:class_types:1:20:"], "gym-a:grouped_classes:*": []}[match]:
            yield key

    redis_client = MagicMock()
    redis_client.scan_iter = scan_iter
    redis_client.delete = AsyncMock(return_value=1)

    await cache_service.invalidate_schedule_caches(redis_client, "gym-a")

    redis_client.delete.assert_awaited_once_with("gym-a:class_types:1:20:")
