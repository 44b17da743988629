"""
Unit tests for policy persistence.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_br_visibility.app.rules.models import ClassificationStrategy, PolicySet
from service_br_visibility.app.store import (
    InMemoryPolicyStore,
    JsonFilePolicyStore,
    PolicyStore,
    RedisPolicyStore,
    build_policy_store,
    merge_with_defaults,
)
from shared.errors import PolicyPersistenceError
from shared.test_helpers import TestDataFactory

KEY = "brTagsVisibilityExtension"


class TestMergeWithDefaults:
    """Test cases for merge_with_defaults."""

    def test_empty_gives_defaults(self):
        assert merge_with_defaults(None) == PolicySet()
        assert merge_with_defaults({}) == PolicySet()

    def test_legacy_keys_migrate(self):
        policy = merge_with_defaults({"hideAllBr": True, "hideChatBr": True})

        assert policy.hide_all_global is True
        assert policy.hide_all_in_scope is True

    def test_current_key_wins_over_legacy(self):
        policy = merge_with_defaults({"hideAllBr": True, "hideAllGlobal": False})

        assert policy.hide_all_global is False

    def test_invalid_values_dropped_individually(self):
        policy = merge_with_defaults({
            "hideLeading": True,
            "mergeConsecutive": "sometimes",
            "classificationStrategy": "sideways",
        })

        assert policy.hide_leading is True
        assert policy.merge_consecutive is False
        assert policy.classification_strategy == ClassificationStrategy.LAYERED


class TestInMemoryPolicyStore:
    """Test cases for InMemoryPolicyStore."""

    @pytest.mark.asyncio
    async def test_load_backfills_settings(self):
        settings = {}
        store = InMemoryPolicyStore(settings, key=KEY)

        policy = await store.load()

        assert policy == PolicySet()
        assert settings[KEY] == PolicySet().to_storage()

    @pytest.mark.asyncio
    async def test_load_keeps_stored_values(self):
        settings = {KEY: {"hideLeading": True}}
        store = InMemoryPolicyStore(settings, key=KEY)

        policy = await store.load()

        assert policy.hide_leading is True
        assert settings[KEY]["mergeConsecutive"] is False

    @pytest.mark.asyncio
    async def test_load_migrates_legacy_keys(self):
        settings = {KEY: {"hideAllBr": True, "hideChatBr": True}}
        store = InMemoryPolicyStore(settings, key=KEY)

        policy = await store.load()

        assert policy.hide_all_global is True
        assert policy.hide_all_in_scope is True
        assert settings[KEY]["hideAllGlobal"] is True
        assert settings[KEY]["hideAllBr"] is True

    @pytest.mark.asyncio
    async def test_current_key_wins_over_legacy_key(self):
        settings = {KEY: {"hideAllBr": True, "hideAllGlobal": False}}

        policy = await InMemoryPolicyStore(settings, key=KEY).load()

        assert policy.hide_all_global is False

    @pytest.mark.asyncio
    async def test_save_preserves_unknown_keys(self):
        settings = {KEY: {"futureOption": 7}}
        store = InMemoryPolicyStore(settings, key=KEY)

        await store.save(PolicySet(merge_consecutive=True))

        assert settings[KEY]["futureOption"] == 7
        assert settings[KEY]["mergeConsecutive"] is True


class TestJsonFilePolicyStore:
    """Test cases for JsonFilePolicyStore."""

    @pytest.mark.asyncio
    async def test_missing_file_gives_defaults(self, tmp_path):
        store = JsonFilePolicyStore(tmp_path / "policy.json")

        assert await store.load() == PolicySet()

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "policy.json"
        store = JsonFilePolicyStore(path)
        policy = PolicySet(hide_all_in_scope=True, classification_strategy=ClassificationStrategy.NEIGHBORS)

        await store.save(policy)

        assert json.loads(path.read_text())["classificationStrategy"] == "neighbors"
        assert await store.load() == policy
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text("{not json")

        assert await JsonFilePolicyStore(path).load() == PolicySet()

    @pytest.mark.asyncio
    async def test_non_object_gives_defaults(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text("[1, 2]")

        assert await JsonFilePolicyStore(path).load() == PolicySet()


class TestFailingStore:
    """Persistence failures."""

    class BrokenStore(PolicyStore):
        async def _read(self):
            raise OSError("disk gone")

        async def _write(self, data):
            raise OSError("disk gone")

    @pytest.mark.asyncio
    async def test_load_failure_gives_defaults(self):
        assert await self.BrokenStore().load() == PolicySet()

    @pytest.mark.asyncio
    async def test_save_failure_raises_persistence_error(self):
        with pytest.raises(PolicyPersistenceError) as exc_info:
            await self.BrokenStore().save(PolicySet(hide_leading=True))

        assert exc_info.value.code == "POLICY_PERSISTENCE_ERROR"
        assert exc_info.value.details["store"] == "BrokenStore"


class TestRedisPolicyStore:
    """Test cases for RedisPolicyStore."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock()
        client.ping = AsyncMock()
        client.close = AsyncMock()
        return client

    @pytest.fixture
    def store(self, client):
        return RedisPolicyStore("redis://localhost:6379/0", key=KEY, client=client)

    @pytest.mark.asyncio
    async def test_load_reads_json_document(self, store, client):
        client.get.return_value = json.dumps({"hideLeading": True})

        policy = await store.load()

        client.get.assert_awaited_once_with(KEY)
        assert policy.hide_leading is True

    @pytest.mark.asyncio
    async def test_save_writes_full_policy(self, store, client):
        await store.save(PolicySet(smart_external=True))

        key, value = client.set.call_args[0]
        assert key == KEY
        assert json.loads(value)["smartExternal"] is True

    @pytest.mark.asyncio
    async def test_write_retries_connection_errors(self, store, client):
        client.set.side_effect = [RedisConnectionError("down"), None]

        await store.save(PolicySet())

        assert client.set.await_count == 2

    @pytest.mark.asyncio
    async def test_write_gives_up_after_retries(self, store, client):
        client.set.side_effect = RedisConnectionError("down")

        with pytest.raises(PolicyPersistenceError):
            await store.save(PolicySet())

        assert client.set.await_count == 3

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, client):
        await store.start()
        await store.stop()

        client.ping.assert_awaited_once()
        client.close.assert_awaited_once()
        assert store.redis is None

    @pytest.mark.asyncio
    async def test_stop_without_client_is_noop(self):
        store = RedisPolicyStore("redis://localhost:6379/0")

        await store.stop()

        assert store.redis is None


class TestBuildPolicyStore:
    """Test cases for build_policy_store."""

    def test_memory_backend_uses_host_settings(self):
        settings = {}
        store = build_policy_store(TestDataFactory.create_config(), settings)

        assert isinstance(store, InMemoryPolicyStore)
        assert store.settings is settings

    def test_file_backend(self, tmp_path):
        config = TestDataFactory.create_config(policy_backend="file", policy_file=str(tmp_path / "p.json"))

        store = build_policy_store(config)

        assert isinstance(store, JsonFilePolicyStore)
        assert store.path == tmp_path / "p.json"

    def test_redis_backend(self):
        config = TestDataFactory.create_config(policy_backend="redis", policy_key="custom")

        store = build_policy_store(config)

        assert isinstance(store, RedisPolicyStore)
        assert store.key == "custom"
