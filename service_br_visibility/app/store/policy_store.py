"""
Policy persistence with default-merge semantics.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import pydantic
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from shared.errors import PolicyPersistenceError
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception
from ..rules.models import LEGACY_POLICY_KEYS, PolicySet


logger = get_logger("visibility.store")


def migrate_legacy_keys(data: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Copy legacy values to their current keys, in place. Current keys win."""
    for legacy, current in LEGACY_POLICY_KEYS.items():
        if legacy in data and current not in data:
            data[current] = data[legacy]
    return data


def merge_with_defaults(raw: Optional[Dict[str, Any]]) -> PolicySet:
    """Build a PolicySet from stored data, backfilling missing keys.

    Legacy keys are migrated and values that fail validation fall back
    to their defaults without discarding the valid ones.
    """
    data = migrate_legacy_keys(dict(raw or {}))

    try:
        return PolicySet.model_validate(data)
    except pydantic.ValidationError as e:
        invalid = {error["loc"][0] for error in e.errors() if error.get("loc")}
        logger.warning("Dropping invalid policy values", keys=sorted(str(k) for k in invalid))
        return PolicySet.model_validate({k: v for k, v in data.items() if k not in invalid})


class PolicyStore:
    """Abstract policy store. Backends implement `_read` and `_write`."""

    async def load(self) -> PolicySet:
        try:
            raw = await self._read()
        except Exception as e:
            logger.warning("Policy load failed, using defaults", store=type(self).__name__, error=str(e))
            return PolicySet()
        return merge_with_defaults(raw)

    async def save(self, policy: PolicySet) -> None:
        try:
            try:
                existing = await self._read() or {}
            except Exception:
                existing = {}
            # Keys this version does not know about are kept.
            await self._write({**existing, **policy.to_storage()})
        except Exception as e:
            logger.error("Policy save failed", store=type(self).__name__, error=str(e))
            raise PolicyPersistenceError(str(e), details={"store": type(self).__name__}) from e

    async def stop(self) -> None:
        """Release backend connections."""

    async def _read(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def _write(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryPolicyStore(PolicyStore):
    """Policy kept in a host-provided settings mapping under `key`.

    The host persists the mapping itself; missing keys are backfilled
    in place so the host sees the full policy.
    """

    def __init__(self, settings: Optional[MutableMapping[str, Any]] = None, key: str = "brTagsVisibilityExtension"):
        self.settings = settings if settings is not None else {}
        self.key = key

    async def _read(self) -> Optional[Dict[str, Any]]:
        section = self.settings.get(self.key)
        if section is None:
            section = self.settings[self.key] = {}
        migrate_legacy_keys(section)
        for name, value in PolicySet().to_storage().items():
            section.setdefault(name, value)
        return dict(section)

    async def _write(self, data: Dict[str, Any]) -> None:
        section = self.settings.setdefault(self.key, {})
        section.update(data)


class JsonFilePolicyStore(PolicyStore):
    """Policy kept as a JSON object in a file."""

    def __init__(self, path):
        self.path = Path(path)

    async def _read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    async def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)


class RedisPolicyStore(PolicyStore):
    """Policy kept as one JSON document in Redis."""

    def __init__(self, redis_url: str, key: str = "brTagsVisibilityExtension", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key = key
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        await self.redis.ping()
        logger.info("Redis policy store started")

    async def stop(self):
        if self.redis is not None:
            await self.redis.close()
            self.redis = None
            logger.info("Redis policy store stopped")

    async def _read(self) -> Optional[Dict[str, Any]]:
        if self.redis is None:
            await self.start()
        cached = await self.redis.get(self.key)
        if not cached:
            return None
        data = json.loads(cached)
        if not isinstance(data, dict):
            raise ValueError(f"Redis key {self.key} does not hold a JSON object")
        return data

    @retry_on_exception(
        (RedisConnectionError, RedisTimeoutError),
        RetryConfig(max_attempts=3, base_delay=0.05, jitter=False)
    )
    async def _write(self, data: Dict[str, Any]) -> None:
        if self.redis is None:
            await self.start()
        await self.redis.set(self.key, json.dumps(data, sort_keys=True))


def build_policy_store(config, settings: Optional[MutableMapping[str, Any]] = None) -> PolicyStore:
    """Pick the policy store backend named by `config.policy_backend`."""
    backend = config.policy_backend.lower()
    if backend == "file":
        path = config.policy_file or os.path.join(os.getcwd(), "br_visibility_policy.json")
        return JsonFilePolicyStore(path)
    if backend == "redis":
        return RedisPolicyStore(config.redis_url, key=config.policy_key)
    return InMemoryPolicyStore(settings, key=config.policy_key)
