from .policy_store import (
    InMemoryPolicyStore,
    JsonFilePolicyStore,
    PolicyStore,
    RedisPolicyStore,
    build_policy_store,
    merge_with_defaults,
    migrate_legacy_keys,
)

__all__ = [
    "InMemoryPolicyStore",
    "JsonFilePolicyStore",
    "PolicyStore",
    "RedisPolicyStore",
    "build_policy_store",
    "merge_with_defaults",
    "migrate_legacy_keys",
]
