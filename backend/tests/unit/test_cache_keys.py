"""
Unit Tests — cache key builders
════════════════════════════════
Pure functions, no Redis.

Coverage targets:
  ✅ Key layout for every namespace
  ✅ Params canonicalised regardless of insertion order
  ✅ Empty identifier / params add no segment
  ✅ Reserved characters in tenant / user ids rejected
  ✅ Invalidation patterns stay inside the tenant's namespace
"""

from __future__ import annotations

import base64

import pytest

from tenant_access.cache import keys
from tenant_access.cache.keys import TenantCacheKey
from tenant_access.cache.models import MultiTenantQuery
from tenant_access.core.errors import InvalidKeyComponentError, TenantValidationError


def _decode(segment: str) -> str:
    return base64.b64decode(segment).decode("utf-8")


@pytest.mark.unit
@pytest.mark.cache
class TestTenantKey:

    def test_resource_only(self):
        assert TenantCacheKey("t1", "contacts").render() == "tenant:t1:contacts"

    def test_identifier_segment(self):
        assert TenantCacheKey("t1", "contacts", "42").render() == "tenant:t1:contacts:42"

    def test_empty_identifier_and_params_add_nothing(self):
        key = TenantCacheKey("t1", "contacts", identifier="", params={})
        assert key.render() == "tenant:t1:contacts"

    def test_params_are_base64_of_sorted_pairs(self):
        key = TenantCacheKey("t1", "contacts", params={"page": 2, "sort": "name"})
        segment = key.render().split(":")[-1]
        assert _decode(segment) == "page=2&sort=name"

    def test_param_order_does_not_change_key(self):
        a = TenantCacheKey("t1", "tickets", "open", {"b": 2, "a": 1})
        b = TenantCacheKey("t1", "tickets", "open", {"a": 1, "b": 2})
        assert a.render() == b.render()

    def test_non_string_params_rendered_as_compact_json(self):
        key = TenantCacheKey("t1", "r", params={"active": True, "f": {"z": 1, "a": [1, 2]}})
        segment = key.render().split(":")[-1]
        assert _decode(segment) == 'active=true&f={"a":[1,2],"z":1}'

    def test_different_tenants_never_share_a_prefix(self):
        a = TenantCacheKey("acme", "contacts").render()
        b = TenantCacheKey("acme2", "contacts").render()
        assert not b.startswith(a + ":")
        assert a != b

    @pytest.mark.parametrize("bad", ["", "a:b", "a*", "a?", "a[1]", "a\\b"])
    def test_reserved_tenant_ids_rejected(self, bad):
        with pytest.raises(InvalidKeyComponentError):
            TenantCacheKey(bad, "contacts").render()

    def test_invalid_key_component_is_a_validation_error(self):
        with pytest.raises(TenantValidationError):
            keys.hierarchy_key("x:y")


@pytest.mark.unit
@pytest.mark.cache
class TestNamespacedKeys:

    def test_hierarchy_key(self):
        assert keys.hierarchy_key("t1") == "hierarchy:t1"

    def test_permissions_key(self):
        assert keys.permissions_key("u1", "t1") == "permissions:u1:t1"

    def test_permissions_key_validates_user(self):
        with pytest.raises(InvalidKeyComponentError):
            keys.permissions_key("u*", "t1")

    def test_query_key_is_canonical_json(self):
        q = MultiTenantQuery(tenant_id="t1", include_sub_tenants=True, page=3)
        key = keys.query_key(q)
        prefix, tenant, segment = key.split(":")
        assert (prefix, tenant) == ("query", "t1")
        assert _decode(segment) == (
            '{"include_sub_tenants":true,"max_depth":null,"page":3,'
            '"tenant_id":"t1","tenant_path":null}'
        )

    def test_query_key_differs_on_extra_fields(self):
        q1 = MultiTenantQuery(tenant_id="t1", page=1)
        q2 = MultiTenantQuery(tenant_id="t1", page=2)
        assert keys.query_key(q1) != keys.query_key(q2)


@pytest.mark.unit
@pytest.mark.cache
class TestPatterns:

    def test_whole_tenant_pattern(self):
        assert keys.tenant_patterns("t1") == ["tenant:t1:*"]

    def test_resource_pattern_covers_key_and_sub_keys(self):
        assert keys.tenant_patterns("t1", "users") == ["tenant:t1:users", "tenant:t1:users:*"]

    def test_resource_glob_characters_are_escaped(self):
        assert keys.tenant_patterns("t1", "r*") == ["tenant:t1:r\\*", "tenant:t1:r\\*:*"]

    def test_user_permissions_across_tenants(self):
        assert keys.permissions_patterns("u1") == ["permissions:u1:*"]

    def test_user_permissions_in_one_tenant(self):
        assert keys.permissions_patterns("u1", "t1") == ["permissions:u1:t1"]

    def test_offboarding_covers_every_namespace(self):
        assert keys.offboarding_patterns("t1") == [
            "tenant:t1:*",
            "hierarchy:t1",
            "permissions:*:t1",
            "query:t1:*",
        ]

    def test_patterns_reject_glob_tenant(self):
        with pytest.raises(InvalidKeyComponentError):
            keys.tenant_patterns("*")
