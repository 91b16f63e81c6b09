"""Tests for deterministic content hashing."""
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from models.component import Component
from models.version import VersionEntityType
from services.content_hash import (
    MISSING,
    canonical_serialize,
    compute_entity_hash,
    hash_content,
)


class TestCanonicalSerialize:
    """Tests for the canonical string form that hashes are computed over."""

    def test__canonical_serialize__sorts_dict_keys(self) -> None:
        """Key order does not affect the serialization."""
        assert canonical_serialize({"b": 1, "a": 2}) == canonical_serialize({"a": 2, "b": 1})
        assert canonical_serialize({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test__canonical_serialize__preserves_list_order(self) -> None:
        """Lists are ordered content."""
        assert canonical_serialize([1, 2]) != canonical_serialize([2, 1])

    def test__canonical_serialize__null_and_missing_are_distinct(self) -> None:
        """An explicit None and an absent value serialize differently."""
        assert canonical_serialize(None) == "null"
        assert canonical_serialize() == "undefined"
        assert canonical_serialize(MISSING) == "undefined"

    def test__canonical_serialize__bool_is_not_int(self) -> None:
        """True does not serialize like 1."""
        assert canonical_serialize(True) == "true"
        assert canonical_serialize(1) == "1"

    def test__canonical_serialize__nested_structures(self) -> None:
        """Nested dicts are sorted at every level."""
        value = {"z": [{"y": 1, "x": None}], "a": "text"}
        assert canonical_serialize(value) == '{"a":"text","z":[{"x":null,"y":1}]}'

    def test__canonical_serialize__special_scalars(self) -> None:
        """UUIDs, decimals, datetimes, and enums serialize as strings."""
        uuid = UUID("01234567-89ab-cdef-0123-456789abcdef")
        assert canonical_serialize(uuid) == '"01234567-89ab-cdef-0123-456789abcdef"'
        assert canonical_serialize(Decimal("1.50")) == '"1.50"'
        moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert canonical_serialize(moment) == '"2026-01-02T03:04:05+00:00"'
        assert canonical_serialize(VersionEntityType.COMPONENT) == '"component"'

    def test__canonical_serialize__unsupported_type_raises(self) -> None:
        """Values outside the JSON-like domain are rejected."""
        with pytest.raises(TypeError, match="Cannot hash value of type set"):
            canonical_serialize({1, 2})


class TestHashContent:
    """Tests for hash_content."""

    def test__hash_content__is_sha256_hex(self) -> None:
        """Hashes are 64 lowercase hex characters."""
        digest = hash_content({"a": 1})
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test__hash_content__semantically_equal_values_hash_equal(self) -> None:
        """Construction order does not change the hash."""
        first = {"layers": [{"id": "a", "classes": "p-4"}], "name": "Hero"}
        second = {"name": "Hero", "layers": [{"classes": "p-4", "id": "a"}]}
        assert hash_content(first) == hash_content(second)

    def test__hash_content__different_values_hash_differently(self) -> None:
        """Any content change changes the hash."""
        assert hash_content([{"id": "a"}]) != hash_content([{"id": "b"}])

    def test__hash_content__null_differs_from_missing(self) -> None:
        """Hashing None and hashing nothing differ."""
        assert hash_content(None) != hash_content()


class TestComputeEntityHash:
    """Tests for hashing model rows by their declared fields."""

    def test__compute_entity_hash__uses_only_hashed_fields(self) -> None:
        """Bookkeeping columns do not contribute to the hash."""
        first = Component(name="Card", layers=[{"id": "l1"}], is_published=False)
        second = Component(name="Card", layers=[{"id": "l1"}], is_published=True)
        second.content_hash = "something else"
        second.deleted_at = datetime.now(UTC)
        assert compute_entity_hash(first) == compute_entity_hash(second)

    def test__compute_entity_hash__matches_hash_of_field_values(self) -> None:
        """The entity hash is the hash of its hashed values dict."""
        row = Component(name="Card", layers=[])
        assert compute_entity_hash(row) == hash_content({"name": "Card", "layers": []})
