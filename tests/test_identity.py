"""
Tests for identity resolution.

Covers identifier classification, phone variant matching, idempotent
creation and the HTTP lookup client.
"""

import pytest
import requests

from conftest import InMemoryStore
from truthtable.errors import IdentityLookupError, InputError, PersistenceError
from truthtable.identity import (
    HTTPIdentityLookup,
    IdentityResolver,
    classify_identifier,
    normalize_phone,
    phone_variants,
)


class TestIdentifierHelpers:
    """Tests for the pure identifier helpers."""

    def test_classify_identifier(self):
        """Test that identifiers are classified by their markers."""
        assert classify_identifier("jane@acme.com") == "email"
        assert classify_identifier("+15125550100") == "phone"
        assert classify_identifier("(512) 555-0100") == "phone"
        assert classify_identifier("512-555-0100") == "phone"
        assert classify_identifier("8c1f6a4e") == "id"

    def test_normalize_phone(self):
        """Test that US numbers normalize to +1XXXXXXXXXX."""
        assert normalize_phone("(512) 555-0100") == "+15125550100"
        assert normalize_phone("1-512-555-0100") == "+15125550100"
        assert normalize_phone("5125550100") == "+15125550100"
        assert normalize_phone(" 12345 ") == "12345"

    def test_phone_variants(self):
        """Test that all common storage formats are generated, input first."""
        variants = phone_variants("+15125550100")
        assert variants[0] == "+15125550100"
        assert set(variants) == {
            "+15125550100",
            "5125550100",
            "15125550100",
            "(512) 555-0100",
            "512-555-0100",
        }


class TestIdentityResolver:
    """Tests for store-backed identity resolution."""

    def test_finds_user_stored_in_other_phone_format(self, store):
        """Test that a user saved as (xxx) xxx-xxxx is found from +1 form."""
        print("\n📞 Testing phone variant lookup...")
        store.tables["users"].append({"id": "u-1", "customer_phone": "(512) 555-0100"})

        result = IdentityResolver(store).resolve(phone="+15125550100")

        assert result.user.id == "u-1"
        assert result.found_by == "phone"
        assert result.created is False
        print("   ✅ Variant matched!")

    def test_lookup_order_prefers_user_id(self, store):
        """Test that user id wins over email and phone."""
        store.tables["users"].extend([
            {"id": "by-id"},
            {"id": "by-email", "customer_email": "jane@acme.com"},
        ])
        result = IdentityResolver(store).resolve(user_id="by-id", email="jane@acme.com")
        assert result.user.id == "by-id"
        assert result.found_by == "userId"

    def test_email_lookup_is_case_insensitive(self, store):
        """Test that mixed-case input matches a lower-case stored email."""
        store.tables["users"].append({"id": "u-2", "customer_email": "jane@acme.com"})
        result = IdentityResolver(store).resolve(email="Jane@Acme.com")
        assert result.user.id == "u-2"
        assert result.found_by == "email"

    def test_creation_is_idempotent(self, store):
        """Test that resolving the same unknown phone twice creates one user."""
        print("\n🆕 Testing idempotent creation...")
        resolver = IdentityResolver(store)

        first = resolver.resolve(phone="(512) 555-0100", create_if_missing=True)
        second = resolver.resolve(phone="+15125550100", create_if_missing=True)

        assert first.created is True
        assert first.found_by == "created"
        assert second.created is False
        assert first.user.id == second.user.id
        assert len(store.tables["users"]) == 1

        row = store.tables["users"][0]
        assert row["customer_phone"] == "+15125550100"
        assert row["current_call_stage"] == 1
        assert row["status"] == "active"
        print("   ✅ One user, one id!")

    def test_not_found_without_create(self, store):
        """Test that a miss returns None when creation is disabled."""
        assert IdentityResolver(store).resolve(email="nobody@example.com") is None
        assert store.tables["users"] == []

    def test_unknown_bare_id_is_not_created(self, store):
        """Test that a bare id cannot seed a new profile."""
        assert IdentityResolver(store).resolve(user_id="ghost", create_if_missing=True) is None

    def test_no_identifier_rejected(self, store):
        """Test that calling with no identifiers raises InputError."""
        with pytest.raises(InputError):
            IdentityResolver(store).resolve(create_if_missing=True)

    def test_store_failure_propagates(self):
        """Test that a failing users table surfaces as PersistenceError."""
        resolver = IdentityResolver(InMemoryStore(fail_tables={"users"}))
        with pytest.raises(PersistenceError):
            resolver.resolve(phone="+15125550100", create_if_missing=True)

    def test_lookup_user_id(self, store):
        """Test free-form identifier lookup and its failure mode."""
        store.tables["users"].append({"id": "user42", "customer_email": "sam@shop.io"})
        resolver = IdentityResolver(store)

        assert resolver.lookup_user_id("sam@shop.io") == "user42"
        assert resolver.lookup_user_id("user42") == "user42"
        with pytest.raises(IdentityLookupError):
            resolver.lookup_user_id("missing@shop.io")


class FakeResponse:
    def __init__(self, data=None, status=200, bad_json=False):
        self.data = data
        self.status = status
        self.bad_json = bad_json

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.bad_json:
            raise ValueError("not json")
        return self.data


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


class TestHTTPIdentityLookup:
    """Tests for the external lookup client."""

    def test_posts_classified_identifier(self):
        """Test that the identifier is sent under the right key."""
        session = FakeSession(FakeResponse({"success": True, "user": {"id": 42}}))
        lookup = HTTPIdentityLookup("https://lookup.example/api/user-lookup", session=session)

        assert lookup.lookup_user_id("(512) 555-0100") == "42"
        body = session.posts[0]["json"]
        assert body["phone"] == "(512) 555-0100"
        assert body["email"] is None
        assert body["createIfMissing"] is False

    @pytest.mark.parametrize("session", [
        FakeSession(error=requests.ConnectionError("refused")),
        FakeSession(FakeResponse(status=404)),
        FakeSession(FakeResponse(bad_json=True)),
        FakeSession(FakeResponse({"success": False})),
        FakeSession(FakeResponse(["unexpected"])),
    ])
    def test_failures_raise_lookup_error(self, session):
        """Test that every failure mode raises IdentityLookupError."""
        lookup = HTTPIdentityLookup("https://lookup.example", session=session)
        with pytest.raises(IdentityLookupError):
            lookup.lookup_user_id("jane@acme.com")
