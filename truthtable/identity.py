"""
Identity resolution for TruthTable.

Maps a phone number, email address or user id onto exactly one row of the
users table, creating a minimal profile on first contact when allowed.

Phone numbers arrive in many formats ("+1 512...", "(512) 555-0100",
"5125550100"), so lookups try every common variant and new profiles are
stored in +1XXXXXXXXXX form. Resolving the same contact twice always
yields the same user id.
"""

import re
import logging
from typing import Any, Dict, List, Literal, Optional

import requests
from pydantic import BaseModel

from truthtable.config import USERS_TABLE
from truthtable.errors import IdentityLookupError, InputError
from truthtable.models import UserProfile, utc_now

logger = logging.getLogger(__name__)

IdentifierKind = Literal["email", "phone", "id"]

PHONE_MARKERS = ("+", "-", "(")


def classify_identifier(identifier: str) -> IdentifierKind:
    """
    Classify a free-form identifier.

    "@" means email; "+", "-" or "(" means phone; anything else is treated
    as an opaque user id.
    """
    if "@" in identifier:
        return "email"
    if any(marker in identifier for marker in PHONE_MARKERS):
        return "phone"
    return "id"


def _digits(phone: str) -> str:
    return re.sub(r"\D", "", phone)


def _ten_digits(phone: str) -> Optional[str]:
    digits = _digits(phone)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits if len(digits) == 10 else None


def normalize_phone(phone: str) -> str:
    """Return +1XXXXXXXXXX for US numbers, otherwise the stripped input."""
    ten = _ten_digits(phone)
    return f"+1{ten}" if ten else phone.strip()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def phone_variants(phone: str) -> List[str]:
    """
    Every stored format a phone number might have been saved in.

    Args:
        phone: Phone number as received

    Returns:
        Unique variants, the exact input first
    """
    variants = [phone.strip()]
    ten = _ten_digits(phone)
    if ten:
        variants.extend([
            f"+1{ten}",
            ten,
            f"1{ten}",
            f"({ten[:3]}) {ten[3:6]}-{ten[6:]}",
            f"{ten[:3]}-{ten[3:6]}-{ten[6:]}",
        ])
    else:
        digits = _digits(phone)
        if digits:
            variants.extend([f"+{digits}", digits])

    seen = set()
    unique = []
    for variant in variants:
        if variant and variant not in seen:
            seen.add(variant)
            unique.append(variant)
    return unique


class LookupResult(BaseModel):
    """A resolved user and how it was found."""

    user: UserProfile
    found_by: Literal["userId", "email", "phone", "created"]
    created: bool = False


class IdentityResolver:
    """Store-backed identity lookup over the users table."""

    def __init__(self, store):
        self.store = store

    def _find_by(self, column: str, value: str) -> Optional[Dict[str, Any]]:
        return self.store.select_one(USERS_TABLE, {column: value})

    def find(
        self,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[LookupResult]:
        """
        Look up an existing user without creating one.

        Identifiers are tried in order: user id, email, phone variants.
        """
        if user_id:
            row = self._find_by("id", user_id)
            if row:
                return LookupResult(user=UserProfile.from_row(row), found_by="userId")

        if email:
            for candidate in dict.fromkeys([email.strip(), normalize_email(email)]):
                row = self._find_by("customer_email", candidate)
                if row:
                    logger.info(f"Found user by email: {candidate}")
                    return LookupResult(user=UserProfile.from_row(row), found_by="email")

        if phone:
            for candidate in phone_variants(phone):
                row = self._find_by("customer_phone", candidate)
                if row:
                    logger.info(f"Found user by phone format: {candidate}")
                    return LookupResult(user=UserProfile.from_row(row), found_by="phone")

        return None

    def resolve(
        self,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
        create_if_missing: bool = False,
    ) -> Optional[LookupResult]:
        """
        Find a user, creating a minimal profile if permitted.

        Args:
            phone: Customer phone number
            email: Customer email
            user_id: Existing user id
            create_if_missing: Create a profile when no match is found

        Returns:
            LookupResult, or None when not found and creation is disabled

        Raises:
            InputError: If no identifier is given
            PersistenceError: If the store fails
        """
        if not phone and not email and not user_id:
            raise InputError("At least one identifier (phone, email, or userId) is required")

        result = self.find(phone=phone, email=email, user_id=user_id)
        if result or not create_if_missing:
            return result

        if not phone and not email:
            # A bare id that does not exist cannot seed a profile
            return None

        now = utc_now().isoformat()
        new_user = {
            "customer_email": normalize_email(email) if email else None,
            "customer_phone": normalize_phone(phone) if phone else None,
            "current_call_stage": 1,
            "status": "active",
            "created_at": now,
            "updated_at": now,
        }
        row = self.store.insert(USERS_TABLE, new_user)
        if not row.get("id"):
            # Some clients return no representation; read it back
            found = self.find(phone=phone, email=email)
            if found is None:
                raise IdentityLookupError("Created user could not be read back")
            return LookupResult(user=found.user, found_by="created", created=True)

        logger.info(f"Created new user: {row['id']}")
        return LookupResult(user=UserProfile.from_row(row), found_by="created", created=True)

    def resolve_identifier(
        self, identifier: str, create_if_missing: bool = False
    ) -> Optional[LookupResult]:
        """Classify a free-form identifier and resolve it."""
        kind = classify_identifier(identifier)
        if kind == "email":
            return self.resolve(email=identifier, create_if_missing=create_if_missing)
        if kind == "phone":
            return self.resolve(phone=identifier, create_if_missing=create_if_missing)
        return self.resolve(user_id=identifier, create_if_missing=create_if_missing)

    def lookup_user_id(self, identifier: str) -> str:
        """
        Resolve an identifier to a user id without creating anything.

        Raises:
            IdentityLookupError: If no user matches or the store fails
        """
        try:
            result = self.resolve_identifier(identifier, create_if_missing=False)
        except Exception as e:
            raise IdentityLookupError(f"User lookup failed for {identifier}: {e}") from e
        if result is None:
            raise IdentityLookupError(f"No user found for {identifier}")
        return result.user.id


class HTTPIdentityLookup:
    """Client for an external user-lookup service with the same contract."""

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup_user_id(self, identifier: str) -> str:
        """
        POST the identifier to the lookup service and return the user id.

        Raises:
            IdentityLookupError: On transport errors, non-2xx responses or
                a response without a user
        """
        kind = classify_identifier(identifier)
        body = {
            "phone": identifier if kind == "phone" else None,
            "email": identifier if kind == "email" else None,
            "userId": identifier if kind == "id" else None,
            "createIfMissing": False,
        }
        try:
            response = self.session.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise IdentityLookupError(f"User lookup request failed: {e}") from e

        if not isinstance(data, dict) or not data.get("success"):
            raise IdentityLookupError(f"User lookup returned no user for {identifier}")
        user = data.get("user")
        if not isinstance(user, dict) or not user.get("id"):
            raise IdentityLookupError(f"User lookup returned no user for {identifier}")

        return str(user["id"])
