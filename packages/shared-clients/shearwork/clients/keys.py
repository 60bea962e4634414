"""Identity key normalization.

Identity keys are the comparable forms of the three signals an appointment
can carry: phone digits, lowercased email, and a lowercased "first last"
name. An appointment with no key at all cannot be attributed to anybody.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, NamedTuple

if TYPE_CHECKING:
    from shearwork.clients.models import ClientRecord, NormalizedAppointment

_NON_DIGITS = re.compile(r"\D")


def clean_string(value: Any) -> str | None:
    """Trim a string, mapping blank values to None.

    Examples:
        >>> clean_string("  Juan ")
        'Juan'
        >>> clean_string("   ") is None
        True
    """
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def clean_email(value: Any) -> str | None:
    """Lowercase and trim an email, mapping blank values to None."""
    cleaned = clean_string(value)
    return cleaned.lower() if cleaned else None


def phone_key(phone_normalized: str | None) -> str:
    """Return the digits of a normalized phone, or "" if absent.

    Examples:
        >>> phone_key("+1 (416) 555-1234")
        '14165551234'
    """
    if not isinstance(phone_normalized, str):
        return ""
    return _NON_DIGITS.sub("", phone_normalized)


def email_key(email: str | None) -> str:
    """Return the lowercased, trimmed email, or "" if absent."""
    return clean_email(email) or ""


def name_key(first_name: str | None, last_name: str | None) -> str:
    """Return the lowercased "first last" key, or "" if both parts are blank.

    Examples:
        >>> name_key("  Juan", "LOPEZ ")
        'juan lopez'
        >>> name_key(None, "  ")
        ''
    """
    first = clean_string(first_name) or ""
    last = clean_string(last_name) or ""
    return f"{first} {last}".strip().lower()


class IdentityKeys(NamedTuple):
    """The three identity keys of one appointment or client."""

    phone: str = ""
    email: str = ""
    name: str = ""

    @property
    def is_resolvable(self) -> bool:
        """Return True if at least one key is non-empty."""
        return bool(self.phone or self.email or self.name)


def keys_for_appointment(appt: NormalizedAppointment) -> IdentityKeys:
    """Compute identity keys from an appointment."""
    return IdentityKeys(
        phone=phone_key(appt.phone_normalized),
        email=email_key(appt.email),
        name=name_key(appt.first_name, appt.last_name),
    )


def keys_for_client(client: ClientRecord) -> IdentityKeys:
    """Compute identity keys from a persisted client."""
    return IdentityKeys(
        phone=phone_key(client.phone_normalized),
        email=email_key(client.email),
        name=name_key(client.first_name, client.last_name),
    )
