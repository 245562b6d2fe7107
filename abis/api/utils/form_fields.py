"""Alias lookup for the free-form request fields.

Clients send contact details under several names; each logical field has an
ordered tuple of accepted keys and the first non-empty value wins.
"""
from typing import Any, Iterable, Mapping, Optional


EMAIL_ALIASES = ('email', 'contactEmail', 'residentEmail')
PHONE_ALIASES = ('phone', 'contactPhone', 'mobile')
NAME_ALIASES = ('fullName', 'name')
APPOINTMENT_ALIASES = ('appointmentDatetime', 'appointment_datetime')
PURPOSE_ALIASES = ('purpose',)


def resolve_field(data: Optional[Mapping[str, Any]], aliases: Iterable[str]) -> Optional[Any]:
    """Return the first non-blank value among ``aliases`` in ``data``."""
    if not isinstance(data, Mapping):
        return None
    for key in aliases:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return None


def resolve_contact(data: Optional[Mapping[str, Any]]) -> dict:
    """Email and phone found in a form-field mapping (either may be None)."""
    return {
        'email': resolve_field(data, EMAIL_ALIASES),
        'phone': resolve_field(data, PHONE_ALIASES),
    }
