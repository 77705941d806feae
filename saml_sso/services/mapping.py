"""Identity mapping - raw assertion attributes to a NormalizedIdentity.

Pure functions only: the same attributes and mapping always produce the
same identity.  Attribute lookups that miss return None, never raise.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from saml_sso.saml.config import AttributeMapping

AttributeValue = str | list[str]

# Default attribute names used when the provider mapping leaves a field unset.
# The email default is the NameID: correct for emailAddress-format NameIDs,
# wrong for opaque ones (see Settings.saml_require_email_mapping).
DEFAULT_ID_ATTRIBUTE = "nameID"
DEFAULT_EMAIL_ATTRIBUTE = "nameID"
DEFAULT_FIRST_NAME_ATTRIBUTE = "givenName"
DEFAULT_LAST_NAME_ATTRIBUTE = "surname"
DISPLAY_NAME_ATTRIBUTE = "displayName"

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class NormalizedIdentity:
    """Identity derived from one SAML callback.  Never persisted as-is."""

    id: str | None
    email: str | None
    name: str
    attributes: Mapping[str, AttributeValue] = field(default_factory=lambda: _EMPTY)
    extra_fields: Mapping[str, AttributeValue | None] = field(default_factory=lambda: _EMPTY)

    def as_dict(self) -> dict[str, Any]:
        """Flat view: extra fields first, core keys win on collision."""
        return {
            **self.extra_fields,
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "attributes": dict(self.attributes),
        }


def first_value(value: AttributeValue | None) -> str | None:
    """Collapse a multi-valued attribute to its first non-empty value."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    for item in value:
        if item:
            return item
    return None


def map_attributes(
    raw_attributes: Mapping[str, AttributeValue],
    mapping: AttributeMapping | None = None,
) -> NormalizedIdentity:
    """Build a NormalizedIdentity from raw attributes and an optional mapping."""
    mapping = mapping or AttributeMapping()
    attributes: Mapping[str, AttributeValue] = MappingProxyType(dict(raw_attributes))

    name_parts = [
        first_value(attributes.get(mapping.first_name or DEFAULT_FIRST_NAME_ATTRIBUTE)),
        first_value(attributes.get(mapping.last_name or DEFAULT_LAST_NAME_ATTRIBUTE)),
    ]
    name = " ".join(part for part in name_parts if part)
    if not name:
        name = first_value(attributes.get(DISPLAY_NAME_ATTRIBUTE)) or ""

    extra_fields = {
        key: attributes.get(attribute_name)
        for key, attribute_name in (mapping.extra_fields or {}).items()
    }

    return NormalizedIdentity(
        id=first_value(attributes.get(mapping.id or DEFAULT_ID_ATTRIBUTE)),
        email=first_value(attributes.get(mapping.email or DEFAULT_EMAIL_ATTRIBUTE)),
        name=name,
        attributes=attributes,
        extra_fields=MappingProxyType(extra_fields),
    )
