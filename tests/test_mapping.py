"""Tests for attribute -> NormalizedIdentity mapping."""

from __future__ import annotations

import pytest

from saml_sso.saml.config import AttributeMapping
from saml_sso.services.mapping import first_value, map_attributes


class TestMapAttributes:
    def test_default_mapping(self) -> None:
        raw = {"nameID": "u1", "email": "a@x.com", "givenName": "Ada", "surname": "Lovelace"}

        identity = map_attributes(raw, AttributeMapping(email="email"))

        assert identity.id == "u1"
        assert identity.email == "a@x.com"
        assert identity.name == "Ada Lovelace"

    def test_email_defaults_to_name_id(self) -> None:
        identity = map_attributes({"nameID": "u1@x.com", "email": "other@x.com"})

        assert identity.id == "u1@x.com"
        assert identity.email == "u1@x.com"

    def test_custom_attribute_names(self) -> None:
        raw = {
            "nameID": "ignored",
            "uid": "42",
            "mail": "m@x.com",
            "fn": "Grace",
            "ln": "Hopper",
        }
        mapping = AttributeMapping(id="uid", email="mail", first_name="fn", last_name="ln")

        identity = map_attributes(raw, mapping)

        assert (identity.id, identity.email, identity.name) == ("42", "m@x.com", "Grace Hopper")

    def test_name_skips_missing_parts(self) -> None:
        identity = map_attributes({"nameID": "u1", "surname": "Lovelace"})

        assert identity.name == "Lovelace"

    def test_name_falls_back_to_display_name(self) -> None:
        identity = map_attributes({"nameID": "u1", "displayName": "Ada L."})

        assert identity.name == "Ada L."

    def test_name_empty_when_nothing_available(self) -> None:
        assert map_attributes({"nameID": "u1"}).name == ""

    def test_missing_attributes_are_none(self) -> None:
        identity = map_attributes({}, AttributeMapping(id="uid", email="mail"))

        assert identity.id is None
        assert identity.email is None

    def test_multi_valued_attributes_use_first_value(self) -> None:
        raw = {"nameID": "u1", "mail": ["", "first@x.com", "second@x.com"]}

        identity = map_attributes(raw, AttributeMapping(email="mail"))

        assert identity.email == "first@x.com"

    def test_extra_fields_copied_from_attributes(self) -> None:
        raw = {"nameID": "u1", "dept": "R&D", "groups": ["a", "b"]}
        mapping = AttributeMapping(
            extra_fields={"department": "dept", "groups": "groups", "missing": "nope"}
        )

        identity = map_attributes(raw, mapping)

        assert identity.extra_fields == {"department": "R&D", "groups": ["a", "b"], "missing": None}

    def test_core_keys_win_over_extra_fields_in_flat_view(self) -> None:
        raw = {"nameID": "u1", "other": "shadow"}
        identity = map_attributes(raw, AttributeMapping(extra_fields={"id": "other"}))

        flat = identity.as_dict()

        assert flat["id"] == "u1"

    def test_raw_attributes_preserved_and_read_only(self) -> None:
        raw = {"nameID": "u1", "custom": "value"}

        identity = map_attributes(raw)
        raw["custom"] = "mutated"

        assert identity.attributes["custom"] == "value"
        with pytest.raises(TypeError):
            identity.attributes["custom"] = "x"  # type: ignore[index]

    def test_mapping_is_deterministic(self) -> None:
        raw = {"nameID": "u1", "givenName": "Ada"}

        assert map_attributes(raw) == map_attributes(raw)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, None), ("", None), ("a", "a"), ([], None), (["", "b"], "b")],
)
def test_first_value(value, expected) -> None:
    assert first_value(value) == expected
