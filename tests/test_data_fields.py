import pytest

from certengine.app import get_field_registry
from certengine.errors import UnknownField
from certengine.shared.data_fields import (
    CATEGORIES,
    DEFAULT_DATA_FIELDS,
    DataField,
    DataFieldRegistry,
)


def test_default_registry_is_ordered_and_unique():
    registry = DataFieldRegistry(DEFAULT_DATA_FIELDS)

    keys = registry.keys()
    assert len(keys) == len(set(keys)) == len(registry)
    assert keys[0] == "participant_name"
    assert {field.category for field in registry} <= set(CATEGORIES)


def test_resolve_known_and_unknown_keys():
    registry = DataFieldRegistry(DEFAULT_DATA_FIELDS)

    field = registry.resolve("certificate_serial")
    assert field.category == "system"
    assert field.data_type == "number"
    with pytest.raises(UnknownField):
        registry.resolve("not_a_field")
    assert "event_title" in registry
    assert "nope" not in registry


def test_duplicate_keys_rejected():
    with pytest.raises(ValueError):
        DataFieldRegistry(
            [
                DataField("name", "Name", "participant", "text"),
                DataField("name", "Other", "participant", "text"),
            ]
        )


def test_unknown_category_rejected():
    with pytest.raises(ValueError):
        DataFieldRegistry([DataField("x", "X", "billing", "text")])


def test_to_dict_uses_wire_names():
    data = DEFAULT_DATA_FIELDS[1].to_dict()

    assert data["key"] == "participant_email"
    assert data["dataType"] == "email"
    assert data["example"] == "john@example.com"


def test_registry_loaded_once_per_app(app):
    registry = get_field_registry(app)

    assert registry is get_field_registry(app)
    assert len(registry) == len(DEFAULT_DATA_FIELDS)


def test_data_fields_route(client):
    resp = client.get("/certificates/data-fields")

    assert resp.status_code == 200
    fields = resp.get_json()["fields"]
    assert [field["key"] for field in fields] == [f.key for f in DEFAULT_DATA_FIELDS]
