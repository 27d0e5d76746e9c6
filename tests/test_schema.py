from datetime import datetime
from uuid import UUID

import pytest

from webfram.bind import (
    BindModel,
    ComponentRegistry,
    Field,
    Reference,
    SchemaNode,
    build_components,
    generate_json_schema,
    generate_xml_schema,
    type_name,
)
from webfram.bind.schema import time_format


class Address(BindModel):
    """Postal address."""
    street: str = Field(validate="required,maxlength=80")
    zip: str = Field("", validate="pattern=^[0-9]{5}$", xml="zip,attr")


class Person(BindModel):
    name: str = Field(validate="required,minlength=2", description="Display name")
    age: int = Field(validate="min=0,max=150,multipleOf=1")
    score: float = Field(0.0, validate="multipleOf=0.5,enum=0.5|1.0")
    role: str = Field("user", validate="enum=admin|user")
    tags: list[str] = Field(default_factory=list, validate="maxItems=5,uniqueItems,minlength=1", xml="tag")
    meta: dict[str, int] = Field(default_factory=dict, validate="maxItems=3")
    home: Address
    work: Address | None = None
    born: datetime | None = Field(None, validate="format=%Y-%m-%d")
    ref: UUID | None = None
    hidden: str = Field("", xml="-")


class TreeNode(BindModel):
    label: str = Field(validate="required")
    children: list["TreeNode"] = Field(default_factory=list)


def _component(registry, model, xml=False):
    return registry.get(type_name(model) + (".XML" if xml else ""))


def test_same_nested_type_registers_once_and_is_referenced_twice():
    registry = ComponentRegistry()
    ref = generate_json_schema(Person, registry)

    assert isinstance(ref, Reference)
    assert ref.name == type_name(Person)
    assert sorted(registry.schemas) == sorted([type_name(Person), type_name(Address)])

    person = _component(registry, Person)
    home, work = person.properties["home"], person.properties["work"]
    assert isinstance(home, Reference) and isinstance(work, Reference)
    assert home.ref == work.ref == "#/components/schemas/" + type_name(Address)


def test_rules_become_constraints():
    registry = ComponentRegistry()
    generate_json_schema(Person, registry)
    props = _component(registry, Person).properties

    assert props["name"].min_length == 2
    assert props["name"].description == "Display name"
    assert (props["age"].type, props["age"].format) == ("integer", "int64")
    assert (props["age"].minimum, props["age"].maximum, props["age"].multiple_of) == (0, 150, 1)
    assert (props["score"].type, props["score"].format) == ("number", "double")
    assert props["score"].multiple_of == 0.5
    assert props["score"].enum == [0.5, 1.0]
    assert props["role"].enum == ["admin", "user"]
    assert props["tags"].type == "array"
    assert (props["tags"].max_items, props["tags"].unique_items) == (5, True)
    assert props["tags"].items.min_length == 1
    assert props["meta"].type == "object"
    assert props["meta"].max_properties == 3
    assert props["meta"].additional_properties.type == "integer"
    assert props["born"].format == "date"
    assert props["born"].nullable is True
    assert props["ref"].format == "uuid"
    assert _component(registry, Person).required == ["name"]

    address = _component(registry, Address)
    assert address.description == "Postal address."
    assert address.properties["zip"].pattern == "^[0-9]{5}$"
    assert address.properties["street"].max_length == 80


def test_self_reference_terminates():
    registry = ComponentRegistry()
    generate_json_schema(TreeNode, registry)

    node = _component(registry, TreeNode)
    assert len(registry) == 1
    assert node.properties["children"].items.ref == "#/components/schemas/" + type_name(TreeNode)


def test_openapi_output_is_plain_json():
    registry = ComponentRegistry()
    generate_json_schema(Person, registry)
    schemas = registry.to_openapi()["schemas"]

    person = schemas[type_name(Person)]
    assert person["type"] == "object"
    assert person["properties"]["home"] == {"$ref": "#/components/schemas/" + type_name(Address)}
    assert person["properties"]["age"]["minimum"] == 0
    assert person["properties"]["tags"]["maxItems"] == 5
    assert "nullable" not in person["properties"]["name"]
    assert list(schemas) == sorted(schemas)


def test_xml_dialect_uses_separate_components():
    registry = ComponentRegistry()
    generate_json_schema(Person, registry)
    ref = generate_xml_schema(Person, registry)

    assert ref.name == type_name(Person) + ".XML"
    xml_person = _component(registry, Person, xml=True)
    assert xml_person.xml.name == "Person"
    assert xml_person.xml.node_type == "element"
    assert "hidden" not in xml_person.properties
    assert xml_person.properties["tag"].items.xml.name == "tag"
    assert xml_person.properties["home"].ref.endswith(type_name(Address) + ".XML")
    assert xml_person.example.startswith("<Person")

    xml_address = _component(registry, Address, xml=True)
    assert xml_address.properties["zip"].xml.node_type == "attribute"
    assert xml_address.properties["street"].xml.node_type == "element"

    dumped = registry.to_openapi()["schemas"][type_name(Address) + ".XML"]
    assert dumped["properties"]["zip"]["xml"] == {"name": "zip", "nodeType": "attribute"}

    tags = registry.to_openapi()["schemas"][type_name(Person) + ".XML"]["properties"]["tag"]
    assert tags["xml"] == {"name": "tag", "nodeType": "element"}
    assert tags["items"]["xml"] == {"name": "tag", "nodeType": "element"}


def test_xml_top_level_list_is_wrapped():
    registry = ComponentRegistry()
    node = generate_xml_schema(list[Address], registry)

    assert isinstance(node, SchemaNode)
    assert node.type == "array"
    assert node.xml.name == "addresss"
    assert node.example.startswith("<addresss>")

    named = generate_xml_schema(list[Address], registry, root_name="addresses")
    assert named.xml.name == "addresses"


def test_frozen_registry_rejects_new_components():
    registry = ComponentRegistry()
    generate_json_schema(Address, registry)
    registry.freeze()

    assert registry.frozen
    assert generate_json_schema(Address, registry).name == type_name(Address)
    with pytest.raises(RuntimeError):
        generate_json_schema(Person, registry)


def test_build_components_covers_both_dialects_and_freezes():
    registry = build_components([Person])

    assert registry.frozen
    for model in (Person, Address):
        assert _component(registry, model) is not None
        assert _component(registry, model, xml=True) is not None


@pytest.mark.parametrize("layout,expected", [
    (None, "date-time"),
    ("%Y-%m-%d", "date"),
    ("%H:%M", "time"),
    ("%Y-%m-%dT%H:%M:%S", "date-time"),
])
def test_time_format(layout, expected):
    assert time_format(layout) == expected


def test_type_name_strips_locals():
    class Local(BindModel):
        x: int = 0

    assert type_name(Local) == "tests.test_schema.test_type_name_strips_locals.Local"
