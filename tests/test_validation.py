from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from webfram.bind import BindModel, Field, validate
from webfram.bind.fields import NIL_UUID, ZERO_TIME


def _pairs(errors):
    return [(e.field, e.error) for e in errors]


class Plain(BindModel):
    name: str = ""
    count: int = 0
    tags: list[str] = Field(default_factory=list)


class Inner(BindModel):
    name: str = Field(validate="required")


class Outer(BindModel):
    inner: Inner


def test_model_without_rules_never_fails():
    assert validate(Plain()) == []
    assert validate(Plain(name="", count=-3, tags=["", ""])) == []


@pytest.mark.parametrize("value,expected", [
    (9, [("n", "must be ≥ 10")]),
    (21, [("n", "must be ≤ 20")]),
    (10, []),
    (20, []),
])
def test_integer_bounds_are_inclusive(value, expected):
    class Ranged(BindModel):
        n: int = Field(validate="min=10,max=20")

    assert _pairs(validate(Ranged(n=value))) == expected


def test_float_bounds_format_like_printf():
    class Temperature(BindModel):
        celsius: float = Field(validate="min=-273.15")

    assert _pairs(validate(Temperature(celsius=-300))) == [("celsius", "must be ≥ -273.150000")]


def test_minlength_counts_characters():
    class Word(BindModel):
        text: str = Field(validate="minlength=3,maxlength=4")

    assert _pairs(validate(Word(text="ab"))) == [("text", "must have at least 3 characters")]
    assert validate(Word(text="abc")) == []
    assert validate(Word(text="äöü")) == []
    assert _pairs(validate(Word(text="abcde"))) == [("text", "must have at most 4 characters")]


def test_enum_lists_every_allowed_value():
    class Paint(BindModel):
        color: str = Field(validate="enum=red|green|blue")

    assert validate(Paint(color="red")) == []
    assert _pairs(validate(Paint(color="purple"))) == [("color", "must be one of: red, green, blue")]


def test_numeric_enum():
    class Dice(BindModel):
        face: int = Field(validate="enum=1|2|3|4|5|6")

    assert validate(Dice(face=6)) == []
    assert _pairs(validate(Dice(face=7))) == [("face", "must be one of: 1, 2, 3, 4, 5, 6")]


def test_pattern_is_searched():
    class Code(BindModel):
        digits: str = Field(validate="pattern=^[0-9]+$")
        loose: str = Field("x1y", validate="pattern=[0-9]")

    assert validate(Code(digits="123")) == []
    assert _pairs(validate(Code(digits="12a"))) == [("digits", "invalid format")]


def test_invalid_pattern_fails_the_field():
    class Broken(BindModel):
        value: str = Field(validate="pattern=[")

    assert _pairs(validate(Broken(value="anything"))) == [("value", "invalid format")]


@pytest.mark.parametrize("address,ok", [
    ("user@example.com", True),
    ("first.last+tag@sub.example.org", True),
    ("用户@例子.广告", True),
    ("bad", False),
    ("no-at.example.com", False),
    ("user@-example.com", False),
    ("user@exa_mple.com", False),
])
def test_email_format(address, ok):
    class Contact(BindModel):
        email: str = Field(validate="format=email")

    errors = validate(Contact(email=address))
    assert (errors == []) is ok
    if not ok:
        assert _pairs(errors) == [("email", "is not a valid email address")]


def test_multiple_of_float_uses_scaled_integers():
    class Money(BindModel):
        amount: float = Field(validate="multipleOf=0.25")

    assert validate(Money(amount=1.00)) == []
    assert validate(Money(amount=1.25)) == []
    assert _pairs(validate(Money(amount=1.10))) == [("amount", "must be a multiple of 0.250000")]


def test_multiple_of_integer():
    class Batch(BindModel):
        size: int = Field(validate="multipleOf=5")

    assert validate(Batch(size=15)) == []
    assert _pairs(validate(Batch(size=7))) == [("size", "must be a multiple of 5")]


def test_required_fails_exactly_on_zero_values():
    class Everything(BindModel):
        s: str = Field(validate="required")
        i: int = Field(validate="required")
        f: float = Field(validate="required")
        b: bool = Field(validate="required")
        items: list[int] = Field(validate="required")
        when: datetime = Field(validate="required")
        key: UUID = Field(validate="required")

    empty = Everything.model_validate({})
    assert [e.field for e in validate(empty)] == ["s", "i", "f", "b", "items", "when", "key"]
    assert {e.error for e in validate(empty)} == {"is required"}

    full = Everything(
        s="x", i=1, f=0.5, b=True, items=[0],
        when=datetime(2024, 1, 1, tzinfo=timezone.utc), key=uuid4(),
    )
    assert validate(full) == []


def test_zero_time_in_other_zone_is_not_zero():
    class Stamp(BindModel):
        at: datetime = Field(validate="required")

    assert _pairs(validate(Stamp(at=ZERO_TIME))) == [("at", "is required")]
    assert validate(Stamp(at=datetime(2000, 1, 1))) == []
    # Same instant as the zero time, but carrying a +01:00 offset
    shifted = datetime(1, 1, 1, 1, 0, tzinfo=timezone(timedelta(hours=1)))
    assert shifted == ZERO_TIME
    assert validate(Stamp(at=shifted)) == []


def test_custom_message_replaces_default():
    class Named(BindModel):
        name: str = Field(validate="required,minlength=3", errmsg="required=Name is required;minlength=Too short")

    assert _pairs(validate(Named())) == [("name", "Name is required"), ("name", "Too short")]


def test_nested_record_path():
    assert _pairs(validate(Outer.model_validate({}))) == [("inner.name", "is required")]
    assert validate(Outer(inner=Inner(name="ok"))) == []


def test_path_uses_wire_names():
    class Aliased(BindModel):
        inner: Inner = Field(alias="child")

    errors = validate(Aliased.model_validate({"child": {}}))
    assert _pairs(errors) == [("child.name", "is required")]


def test_required_record_checks_zero_value_then_recurses():
    class Holder(BindModel):
        inner: Inner = Field(validate="required")

    assert _pairs(validate(Holder.model_validate({}))) == [
        ("inner", "is required"),
        ("inner.name", "is required"),
    ]


def test_required_record_compares_against_kind_zeros_not_defaults():
    class Addr(BindModel):
        street: str = ""
        country: str = "US"

    class Holder(BindModel):
        addr: Addr = Field(validate="required")

    assert _pairs(validate(Holder(addr=Addr(street="", country="")))) == [("addr", "is required")]
    assert validate(Holder(addr=Addr())) == []
    assert validate(Holder(addr=Addr(street="Main St", country=""))) == []


def test_required_record_with_optional_member():
    class Contact(BindModel):
        phone: str | None = None

    class Holder(BindModel):
        contact: Contact = Field(validate="required")

    assert _pairs(validate(Holder(contact=Contact()))) == [("contact", "is required")]
    assert validate(Holder(contact=Contact(phone=""))) == []


def test_array_of_records_recurses_per_index():
    class Team(BindModel):
        members: list[Inner] = Field(validate="minItems=1")

    team = Team(members=[Inner(name="a"), Inner(name=""), Inner(name="c")])
    assert _pairs(validate(team)) == [("members[1].name", "is required")]
    assert _pairs(validate(Team(members=[]))) == [("members", "must have at least 1 items")]


def test_collection_rules():
    class Bag(BindModel):
        tags: list[str] = Field(validate="maxItems=2,uniqueItems")
        meta: dict[str, str] = Field(default_factory=dict, validate="minItems=1")

    bag = Bag(tags=["a", "a", "b"], meta={})
    assert _pairs(validate(bag)) == [
        ("tags", "must have at most 2 items"),
        ("tags", "must have unique items"),
        ("meta", "must have at least 1 entries"),
    ]


def test_unique_items_on_unhashable_elements():
    class Matrix(BindModel):
        rows: list[list[int]] = Field(validate="uniqueItems")

    assert validate(Matrix(rows=[[1], [2]])) == []
    assert _pairs(validate(Matrix(rows=[[1], [1]]))) == [("rows", "must have unique items")]


def test_element_rules_report_once_per_rule():
    class Words(BindModel):
        words: list[str] = Field(validate="minlength=2,enum=aa|bb|c")

    errors = validate(Words(words=["a", "bb", "c", "zz"]))
    assert _pairs(errors) == [
        ("words", "must have at least 2 characters"),
        ("words", "must be one of: aa, bb, c"),
    ]


def test_numeric_element_rules():
    class Scores(BindModel):
        values: list[int] = Field(validate="min=0,max=100")

    assert validate(Scores(values=[0, 50, 100])) == []
    assert _pairs(validate(Scores(values=[-1, 101]))) == [("values", "must be ≥ 0"), ("values", "must be ≤ 100")]


def test_special_arrays_reject_zero_elements():
    class Schedule(BindModel):
        times: list[datetime]
        ids: list[UUID]

    schedule = Schedule(times=[datetime(2024, 1, 1, tzinfo=timezone.utc), ZERO_TIME], ids=[NIL_UUID])
    assert _pairs(validate(schedule)) == [
        ("times", "empty items not allowed"),
        ("ids", "empty items not allowed"),
    ]


def test_empty_items_allowed_and_custom_message():
    class Relaxed(BindModel):
        times: list[datetime] = Field(validate="emptyItemsAllowed")
        ids: list[UUID] = Field(errmsg="emptyItemsAllowed (not set)=No blank IDs")

    relaxed = Relaxed(times=[ZERO_TIME], ids=[NIL_UUID])
    assert _pairs(validate(relaxed)) == [("ids", "No blank IDs")]


def test_optional_none_skips_everything_but_required():
    class Maybe(BindModel):
        nick: str | None = Field(None, validate="minlength=3")
        code: str | None = Field(None, validate="required")

    assert _pairs(validate(Maybe())) == [("code", "is required")]


def test_integer_comparisons_saturate_at_int64():
    class Big(BindModel):
        n: int = Field(validate="max=9223372036854775807")

    assert validate(Big.model_construct(n=2**70)) == []
