from datetime import datetime, timezone

import pytest

from webfram.bind import BindModel, Field, XMLDecodeError, decode, encode, encode_many


class Item(BindModel):
    sku: str = Field(xml="sku,attr")
    qty: int = Field(xml="quantity")


class Order(BindModel):
    id: int = Field(xml="id,attr")
    customer: str
    paid: bool = False
    placed: datetime | None = None
    items: list[Item] = Field(default_factory=list, xml="item")
    notes: list[str] = Field(default_factory=list, xml="note")
    meta: dict[str, str] = Field(default_factory=dict)
    internal: str = Field("", xml="-")


def test_encode_places_attributes_and_repeats_arrays():
    order = Order(
        id=7,
        customer="Ada",
        paid=True,
        placed=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        items=[Item(sku="A1", qty=2), Item(sku="B2", qty=1)],
        notes=["fragile", "gift"],
        meta={"channel": "web"},
        internal="secret",
    )
    xml = encode(order)

    assert xml.startswith('<Order id="7">')
    assert "<customer>Ada</customer>" in xml
    assert "<paid>true</paid>" in xml
    assert "<placed>2024-01-15T10:30:00Z</placed>" in xml
    assert '<item sku="A1"><quantity>2</quantity></item>' in xml
    assert "<note>fragile</note><note>gift</note>" in xml
    assert '<meta><entry key="channel">web</entry></meta>' in xml
    assert "secret" not in xml


def test_encode_uses_custom_root_and_skips_none():
    xml = encode(Order(id=1, customer="B"), root="order")
    assert xml.startswith('<order id="1">')
    assert "<placed" not in xml


def test_decode_builds_a_validatable_dict():
    payload = b"""
        <Order id="9">
          <customer>Grace</customer>
          <paid>true</paid>
          <item sku="X"><quantity>3</quantity></item>
          <item sku="Y"><quantity>4</quantity></item>
          <note>one</note>
          <meta><entry key="k">v</entry></meta>
          <internal>ignored</internal>
          <unknown>ignored too</unknown>
        </Order>
    """
    data = decode(payload, Order)
    assert data == {
        "id": "9",
        "customer": "Grace",
        "paid": "true",
        "items": [{"sku": "X", "qty": "3"}, {"sku": "Y", "qty": "4"}],
        "notes": ["one"],
        "meta": {"k": "v"},
    }

    order = Order.model_validate(data)
    assert order.id == 9
    assert order.paid is True
    assert order.items[1] == Item(sku="Y", qty=4)


def test_encode_many_wraps_items():
    xml = encode_many([Item(sku="A", qty=1), Item(sku="B", qty=2)], "items")
    assert xml == (
        '<items><Item sku="A"><quantity>1</quantity></Item>'
        '<Item sku="B"><quantity>2</quantity></Item></items>'
    )


def test_malformed_xml_raises_decode_error():
    with pytest.raises(XMLDecodeError):
        decode(b"<Order><customer>oops</Order>", Order)
