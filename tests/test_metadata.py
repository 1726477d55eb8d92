import json

from inspiration_cards.codec import Card, parse
from inspiration_cards.geometry import Geometry
from inspiration_cards.metadata import (
    FIELD_ORDER,
    METADATA_WARNING,
    build_metadata,
    compose_card,
    serialize_metadata,
)


def test_minimal_record_has_warning_and_pin_flag():
    record = build_metadata({})
    assert record == {"warning": METADATA_WARNING, "ispinned": False}


def test_warning_is_always_rewritten():
    record = build_metadata({"warning": "edited by hand", "ispinned": True})
    assert record["warning"] == METADATA_WARNING
    assert record["ispinned"] is True


def test_non_boolean_pin_becomes_false():
    assert build_metadata({"ispinned": "yes"})["ispinned"] is False
    assert build_metadata({}, pinned=1)["ispinned"] is False


def test_invalid_values_are_omitted():
    record = build_metadata(
        {"color": "red", "tags": "   ", "images": "", "isfloating": "true"}
    )
    assert "color" not in record
    assert "tags" not in record
    assert "images" not in record
    assert "isfloating" not in record


def test_patches_override_current():
    current = {"color": "#000000", "tags": "#old", "images": "a.png"}
    record = build_metadata(current, color="#ffffff", tags="new, #more", images=[])
    assert record["color"] == "#FFFFFF"
    assert record["tags"] == "#new,#more"
    assert "images" not in record


def test_clearing_color_with_none():
    assert "color" not in build_metadata({"color": "#000000"}, color=None)


def test_floating_geometry_priority():
    persisted = {"isfloating": True, "floatx": 1, "floaty": 2, "floatw": 300, "floath": 50}

    record = build_metadata(persisted)
    assert (record["floatx"], record["floaty"]) == (1, 2)

    record = build_metadata(persisted, remembered=Geometry(10, 20, 400, 60))
    assert (record["floatx"], record["floatw"]) == (10, 400)

    record = build_metadata(
        persisted,
        geometry=Geometry(100, 200, 500, 70),
        remembered=Geometry(10, 20, 400, 60),
    )
    assert (record["floatx"], record["floaty"], record["floatw"], record["floath"]) == (
        100,
        200,
        500,
        70,
    )


def test_floating_without_any_geometry():
    record = build_metadata({}, floating=True)
    assert record["isfloating"] is True
    assert "floatx" not in record


def test_geometry_is_normalized():
    record = build_metadata({}, floating=True, geometry=Geometry(10.4, 20.6, 12, 3))
    assert (record["floatx"], record["floaty"], record["floatw"], record["floath"]) == (
        10,
        21,
        280,
        40,
    )


def test_not_floating_drops_geometry():
    persisted = {"isfloating": True, "floatx": 1, "floaty": 2, "floatw": 300, "floath": 50}
    record = build_metadata(persisted, floating=False)
    for key in ("isfloating", "floatx", "floaty", "floatw", "floath"):
        assert key not in record


def test_serialization_key_order():
    record = dict(
        reversed(
            list(
                build_metadata(
                    {},
                    pinned=True,
                    color="#123456",
                    tags="a",
                    images="x.png",
                    floating=True,
                    geometry=Geometry(1, 2, 300, 50),
                ).items()
            )
        )
    )
    text = serialize_metadata(record)
    assert list(json.loads(text)) == list(FIELD_ORDER)
    assert text.startswith('{\n  "warning": ')


def test_serialization_keeps_non_ascii():
    text = serialize_metadata({"warning": "x", "ispinned": False, "tags": "#灵感"})
    assert "#灵感" in text


def test_compose_card_keeps_frontmatter_and_body():
    card = parse("---\ntitle: x\n---\n\nhello")
    metadata_body, text = compose_card(card, color="#abcdef")

    assert text == "---\ntitle: x\n---\n\n<!---cw-data\n" + metadata_body + "\n--->\n\nhello"
    assert parse(text).color == "#ABCDEF"


def test_compose_card_body_override():
    _, text = compose_card(Card(body="old"), body="new")
    assert parse(text).body == "new"
