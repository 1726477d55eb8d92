from inspiration_cards.codec import Card
from inspiration_cards.store import CardStore, SortMode


def make_cards():
    return [
        Card(identity="a", body="Dragon in the tower", ctime=1, mtime=30),
        Card(identity="b", body="Quiet morning", tags_line="#dragon", ctime=2, mtime=10),
        Card(identity="c", body="Harbor", is_pinned=True, ctime=3, mtime=20),
        Card(identity="d", body="Floating idea", is_floating=True, ctime=4, mtime=40),
    ]


def test_load_get_and_contains():
    store = CardStore()
    store.load(make_cards())
    assert len(store) == 4
    assert "a" in store
    assert store.get("zzz") is None


def test_patch_replaces_card_object():
    store = CardStore()
    store.load(make_cards())
    before = store.get("a")

    after = store.patch("a", body="changed")

    assert after.body == "changed"
    assert before.body == "Dragon in the tower"
    assert store.get("a") is after
    assert store.patch("missing", body="x") is None


def test_remove_and_clear():
    store = CardStore()
    store.load(make_cards())
    assert store.remove("a").identity == "a"
    assert store.remove("a") is None
    store.clear()
    assert len(store) == 0


def test_snapshot_is_detached():
    store = CardStore()
    store.load(make_cards())
    snapshot = store.snapshot()
    store.remove("a")
    assert len(snapshot) == 4


def test_pinned_other_than():
    store = CardStore()
    store.load(make_cards())
    assert store.pinned_other_than("a").identity == "c"
    assert store.pinned_other_than("c") is None


def test_listed_and_floating_partition():
    store = CardStore()
    store.load(make_cards())
    assert [c.identity for c in store.listed()] == ["a", "b", "c"]
    assert [c.identity for c in store.floating()] == ["d"]


def test_search_matches_body_or_tags_case_insensitive():
    cards = make_cards()
    assert [c.identity for c in CardStore.search(cards, "DRAGON")] == ["a", "b"]
    assert [c.identity for c in CardStore.search(cards, "dragon tower")] == ["a"]
    assert CardStore.search(cards, "  ") == cards


def test_search_splits_on_ideographic_space():
    cards = make_cards()
    assert [c.identity for c in CardStore.search(cards, "dragon　tower")] == ["a"]


def test_sort_modes_keep_pinned_first():
    cards = make_cards()
    order = lambda mode: [c.identity for c in CardStore.sorted(cards, mode)]

    assert order(SortMode.CTIME_DESC) == ["c", "d", "b", "a"]
    assert order(SortMode.CTIME_ASC) == ["c", "a", "b", "d"]
    assert order(SortMode.MTIME_DESC) == ["c", "d", "a", "b"]
    assert order(SortMode.MTIME_ASC) == ["c", "b", "a", "d"]
