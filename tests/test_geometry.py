from inspiration_cards.geometry import (
    CASCADE_STEP,
    PANEL_CHROME_HEIGHT,
    VIEWPORT_MARGIN,
    Geometry,
    GeometryResolver,
    Viewport,
    cascaded_geometry,
    centered_geometry,
    clamp_to_viewport,
    normalize_geometry,
)

VIEWPORT = Viewport(1920, 1080)


def test_normalize_rounds_and_enforces_minimums():
    assert normalize_geometry(Geometry(1.4, 2.6, 100, 10)) == Geometry(1, 3, 280, 40)
    assert normalize_geometry(Geometry(0, 0, 500.2, 300.7)) == Geometry(0, 0, 500, 301)


def test_clamp_keeps_panel_inside_viewport():
    clamped = clamp_to_viewport(Geometry(5000, -50, 300, 100), VIEWPORT)
    assert clamped.left == 1920 - 300 - VIEWPORT_MARGIN
    assert clamped.top == VIEWPORT_MARGIN


def test_clamp_bottom_edge_counts_panel_chrome():
    clamped = clamp_to_viewport(Geometry(100, 5000, 300, 100), VIEWPORT)
    assert clamped.top == 1080 - (100 + PANEL_CHROME_HEIGHT) - VIEWPORT_MARGIN


def test_clamp_on_tiny_viewport_pins_to_margin():
    clamped = clamp_to_viewport(Geometry(100, 100, 300, 100), Viewport(200, 100))
    assert (clamped.left, clamped.top) == (VIEWPORT_MARGIN, VIEWPORT_MARGIN)


def test_centered_geometry():
    g = centered_geometry(VIEWPORT)
    assert g.width == 280
    assert g.height == 220
    assert g.left == (1920 - 280) // 2
    assert g.top == (1080 - 220 - PANEL_CHROME_HEIGHT) // 2


def test_cascaded_geometry_offsets_by_index():
    first = cascaded_geometry(VIEWPORT, 0, anchor_left=1000, anchor_top=100)
    third = cascaded_geometry(VIEWPORT, 2, anchor_left=1000, anchor_top=100)
    assert first.left == third.left
    assert third.top - first.top == 2 * CASCADE_STEP


def test_resolver_prefers_remembered_then_persisted_then_default():
    resolver = GeometryResolver(VIEWPORT)
    persisted = Geometry(300, 300, 300, 100)

    resolver.remember("a", Geometry(500, 400, 320, 120))
    assert resolver.materialize("a", persisted) == Geometry(500, 400, 320, 120)

    # consumed on use
    assert resolver.lookup("a") is None
    assert resolver.materialize("a", persisted) == persisted

    default = resolver.materialize("b", None, index=1, anchor_left=1000, anchor_top=100)
    assert default == cascaded_geometry(VIEWPORT, 1, anchor_left=1000, anchor_top=100)


def test_resolver_forget_and_clear():
    resolver = GeometryResolver(VIEWPORT)
    resolver.remember("a", Geometry(1, 2, 300, 50))
    resolver.remember("b", Geometry(1, 2, 300, 50))
    resolver.forget("a")
    assert resolver.lookup("a") is None
    assert resolver.lookup("b") == Geometry(1, 2, 300, 50)
    resolver.clear()
    assert resolver.lookup("b") is None
