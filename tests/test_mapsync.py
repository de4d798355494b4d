from fakes import FakeMapSurface, make_item, square

from stacview.config import Settings
from stacview.mapsync import (
    ACTIVE_OUTLINE_STYLE,
    EXTENT_HOVER_STYLE,
    EXTENT_SELECTED_STYLE,
    EXTENT_STYLE,
    PREVIEW_STYLE,
    AoiOverlay,
    MapLayerSynchronizer,
    desired_overlays,
    item_bounds,
)
from stacview.models import DisplayMode, InteractionState, SearchFilter

TILES = "https://spectra.brin.go.id/tiles/scene"


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestDesiredOverlays:
    """Test the pure overlay computation"""

    def setup_method(self):
        """Set up test fixtures"""
        self.settings = make_settings()
        self.items = [make_item("a", tiles_href=TILES + "/a"), make_item("b"), make_item("no-geom", geometry=None)]

    def test_all_extents(self):
        """Test one outline per item with geometry"""
        overlays = desired_overlays(self.items, InteractionState(), self.settings)
        assert list(overlays) == ["extent:a", "extent:b"]
        assert all(spec.style == EXTENT_STYLE for spec in overlays.values())

    def test_extents_hidden(self):
        """Test no extents when the toggle is off or there are no items"""
        assert desired_overlays(self.items, InteractionState(show_all_extents=False), self.settings) == {}
        assert desired_overlays([], InteractionState(), self.settings) == {}

    def test_selected_style_wins_over_hover(self):
        """Test the selected extent keeps its style while hovered"""
        interaction = InteractionState(selected_item_id="b", hovered_item_id="b")
        overlays = desired_overlays(self.items, interaction, self.settings)
        assert overlays["extent:b"].style == EXTENT_SELECTED_STYLE
        assert "hover:b" not in overlays

    def test_hover_preview(self):
        """Test the hovered, unselected item gets an emphasized extent and a dashed preview"""
        overlays = desired_overlays(self.items, InteractionState(hovered_item_id="b"), self.settings)
        assert overlays["extent:b"].style == EXTENT_HOVER_STYLE
        assert overlays["hover:b"].style == PREVIEW_STYLE
        assert overlays["hover:b"].style.dash_array == "5, 5"

    def test_imagery_mode(self):
        """Test the selected item shows its tile layer"""
        overlays = desired_overlays(self.items, InteractionState(selected_item_id="a"), self.settings)
        tiles = overlays["active-tiles:a"].tile_layer
        assert tiles.url == TILES + "/a/{z}/{x}/{y}.png"
        assert (tiles.min_zoom, tiles.max_zoom) == (0, 18)
        assert tiles.opacity == 1.0
        assert "active-outline:a" not in overlays

    def test_imagery_with_outline(self):
        """Test the outline can accompany the imagery"""
        settings = make_settings(outline_with_imagery=True)
        overlays = desired_overlays(self.items, InteractionState(selected_item_id="a"), settings)
        assert "active-tiles:a" in overlays
        assert overlays["active-outline:a"].style == ACTIVE_OUTLINE_STYLE

    def test_extent_only_mode(self):
        """Test extent-only mode never adds a tile layer"""
        interaction = InteractionState(selected_item_id="a", display_mode=DisplayMode.EXTENT_ONLY)
        overlays = desired_overlays(self.items, interaction, self.settings)
        assert "active-outline:a" in overlays
        assert not any(key.startswith("active-tiles") for key in overlays)

    def test_imagery_without_tile_asset(self):
        """Test an item without tiles falls back to its outline"""
        overlays = desired_overlays(self.items, InteractionState(selected_item_id="b"), self.settings)
        assert "active-outline:b" in overlays
        assert "active-tiles:b" not in overlays

    def test_dangling_ids_ignored(self):
        """Test selection and hover ids missing from the results are treated as absent"""
        interaction = InteractionState(selected_item_id="gone", hovered_item_id="also-gone")
        overlays = desired_overlays(self.items, interaction, self.settings)
        assert list(overlays) == ["extent:a", "extent:b"]

    def test_item_without_geometry(self):
        """Test an item without geometry never gets an outline"""
        interaction = InteractionState(
            selected_item_id="no-geom", hovered_item_id="no-geom", display_mode=DisplayMode.EXTENT_ONLY
        )
        overlays = desired_overlays(self.items, interaction, self.settings)
        assert not any("no-geom" in key for key in overlays)


class TestSynchronizer:
    """Test reconciliation against the map surface"""

    def setup_method(self):
        """Set up test fixtures"""
        self.surface = FakeMapSurface()
        self.interaction = InteractionState()
        self.sync = MapLayerSynchronizer(self.surface, self.interaction, make_settings())
        self.items = [
            make_item("a", tiles_href=TILES + "/a", bbox=[110, -7, 111, -6]),
            make_item("b", tiles_href=TILES + "/b", geometry=square(120, 1, size=2)),
        ]

    def test_render_adds_extents(self):
        """Test initial render adds one outline per item"""
        self.sync.render(self.items)
        assert sorted(self.surface.keys()) == ["extent:a", "extent:b"]

    def test_repeated_render_is_stable(self):
        """Test re-rendering unchanged state touches nothing"""
        self.sync.render(self.items)
        calls = len(self.surface.calls)
        self.sync.render(self.items)
        self.sync.render()
        assert len(self.surface.calls) == calls

    def test_new_results_replace_old_overlays(self):
        """Test overlays of a previous result list do not accumulate"""
        self.sync.render(self.items)
        self.sync.render([make_item("c")])
        assert self.surface.keys() == ["extent:c"]

        # Removals happen before additions
        last = self.surface.calls[-3:]
        assert [op for op, _ in last] == ["remove", "remove", "add"]

    def test_select_a_then_b(self):
        """Test switching selection leaves exactly one active overlay"""
        self.sync.render(self.items)
        self.sync.handle_click("a")
        assert self.surface.find("active-tiles:a") is not None

        self.sync.handle_click("b")
        active = [key for key in self.surface.keys() if key.startswith("active")]
        assert active == ["active-tiles:b"]
        assert ("remove", "active-tiles:a") in self.surface.calls
        assert self.surface.calls.index(("remove", "active-tiles:a")) < self.surface.calls.index(
            ("add", "active-tiles:b")
        )

    def test_selection_restyles_in_place(self):
        """Test selecting restyles the extent instead of re-adding it"""
        self.sync.render(self.items)
        extent = self.surface.find("extent:a")
        self.sync.handle_click("a")
        assert self.surface.find("extent:a") is extent
        assert extent.style == EXTENT_SELECTED_STYLE

        self.sync.handle_click(None)
        assert extent.style == EXTENT_STYLE
        assert not any(key.startswith("active") for key in self.surface.keys())

    def test_hover_and_exit(self):
        """Test the hover preview comes and goes"""
        self.sync.render(self.items)
        self.sync.handle_hover("b")
        assert self.surface.find("hover:b") is not None
        assert self.surface.find("extent:b").style == EXTENT_HOVER_STYLE

        self.sync.handle_hover_exit("b")
        assert self.surface.find("hover:b") is None
        assert self.surface.find("extent:b").style == EXTENT_STYLE

    def test_selection_supersedes_hover(self):
        """Test selecting the hovered item removes its preview"""
        self.sync.render(self.items)
        self.sync.handle_hover("b")
        self.sync.handle_click("b")
        assert self.surface.find("hover:b") is None
        assert self.surface.find("extent:b").style == EXTENT_SELECTED_STYLE

    def test_display_mode_switch(self):
        """Test switching to extent-only swaps tiles for the outline"""
        self.sync.render(self.items)
        self.sync.handle_click("a")
        self.interaction.display_mode = DisplayMode.EXTENT_ONLY
        self.sync.render()
        assert self.surface.find("active-tiles:a") is None
        assert self.surface.find("active-outline:a") is not None

    def test_fit_to_bbox_then_geometry(self):
        """Test the view fits the item bbox, else its geometry bounds, once per selection"""
        self.sync.render(self.items)
        self.sync.handle_click("a")
        assert self.surface.fits == [(110.0, -7.0, 111.0, -6.0)]

        self.sync.handle_hover("b")
        assert len(self.surface.fits) == 1

        self.sync.handle_click("b")
        assert self.surface.fits[-1] == (120.0, 1.0, 122.0, 3.0)

    def test_no_bounds_leaves_view(self):
        """Test an item without bbox or geometry does not move the view"""
        self.sync.render([make_item("x", geometry=None)])
        self.sync.handle_click("x")
        assert self.surface.fits == []

    def test_clear(self):
        """Test clear removes every overlay"""
        self.sync.render(self.items)
        self.sync.handle_click("a")
        self.sync.clear()
        assert self.surface.layers == []
        assert not self.interaction.tile_load_pending

    def test_item_for_handle(self):
        """Test layer handles map back to item ids"""
        self.sync.render(self.items)
        assert self.sync.item_for_handle(self.surface.find("extent:b")) == "b"
        assert self.sync.item_for_handle(object()) is None


class TestTileLoading:
    """Test the tile loading signal"""

    def setup_method(self):
        """Set up test fixtures"""
        self.surface = FakeMapSurface()
        self.interaction = InteractionState()
        self.sync = MapLayerSynchronizer(self.surface, self.interaction, make_settings())
        self.items = [make_item("a", tiles_href=TILES + "/a"), make_item("b", tiles_href=TILES + "/b")]
        self.sync.render(self.items)
        self.sync.handle_click("a")
        self.layer = self.surface.find("active-tiles:a")

    def test_pending_after_add(self):
        """Test adding the tile layer asserts the flag"""
        assert self.interaction.tile_load_pending

    def test_cleared_when_tiles_settle(self):
        """Test the flag clears once issued tiles have loaded or errored"""
        for _ in range(3):
            self.sync.on_tile_loading(self.layer)
        self.sync.on_tile_loaded(self.layer)
        self.sync.on_tile_loaded(self.layer)
        assert self.interaction.tile_load_pending

        self.sync.on_tile_error(self.layer, "tile-3")
        assert not self.interaction.tile_load_pending
        assert self.surface.hidden_tiles == ["tile-3"]

    def test_cleared_on_layer_load(self):
        """Test the layer load event clears the flag"""
        self.sync.on_tile_loading(self.layer)
        self.sync.on_tile_layer_load(self.layer)
        assert not self.interaction.tile_load_pending

        # Panning issues new tiles
        self.sync.on_tile_loading(self.layer)
        assert self.interaction.tile_load_pending

    def test_cleared_on_deselect(self):
        """Test removing the active layer clears the flag"""
        self.sync.on_tile_loading(self.layer)
        self.sync.handle_click(None)
        assert not self.interaction.tile_load_pending

    def test_superseded_layer_ignored(self):
        """Test events from a replaced tile layer no longer count"""
        self.sync.handle_click("b")
        new_layer = self.surface.find("active-tiles:b")
        self.sync.on_tile_loading(new_layer)

        self.sync.on_tile_loaded(self.layer)
        self.sync.on_tile_layer_load(self.layer)
        self.sync.on_tile_error(self.layer, "old")
        assert self.interaction.tile_load_pending
        assert self.sync.tiles.settled == 0
        assert self.surface.hidden_tiles == []


class TestAoiOverlay:
    """Test the drawn area of interest"""

    def setup_method(self):
        """Set up test fixtures"""
        self.surface = FakeMapSurface()
        self.search_filter = SearchFilter()
        self.aoi = AoiOverlay(self.surface, self.search_filter)

    def test_created(self):
        """Test a drawn shape becomes the AOI, with its ring closed"""
        geometry = square(110, -7, closed=False)
        self.aoi.on_created({"type": "Feature", "geometry": geometry}, self.surface.draw(geometry))
        ring = self.search_filter.aoi["coordinates"][0]
        assert ring[0] == ring[-1]
        assert len(self.surface.edit_group) == 1

    def test_new_shape_retires_previous(self):
        """Test only one drawn shape exists at a time"""
        first = self.surface.draw(square(110, -7))
        self.aoi.on_created(square(110, -7), first)
        second = self.surface.draw(square(100, 0))
        self.aoi.on_created(square(100, 0), second)

        assert self.surface.layers == [second]
        assert self.surface.edit_group == [second]
        assert self.search_filter.aoi == square(100, 0)

    def test_edited(self):
        """Test editing updates the AOI"""
        handle = self.surface.draw(square(110, -7))
        self.aoi.on_created(square(110, -7), handle)
        self.aoi.on_edited(square(111, -7))
        assert self.search_filter.aoi == square(111, -7)

    def test_deleted(self):
        """Test deleting the shape clears the AOI"""
        handle = self.surface.draw(square(110, -7))
        self.aoi.on_created(square(110, -7), handle)
        self.surface.layers.remove(handle)
        self.aoi.on_deleted()
        assert self.search_filter.aoi is None
        assert self.surface.edit_group == []

    def test_invalid_shape(self):
        """Test an unusable shape leaves no AOI"""
        self.aoi.on_created({"type": "Circle", "coordinates": [0, 0]}, self.surface.draw(None))
        assert self.search_filter.aoi is None

    def test_clear(self):
        """Test clear removes the shape from the map"""
        self.aoi.on_created(square(110, -7), self.surface.draw(square(110, -7)))
        self.aoi.clear()
        assert self.surface.layers == []
        assert self.surface.edit_group == []
        assert self.search_filter.aoi is None


def test_item_bounds_prefers_bbox():
    item = make_item("a", bbox=[0, 0, 5, 5])
    assert item_bounds(item) == (0.0, 0.0, 5.0, 5.0)
    assert item_bounds(make_item("b", bbox=[1, 2, 3])) == (110.0, -7.0, 111.0, -6.0)
