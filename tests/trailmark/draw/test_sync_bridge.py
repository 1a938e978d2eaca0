"""Tests for SyncBridge — draw/edit/delete events, reconstruction, handle states."""

from __future__ import annotations

import gc

import pytest

from trailmark.draw import Circle, HandleState, Marker, Polygon, Polyline, Rectangle
from trailmark.errors import IdentityError, ValidationError
from trailmark.features import FeatureKind, LatLng


pytestmark = pytest.mark.unit


def _draw(bridge, layer, handle, kind=None):
    """Simulate the toolkit: auto-register, then fire draw-complete."""
    layer.auto_register(handle)
    return bridge.on_shape_created(handle, kind)


class TestShapeCreated:
    """Draw-complete -> store add + bound handle."""

    def test_creates_feature_with_defaults(self, bridge, store, layer):
        handle = Marker((47.0, 8.0))
        feature = _draw(bridge, layer, handle)

        assert store.get(feature.id) == feature
        assert feature.kind is FeatureKind.POINT
        assert feature.group_id == "default"
        assert feature.visible is True
        assert feature.name == ""
        assert feature.color == "#1d4ed8"

    def test_binds_handle(self, bridge, layer):
        handle = Polyline([(47.0, 8.0), (47.1, 8.1)])
        assert bridge.state_of(handle) is HandleState.DRAWING
        feature = _draw(bridge, layer, handle)
        assert bridge.state_of(handle) is HandleState.BOUND
        assert bridge.feature_id_for(handle) == feature.id
        assert bridge.handle_for(feature.id) is handle

    def test_removes_duplicate_registration(self, bridge, layer):
        handle = Polygon([(0, 0), (0, 1), (1, 1)])
        _draw(bridge, layer, handle)
        assert layer.count(handle) == 1

    def test_keeps_handle_color(self, bridge, layer):
        handle = Circle((47.0, 8.0), 150, {"color": "#ff0000"})
        feature = _draw(bridge, layer, handle)
        assert feature.color == "#ff0000"

    def test_handle_type_wins_over_reported_kind(self, bridge, layer):
        feature = _draw(bridge, layer, Rectangle((0, 0), (1, 1)), kind=FeatureKind.POLYGON)
        assert feature.kind is FeatureKind.RECTANGLE

    def test_invalid_shape_is_rejected(self, bridge, store, layer):
        handle = Polygon([(0, 0), (1, 1)])
        with pytest.raises(ValidationError):
            _draw(bridge, layer, handle)
        assert len(store) == 0
        assert handle not in layer
        assert bridge.state_of(handle) is HandleState.DRAWING

    def test_ids_are_distinct(self, bridge, layer):
        a = _draw(bridge, layer, Marker((1, 1)))
        b = _draw(bridge, layer, Marker((1, 1)))
        assert a.id != b.id

    def test_rebinding_a_handle_is_refused(self, bridge, layer):
        handle = Marker((1, 1))
        _draw(bridge, layer, handle)
        with pytest.raises(IdentityError):
            bridge._attach(handle, "feat_other")

    def test_repeated_create_event_leaves_store_unchanged(self, bridge, store, layer):
        handle = Marker((1, 1))
        feature = _draw(bridge, layer, handle)
        with pytest.raises(IdentityError):
            bridge.on_shape_created(handle)
        assert store.list() == [feature]
        assert bridge.feature_id_for(handle) == feature.id
        assert layer.count(handle) == 1


class TestShapesEdited:
    """Edit-commit -> geometry-only update."""

    def test_updates_geometry_only(self, bridge, store, layer):
        handle = Marker((47.0, 8.0))
        feature = _draw(bridge, layer, handle)
        store.update(feature.id, name="Summit", color="#00ff00")

        handle.set_latlng((47.5, 8.5))
        updated = bridge.on_shapes_edited([handle])

        assert len(updated) == 1
        stored = store.get(feature.id)
        assert stored.geometry.position == LatLng(47.5, 8.5)
        assert stored.name == "Summit"
        assert stored.color == "#00ff00"

    def test_circle_radius_edit(self, bridge, store, layer):
        handle = Circle((47.0, 8.0), 150)
        feature = _draw(bridge, layer, handle)
        handle.set_radius(300)
        bridge.on_shapes_edited([handle])
        assert store.get(feature.id).geometry.radius == 300

    def test_unknown_handle_is_ignored(self, bridge, store, layer, log_messages):
        known = _draw(bridge, layer, Marker((1, 1)))
        before = store.list()

        stranger = Marker((2, 2))
        layer.register_handle(stranger)
        assert bridge.on_shapes_edited([stranger]) == []

        assert store.list() == before
        assert store.get(known.id) == known
        assert any("Ignoring edit" in m for m in log_messages)

    def test_batch_continues_past_bad_handle(self, bridge, store, layer):
        good = Marker((1, 1))
        _draw(bridge, layer, good)
        good.set_latlng((3, 3))
        updated = bridge.on_shapes_edited([Marker((9, 9)), good])
        assert [f.geometry.position for f in updated] == [LatLng(3, 3)]

    def test_invalid_edit_is_dropped(self, bridge, store, layer):
        handle = Polyline([(0, 0), (1, 1)])
        feature = _draw(bridge, layer, handle)
        handle.set_latlngs([(0, 0)])
        assert bridge.on_shapes_edited([handle]) == []
        assert len(store.get(feature.id).geometry.positions) == 2

    def test_edit_after_feature_removed_elsewhere(self, bridge, store, layer):
        handle = Marker((1, 1))
        feature = _draw(bridge, layer, handle)
        store.remove(feature.id)
        assert bridge.on_shapes_edited([handle]) == []
        assert len(store) == 0


class TestShapesDeleted:
    """Delete -> store remove + detached handle."""

    def test_removes_feature(self, bridge, store, layer):
        handle = Marker((1, 1))
        feature = _draw(bridge, layer, handle)
        assert bridge.on_shapes_deleted([handle]) == [feature.id]
        assert feature.id not in store
        assert bridge.state_of(handle) is HandleState.DETACHED
        assert handle not in layer

    def test_unbound_delete_is_ignored(self, bridge, store, layer):
        _draw(bridge, layer, Marker((1, 1)))
        assert bridge.on_shapes_deleted([Marker((5, 5))]) == []
        assert len(store) == 1

    def test_deleted_id_is_not_reused(self, bridge, layer):
        handle = Marker((1, 1))
        old = _draw(bridge, layer, handle)
        bridge.on_shapes_deleted([handle])
        new = _draw(bridge, layer, Marker((1, 1)))
        assert new.id != old.id


class TestReconstruct:
    """Store -> fresh handles, without creation events."""

    def test_rebuilds_handles_from_store(self, bridge, store, layer):
        circle = _draw(bridge, layer, Circle((47.0, 8.0), 150))
        line = _draw(bridge, layer, Polyline([(0, 0), (1, 1)]))
        old_handles = layer.handles()

        count = bridge.reconstruct()

        assert count == 2
        assert len(store) == 2
        assert len(layer) == 2
        assert all(h not in layer for h in old_handles)
        rebuilt = bridge.handle_for(circle.id)
        assert isinstance(rebuilt, Circle)
        assert rebuilt.get_radius() == 150
        assert bridge.feature_id_for(bridge.handle_for(line.id)) == line.id

    def test_does_not_add_to_store(self, bridge, store, layer, monkeypatch):
        _draw(bridge, layer, Marker((1, 1)))

        def _fail(_):
            raise AssertionError("reconstruct must not add features")

        monkeypatch.setattr(store, "add", _fail)
        bridge.reconstruct()

    def test_hidden_features_are_not_rendered(self, bridge, store, layer):
        feature = _draw(bridge, layer, Marker((1, 1)))
        store.set_visible(feature.id, False)
        assert bridge.reconstruct() == 0
        assert len(layer) == 0

    def test_reconstructed_handles_are_editable(self, bridge, store, layer):
        feature = _draw(bridge, layer, Marker((1, 1)))
        bridge.reconstruct()
        handle = bridge.handle_for(feature.id)
        handle.set_latlng((2, 2))
        bridge.on_shapes_edited([handle])
        assert store.get(feature.id).geometry.position == LatLng(2, 2)


class TestStyleAndVisibility:
    """restyle and sync_visibility push store state to the toolkit."""

    def test_restyle(self, bridge, store, layer):
        handle = Marker((1, 1))
        feature = _draw(bridge, layer, handle)
        store.update(feature.id, color="#123456")
        assert bridge.restyle(feature.id) is True
        assert handle.options["color"] == "#123456"

    def test_restyle_unknown(self, bridge):
        assert bridge.restyle("nope") is False

    def test_sync_visibility_round_trip(self, bridge, store, layer):
        handle = Marker((1, 1))
        feature = _draw(bridge, layer, handle)

        store.set_visible(feature.id, False)
        bridge.sync_visibility()
        assert len(layer) == 0
        del handle
        gc.collect()

        store.set_visible(feature.id, True)
        bridge.sync_visibility()
        assert len(layer) == 1
        assert bridge.feature_id_for(layer.handles()[0]) == feature.id
