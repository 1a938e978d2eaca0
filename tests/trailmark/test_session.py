"""Tests for MapSession — end-to-end annotation workflows."""

from __future__ import annotations

import sys

import pytest
from loguru import logger

from trailmark import configure_logging
from trailmark.config import Settings
from trailmark.draw import Circle, Marker, Polyline
from trailmark.features import FeatureKind, LatLng
from trailmark.groups import DEFAULT_GROUP_ID, DeletePolicy
from trailmark.groups.view import feature_node_id, group_node_id
from trailmark.persistence import JsonFileKeyValueStore, MemoryKeyValueStore, dumps
from trailmark.session import MapSession


pytestmark = pytest.mark.unit


def _draw(session, layer, handle):
    layer.auto_register(handle)
    return session.shape_created(handle)


class TestSaveLoad:
    """Save -> reload round trips through the key-value store."""

    def test_circle_round_trip(self, session, layer, kv):
        feature = _draw(session, layer, Circle((47.0, 8.0), 150))
        assert session.save() is True
        assert kv.get("drawnFeatures") is not None

        session.reset()
        assert session.features() == []

        assert session.load() is True
        loaded = session.features()
        assert len(loaded) == 1
        assert loaded[0].id == feature.id
        assert loaded[0].kind is FeatureKind.CIRCLE
        assert loaded[0].geometry.center == pytest.approx(LatLng(47.0, 8.0))
        assert loaded[0].geometry.radius == pytest.approx(150)

    def test_load_rebuilds_handles(self, session, layer):
        _draw(session, layer, Marker((47.0, 8.0)))
        _draw(session, layer, Polyline([(47.0, 8.0), (47.1, 8.1)]))
        session.save()
        session.load()
        assert len(layer) == 2
        assert all(session.bridge.feature_id_for(h) for h in layer.handles())

    def test_save_notifies(self, session, notices):
        session.save()
        assert notices == ["Map saved!"]

    def test_missing_key_leaves_store_untouched(self, session, layer, notices):
        feature = _draw(session, layer, Marker((1.0, 2.0)))
        assert session.load() is False
        assert notices == ["No saved features found."]
        assert session.features() == [feature]

    def test_malformed_document_leaves_store_untouched(self, session, layer, kv, notices):
        feature = _draw(session, layer, Marker((1.0, 2.0)))
        kv.set("drawnFeatures", "{ definitely not json")
        assert session.load() is False
        assert len(notices) == 1
        assert session.features() == [feature]
        assert len(layer) == 1

    def test_strict_load_rejects_unknown_geometry(self, layer, notices):
        kv = MemoryKeyValueStore({
            "drawnFeatures": '{"type": "FeatureCollection", "features": ['
                             '{"type": "Feature", "geometry": {"type": "Blob", "coordinates": []},'
                             ' "properties": {}}]}',
        })
        config = Settings(storage_path="unused.json", strict_load=True)
        session = MapSession(storage=kv, toolkit=layer, config=config, notify=notices.append)
        assert session.load() is False
        assert notices

    def test_groups_survive_round_trip(self, session, layer):
        feature = _draw(session, layer, Marker((1.0, 2.0)))
        trails = session.create_group("Trails")
        session.move_feature(feature.id, trails.id)
        session.save()
        session.reset()
        session.load()
        assert session.store.get(feature.id).group_id == trails.id
        assert session.tree.get(trails.id).name == "Trails"

    def test_hidden_features_load_without_handles(self, session, layer, kv):
        feature = _draw(session, layer, Marker((1.0, 2.0)))
        session.update_feature(feature.id, visible=False)
        session.save()
        session.load()
        assert session.store.get(feature.id).visible is False
        assert len(layer) == 0

    def test_load_legacy(self, session, layer, kv):
        kv.set("mapData", '[{"id": "7", "type": "marker", "coordinates": {"lat": 1, "lng": 2},'
                          ' "layerGroup": "Huts", "name": "Hut"}]')
        assert session.load_legacy() is True
        (feature,) = session.features()
        assert feature.name == "Hut"
        assert session.tree.get(feature.group_id).name == "Huts"
        assert len(layer) == 1

    def test_load_legacy_missing(self, session, notices):
        assert session.load_legacy() is False
        assert notices == ["No legacy map data found."]

    def test_load_accepts_externally_written_document(self, session, kv):
        kv.set("drawnFeatures", dumps([], []))
        assert session.load() is True
        assert [g.id for g in session.groups()] == [DEFAULT_GROUP_ID]


class TestGroupWorkflow:
    """Tree-widget gestures routed through the session."""

    def test_drag_then_rename(self, session, layer):
        a = _draw(session, layer, Marker((1.0, 1.0)))
        b = _draw(session, layer, Marker((2.0, 2.0)))
        trails = session.create_group("Trails")

        assert session.drop(feature_node_id(a.id), group_node_id(trails.id)) is True
        assert session.rename_group(trails.id, "Paths") is not None

        moved = session.store.get(a.id)
        assert moved.group_id == trails.id
        assert session.tree.get(moved.group_id).name == "Paths"
        assert session.store.get(b.id).group_id == DEFAULT_GROUP_ID

    def test_bad_drop_notifies(self, session, layer, notices):
        a = _draw(session, layer, Marker((1.0, 1.0)))
        assert session.drop(feature_node_id(a.id), feature_node_id(a.id)) is False
        assert len(notices) == 1

    def test_duplicate_group_name_notifies(self, session, notices):
        session.create_group("Trails")
        assert session.create_group("Trails") is None
        assert len(notices) == 1

    def test_cascade_delete_keeps_features(self, session, layer):
        a = _draw(session, layer, Marker((1.0, 1.0)))
        trails = session.create_group("Trails")
        alpine = session.create_group("Alpine", trails.id)
        session.move_feature(a.id, alpine.id)

        removed = session.delete_group(trails.id, DeletePolicy.CASCADE)
        assert set(removed) == {trails.id, alpine.id}
        assert len(session.features()) == 1
        assert session.store.get(a.id).group_id == DEFAULT_GROUP_ID

    def test_reject_delete_of_nonempty_group(self, session, layer, notices):
        a = _draw(session, layer, Marker((1.0, 1.0)))
        trails = session.create_group("Trails")
        session.move_feature(a.id, trails.id)
        assert session.delete_group(trails.id, DeletePolicy.REJECT_IF_NONEMPTY) is None
        assert trails.id in session.tree
        assert len(notices) == 1

    def test_move_group_cycle_rejected(self, session, notices):
        trails = session.create_group("Trails")
        alpine = session.create_group("Alpine", trails.id)
        assert session.move_group(trails.id, alpine.id) is False
        assert session.tree.get(trails.id).parent_id is None

    def test_toggle_group_visibility_syncs_layer(self, session, layer):
        a = _draw(session, layer, Marker((1.0, 1.0)))
        _draw(session, layer, Marker((2.0, 2.0)))
        trails = session.create_group("Trails")
        session.move_feature(a.id, trails.id)

        assert session.toggle_group_visibility(trails.id) is False
        assert session.store.get(a.id).visible is False
        assert len(layer) == 1
        assert session.bridge.handle_for(a.id) is None

        assert session.toggle_group_visibility(trails.id) is True
        assert len(layer) == 2
        assert session.bridge.handle_for(a.id) is not None

    def test_tree_nodes(self, session, layer):
        a = _draw(session, layer, Marker((1.0, 1.0)))
        ids = [node.id for node in session.tree_nodes()]
        assert feature_node_id(a.id) in ids
        assert group_node_id(DEFAULT_GROUP_ID) in ids


class TestFeatureEdits:
    """Metadata edits from the detail panel."""

    def test_color_change_restyles_handle(self, session, layer):
        handle = Marker((1.0, 1.0))
        feature = _draw(session, layer, handle)
        session.update_feature(feature.id, color="#ff0000")
        assert session.store.get(feature.id).color == "#ff0000"
        assert handle.options["color"] == "#ff0000"

    def test_name_and_description(self, session, layer):
        feature = _draw(session, layer, Marker((1.0, 1.0)))
        updated = session.update_feature(feature.id, name="Hut", description="Open in summer")
        assert updated.name == "Hut"
        assert updated.description == "Open in summer"
        assert updated.geometry == feature.geometry

    def test_hide_and_show(self, session, layer):
        feature = _draw(session, layer, Marker((1.0, 1.0)))
        session.update_feature(feature.id, visible=False)
        assert len(layer) == 0
        session.update_feature(feature.id, visible=True)
        assert len(layer) == 1

    def test_group_change(self, session, layer):
        feature = _draw(session, layer, Marker((1.0, 1.0)))
        trails = session.create_group("Trails")
        assert session.update_feature(feature.id, group_id=trails.id).group_id == trails.id

    def test_geometry_is_not_editable(self, session, layer, notices):
        feature = _draw(session, layer, Marker((1.0, 1.0)))
        assert session.update_feature(feature.id, geometry=None) is None
        assert len(notices) == 1
        assert session.store.get(feature.id) == feature

    def test_unknown_feature_is_noop(self, session, notices):
        assert session.update_feature("feat_missing", name="x") is None
        assert notices == []

    def test_invalid_draw_notifies(self, session, layer, notices):
        assert _draw(session, layer, Polyline([(1.0, 1.0)])) is None
        assert session.features() == []
        assert len(notices) == 1

    def test_edit_and_delete_events(self, session, layer):
        handle = Marker((1.0, 1.0))
        feature = _draw(session, layer, handle)
        handle.set_latlng((3.0, 4.0))
        (edited,) = session.shapes_edited([handle])
        assert edited.geometry.position == LatLng(3.0, 4.0)
        assert session.shapes_deleted([handle]) == [feature.id]
        assert session.features() == []


class TestLifecycle:

    def test_reset_empties_everything(self, session, layer):
        _draw(session, layer, Marker((1.0, 1.0)))
        session.create_group("Trails")
        session.reset()
        assert session.features() == []
        assert [g.id for g in session.groups()] == [DEFAULT_GROUP_ID]
        assert len(layer) == 0

    def test_init_builds_fresh_components(self, session, layer):
        _draw(session, layer, Marker((1.0, 1.0)))
        old_store = session.store
        session.init()
        assert session.store is not old_store
        assert session.features() == []
        assert len(layer) == 0

    def test_default_group_uses_configured_name(self, kv, layer):
        config = Settings(storage_path="unused.json", default_group_name="Unsorted")
        session = MapSession(storage=kv, toolkit=layer, config=config)
        assert session.tree.default_group.name == "Unsorted"

    def test_configure_logging_sets_level(self, capsys):
        configure_logging("warning")
        try:
            logger.info("quiet")
            logger.warning("loud")
            err = capsys.readouterr().err
            assert "loud" in err
            assert "quiet" not in err
        finally:
            logger.remove()
            logger.add(sys.__stderr__, level="DEBUG")


class TestRobustness:
    """Commands stay atomic and the session stays usable after failures."""

    def test_repeated_create_event_adds_nothing(self, session, layer, notices):
        handle = Marker((1.0, 1.0))
        _draw(session, layer, handle)
        assert session.shape_created(handle) is None
        assert len(session.features()) == 1
        assert len(notices) == 1

    def test_reinit_clears_toolkit(self, session, layer):
        _draw(session, layer, Marker((1.0, 1.0)))
        session.init()
        assert session.features() == []
        assert len(layer) == 0

    def test_undecodable_store_file_is_ignored(self, tmp_path, layer, notices):
        path = tmp_path / "store.json"
        path.write_bytes(b'{"drawnFeatures": "\xff\xfe"}')
        config = Settings(storage_path=path)
        session = MapSession(storage=JsonFileKeyValueStore(path), toolkit=layer,
                             config=config, notify=notices.append)
        assert session.load() is False
        assert notices == ["No saved features found."]

    def test_failed_save_notifies(self, session, layer, notices):
        class BrokenStore:
            def get(self, key):
                return None

            def set(self, key, value):
                raise OSError("disk full")

        session.storage = BrokenStore()
        _draw(session, layer, Marker((1.0, 1.0)))
        assert session.save() is False
        assert notices == ["Could not save map: disk full"]
        assert len(session.features()) == 1
