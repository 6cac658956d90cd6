import json

from builder_client.preprocessor import LabelMode

WORLD = {
    "points": [
        {"id": 0, "x": 0, "y": 0, "z": 0, "color": "#ffffff"},
        {"id": 1, "x": 3, "y": 4, "z": 0, "color": "white"},
    ],
    "connections": [{"fromId": 0, "toId": 1, "color": "#ffffff", "thickness": 2}],
    "currentTime": 0,
    "isPlaying": False,
}


def load(session, payload=WORLD):
    assert session.handle_snapshot(json.dumps(payload))


def test_snapshot_feeds_catalog_and_bom(session):
    load(session)
    material = session.catalog.find_by_name("Material 1")
    assert (material.color, material.thickness) == ("#ffffff", 2)

    session.update_material(material.id, "price", "10")
    report = session.bom()
    assert report.rows[0].total_length == 5.0
    assert report.rows[0].cost == 50.0
    assert report.grand_total == 50.0


def test_typed_material_name_is_resolved_before_sending(session, sent):
    load(session)
    session.run_command('Connect(p0, p1, "material 1")')
    assert sent == ["Connect(p0, p1, #ffffff, 2)"]


def test_collection_range_dispatch(session, sent):
    session.run_command("AddToCollection(fal, [p3...p5])")
    assert sent == ["AddToCollection(fal, [p3, p4, p5])"]


def test_point_edits(session, sent):
    load(session)

    assert session.edit_point(1, "3", "4", "0") is None
    assert session.edit_point(1, "3", "abc", "0") is None
    assert session.edit_point(1, "nan", "4", "0") is None
    assert session.edit_point(42, "1", "1", "1") is None
    session.edit_point(1, "3", "4.5", "1")

    assert session.edit_point_color(1, "#FFFFFF") is None
    session.edit_point_color(1, "red")

    assert sent == ["Move(p1, 3, 4.5, 1)", "Color(p1, red)"]
    # direct manipulation never enters the command history
    assert len(session.dispatcher.history) == 0


def test_delete_point_asks_first(session, sent):
    session.answers["confirm"] = False
    assert session.delete_point(3) is False
    assert sent == []

    session.answers["confirm"] = True
    assert session.delete_point(3) is True
    assert sent == ["Delete(p3)"]
    assert session.answers["asked"] == ["Delete point p3?", "Delete point p3?"]


def test_confirm_override_replaces_session_prompt(session, sent):
    session.answers["confirm"] = False
    assert session.delete_point(4, confirm=lambda message: True) is True
    assert session.new_project(confirm=lambda message: True) is True
    assert sent == ["Delete(p4)", "Clear"]
    assert "asked" not in session.answers


def test_collection_panel_goes_through_history(session, sent):
    session.add_to_collection("fal", "p6..p3")
    session.add_to_collection("fal", "p9")
    assert session.add_to_collection("fal", "p1.p2") is None
    session.remove_from_collection("fal", 4)
    session.create_collection("wall")
    assert session.create_collection("  ") is None
    session.rename_collection("wall", "roof")
    assert session.rename_collection("roof", "roof") is None

    assert sent == [
        "AddToCollection(fal, [p3, p4, p5, p6])",
        "AddToCollection(fal, [p9])",
        "RemoveFromCollection(fal, [p4])",
        "AddCollection(wall, [])",
        "RenameCollection(wall, roof)",
    ]
    assert session.dispatcher.history.entries == tuple(sent)


def test_project_actions(session, sent):
    assert session.save() is None
    session.save_as("house", adopt=True)
    session.save()
    session.save_as("house-copy")
    assert session.project_name == "house"

    session.load_project("abc123", "barn")
    assert session.project_name == "barn"

    session.answers["confirm"] = False
    assert session.new_project() is False
    session.answers["confirm"] = True
    assert session.new_project() is True
    assert session.project_name is None

    assert sent == [
        "SaveProject(house)",
        "SaveProject(house)",
        "SaveProject(house-copy)",
        "LoadProject(abc123)",
        "Clear",
    ]
    assert session.answers["asked"][-1] == "Start new project? Unsaved changes will be lost."


def test_keyboard_shortcuts(session, sent):
    assert session.handle_key("z", ctrl=True) == "undo"
    assert session.handle_key("Y", ctrl=True) == "redo"
    assert session.handle_key("s", ctrl=True) == "save_as"
    session.project_name = "house"
    assert session.handle_key("s", ctrl=True) == "save"
    assert session.handle_key("space", input_focused=True) is None
    assert session.handle_key(" ") == "toggle_play"
    assert session.handle_key("q") is None

    assert sent == ["Undo", "Redo", "SaveProject(house)", "Play"]


def test_build_mode_through_session(session, sent):
    load(session)
    material = session.catalog.materials[0]
    assert session.select_build_material(material.id) is True

    session.click_point(0)
    session.handle_key("Escape")
    assert session.build_mode.pending_start_id is None
    session.click_point(1)
    session.click_point(0)

    assert sent == ["Connect(p1, p0, #ffffff, 2)"]


def test_duplicate_material_is_guarded(session):
    load(session)
    extra = session.add_material()
    session.update_material(extra.id, "thickness", "2")

    assert session.select_build_material(extra.id) is False
    assert not session.build_mode.is_armed


def test_labels_follow_label_mode(session):
    load(session)
    assert session.labels() == {0: "p0", 1: "p1"}
    session.run_command("showindexes(1)")
    assert session.labels()[1] == "p1 (3, 4, 0)"
    session.run_command("hideindexes")
    assert session.dispatcher.label_mode == LabelMode.HIDDEN
    assert session.labels() == {0: "", 1: ""}


def test_clip_edits_bypass_history(session, sent):
    load(session, {"clips": [{"id": "c1", "name": "Lift", "targetId": 0, "type": "Move", "startTime": 1, "endTime": 3}]})
    editor = session.timeline.rows()[0].editors[0]

    editor.begin_drag(0, 665)
    session.timeline.hub.pointer_move(10)
    session.timeline.hub.pointer_up(10)

    assert sent == ["UpdateClip(c1, Lift, 2.00, 4.00)"]
    assert len(session.dispatcher.history) == 0
