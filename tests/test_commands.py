from builder_client.commands import (
    AddClip,
    AddCollection,
    AddFace,
    AddToCollection,
    Connect,
    DeleteClipById,
    Move,
    Play,
    RawCommand,
    Seek,
    UpdateClip,
    filter_help,
    find_help,
    format_number,
)


def test_format_number_drops_integral_fraction():
    assert format_number(2.0) == "2"
    assert format_number(2.5) == "2.5"
    assert format_number(3) == "3"


def test_call_form_commands():
    assert Connect("p0", "p1", "#ffffff", 2.0).to_wire() == "Connect(p0, p1, #ffffff, 2)"
    assert Move(3, 1.5, 0, -2).to_wire() == "Move(p3, 1.5, 0, -2)"
    assert AddFace([0, 1, 2]).to_wire() == "AddFace([p0, p1, p2], #888888)"
    assert Seek(2.5).to_wire() == "Seek(2.5)"
    assert DeleteClipById("abc").to_wire() == "DeleteClipById(abc)"


def test_bare_commands_have_no_parentheses():
    assert Play().to_wire() == "Play"


def test_collection_commands():
    assert AddCollection("fal").to_wire() == "AddCollection(fal, [])"
    assert AddToCollection("fal", [3, 4, 5]).to_wire() == "AddToCollection(fal, [p3, p4, p5])"


def test_update_clip_uses_two_decimals():
    assert UpdateClip("c1", "Lift", 1, 2.346).to_wire() == "UpdateClip(c1, Lift, 1.00, 2.35)"


def test_add_clip_quotes_optional_name():
    assert AddClip("p0", "Move", 0, 5, "y", 5).to_wire() == "AddClip(p0, Move, 0, 5, y, 5)"
    assert AddClip("p0", "Move", 0, 5, "y", 5, "Up").to_wire() == 'AddClip(p0, Move, 0, 5, y, 5, "Up")'


def test_raw_command_is_forwarded_verbatim():
    assert RawCommand("Frobnicate(1)").to_wire() == "Frobnicate(1)"


def test_help_examples_are_wire_text():
    assert find_help("addpoint").example == "AddPoint(0, 0, 0, #ffffff)"
    assert find_help("addface").example == "AddFace([p0, p1, p2], #888888)"
    assert find_help("addclip").example == 'AddClip(p0, Move, 0, 5, y, 5, "Name")'
    assert find_help("deleteclip").example == "DeleteClip(Move1)"
    assert find_help("seek").example == "Seek(2.5)"


def test_find_help_uses_registration_order():
    assert find_help("add").name == "addpoint"
    assert find_help("addc").name == "addcollection"
    assert find_help("zzz") is None


def test_filter_help_searches_syntax_and_description():
    names = [c.name for c in filter_help("GROUP")]
    assert "addcollection" in names
    assert "renamecollection" in names
    assert [c.name for c in filter_help("Seek(")] == ["seek"]
