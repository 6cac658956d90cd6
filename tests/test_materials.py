import math

import pytest

from builder_client.errors import DuplicateMaterialError
from builder_client.materials import BuildMode, MaterialCatalog, compute_bom
from builder_client.shared import normalize_color
from builder_client.world import Connection, Point


@pytest.fixture
def catalog():
    return MaterialCatalog()


def test_color_normalization_is_consistent():
    assert normalize_color("white") == normalize_color("#ffffff") == normalize_color("#FFFFFF") == "#ffffff"
    assert normalize_color("#FA0") == "#ffaa00"
    assert normalize_color("RebeccaPurple") == "#663399"
    assert normalize_color("") == "#ffffff"
    assert normalize_color("NotAColor") == "notacolor"


def test_sync_is_additive_and_auto_named(catalog):
    created = catalog.sync_from_connections(
        [
            Connection(0, 1, "#ffffff", 2.0),
            Connection(1, 2, "white", 2.0),
            Connection(1, 2, "red", 3.0),
        ]
    )
    assert [m.name for m in created] == ["Material 1", "Material 2"]
    assert [(m.color, m.thickness) for m in catalog.materials] == [("#ffffff", 2.0), ("red", 3.0)]

    # connections disappearing never removes materials
    assert catalog.sync_from_connections([]) == []
    assert len(catalog) == 2


def test_add_material_picks_free_thickness(catalog):
    catalog.sync_from_connections([Connection(0, 1, "white", 2), Connection(0, 1, "#fff", 3)])
    material = catalog.add_material()

    assert material.name == "Material 3"
    assert material.color == "#ffffff"
    assert material.thickness == 4
    assert not catalog.is_duplicate(material)


def test_duplicates_are_recomputed_after_edits(catalog):
    catalog.sync_from_connections([Connection(0, 1, "#ffffff", 2), Connection(0, 1, "#ff0000", 2)])
    first, second = catalog.materials
    assert not catalog.is_duplicate(first)

    catalog.update(second.id, "color", "White")
    assert catalog.is_duplicate(first)
    assert catalog.is_duplicate(second)

    catalog.update(second.id, "thickness", "5")
    assert not catalog.is_duplicate(first)
    assert not catalog.is_duplicate(second)


@pytest.mark.parametrize("value", ["abc", "nan", "0", "-1", None])
def test_invalid_thickness_keeps_prior_value(catalog, value):
    material = catalog.add_material()
    assert catalog.update(material.id, "thickness", value) is False
    assert material.thickness == 2


def test_invalid_price_becomes_zero(catalog):
    material = catalog.add_material()
    catalog.update(material.id, "price", "12.5")
    assert material.price == 12.5
    catalog.update(material.id, "price", "cheap")
    assert material.price == 0


def test_unknown_field_is_rejected(catalog):
    material = catalog.add_material()
    with pytest.raises(ValueError):
        catalog.update(material.id, "weight", 3)


def test_find_by_name_is_case_insensitive(catalog):
    material = catalog.add_material()
    assert catalog.find_by_name("MATERIAL 1") is material
    assert catalog.find_by_name("Material 9") is None


def test_bom_end_to_end(catalog):
    points = [Point(0, 0, 0, 0), Point(1, 3, 4, 0)]
    connections = [Connection(0, 1, "#ffffff", 2)]
    catalog.sync_from_connections(connections)
    material = catalog.find_by_name("Material 1")
    catalog.update(material.id, "price", 10)

    report = compute_bom(catalog, connections, points)

    assert len(report.rows) == 1
    assert report.rows[0].total_length == pytest.approx(5.0)
    assert report.rows[0].cost == pytest.approx(50)
    assert report.grand_total == pytest.approx(50)


def test_bom_matches_by_normalized_color_and_exact_thickness(catalog):
    points = [Point(0, 0, 0, 0), Point(1, 1, 0, 0), Point(2, 1, 1, 0)]
    connections = [
        Connection(0, 1, "white", 2),
        Connection(1, 2, "#FFF", 2),
        Connection(0, 2, "#ffffff", 2.5),
        Connection(0, 9, "#ffffff", 2),
    ]
    catalog.sync_from_connections(connections)

    report = compute_bom(catalog, connections, points)

    lengths = [row.total_length for row in report.rows]
    assert lengths == pytest.approx([2.0, math.sqrt(2)])


def test_grand_total_is_sum_of_rows_and_rows_are_independent(catalog):
    points = [Point(0, 0, 0, 0), Point(1, 2, 0, 0)]
    connections = [Connection(0, 1, "red", 1), Connection(0, 1, "blue", 1)]
    catalog.sync_from_connections(connections)
    red, blue = catalog.materials
    catalog.update(red.id, "price", 3)
    catalog.update(blue.id, "price", 4)

    before = compute_bom(catalog, connections, points)
    assert before.grand_total == pytest.approx(sum(r.cost for r in before.rows))

    catalog.update(blue.id, "price", 100)
    after = compute_bom(catalog, connections, points)
    assert after.rows[0].cost == before.rows[0].cost
    assert after.grand_total == pytest.approx(sum(r.cost for r in after.rows))


def test_build_mode_two_click_connect(catalog):
    material = catalog.add_material()
    build = BuildMode(catalog)

    assert build.click_point(0) is None
    assert build.toggle(material) is True

    assert build.click_point(0) is None
    assert build.pending_start_id == 0
    assert build.click_point(0) is None
    command = build.click_point(1)
    assert command.to_wire() == "Connect(p0, p1, #ffffff, 2)"
    assert build.pending_start_id is None
    assert build.is_armed
    assert build.active_material() is material


def test_build_mode_reselect_disarms_and_arming_resets_start(catalog):
    first = catalog.add_material()
    second = catalog.add_material()
    build = BuildMode(catalog)

    build.toggle(first)
    build.click_point(4)
    build.toggle(second)
    assert build.pending_start_id is None
    assert build.active_material() is second

    assert build.toggle(second) is False
    assert not build.is_armed


def test_duplicate_material_cannot_be_armed(catalog):
    first = catalog.add_material()
    second = catalog.add_material()
    catalog.update(second.id, "thickness", first.thickness)

    with pytest.raises(DuplicateMaterialError):
        BuildMode(catalog).toggle(second)
