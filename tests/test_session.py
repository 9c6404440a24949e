from __future__ import annotations

import pytest

from core.exceptions import ResourceNotFoundError, ValidationError
from zones.cutting import EditorMode
from zones.repository import DistrictProjection
from zones.session import MapSession, SessionRegistry
from zone_fakes import FakeZoneWriter, make_segment, make_street


class FakeRepository:
    def __init__(self, streets, districts=()) -> None:
        self.streets = streets
        self.districts = list(districts)
        self.assign_segment_zone = FakeZoneWriter()
        self.assign_street_zone = FakeZoneWriter()
        self.loads = 0

    async def list_streets(self, search=None):
        self.loads += 1
        return list(self.streets)

    async def list_districts(self):
        return self.districts


def _streets():
    return [
        make_street(
            "s1",
            name="Rue de la Paix",
            segments=[
                make_segment("a", number_start=1, district_id="red"),
                make_segment("b", number_start=11, district_id="blue"),
            ],
        ),
        make_street(
            "s2",
            name="Avenue Victor Hugo",
            coordinates=[[44.01, 4.01], [44.02, 4.02]],
            segments=[make_segment("c", street_id="s2")],
        ),
    ]


async def _session() -> MapSession:
    repository = FakeRepository(
        _streets(),
        [
            DistrictProjection(id="red", name="Centre", color="#ff0000"),
            DistrictProjection(id="blue", name="Gare", color="#0000ff"),
        ],
    )
    session = MapSession(repository)
    await session.reload()
    return session


async def test_line_click_selects_segment_and_focuses_street() -> None:
    session = await _session()
    layer_id = next(
        line.layer_id for line in session.view.lines if line.street_id == "s1"
    )

    session.canvas.click_layer(layer_id, [44.0, 4.0])

    assert session.focused_street_id == "s1"
    assert session.selection("segments").selected == ["a"]
    assert len(session.view.layers_for("s1")) == 2


async def test_line_click_places_marker_while_cutting() -> None:
    session = await _session()
    session.start_cut("s1")
    layer_id = session.view.layers_for("s1")[0]

    session.canvas.click_layer(layer_id, [44.0004, 4.0004])

    assert list(session.cut_editor.markers.values()) == [[44.0004, 4.0004]]
    assert session.selection("segments").selected == []

    session.review_cuts()
    session.canvas.click_layer(layer_id, [44.0008, 4.0008])
    assert session.cut_editor.mode is EditorMode.REVIEWING
    assert len(session.cut_editor.markers) == 1
    assert session.selection("segments").selected == []


async def test_visible_ids_follow_focus_and_search() -> None:
    session = await _session()

    assert session.visible_ids("segments") == ["a", "b", "c"]
    session.focus_street("s2")
    assert session.visible_ids("segments") == ["c"]

    session.street_search = "victor"
    assert session.visible_ids("streets") == ["s2"]

    with pytest.raises(ResourceNotFoundError):
        session.focus_street("missing")
    with pytest.raises(ValidationError):
        session.selection("houses")


async def test_street_wide_segment_selection() -> None:
    session = await _session()

    session.select_street_segments("s1")
    assert session.selection("segments").selected == ["a", "b"]
    session.selection("segments").toggle("c", multi_key=True)
    session.deselect_street_segments("s1")
    assert session.selection("segments").selected == ["c"]


async def test_assign_streets_writes_street_zone_and_reloads() -> None:
    session = await _session()
    repository = session.repository
    controller = session.selection("streets")
    controller.select_all(["s1", "s2"])
    controller.choose_target("red")

    assert await session.assign("streets") == 2

    assert repository.assign_street_zone.applied == {"s1": "red", "s2": "red"}
    assert repository.assign_segment_zone.calls == []
    assert repository.loads == 2


async def test_reload_drops_vanished_selection() -> None:
    session = await _session()
    session.selection("segments").select_all(["a", "c"])
    session.focus_street("s2")
    session.repository.streets = session.repository.streets[:1]

    await session.reload()

    assert session.selection("segments").selected == ["a"]
    assert session.focused_street_id is None


async def test_registry_lifecycle() -> None:
    registry = SessionRegistry()
    session = await registry.create(FakeRepository(_streets()))

    assert registry.get(session.id) is session
    assert len(registry) == 1
    registry.close(session.id)
    with pytest.raises(ResourceNotFoundError):
        registry.get(session.id)


async def test_registry_close_all() -> None:
    registry = SessionRegistry()
    await registry.create(FakeRepository(_streets()))
    await registry.create(FakeRepository(_streets()))

    assert registry.close_all() == 2
    assert len(registry) == 0


async def test_toggle_rejects_ids_that_are_not_loaded() -> None:
    session = await _session()

    assert session.toggle("segments", "a") == ["a"]
    with pytest.raises(ResourceNotFoundError):
        session.toggle("segments", "nope")
    with pytest.raises(ResourceNotFoundError):
        session.toggle("streets", "a")
    assert session.selection("segments").selected == ["a"]
    assert session.selection("streets").selected == []
