import itertools

import pytest

from core.exceptions import PersistenceError, ResourceNotFoundError, ValidationError
from zones.cutting import CutEditor, EditorMode, build_pending_segments
from zones.rendering import FeatureCanvas
from zone_fakes import FakeSegmentWriter, make_street

LINE = [[0.0, 0.0], [0.0, 10.0]]


def _editor(coordinates=None):
    canvas = FeatureCanvas()
    editor = CutEditor(canvas)
    editor.enter(make_street(coordinates=LINE if coordinates is None else coordinates))
    return canvas, editor


async def test_single_cut_commits_two_segments() -> None:
    _, editor = _editor()
    editor.place_marker([0.0, 4.0])

    pending = editor.save()
    assert [(p.start, p.end) for p in pending] == [
        ([0.0, 0.0], [0.0, 4.0]),
        ([0.0, 4.0], [0.0, 10.0]),
    ]
    assert [p.label for p in pending] == ["Segment 1", "Segment 2"]

    writer = FakeSegmentWriter()
    created = await editor.commit(writer)

    assert created == ["new-1", "new-2"]
    assert writer.calls[0] == {
        "street_id": "s1",
        "label": "Segment 1",
        "side": "both",
        "building_type": "mixed",
        "geometry": {"type": "LineString", "coordinates": [[0.0, 0.0], [0.0, 4.0]]},
    }
    assert editor.mode is EditorMode.IDLE
    assert editor.street is None


@pytest.mark.parametrize(
    "clicks",
    list(itertools.permutations([[0.0, 7.0], [0.0, 2.0], [0.1, 5.0]])),
)
def test_cut_order_follows_the_street_not_the_clicks(clicks) -> None:
    _, editor = _editor()
    for coord in clicks:
        editor.place_marker(coord)

    pending = editor.save()

    assert len(pending) == 4
    assert [p.end for p in pending[:-1]] == [[0.0, 2.0], [0.1, 5.0], [0.0, 7.0]]
    assert pending[0].start == [0.0, 0.0]
    assert pending[-1].end == [0.0, 10.0]


def test_build_pending_segments_count() -> None:
    for count in range(5):
        cuts = [[0.0, float(i + 1)] for i in range(count)]
        assert len(build_pending_segments([0.0, 0.0], [0.0, 10.0], cuts)) == count + 1


def test_save_requires_a_marker() -> None:
    _, editor = _editor()
    with pytest.raises(ValidationError):
        editor.save()
    assert editor.mode is EditorMode.EDITING


def test_enter_requires_geometry() -> None:
    editor = CutEditor(FeatureCanvas())
    with pytest.raises(ValidationError):
        editor.enter(make_street(coordinates=[]))
    assert editor.mode is EditorMode.IDLE


def test_map_clicks_place_markers_only_while_editing() -> None:
    canvas, editor = _editor()
    canvas.click_map([0.0, 3.0])
    assert list(editor.markers.values()) == [[0.0, 3.0]]
    assert canvas.marker_ids == list(editor.markers)

    editor.save()
    canvas.click_map([0.0, 6.0])
    assert len(editor.markers) == 1
    assert editor.place_marker([0.0, 6.0]) is None


def test_markers_can_be_dragged_and_removed() -> None:
    canvas, editor = _editor()
    first = editor.place_marker([0.0, 3.0])
    second = editor.place_marker([0.0, 6.0])

    canvas.drag_marker(first, [0.0, 8.0])
    canvas.context_marker(second)

    assert editor.markers == {first: [0.0, 8.0]}
    assert canvas.marker_ids == [first]
    pending = editor.save()
    assert pending[0].end == [0.0, 8.0]


def test_reentering_discards_markers() -> None:
    canvas, editor = _editor()
    editor.place_marker([0.0, 3.0])
    editor.enter(make_street("s2", coordinates=LINE))

    assert editor.markers == {}
    assert canvas.marker_ids == []
    assert editor.street.id == "s2"


async def test_commit_requires_labels() -> None:
    _, editor = _editor()
    editor.place_marker([0.0, 5.0])
    editor.save()
    editor.rename(1, "   ")

    writer = FakeSegmentWriter()
    with pytest.raises(ValidationError):
        await editor.commit(writer)
    assert writer.calls == []
    assert editor.mode is EditorMode.REVIEWING

    with pytest.raises(ValidationError):
        editor.rename(5, "Nord")


async def test_commit_stops_at_failed_insert() -> None:
    _, editor = _editor()
    editor.place_marker([0.0, 3.0])
    editor.place_marker([0.0, 6.0])
    editor.save()

    writer = FakeSegmentWriter(fail_at=1)
    with pytest.raises(PersistenceError) as excinfo:
        await editor.commit(writer)

    assert len(writer.calls) == 2
    assert excinfo.value.details == {"created": ["new-1"], "failed_index": 1}
    assert editor.mode is EditorMode.REVIEWING


def test_back_to_editing_keeps_markers() -> None:
    canvas, editor = _editor()
    marker = editor.place_marker([0.0, 5.0])
    editor.save()
    editor.back_to_editing()

    assert editor.mode is EditorMode.EDITING
    assert editor.pending == []
    assert list(editor.markers) == [marker]
    canvas.click_map([0.0, 2.0])
    assert len(editor.markers) == 2


def test_cancel_removes_everything() -> None:
    canvas, editor = _editor()
    editor.place_marker([0.0, 5.0])
    editor.save()
    editor.cancel()

    assert editor.mode is EditorMode.IDLE
    assert editor.markers == {}
    assert editor.pending == []
    assert canvas.marker_ids == []
    canvas.click_map([0.0, 2.0])
    assert editor.markers == {}


def test_move_marker_updates_canvas_and_editor() -> None:
    canvas, editor = _editor()
    marker = editor.place_marker([0.0, 3.0])

    editor.move_marker(marker, [0.0, 9.0])

    assert editor.markers[marker] == [0.0, 9.0]
    assert canvas.marker_coord(marker) == [0.0, 9.0]
    with pytest.raises(ResourceNotFoundError):
        editor.move_marker("marker-404", [0.0, 1.0])


def test_markers_are_frozen_during_review() -> None:
    canvas, editor = _editor()
    marker = editor.place_marker([0.0, 4.0])
    pending = editor.save()

    with pytest.raises(ValidationError):
        canvas.drag_marker(marker, [0.0, 8.0])
    with pytest.raises(ValidationError):
        canvas.context_marker(marker)
    with pytest.raises(ValidationError):
        editor.move_marker(marker, [0.0, 8.0])

    assert editor.markers == {marker: [0.0, 4.0]}
    assert canvas.marker_coord(marker) == [0.0, 4.0]
    assert editor.pending == pending
    assert pending[0].end == [0.0, 4.0]
