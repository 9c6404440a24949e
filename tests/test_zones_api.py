from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.exceptions import PersistenceError
from db.models import District, Segment, Street
from zones.api import router as zones_router
from zones.session import session_registry


def _build_app() -> FastAPI:
    app = FastAPI()
    app.include_router(zones_router)
    return app


async def _seed() -> tuple[District, Street]:
    district = District(name="Centre", color="#ef4444")
    await district.insert()
    street = Street(
        name="Rue de la Paix",
        coordinates=[[0.0, 0.0], [0.0, 0.005], [0.0, 0.01]],
    )
    await street.insert()
    for start in (1, 11, 21):
        await Segment(street_id=street.id, number_start=start, number_end=start + 8).insert()
    return district, street


def _open_session(client: TestClient) -> dict:
    response = client.post("/api/zones/sessions")
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_open_session_renders_map(beanie_db) -> None:
    await _seed()

    with TestClient(_build_app()) as client:
        payload = _open_session(client)

        assert payload["zoom"] == 15
        assert payload["center"] == [44.8771, 4.8772]
        assert payload["features"]["type"] == "FeatureCollection"
        lines = [f for f in payload["features"]["features"] if f["properties"]["kind"] == "line"]
        assert len(lines) == 1
        assert lines[0]["properties"]["strategy"] == "whole-street"
        assert lines[0]["properties"]["color"] == "#94a3b8"
        assert payload["state"]["summary"] == {
            "streets": 1,
            "segments": 3,
            "assigned_segments": 0,
            "selected": 0,
        }
        assert payload["viewport"] is not None

        response = client.get(f"/api/zones/sessions/{payload['session_id']}/map")
        assert response.status_code == 200

        response = client.delete(f"/api/zones/sessions/{payload['session_id']}")
        assert response.status_code == 200
        response = client.get(f"/api/zones/sessions/{payload['session_id']}/map")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_select_and_assign_segments(beanie_db) -> None:
    district, street = await _seed()
    segments = await Segment.find(Segment.street_id == street.id).to_list()
    first, second = str(segments[0].id), str(segments[1].id)

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]
        base = f"/api/zones/sessions/{sid}/selection/segments"

        response = client.post(f"{base}/assign")
        assert response.status_code == 400

        client.post(f"{base}/toggle", json={"id": first})
        response = client.post(f"{base}/toggle", json={"id": second, "multi_key": True})
        assert response.json()["segments"]["selected"] == [first, second]

        response = client.put(f"{base}/target", json={"target": str(district.id)})
        assert response.json()["segments"]["target"] == str(district.id)

        response = client.post(f"{base}/assign")
        assert response.status_code == 200
        body = response.json()
        assert body["assigned"] == 2
        assert body["state"]["selection"]["segments"] == {"selected": [], "target": None}
        assert body["state"]["summary"]["assigned_segments"] == 2

        response = client.post(f"{base}/by-zone", json={"zone_id": None})
        assert response.json()["segments"]["selected"] == [str(segments[2].id)]

        map_payload = client.get(f"/api/zones/sessions/{sid}/map").json()
        strategies = {
            f["properties"]["strategy"]
            for f in map_payload["features"]["features"]
            if f["properties"]["kind"] == "line"
        }
        assert strategies == {"segment-divided"}

    assert (await Segment.get(segments[0].id)).district_id == district.id
    assert (await Segment.get(segments[2].id)).district_id is None


@pytest.mark.asyncio
async def test_assign_failure_reports_applied_items(beanie_db, monkeypatch) -> None:
    district, street = await _seed()
    segments = await Segment.find(Segment.street_id == street.id).to_list()
    ids = [str(segment.id) for segment in segments]

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]
        session = session_registry.get(sid)
        real_assign = session.repository.assign_segment_zone

        async def flaky_assign(segment_id, zone_id):
            if segment_id == ids[1]:
                msg = "write timed out"
                raise PersistenceError(msg)
            return await real_assign(segment_id, zone_id)

        monkeypatch.setattr(session.repository, "assign_segment_zone", flaky_assign)
        base = f"/api/zones/sessions/{sid}/selection/segments"
        client.post(f"{base}/all")
        client.put(f"{base}/target", json={"target": str(district.id)})

        response = client.post(f"{base}/assign")

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["applied"] == [ids[0]]
        assert detail["failed"] == ids[1]

    assert (await Segment.get(segments[0].id)).district_id == district.id
    assert (await Segment.get(segments[1].id)).district_id is None
    assert (await Segment.get(segments[2].id)).district_id is None


@pytest.mark.asyncio
async def test_clicking_a_line_selects_its_segment(beanie_db) -> None:
    _, street = await _seed()
    segments = await Segment.find(Segment.street_id == street.id).to_list()

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]
        base = f"/api/zones/sessions/{sid}"
        client.post(f"{base}/selection/segments/toggle", json={"id": str(segments[0].id)})

        features = client.get(f"{base}/map").json()["features"]["features"]
        target = next(
            f for f in features if f["properties"]["segment_id"] == str(segments[1].id)
        )
        response = client.post(
            f"{base}/map/layers/{target['properties']['layer_id']}/click",
            json={"coord": [0.0, 0.005], "multi_key": True},
        )

        assert response.status_code == 200
        state = response.json()["state"]
        assert state["focused_street_id"] == str(street.id)
        assert state["selection"]["segments"]["selected"] == [
            str(segments[0].id),
            str(segments[1].id),
        ]

        response = client.post(
            f"{base}/map/layers/line-0/click",
            json={"coord": [0.0, 0.0]},
        )
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_cut_flow_creates_segments(beanie_db) -> None:
    _, street = await _seed()

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]
        base = f"/api/zones/sessions/{sid}/cuts"

        response = client.post(f"{base}/review")
        assert response.status_code == 400

        assert client.post(base, json={"street_id": str(street.id)}).status_code == 200
        response = client.post(f"{base}/review")
        assert response.status_code == 400

        client.post(f"{base}/markers", json={"coord": [0.0, 0.006]})
        response = client.post(f"/api/zones/sessions/{sid}/map/click", json={"coord": [0.0, 0.003]})
        assert len(response.json()["state"]["cuts"]["markers"]) == 2

        response = client.post(f"{base}/review")
        assert response.status_code == 200
        pending = response.json()["pending"]
        assert [p["end"] for p in pending] == [[0.0, 0.003], [0.0, 0.006], [0.0, 0.01]]

        response = client.put(f"{base}/pending/0", json={"label": "Nord"})
        assert response.json()["pending"][0]["label"] == "Nord"

        response = client.post(f"{base}/commit")
        assert response.status_code == 200
        body = response.json()
        assert len(body["created"]) == 3
        assert body["state"]["cuts"]["mode"] == "idle"
        assert body["state"]["summary"]["segments"] == 6

    cut = await Segment.find_one(Segment.label == "Nord")
    assert cut.side == "both"
    assert cut.geometry["coordinates"] == [[0.0, 0.0], [0.0, 0.003]]


@pytest.mark.asyncio
async def test_street_maintenance_endpoints(beanie_db) -> None:
    district, street = await _seed()
    await Segment(street_id=street.id, number_start=31, number_end=40).insert()
    split_target = await Segment.find_one(Segment.number_start == 31)

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]

        response = client.get(f"/api/zones/streets/{street.id}")
        assert response.status_code == 200
        assert len(response.json()["segments"]) == 4

        response = client.get("/api/zones/districts")
        assert response.json()[0]["name"] == district.name

        response = client.post(f"/api/zones/sessions/{sid}/segments/{split_target.id}/split-sides")
        assert response.status_code == 200
        sides = [s["side"] for s in response.json()["segments"]]
        assert sides == ["even", "odd"]

        response = client.delete(f"/api/zones/sessions/{sid}/streets/{street.id}/segments")
        assert response.json()["deleted"] == 5

        response = client.get(f"/api/zones/sessions/{sid}/summary")
        assert response.json()["segments"] == 0

        response = client.get("/api/zones/streets/not-an-id")
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_selection_scope(beanie_db) -> None:
    await _seed()

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]
        response = client.delete(f"/api/zones/sessions/{sid}/selection/houses")
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_toggle_unknown_id_is_not_found(beanie_db) -> None:
    await _seed()

    with TestClient(_build_app()) as client:
        sid = _open_session(client)["session_id"]
        response = client.post(
            f"/api/zones/sessions/{sid}/selection/segments/toggle",
            json={"id": "507f1f77bcf86cd799439011"},
        )
        assert response.status_code == 404

        selection = client.get(f"/api/zones/sessions/{sid}/selection").json()
        assert selection["segments"]["selected"] == []
