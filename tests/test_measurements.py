"""
Tests for measurement creation against calibrated maps, the calibration
version guard, and measurement listing/totals.
"""

import pytest

from takeoff import measurement_service, models
from takeoff.errors import ConflictError

from conftest import upload

SQUARE = [{"x": 0, "y": 0}, {"x": 100, "y": 0}, {"x": 100, "y": 100}, {"x": 0, "y": 100}]
RIGHT_ANGLE = [{"x": 100, "y": 0}, {"x": 0, "y": 0}, {"x": 0, "y": 100}]


def _measure(client, headers, map_id, **body):
    return client.post(f"/api/maps/{map_id}/measurements", json=body, headers=headers)


# --- Create ---


def test_create_distance(client, auth_headers, calibrated_map):
    response = _measure(
        client, auth_headers, calibrated_map["id"],
        type="distance", name="North wall",
        points=[{"x": 0, "y": 0}, {"x": 100, "y": 0}],
    )
    assert response.status_code == 201
    data = response.json()
    assert data["value"] == pytest.approx(5.0)
    assert data["unit"] == "m"
    assert data["displayValue"] == "5.00 m"
    assert data["calibrationVersionAtCreation"] == 1
    assert data["projectId"] == calibrated_map["projectId"]
    assert data["color"] == "#FF5722"
    assert data["name"] == "North wall"


def test_create_area_in_square_feet(client, auth_headers, calibrated_map):
    response = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE, unit="sqft")
    assert response.status_code == 201
    data = response.json()
    assert data["value"] == pytest.approx(25.0)  # canonical m²
    assert data["unit"] == "sqft"
    assert data["displayValue"] == "269.10 ft²"


def test_create_volume_stores_height(client, auth_headers, calibrated_map):
    response = _measure(
        client, auth_headers, calibrated_map["id"],
        type="volume", points=SQUARE, height=0.128, name="Slab pour",
    )
    assert response.status_code == 201
    data = response.json()
    assert data["value"] == pytest.approx(3.2)
    assert data["displayValue"] == "3.20 m³"
    assert data["height"] == pytest.approx(0.128)


def test_height_ignored_for_non_volume(client, auth_headers, calibrated_map):
    response = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE, height=3)
    assert response.json()["height"] is None


def test_create_with_matching_version(client, auth_headers, calibrated_map):
    response = _measure(
        client, auth_headers, calibrated_map["id"],
        type="perimeter", points=SQUARE, calibrationVersionAtCreation=1,
    )
    assert response.status_code == 201
    assert response.json()["value"] == pytest.approx(20.0)


def test_points_keep_z_but_only_xyz(client, auth_headers, calibrated_map):
    points = [dict(p, z=2.5) for p in SQUARE]
    response = _measure(client, auth_headers, calibrated_map["id"], type="area", points=points)
    assert response.json()["points"][0] == {"x": 0, "y": 0, "z": 2.5}


def test_default_name_from_type(client, auth_headers, calibrated_map):
    response = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE)
    assert response.json()["name"] == "area measurement"


# --- Rejections ---


@pytest.mark.parametrize("body", [
    {"type": "distance", "points": [{"x": 0, "y": 0}]},
    {"type": "area", "points": [{"x": 0, "y": 0}, {"x": 1, "y": 1}]},
    {"type": "distance", "points": [{"x": 5, "y": 5}, {"x": 5, "y": 5}]},
    {"type": "angle", "points": SQUARE},
    {"type": "volume", "points": SQUARE},
    {"type": "volume", "points": SQUARE, "height": -2},
    {"type": "area", "points": SQUARE, "unit": "ft"},
    {"type": "hexagon", "points": SQUARE},
    {"type": "distance", "points": [{"x": "left", "y": 0}, {"x": 1, "y": 0}]},
])
def test_invalid_geometry_is_400(client, auth_headers, calibrated_map, body):
    response = _measure(client, auth_headers, calibrated_map["id"], **body)
    assert response.status_code == 400
    assert client.get(f"/api/maps/{calibrated_map['id']}/measurements").json() == []


def test_overflowing_area_is_400_and_nothing_saved(client, auth_headers, calibrated_map):
    huge = [{"x": 0, "y": 0}, {"x": 1e200, "y": 0}, {"x": 0, "y": 1e200}]
    response = _measure(client, auth_headers, calibrated_map["id"], type="area", points=huge)
    assert response.status_code == 400
    assert "too large" in response.json()["detail"]

    assert client.get(f"/api/maps/{calibrated_map['id']}/measurements").json() == []
    assert client.get(f"/api/maps/{calibrated_map['id']}").status_code == 200


def test_uncalibrated_map_is_400(client, auth_headers, ready_map):
    response = _measure(client, auth_headers, ready_map["id"], type="distance", points=SQUARE[:2])
    assert response.status_code == 400
    assert "calibrated" in response.json()["detail"]


def test_angle_allowed_on_uncalibrated_map(client, auth_headers, ready_map):
    response = _measure(client, auth_headers, ready_map["id"], type="angle", points=RIGHT_ANGLE)
    assert response.status_code == 201
    assert response.json()["displayValue"] == "90.00°"
    assert response.json()["calibrationVersionAtCreation"] == 0


def test_map_not_ready_is_409(client, auth_headers, calibrated_map, db):
    db_map = db.query(models.Map).filter(models.Map.id == calibrated_map["id"]).first()
    db_map.status = models.MapStatus.ERROR
    db.commit()

    response = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE)
    assert response.status_code == 409
    assert response.json()["status"] == "error"


def test_stale_calibration_version_is_409(client, auth_headers, calibrated_map):
    # Recalibrate: version 1 → 2
    client.patch(
        f"/api/maps/{calibrated_map['id']}/calibrate",
        json={"pixelDistance": 50, "realDistance": 5, "unit": "m"},
        headers=auth_headers,
    )
    response = _measure(
        client, auth_headers, calibrated_map["id"],
        type="area", points=SQUARE, calibrationVersionAtCreation=1,
    )
    assert response.status_code == 409
    assert response.json()["current_version"] == 2
    assert response.json()["provided_version"] == 1
    assert client.get(f"/api/maps/{calibrated_map['id']}/measurements").json() == []


def test_unknown_map_is_404(client, auth_headers):
    response = _measure(client, auth_headers, 9999, type="area", points=SQUARE)
    assert response.status_code == 404


def test_other_users_map_is_403(client, other_headers, calibrated_map):
    response = _measure(client, other_headers, calibrated_map["id"], type="area", points=SQUARE)
    assert response.status_code == 403


def test_guard_refuses_write_after_concurrent_recalibration(client, auth_headers, calibrated_map, db):
    """
    A request that loaded the map at version 1 must not insert once another
    request has recalibrated to version 2 before the write.
    """
    db_map = db.query(models.Map).filter(models.Map.id == calibrated_map["id"]).first()
    assert db_map.calibration_version == 1

    client.patch(
        f"/api/maps/{calibrated_map['id']}/calibrate",
        json={"pixelDistance": 50, "realDistance": 5, "unit": "m"},
        headers=auth_headers,
    )

    with pytest.raises(ConflictError) as exc_info:
        measurement_service.create_measurement(
            db, db_map, user_id=db_map.uploaded_by, name="Late write",
            measurement_type="area", points=SQUARE,
        )
    assert exc_info.value.extra["current_version"] == 2
    assert db.query(models.Measurement).count() == 0


def test_guard_does_not_touch_map_timestamp(client, auth_headers, calibrated_map):
    _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE)
    after = client.get(f"/api/maps/{calibrated_map['id']}").json()
    assert after["updatedAt"] == calibrated_map["updatedAt"]
    assert after["calibrationVersion"] == 1


# --- Staleness ---


def test_measurement_flagged_stale_when_versions_differ(client, auth_headers, calibrated_map, db):
    _measure(client, auth_headers, calibrated_map["id"], type="angle", points=RIGHT_ANGLE)
    listed = client.get(f"/api/maps/{calibrated_map['id']}/measurements").json()
    assert listed[0]["stale"] is False

    # Rows written before versioning existed can lag behind the map
    db_map = db.query(models.Map).filter(models.Map.id == calibrated_map["id"]).first()
    db_map.calibration_version = 5
    db.commit()

    listed = client.get(f"/api/maps/{calibrated_map['id']}/measurements").json()
    assert listed[0]["stale"] is True


def test_is_stale():
    m = models.Measurement(calibration_version_at_creation=1)
    assert measurement_service.is_stale(m, models.Map(calibration_version=2))
    assert not measurement_service.is_stale(m, models.Map(calibration_version=1))


# --- Read / update / delete ---


def test_get_measurement(client, auth_headers, calibrated_map):
    created = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE).json()
    response = client.get(f"/api/measurements/{created['id']}")
    assert response.status_code == 200
    assert response.json()["displayValue"] == "25.00 m²"
    assert response.json()["stale"] is False


def test_get_unknown_measurement_is_404(client):
    assert client.get("/api/measurements/9999").status_code == 404


def test_update_changes_metadata_only(client, auth_headers, calibrated_map):
    created = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE).json()
    response = client.patch(
        f"/api/measurements/{created['id']}",
        json={"name": "Warehouse slab", "color": "#00AAFF", "notes": "Check fall", "value": 999},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Warehouse slab"
    assert data["color"] == "#00AAFF"
    assert data["notes"] == "Check fall"
    assert data["value"] == pytest.approx(25.0)
    assert data["points"] == created["points"]


def test_delete_measurement(client, auth_headers, calibrated_map):
    created = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE).json()
    response = client.delete(f"/api/measurements/{created['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert client.get(f"/api/measurements/{created['id']}").status_code == 404


def test_delete_by_other_user_is_403(client, auth_headers, other_headers, calibrated_map):
    created = _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE).json()
    response = client.delete(f"/api/measurements/{created['id']}", headers=other_headers)
    assert response.status_code == 403


# --- Listing and totals ---


def test_project_measurements_and_totals(client, auth_headers, project, calibrated_map):
    second = upload(client, auth_headers, project["id"], name="Level 1").json()
    client.patch(
        f"/api/maps/{second['id']}/calibrate",
        json={"pixelDistance": 10, "realDistance": 1, "unit": "m"},
        headers=auth_headers,
    )

    _measure(client, auth_headers, calibrated_map["id"], type="area", points=SQUARE)  # 25 m²
    _measure(client, auth_headers, second["id"], type="area", points=SQUARE)  # 100 m²
    _measure(client, auth_headers, second["id"], type="distance", points=SQUARE[:2])  # 10 m

    listed = client.get(f"/api/projects/{project['id']}/measurements").json()
    assert len(listed) == 3

    totals = client.get(f"/api/projects/{project['id']}/measurements/totals").json()
    assert totals["totals"]["area"] == pytest.approx(125.0)
    assert totals["totals"]["distance"] == pytest.approx(10.0)
    assert totals["totals"]["volume"] == 0
    assert totals["count"] == {"distance": 1, "perimeter": 0, "area": 2, "volume": 0, "angle": 0}


def test_totals_for_empty_project(client, project):
    totals = client.get(f"/api/projects/{project['id']}/measurements/totals").json()
    assert set(totals["totals"]) == {"distance", "perimeter", "area", "volume", "angle"}
    assert all(v == 0 for v in totals["totals"].values())
