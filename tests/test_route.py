def test_admin_creates_route(client, admin):
    response = client.post(
        "/api/routes",
        headers=admin["headers"],
        data={"name": "North campus line", "stops": [" Gate A ", "Library Junction"]},
    )

    assert response.status_code == 201
    assert response.json()["stops"] == ["Gate A", "Library Junction"]


def test_route_stops_must_not_repeat(client, admin):
    response = client.post(
        "/api/routes",
        headers=admin["headers"],
        data={"name": "Loop", "stops": ["Gate A", "Gate A"]},
    )

    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"


def test_student_cannot_create_route(client, student):
    response = client.post(
        "/api/routes",
        headers=student["headers"],
        data={"name": "Shortcut", "stops": ["Gate A"]},
    )
    assert response.status_code == 403


def test_fetch_routes_by_stop(client, student, campus):
    response = client.get(
        "/api/routes", headers=student["headers"], params={"stop": "Lake View"}
    )

    assert response.status_code == 200
    assert [route["id"] for route in response.json()] == [campus["empty_route"]["id"]]


def test_update_route(client, admin, campus, events):
    routeId = campus["route"]["id"]
    response = client.patch(
        f"/api/routes/{routeId}",
        headers=admin["headers"],
        data={"stops": ["Gate A", "City Bus Stand"]},
    )

    assert response.status_code == 200
    assert response.json()["stops"] == ["Gate A", "City Bus Stand"]

    eventCount = len(events)
    response = client.patch(
        f"/api/routes/{routeId}",
        headers=admin["headers"],
        data={"name": "North campus line"},
    )
    assert response.status_code == 200
    assert len(events) == eventCount


def test_update_unknown_route(client, admin):
    response = client.patch("/api/routes/99", headers=admin["headers"], data={})
    assert response.status_code == 404


def test_route_served_by_bus_cannot_be_deleted(client, admin, campus):
    response = client.delete(
        f"/api/routes/{campus['route']['id']}", headers=admin["headers"]
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "DataInUse"

    response = client.delete(
        f"/api/routes/{campus['empty_route']['id']}", headers=admin["headers"]
    )
    assert response.status_code == 204
    routes = client.get("/api/routes", headers=admin["headers"]).json()
    assert [route["id"] for route in routes] == [campus["route"]["id"]]


def test_boarding_stop_of_open_pass_stays_on_route(
    client, admin, student, campus, passForm
):
    routeId = campus["route"]["id"]
    client.post("/api/passes", headers=student["headers"], data=passForm)

    response = client.patch(
        f"/api/routes/{routeId}",
        headers=admin["headers"],
        data={"stops": ["Library Junction", "City Bus Stand"]},
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "DataInUse"

    routes = client.get(
        "/api/routes", headers=admin["headers"], params={"id": routeId}
    ).json()
    assert "Gate A" in routes[0]["stops"]

    response = client.patch(
        f"/api/routes/{routeId}",
        headers=admin["headers"],
        data={"stops": ["City Bus Stand", "Gate A", "Hostel Block"]},
    )
    assert response.status_code == 200


def test_stop_of_rejected_pass_can_be_removed(client, admin, student, campus, passForm):
    routeId = campus["route"]["id"]
    passId = client.post(
        "/api/passes", headers=student["headers"], data=passForm
    ).json()["id"]
    client.patch(
        f"/api/passes/{passId}", headers=admin["headers"], data={"status": "rejected"}
    )

    response = client.patch(
        f"/api/routes/{routeId}",
        headers=admin["headers"],
        data={"stops": ["Library Junction", "City Bus Stand"]},
    )
    assert response.status_code == 200
    assert response.json()["stops"] == ["Library Junction", "City Bus Stand"]
