def applyPass(client, student, passForm):
    response = client.post("/api/passes", headers=student["headers"], data=passForm)
    return response.json()["id"]


def test_student_dashboard_without_pass(client, admin, student):
    for title in ["First", "Second", "Third", "Fourth"]:
        client.post(
            "/api/notices",
            headers=admin["headers"],
            data={"title": title, "content": "Details"},
        )

    response = client.get("/api/dashboard", headers=student["headers"])

    assert response.status_code == 200
    dashboard = response.json()
    assert dashboard["role"] == "student"
    assert dashboard["pass"] is None
    assert dashboard["bus"] is None
    assert [notice["title"] for notice in dashboard["notices"]] == [
        "Fourth",
        "Third",
        "Second",
    ]


def test_student_dashboard_with_approved_pass(
    client, admin, student, campus, passForm
):
    passId = applyPass(client, student, passForm)
    client.patch(
        f"/api/passes/{passId}", headers=admin["headers"], data={"status": "approved"}
    )

    dashboard = client.get("/api/dashboard", headers=student["headers"]).json()

    assert dashboard["pass"]["id"] == passId
    assert dashboard["pass"]["status"] == "approved"
    assert dashboard["bus"]["id"] == campus["bus"]["id"]
    assert dashboard["route"]["stops"] == campus["route"]["stops"]


def test_student_sees_rejection_reason(client, admin, student, passForm):
    passId = applyPass(client, student, passForm)
    client.patch(
        f"/api/passes/{passId}",
        headers=admin["headers"],
        data={"status": "rejected", "remark": "Photo unclear"},
    )

    dashboard = client.get("/api/dashboard", headers=student["headers"]).json()
    assert dashboard["pass"]["status"] == "rejected"
    assert dashboard["pass"]["remark"] == "Photo unclear"


def test_driver_dashboard(client, admin, driver, student, campus, passForm):
    passId = applyPass(client, student, passForm)
    client.patch(
        f"/api/passes/{passId}", headers=admin["headers"], data={"status": "approved"}
    )

    dashboard = client.get("/api/dashboard", headers=driver["headers"]).json()

    assert dashboard["role"] == "driver"
    assert dashboard["bus"]["id"] == campus["bus"]["id"]
    assert dashboard["route"]["id"] == campus["route"]["id"]
    assert dashboard["riders"] == 1


def test_driver_dashboard_without_bus(client, signUp):
    spareDriver = signUp("spare-driver", "driver")

    dashboard = client.get("/api/dashboard", headers=spareDriver["headers"]).json()
    assert dashboard["bus"] is None
    assert dashboard["riders"] == 0


def test_admin_dashboard(client, admin, student, campus, passForm):
    client.post("/api/passes", headers=student["headers"], data=passForm)

    dashboard = client.get("/api/dashboard", headers=admin["headers"]).json()

    assert dashboard["role"] == "admin"
    assert dashboard["pending_count"] == 1
    assert dashboard["pending_passes"][0]["user_id"] == student["id"]
    assert dashboard["bus_count"] == 1
    assert dashboard["route_count"] == 2


def test_dashboard_schema_is_picked_by_role(client):
    openapi = client.get("/api/openapi.json").json()

    response = openapi["paths"]["/dashboard"]["get"]["responses"]["200"]
    schema = response["content"]["application/json"]["schema"]
    assert schema["discriminator"]["propertyName"] == "role"
    assert len(schema["oneOf"]) == 3
