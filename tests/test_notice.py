def publish(client, admin, title, category="general"):
    return client.post(
        "/api/notices",
        headers=admin["headers"],
        data={"title": title, "content": f"{title} details", "category": category},
    )


def test_admin_publishes_notice(client, admin):
    response = publish(client, admin, "Holiday on Friday", "event")

    assert response.status_code == 201
    assert response.json()["category"] == "event"


def test_student_cannot_publish(client, student):
    response = publish(client, student, "Free rides")
    assert response.status_code == 403


def test_unknown_category(client, admin):
    response = publish(client, admin, "Flood", "weather")
    assert response.status_code == 422


def test_notices_newest_first(client, admin, student):
    for title in ["First", "Second", "Third"]:
        publish(client, admin, title)

    response = client.get("/api/notices", headers=student["headers"])

    assert response.status_code == 200
    assert [notice["title"] for notice in response.json()] == [
        "Third",
        "Second",
        "First",
    ]


def test_filter_notices_by_category(client, admin, student):
    publish(client, admin, "Bus 3 breakdown", "emergency")
    publish(client, admin, "Welcome week")

    response = client.get(
        "/api/notices", headers=student["headers"], params={"category": "emergency"}
    )
    assert [notice["title"] for notice in response.json()] == ["Bus 3 breakdown"]


def test_edit_and_remove_notice(client, admin):
    noticeId = publish(client, admin, "Route change").json()["id"]

    response = client.patch(
        f"/api/notices/{noticeId}",
        headers=admin["headers"],
        data={"category": "maintenance"},
    )
    assert response.status_code == 200
    assert response.json()["category"] == "maintenance"

    response = client.delete(f"/api/notices/{noticeId}", headers=admin["headers"])
    assert response.status_code == 204
    assert client.get("/api/notices", headers=admin["headers"]).json() == []
