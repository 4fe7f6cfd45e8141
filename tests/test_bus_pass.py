from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from campusride.src.constants import TMZ_SECONDARY
from campusride.src.db import BusPass, sessionMaker


def applyPass(client, student, passForm, **overrides):
    return client.post(
        "/api/passes", headers=student["headers"], data={**passForm, **overrides}
    )


def reviewPass(client, admin, passId, **data):
    return client.patch(f"/api/passes/{passId}", headers=admin["headers"], data=data)


def expirePass(passId):
    session = sessionMaker()
    try:
        bus_pass = session.query(BusPass).filter(BusPass.id == passId).first()
        bus_pass.valid_until = datetime.now(timezone.utc) - timedelta(days=1)
        session.commit()
    finally:
        session.close()


def test_apply_creates_pending_pass(client, student, passForm):
    response = applyPass(client, student, passForm)

    assert response.status_code == 201
    bus_pass = response.json()
    assert bus_pass["status"] == "pending"
    assert bus_pass["user_id"] == student["id"]
    assert bus_pass["bus_id"] is None
    assert bus_pass["qr_code"] is None
    assert bus_pass["valid_until"] is None


@pytest.mark.parametrize(
    "field, value",
    [
        ("passing_year", "202"),
        ("passing_year", "20277"),
        ("passing_year", "two0"),
        ("phone_number", "12345"),
        ("emergency_contact", "not a number"),
        ("email_id", "student-at-campus"),
    ],
)
def test_malformed_application_is_not_stored(client, student, passForm, field, value):
    response = applyPass(client, student, passForm, **{field: value})
    assert response.status_code == 422

    response = client.get("/api/passes/mine", headers=student["headers"])
    assert response.json() is None


def test_boarding_stop_must_be_on_route(client, student, passForm):
    response = applyPass(client, student, passForm, boarding_stop="Lake View")

    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidAssociation"


def test_route_must_exist(client, student, passForm):
    response = applyPass(client, student, passForm, route_id=99)

    assert response.status_code == 404
    assert response.headers["X-Error"] == "UnknownValue"


def test_only_students_apply(client, driver, passForm):
    response = applyPass(client, driver, passForm)
    assert response.status_code == 403


def test_pending_pass_blocks_new_application(client, student, passForm):
    applyPass(client, student, passForm)
    response = applyPass(client, student, passForm)

    assert response.status_code == 409
    assert response.headers["X-Error"] == "DuplicatePass"


def test_approve_assigns_route_bus_until_year_end(
    client, admin, student, campus, passForm
):
    passId = applyPass(client, student, passForm).json()["id"]

    response = reviewPass(client, admin, passId, status="approved")

    assert response.status_code == 200
    bus_pass = response.json()
    year = datetime.now(TMZ_SECONDARY).year
    assert bus_pass["status"] == "approved"
    assert bus_pass["bus_id"] == campus["bus"]["id"]
    assert bus_pass["valid_until"].startswith(f"{year}-12-31")
    assert len(bus_pass["qr_code"]) == 32
    assert bus_pass["reviewed_by"] == admin["id"]
    assert bus_pass["reviewed_on"] is not None

    mine = client.get("/api/passes/mine", headers=student["headers"]).json()
    assert mine["status"] == "approved"
    assert mine["bus_id"] == campus["bus"]["id"]


def test_approve_without_bus_on_route(client, admin, student, campus, passForm):
    passId = applyPass(
        client,
        student,
        passForm,
        route_id=campus["empty_route"]["id"],
        boarding_stop="Lake View",
    ).json()["id"]

    response = reviewPass(client, admin, passId, status="approved")

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["bus_id"] is None


def test_approve_picks_lowest_bus_on_route(client, admin, student, campus, passForm):
    client.post(
        "/api/buses",
        headers=admin["headers"],
        data={
            "bus_number": "KL01AB1002",
            "route_id": campus["route"]["id"],
            "total_seats": 40,
        },
    )
    passId = applyPass(client, student, passForm).json()["id"]

    response = reviewPass(client, admin, passId, status="approved")
    assert response.json()["bus_id"] == campus["bus"]["id"]


def test_approve_with_chosen_bus(client, admin, student, campus, passForm):
    secondBus = client.post(
        "/api/buses",
        headers=admin["headers"],
        data={
            "bus_number": "KL01AB1002",
            "route_id": campus["route"]["id"],
            "total_seats": 40,
        },
    ).json()
    passId = applyPass(client, student, passForm).json()["id"]

    response = reviewPass(
        client, admin, passId, status="approved", bus_id=secondBus["id"]
    )
    assert response.json()["bus_id"] == secondBus["id"]


def test_approve_rejects_bus_from_other_route(client, admin, student, campus, passForm):
    otherBus = client.post(
        "/api/buses",
        headers=admin["headers"],
        data={
            "bus_number": "KL01AB1002",
            "route_id": campus["empty_route"]["id"],
            "total_seats": 40,
        },
    ).json()
    passId = applyPass(client, student, passForm).json()["id"]

    response = reviewPass(
        client, admin, passId, status="approved", bus_id=otherBus["id"]
    )

    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidAssociation"
    mine = client.get("/api/passes/mine", headers=student["headers"]).json()
    assert mine["status"] == "pending"


def test_approve_with_custom_validity(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    validUntil = datetime.now(timezone.utc) + timedelta(days=30)

    response = reviewPass(
        client, admin, passId, status="approved", valid_until=validUntil.isoformat()
    )

    assert response.status_code == 200
    assert response.json()["valid_until"].startswith(validUntil.date().isoformat())


def test_approve_with_past_validity(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    validUntil = datetime.now(timezone.utc) - timedelta(days=1)

    response = reviewPass(
        client, admin, passId, status="approved", valid_until=validUntil.isoformat()
    )
    assert response.status_code == 406


def test_reject_records_remark(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]

    response = reviewPass(
        client, admin, passId, status="rejected", remark="Fee receipt missing"
    )

    assert response.status_code == 200
    bus_pass = response.json()
    assert bus_pass["status"] == "rejected"
    assert bus_pass["remark"] == "Fee receipt missing"
    assert bus_pass["bus_id"] is None
    assert bus_pass["qr_code"] is None


def test_reject_does_not_take_bus(client, admin, student, campus, passForm):
    passId = applyPass(client, student, passForm).json()["id"]

    response = reviewPass(
        client, admin, passId, status="rejected", bus_id=campus["bus"]["id"]
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "UnexpectedParameter"


@pytest.mark.parametrize(
    "first, second",
    [
        ("approved", "rejected"),
        ("approved", "pending"),
        ("approved", "approved"),
        ("rejected", "approved"),
        ("rejected", "pending"),
    ],
)
def test_reviewed_pass_is_final(client, admin, student, passForm, first, second):
    passId = applyPass(client, student, passForm).json()["id"]
    reviewPass(client, admin, passId, status=first)

    response = reviewPass(client, admin, passId, status=second)

    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"
    mine = client.get("/api/passes/mine", headers=student["headers"]).json()
    assert mine["status"] == first


def test_pending_cannot_stay_pending(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    response = reviewPass(client, admin, passId, status="pending")
    assert response.status_code == 406


def test_only_admin_reviews(client, driver, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]

    assert reviewPass(client, driver, passId, status="approved").status_code == 403
    assert reviewPass(client, student, passId, status="approved").status_code == 403


def test_review_unknown_pass(client, admin):
    response = reviewPass(client, admin, 99, status="approved")
    assert response.status_code == 404


def test_reapply_after_rejection(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    reviewPass(client, admin, passId, status="rejected")

    response = applyPass(client, student, passForm)

    assert response.status_code == 201
    mine = client.get("/api/passes/mine", headers=student["headers"]).json()
    assert mine["id"] == response.json()["id"]


def test_reapply_after_expiry(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    reviewPass(client, admin, passId, status="approved")
    assert applyPass(client, student, passForm).status_code == 409

    expirePass(passId)
    assert applyPass(client, student, passForm).status_code == 201


def test_download_qr_image(client, admin, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    reviewPass(client, admin, passId, status="approved")

    for user in [student, admin]:
        response = client.get(f"/api/passes/{passId}/qr", headers=user["headers"])
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")


def test_pending_pass_has_no_qr(client, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]

    response = client.get(f"/api/passes/{passId}/qr", headers=student["headers"])
    assert response.status_code == 412
    assert response.headers["X-Error"] == "InactiveResource"


def test_qr_is_private(client, admin, signUp, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    reviewPass(client, admin, passId, status="approved")
    classmate = signUp("classmate")

    response = client.get(f"/api/passes/{passId}/qr", headers=classmate["headers"])
    assert response.status_code == 403


def test_verify_scanned_pass(client, admin, driver, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    qrCode = reviewPass(client, admin, passId, status="approved").json()["qr_code"]

    response = client.get(
        "/api/passes/verify", headers=driver["headers"], params={"qr_code": qrCode}
    )
    assert response.status_code == 200
    assert response.json()["id"] == passId

    response = client.get(
        "/api/passes/verify", headers=student["headers"], params={"qr_code": qrCode}
    )
    assert response.status_code == 403


def test_verify_unknown_code(client, driver, campus):
    response = client.get(
        "/api/passes/verify", headers=driver["headers"], params={"qr_code": "0" * 32}
    )
    assert response.status_code == 404
    assert response.headers["X-Error"] == "InvalidIdentifier"


def test_verify_expired_pass(client, admin, driver, student, passForm):
    passId = applyPass(client, student, passForm).json()["id"]
    qrCode = reviewPass(client, admin, passId, status="approved").json()["qr_code"]
    expirePass(passId)

    response = client.get(
        "/api/passes/verify", headers=driver["headers"], params={"qr_code": qrCode}
    )
    assert response.status_code == 412


def test_fetch_passes_is_scoped_by_role(
    client, admin, driver, signUp, student, campus, passForm
):
    classmate = signUp("classmate")
    ownId = applyPass(client, student, passForm).json()["id"]
    otherId = applyPass(
        client,
        classmate,
        passForm,
        route_id=campus["empty_route"]["id"],
        boarding_stop="Gate B",
    ).json()["id"]
    reviewPass(client, admin, ownId, status="approved")
    reviewPass(client, admin, otherId, status="approved")

    def passIds(user, **params):
        response = client.get("/api/passes", headers=user["headers"], params=params)
        assert response.status_code == 200
        return sorted(bus_pass["id"] for bus_pass in response.json())

    assert passIds(admin) == sorted([ownId, otherId])
    assert passIds(student) == [ownId]
    assert passIds(student, user_id=classmate["id"]) == [ownId]
    assert passIds(driver) == [ownId]
    assert passIds(admin, route_id=campus["empty_route"]["id"]) == [otherId]
    assert passIds(admin, status="pending") == []


def test_driver_without_bus_sees_no_passes(client, signUp, student, passForm):
    applyPass(client, student, passForm)
    spareDriver = signUp("spare-driver", "driver")

    response = client.get("/api/passes", headers=spareDriver["headers"])
    assert response.json() == []


def test_database_holds_one_pending_pass_per_student(client, student, passForm):
    applyPass(client, student, passForm)

    session = sessionMaker()
    try:
        session.add(
            BusPass(
                user_id=student["id"],
                route_id=passForm["route_id"],
                boarding_stop=passForm["boarding_stop"],
                branch=passForm["branch"],
                passing_year=passForm["passing_year"],
                phone_number=passForm["phone_number"],
                email_id=passForm["email_id"],
                emergency_contact=passForm["emergency_contact"],
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()
        assert session.query(BusPass).count() == 1
    finally:
        session.close()
