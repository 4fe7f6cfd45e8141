import argparse
from http import HTTPStatus
from requests import get, patch, post

from campusride.src import passwords
from campusride.src.enums import BusProgress, NoticeCategory, PassStatus, UserRole
from campusride.src.urls import (
    URL_BUS,
    URL_LOGIN,
    URL_MY_PASS,
    URL_PASS,
    URL_REGISTER,
)
from campusride.src.db import (
    Bus,
    Notice,
    Route,
    User,
    sessionMaker,
    engine,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    password = passwords.makePassword("password")
    admin = User(
        username="admin",
        password=password,
        full_name="CampusRide admin",
        role=UserRole.ADMIN.value,
    )
    driver = User(
        username="driver",
        password=password,
        full_name="CampusRide driver",
        role=UserRole.DRIVER.value,
    )
    student = User(
        username="student",
        password=password,
        full_name="CampusRide student",
        role=UserRole.STUDENT.value,
    )
    session.add_all([admin, driver, student])
    session.flush()

    northRoute = Route(
        name="North campus line",
        stops=["Gate A", "Library Junction", "Railway Station", "City Bus Stand"],
    )
    southRoute = Route(
        name="South campus line",
        stops=["Gate B", "Hostel Block", "Market Road", "Lake View"],
    )
    session.add_all([northRoute, southRoute])
    session.flush()

    northBus = Bus(
        bus_number="KL01AB1001",
        driver_id=driver.id,
        route_id=northRoute.id,
        total_seats=52,
        current_status=BusProgress.GARAGE.value,
    )
    southBus = Bus(
        bus_number="KL01AB1002",
        route_id=southRoute.id,
        total_seats=40,
        current_status=BusProgress.GARAGE.value,
    )
    welcome = Notice(
        title="Welcome to CampusRide",
        content="Apply for your bus pass from the student dashboard.",
        category=NoticeCategory.GENERAL.value,
    )
    session.add_all([northBus, southBus, welcome])
    session.flush()

    session.commit()
    print("* Initialization completed")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    assert response.status_code == status_code
    return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080/api"

    # Sign in as admin and driver
    credentials = {"username": "admin", "password": "password"}
    response = POST(BASE_URL + URL_LOGIN, data=credentials, status_code=HTTPStatus.OK)
    adminToken = {"Authorization": f"Bearer {response.json()['access_token']}"}
    credentials = {"username": "driver", "password": "password"}
    response = POST(BASE_URL + URL_LOGIN, data=credentials, status_code=HTTPStatus.OK)
    driverToken = {"Authorization": f"Bearer {response.json()['access_token']}"}
    print("* Created tokens for admin and driver")

    # Register a test student
    studentData = {
        "full_name": "Test student",
        "username": "21CS001",
        "password": "password",
    }
    response = POST(BASE_URL + URL_REGISTER, data=studentData)
    studentToken = {"Authorization": f"Bearer {response.json()['access_token']}"}
    print("* Registered student")

    # Apply for a pass on the driver's route
    buses = get(BASE_URL + URL_BUS, headers=driverToken).json()
    driverBus = [bus for bus in buses if bus["bus_number"] == "KL01AB1001"][0]
    passData = {
        "route_id": driverBus["route_id"],
        "boarding_stop": "Gate A",
        "branch": "CSE",
        "passing_year": "2027",
        "phone_number": "+919876543210",
        "email_id": "student@campusride.in",
        "emergency_contact": "+919812345678",
    }
    busPass = POST(BASE_URL + URL_PASS, header=studentToken, data=passData)
    print("* Applied for bus pass")

    # Approve the pass
    response = patch(
        BASE_URL + URL_PASS + f"/{busPass.json()['id']}",
        headers=adminToken,
        data={"status": PassStatus.APPROVED.value},
    )
    assert response.status_code == HTTPStatus.OK
    print("* Approved bus pass")

    # Broadcast the first stop
    response = patch(
        BASE_URL + URL_BUS + f"/{driverBus['id']}",
        headers=driverToken,
        data={"current_status": BusProgress.STARTING.value},
    )
    assert response.status_code == HTTPStatus.OK
    print("* Broadcast bus status")

    response = get(BASE_URL + URL_MY_PASS, headers=studentToken)
    if response.json()["bus_id"] == driverBus["id"]:
        print("* Student is assigned to the driver's bus")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
