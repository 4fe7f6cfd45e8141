from fastapi import FastAPI
from campusride.api import (
    account,
    route,
    bus,
    notice,
    bus_pass,
    dashboard,
)


# ------------------------------------------------------
# Single API app shared by students, drivers and admins
# ------------------------------------------------------
app_api = FastAPI(title="CampusRide API")


# ------------------------------------------------------
# Account routers
# ------------------------------------------------------
app_api.include_router(account.route_user)
app_api.include_router(dashboard.route_user)

# Transport domain routers
app_api.include_router(route.route_user)
app_api.include_router(bus.route_user)
app_api.include_router(bus_pass.route_user)
app_api.include_router(notice.route_user)
