"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the CampusRide resources.

These URLs are relative to the `/api` mount point of the API application.
"""

# -------------------------------
# Authentication & Account
# -------------------------------
URL_REGISTER = "/register"
URL_LOGIN = "/login"
URL_LOGOUT = "/logout"
URL_USER = "/user"

# -------------------------------
# Dashboard
# -------------------------------
URL_DASHBOARD = "/dashboard"

# -------------------------------
# Transport
# -------------------------------
URL_ROUTE = "/routes"
URL_BUS = "/buses"
URL_NOTICE = "/notices"

# -------------------------------
# Bus pass
# -------------------------------
URL_PASS = "/passes"
URL_MY_PASS = "/passes/mine"
URL_VERIFY_PASS = "/passes/verify"
