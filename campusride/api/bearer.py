from fastapi.security import HTTPBearer

# HTTP Bearer authentication scheme shared by every role
bearer_user = HTTPBearer(scheme_name="CampusRide HTTPBearer")
