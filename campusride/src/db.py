from secrets import token_hex
from sqlalchemy import (
    JSON,
    TEXT,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    create_engine,
    func,
    text,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.dialects.postgresql import JSONB

from campusride.src.constants import (
    DATABASE_URL,
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
)
from campusride.src.enums import (
    AccountStatus,
    BusProgress,
    NoticeCategory,
    PassStatus,
    PlatformType,
    UserRole,
)


# Global DBMS variables
dbURL = DATABASE_URL or (
    f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}"
    f"@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
)
connectArgs = {"check_same_thread": False} if dbURL.startswith("sqlite") else {}
engine = create_engine(url=dbURL, echo=False, connect_args=connectArgs)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


# ----------------------------------- Account DB Models ---------------------------------------#
class User(ORMbase):
    """
    Represents a CampusRide account. Students, drivers and admins share this
    table and are told apart by `role`.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the user.

        full_name (TEXT):
            Full name of the user, used for display.
            Maximum 64 characters long.

        username (String(32)):
            Unique username used for login, typically the roll number for students.
            It should start with an alphabet or a digit.
            May include hyphen (-), period (.), at symbol (@), and underscore (_).
            Must not be null and unique.

        password (TEXT):
            Argon2 hash of the password. Plaintext is never stored here.

        role (String(16)):
            One of `UserRole` (student, driver, admin).
            Decides which dashboard and which operations are available.

        status (Integer):
            Indicates the account status.
            Mapped from the `AccountStatus` enum. Defaults to `AccountStatus.ACTIVE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the user is modified.

        created_on (DateTime):
            Timestamp of when the account was created.
    """

    __tablename__ = "user_account"

    id = Column(Integer, primary_key=True)
    full_name = Column(TEXT, nullable=False)
    username = Column(String(32), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    role = Column(String(16), nullable=False, default=UserRole.STUDENT.value)
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class UserToken(ORMbase):
    """
    Represents an access token issued to a user at login or registration.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        user_id (Integer):
            Foreign key referencing `user_account.id`.
            Cascades on delete, so removing the user removes its tokens.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.

        expires_in (Integer):
            Token lifetime in seconds.

        expires_at (DateTime):
            Date and time after which the token becomes invalid.

        platform_type (Integer):
            Enum value indicating the client platform type.
            Defaults to `PlatformType.OTHER`.

        client_details (TEXT):
            Optional description of the client device or environment.
            Maximum 1024 characters long.
    """

    __tablename__ = "user_token"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Device related details
    platform_type = Column(Integer, default=PlatformType.OTHER)
    client_details = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Transport DB Models -------------------------------------#
class Route(ORMbase):
    """
    Represents a bus route as an ordered list of stop names.

    Columns:
        id (Integer):
            Primary key.

        name (String(64)):
            Display name of the route. Must be unique.

        stops (JSON):
            Ordered list of stop names, from the first pickup to the campus.
            At least one stop, no duplicates.
    """

    __tablename__ = "route"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False, unique=True)
    stops = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Bus(ORMbase):
    """
    Represents a campus bus.

    Columns:
        id (Integer):
            Primary key.

        bus_number (String(16)):
            Number painted on the bus. Must be unique.

        driver_id (Integer):
            Foreign key referencing `user_account.id` of a driver.
            Unique, so a driver is assigned to at most one bus.
            Set to null if the driver account is deleted.

        route_id (Integer):
            Foreign key referencing `route.id`. The route currently served.

        total_seats (Integer):
            Seating capacity of the bus.

        current_status (String(32)):
            Last progress label broadcast by the driver.
            Defaults to `BusProgress.GARAGE`.
    """

    __tablename__ = "bus"

    id = Column(Integer, primary_key=True)
    bus_number = Column(String(16), nullable=False, unique=True)
    driver_id = Column(
        Integer,
        ForeignKey("user_account.id", ondelete="SET NULL"),
        unique=True,
    )
    route_id = Column(Integer, ForeignKey("route.id"), index=True)
    total_seats = Column(Integer, nullable=False)
    current_status = Column(
        String(32), nullable=False, default=BusProgress.GARAGE.value
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Notice(ORMbase):
    """
    Represents a notice board entry shown on every dashboard.

    Columns:
        title (String(128)):
            Headline of the notice.

        content (TEXT):
            Body text of the notice.

        category (String(16)):
            One of `NoticeCategory`. Emergency notices are highlighted by clients.
    """

    __tablename__ = "notice"

    id = Column(Integer, primary_key=True)
    title = Column(String(128), nullable=False)
    content = Column(TEXT, nullable=False)
    category = Column(
        String(16), nullable=False, default=NoticeCategory.GENERAL.value
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class BusPass(ORMbase):
    """
    Represents a student's application for, and record of, a digital bus pass.

    A pass is created as pending by the student and reviewed exactly once by
    an admin, who either approves it (assigning a bus, a validity and a QR
    payload) or rejects it. Passes are never deleted.

    Columns:
        id (Integer):
            Primary key.

        user_id (Integer):
            Foreign key referencing `user_account.id` of the applying student.

        route_id (Integer):
            Foreign key referencing the requested `route.id`.

        boarding_stop (String(64)):
            Stop on the requested route where the student boards.

        branch (String(32)):
            Branch or course of the student, e.g. CSE.

        passing_year (String(4)):
            Four digit year the student graduates.

        phone_number (TEXT):
            Contact number in RFC3966 format.

        email_id (TEXT):
            Contact e-mail in RFC 5322 format.

        emergency_contact (TEXT):
            Emergency contact number in RFC3966 format.

        photo_url (TEXT):
            Optional link to the student's photo.

        fee_receipt_url (TEXT):
            Optional link to the transport fee receipt.

        status (String(16)):
            One of `PassStatus`. Defaults to `PassStatus.PENDING`.

        bus_id (Integer):
            Foreign key referencing `bus.id`. Set only on approval, and only to
            a bus serving `route_id`.

        valid_until (DateTime):
            End of validity. Set on approval.

        qr_code (String(64)):
            Opaque token rendered as the scannable code. Set only on approval.

        remark (TEXT):
            Optional note from the reviewing admin, e.g. the rejection reason.

        reviewed_by (Integer):
            Foreign key referencing `user_account.id` of the reviewing admin.

        reviewed_on (DateTime):
            Timestamp of the review.

    A student holds at most one pending pass, enforced by a partial unique
    index on `user_id`.
    """

    __tablename__ = "bus_pass"
    __table_args__ = (
        Index(
            "bus_pass_pending_user_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    route_id = Column(Integer, ForeignKey("route.id"), nullable=False)
    boarding_stop = Column(String(64), nullable=False)
    # Applicant details
    branch = Column(String(32), nullable=False)
    passing_year = Column(String(4), nullable=False)
    phone_number = Column(TEXT, nullable=False)
    email_id = Column(TEXT, nullable=False)
    emergency_contact = Column(TEXT, nullable=False)
    photo_url = Column(TEXT)
    fee_receipt_url = Column(TEXT)
    # Review details
    status = Column(String(16), nullable=False, default=PassStatus.PENDING.value)
    bus_id = Column(Integer, ForeignKey("bus.id"))
    valid_until = Column(DateTime(timezone=True))
    qr_code = Column(String(64), unique=True)
    remark = Column(TEXT)
    reviewed_by = Column(Integer, ForeignKey("user_account.id", ondelete="SET NULL"))
    reviewed_on = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
