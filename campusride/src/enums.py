from enum import Enum, IntEnum


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class AccountStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class PlatformType(IntEnum):
    OTHER = 1
    WEB = 2
    NATIVE = 3
    SERVER = 4


class UserRole(str, Enum):
    STUDENT = "student"
    DRIVER = "driver"
    ADMIN = "admin"


class PassStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NoticeCategory(str, Enum):
    GENERAL = "general"
    EMERGENCY = "emergency"
    MAINTENANCE = "maintenance"
    EVENT = "event"


class BusProgress(str, Enum):
    # Declared in the order a trip progresses
    STARTING = "Starting"
    STOP_1 = "Stop 1"
    STOP_2 = "Stop 2"
    HALFWAY = "Halfway"
    APPROACHING = "Approaching"
    ARRIVED = "Arrived"
    GARAGE = "Garage"
