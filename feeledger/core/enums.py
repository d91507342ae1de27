from enum import Enum


class ResidenceType(str, Enum):
    DAY = "Day"
    BOARDING = "Boarding"


class ResidenceScope(str, Enum):
    DAY = "Day"
    BOARDING = "Boarding"
    BOTH = "Both"
    UNSPECIFIED = "Unspecified"


class BillingFrequency(str, Enum):
    TERMLY = "termly"
    MONTHLY = "monthly"
    ANNUAL = "annual"
    ONE_TIME = "one-time"


class PaymentStatus(str, Enum):
    paid = "paid"
    pending = "pending"
    overdue = "overdue"


class CacheScope(str, Enum):
    CATALOG = "catalog"
    SUMMARY = "summary"


class DataBackend(str, Enum):
    REMOTE = "remote"
    DATABASE = "database"
