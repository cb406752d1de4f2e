import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    LAW_FIRM = "law_firm"
    ATTORNEY = "attorney"
    CUSTOMER = "customer"


class LawFirmStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class StaffRole(str, enum.Enum):
    ATTORNEY = "attorney"
    PARALEGAL = "paralegal"
    CLOSING_AGENT = "closing_agent"
    NOTARY = "notary"
    ADMIN_STAFF = "admin_staff"


class TransactionStatus(str, enum.Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_STATUSES: frozenset[TransactionStatus] = frozenset(
    {TransactionStatus.NEW, TransactionStatus.IN_PROGRESS}
)


class TitleStatus(str, enum.Enum):
    UNASSIGNED = "unassigned"
    NO_TITLE_NEEDED = "no_title_needed"
    IN_PROCESS = "in_process"
    WAITING_FOR_REVIEW = "waiting_for_review"
    COMPLETE = "complete"


class OrderType(str, enum.Enum):
    CLOSING = "closing"
    NOTARY = "notary"
    TITLE = "title"


class ClosingType(str, enum.Enum):
    PURCHASE = "purchase"
    REFINANCE = "refinance"
    HELOC = "heloc"
    OTHER = "other"


class PropertyType(str, enum.Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"


class HealthIssue(str, enum.Enum):
    STUCK_NEW = "stuck_new"
    STUCK_IN_PROGRESS = "stuck_in_progress"
    UNASSIGNED = "unassigned"


class ActivityAction(str, enum.Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    TITLE_STATUS_CHANGED = "title_status_changed"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    SCHEDULE_UPDATED = "schedule_updated"
