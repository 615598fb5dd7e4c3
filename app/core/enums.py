from enum import Enum


class InstitutionType(str, Enum):
    SCHOOL = "school"
    COLLEGE = "college"


class FeeCategory(str, Enum):
    BOOK_FEE = "BOOK_FEE"
    TUITION_FEE = "TUITION_FEE"
    TRANSPORT_FEE = "TRANSPORT_FEE"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"


class SettlementErrorKind(str, Enum):
    EMPTY_SELECTION = "EMPTY_SELECTION"
    INVALID_OTHER_FEE = "INVALID_OTHER_FEE"
    NEGATIVE_OVERRIDE = "NEGATIVE_OVERRIDE"


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
