from enum import Enum as PyEnum


class OrderChannel(str, PyEnum):
    DINE_IN = "DINE_IN"
    TAKEAWAY = "TAKEAWAY"
    DELIVERY = "DELIVERY"
    ONLINE = "ONLINE"  # marketplace channels map here


class OnlineProvider(str, PyEnum):
    RAPPI = "RAPPI"
    PEDIDOS_YA = "PEDIDOS_YA"
    MP_DELIVERY = "MP_DELIVERY"
    MAS_DELIVERY = "MAS_DELIVERY"


class InvoiceType(str, PyEnum):
    CONSUMER = "CONSUMER"
    TAX_INVOICE = "TAX_INVOICE"


class OrderState(str, PyEnum):
    NOT_STARTED = "NOT_STARTED"
    CONFIGURING = "CONFIGURING"
    BUILDING = "BUILDING"
    AWAITING_SETTLEMENT = "AWAITING_SETTLEMENT"
    SETTLED = "SETTLED"
    DISPATCHED = "DISPATCHED"
    CANCELLED = "CANCELLED"


class PayMethod(str, PyEnum):
    CASH = "CASH"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"
    QR = "QR"
    TRANSFER = "TRANSFER"
    VOUCHER = "VOUCHER"  # marketplace vale


DIGITAL_METHODS = frozenset({PayMethod.DEBIT, PayMethod.CREDIT, PayMethod.QR, PayMethod.TRANSFER})


class PaymentRestriction(str, PyEnum):
    ANY = "ANY"
    CASH_ONLY = "CASH_ONLY"
    DIGITAL_ONLY = "DIGITAL_ONLY"


class ShiftType(str, PyEnum):
    MORNING = "MORNING"
    MIDDAY = "MIDDAY"
    NIGHT = "NIGHT"
    LATE_NIGHT = "LATE_NIGHT"


class AppPayMethod(str, PyEnum):
    CASH = "CASH"
    IN_APP = "IN_APP"
    QR = "QR"
    CARD_TERMINAL = "CARD_TERMINAL"


class CashMoveKind(str, PyEnum):
    PAYIN = "PAYIN"
    PAYOUT = "PAYOUT"
