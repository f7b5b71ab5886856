import datetime as dt
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, Field

from poscore.models.enums import AppPayMethod, OnlineProvider, OrderChannel, PayMethod, ShiftType

Money = Annotated[Decimal, Field(ge=0)]


class AppSales(BaseModel):
    by_method: dict[AppPayMethod, Money] = {}
    panel_total: Money = Decimal("0")  # the platform's own report; 0 = not entered yet


class ShiftClosureInput(BaseModel):
    branch_id: str
    date: dt.date
    shift: ShiftType
    counter_sales: dict[OrderChannel, dict[PayMethod, Money]] = {}
    app_sales: dict[OnlineProvider, AppSales] = {}
    terminal_total: Money = Decimal("0")
    cash_difference: Decimal = Decimal("0")  # signed: negative = missing
    invoiced_total: Money = Decimal("0")
    product_units: dict[str, Annotated[int, Field(ge=0)]] = {}
    notes: Optional[str] = None


class PlatformCheck(BaseModel):
    provider: OnlineProvider
    internal_total: Decimal
    panel_total: Decimal
    difference: Decimal
    has_data: bool
    alert: bool


class TerminalCheck(BaseModel):
    internal_total: Decimal
    terminal_total: Decimal
    difference: Decimal
    debit: Decimal
    credit: Decimal
    qr: Decimal
    has_data: bool
    alert: bool


class InvoiceCheck(BaseModel):
    expected: Decimal
    declared: Decimal
    difference: Decimal
    local_cash: Decimal
    partner_cash: Decimal
    alert: bool


class ClosureResult(BaseModel):
    total_sold: Decimal
    total_cash: Decimal
    total_digital: Decimal
    total_units: int
    counter_total: Decimal
    apps_total: Decimal
    platforms: list[PlatformCheck]
    apps_difference: Decimal
    apps_alert: bool
    terminal: TerminalCheck
    cash_difference: Decimal
    cash_alert: bool
    invoice: InvoiceCheck
    has_alert: bool
    messages: list[str] = []


class ShiftClosureRecord(BaseModel):
    input: ShiftClosureInput
    result: ClosureResult
    closed_by: Optional[str] = None
