"""End-of-shift reconciliation.

Pure computation over operator-entered figures: no I/O, no exceptions for
discrepancies. Every check yields a numeric difference plus an alert flag,
and the caller decides what to persist.

    platforms  internal - panel, zero tolerance, skipped while panel == 0
    terminal   counter card/QR (+ app card-terminal) vs terminal report, zero tolerance
    cash       signed difference from the drawer count, any non-zero alerts
    invoicing  declared vs expected, alerts above INVOICE_TOLERANCE of expected
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from poscore.config import settings
from poscore.models.enums import AppPayMethod, OnlineProvider, PayMethod
from poscore.schemas.closure import (
    ClosureResult, InvoiceCheck, PlatformCheck, ShiftClosureInput, TerminalCheck,
)
from poscore.services.billing import EPSILON, ZERO, format_money, money, money_sum

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationPolicy:
    terminal_methods: frozenset = frozenset({PayMethod.DEBIT, PayMethod.CREDIT, PayMethod.QR})
    app_terminal_methods: frozenset = frozenset({AppPayMethod.CARD_TERMINAL})
    # platforms whose cash stays in the local drawer and is not invoiced by us
    local_cash_platforms: frozenset = frozenset({OnlineProvider.PEDIDOS_YA})
    # partners whose cash collection is invoiced on top of the local sales
    partner_cash_platforms: frozenset = frozenset({OnlineProvider.MAS_DELIVERY})
    invoice_tolerance: Decimal = Decimal("0.10")
    epsilon: Decimal = field(default=EPSILON)

    @classmethod
    def from_settings(cls) -> "ReconciliationPolicy":
        return cls(
            terminal_methods=frozenset(PayMethod(m) for m in settings.RECON_TERMINAL_METHODS),
            app_terminal_methods=frozenset(AppPayMethod(m) for m in settings.RECON_APP_TERMINAL_METHODS),
            local_cash_platforms=frozenset(OnlineProvider(p) for p in settings.RECON_LOCAL_CASH_PLATFORMS),
            partner_cash_platforms=frozenset(OnlineProvider(p) for p in settings.RECON_PARTNER_CASH_PLATFORMS),
            invoice_tolerance=Decimal(str(settings.INVOICE_TOLERANCE)),
        )


def compare_platform(provider: OnlineProvider, internal, panel, epsilon=EPSILON) -> PlatformCheck:
    internal, panel = money(internal), money(panel)
    diff = internal - panel
    has_data = panel > 0
    return PlatformCheck(
        provider=provider,
        internal_total=internal,
        panel_total=panel,
        difference=diff,
        has_data=has_data,
        alert=has_data and abs(diff) >= epsilon,
    )


def invoice_check(expected, declared, tolerance: Decimal, local_cash=ZERO, partner_cash=ZERO) -> InvoiceCheck:
    expected, declared = money(expected), money(declared)
    diff = declared - expected
    return InvoiceCheck(
        expected=expected,
        declared=declared,
        difference=diff,
        local_cash=money(local_cash),
        partner_cash=money(partner_cash),
        alert=expected > 0 and abs(diff) > expected * tolerance,
    )


def _counter_by_method(data: ShiftClosureInput) -> dict[PayMethod, Decimal]:
    out: dict[PayMethod, Decimal] = {}
    for by_method in data.counter_sales.values():
        for method, amount in by_method.items():
            out[method] = out.get(method, ZERO) + money(amount)
    return out


def reconcile(data: ShiftClosureInput, policy: ReconciliationPolicy | None = None) -> ClosureResult:
    policy = policy or ReconciliationPolicy.from_settings()
    counter = _counter_by_method(data)
    counter_total = money_sum(counter.values())
    counter_cash = counter.get(PayMethod.CASH, ZERO)

    # apps
    platforms: list[PlatformCheck] = []
    apps_total = apps_cash = app_terminal = local_cash_apps = partner_cash = ZERO
    for provider, sales in data.app_sales.items():
        internal = money_sum(sales.by_method.values())
        cash = money(sales.by_method.get(AppPayMethod.CASH))
        apps_total += internal
        apps_cash += cash
        app_terminal += money_sum(v for m, v in sales.by_method.items() if m in policy.app_terminal_methods)
        if provider in policy.local_cash_platforms:
            local_cash_apps += cash
        if provider in policy.partner_cash_platforms:
            partner_cash += cash
        platforms.append(compare_platform(provider, internal, sales.panel_total, policy.epsilon))
    apps_difference = money_sum(p.difference for p in platforms if p.has_data)
    apps_alert = any(p.alert for p in platforms)

    # card terminal
    debit = counter.get(PayMethod.DEBIT, ZERO)
    credit = counter.get(PayMethod.CREDIT, ZERO)
    qr = counter.get(PayMethod.QR, ZERO)
    terminal_internal = money_sum(v for m, v in counter.items() if m in policy.terminal_methods) + app_terminal
    terminal_reported = money(data.terminal_total)
    terminal_diff = terminal_internal - terminal_reported
    terminal_has_data = terminal_reported > 0
    terminal = TerminalCheck(
        internal_total=terminal_internal,
        terminal_total=terminal_reported,
        difference=terminal_diff,
        debit=debit,
        credit=credit,
        qr=qr,
        has_data=terminal_has_data,
        alert=terminal_has_data and abs(terminal_diff) >= policy.epsilon,
    )

    # cash drawer
    cash_difference = money(data.cash_difference)
    cash_alert = cash_difference != 0

    # invoicing
    total_sold = counter_total + apps_total
    local_cash = counter_cash + local_cash_apps
    expected = total_sold - local_cash + partner_cash
    invoice = invoice_check(expected, data.invoiced_total, policy.invoice_tolerance, local_cash, partner_cash)

    total_cash = counter_cash + apps_cash
    result = ClosureResult(
        total_sold=total_sold,
        total_cash=total_cash,
        total_digital=total_sold - total_cash,
        total_units=sum(data.product_units.values()),
        counter_total=counter_total,
        apps_total=apps_total,
        platforms=platforms,
        apps_difference=apps_difference,
        apps_alert=apps_alert,
        terminal=terminal,
        cash_difference=cash_difference,
        cash_alert=cash_alert,
        invoice=invoice,
        has_alert=apps_alert or terminal.alert or cash_alert or invoice.alert,
    )
    result.messages = alert_messages(result)
    if result.has_alert:
        log.warning("closure %s %s %s: %s", data.branch_id, data.date, data.shift.value,
                    "; ".join(result.messages))
    return result


def alert_messages(r: ClosureResult) -> list[str]:
    msgs = []
    for p in r.platforms:
        if p.alert:
            msgs.append(f"{p.provider.value}: internal {format_money(p.internal_total)} "
                        f"vs panel {format_money(p.panel_total)} ({format_money(p.difference)})")
    if r.terminal.alert:
        msgs.append(f"Card terminal: expected {format_money(r.terminal.internal_total)}, "
                    f"reported {format_money(r.terminal.terminal_total)}")
    if r.cash_alert:
        kind = "missing" if r.cash_difference < 0 else "surplus"
        msgs.append(f"Cash {kind}: {format_money(abs(r.cash_difference))}")
    if r.invoice.alert:
        msgs.append(f"Invoicing: expected {format_money(r.invoice.expected)}, "
                    f"declared {format_money(r.invoice.declared)}")
    return msgs
