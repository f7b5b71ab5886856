"""Cart composition: modifier selection, validation and line pricing.

A cart line is priced once, when the selection is confirmed:

    unit_price = base_price + sum(extra.surcharge * qty) + sum(option.price_delta)
    line_total = unit_price * quantity

Later quantity changes only rescale `line_total`; the unit price captured at
confirm time is never re-derived from the catalog.
"""
import logging
from decimal import Decimal

from poscore.config import settings
from poscore.errors import (
    InvalidQuantity, InvalidSelection, MissingRequiredSelection, NotFound, SelectionLimitExceeded,
)
from poscore.schemas.catalog import Extra, Item, ModifierGroup, OptionGroup, Removable
from poscore.schemas.orders import CartItem, Selection
from poscore.services.billing import money, money_sum
from poscore.services.catalog import CatalogAdapter

log = logging.getLogger(__name__)


def _clamp_extra(qty: int) -> int:
    return max(0, min(settings.MAX_EXTRA_QTY, int(qty)))


def _merge(selections: list[Selection]) -> list[Selection]:
    """Collapse repeated (group, option) pairs, keeping first-seen order."""
    merged: dict[tuple[str, str | None], Selection] = {}
    for s in selections:
        key = (s.group_id, s.option_id)
        if key in merged:
            merged[key].quantity += s.quantity
        else:
            merged[key] = s.model_copy()
    return list(merged.values())


def price_selection(item: Item, groups: list[ModifierGroup], selections: list[Selection]) -> dict:
    """Validate `selections` against `groups` and price one unit of `item`.

    Returns a dict with the normalized selections, the unit price and the
    kitchen note. Raises a ValidationError subclass on the first violation;
    nothing is partially applied.
    """
    by_id = {g.id: g for g in groups}
    chosen: dict[str, list] = {g.id: [] for g in groups}
    normalized: list[Selection] = []
    extras_total = Decimal("0")
    options_total = Decimal("0")

    for s in _merge(selections):
        group = by_id.get(s.group_id)
        if group is None:
            raise InvalidSelection(f"unknown modifier group {s.group_id}")

        if isinstance(group, Extra):
            qty = _clamp_extra(s.quantity)
            if qty == 0:
                continue
            extras_total += money(group.surcharge) * qty
            chosen[group.id].append(qty)
            normalized.append(Selection(group_id=group.id, quantity=qty))
        elif isinstance(group, Removable):
            if s.quantity <= 0:
                continue
            chosen[group.id].append(True)
            normalized.append(Selection(group_id=group.id, quantity=1))
        elif isinstance(group, OptionGroup):
            option = group.option(s.option_id) if s.option_id else None
            if option is None:
                raise InvalidSelection(f"unknown option {s.option_id!r} in '{group.name}'")
            chosen[group.id].append(option)
            options_total += money(option.price_delta)
            normalized.append(Selection(group_id=group.id, option_id=option.id, quantity=1))
        else:
            raise TypeError(f"unhandled modifier group {type(group).__name__}")

    missing = []
    for g in groups:
        if not isinstance(g, OptionGroup):
            continue
        count = len(chosen[g.id])
        if count > g.max_selections:
            raise SelectionLimitExceeded(g.name, g.max_selections)
        if g.required and count == 0:
            missing.append(g.name)
    if missing:
        raise MissingRequiredSelection(missing)

    return {
        "selections": normalized,
        "unit_price": money(item.base_price) + extras_total + options_total,
        "note": modifiers_note(groups, chosen),
    }


def modifiers_note(groups: list[ModifierGroup], chosen: dict[str, list]) -> str | None:
    """Human-readable modifier summary printed on the kitchen ticket."""
    options, extras, removed = [], [], []
    for g in groups:
        picks = chosen.get(g.id) or []
        if not picks:
            continue
        if isinstance(g, OptionGroup):
            options.append(f"{g.name}: " + ", ".join(o.name for o in picks))
        elif isinstance(g, Extra):
            extras.append(f"+{picks[0]} {g.name}")
        elif isinstance(g, Removable):
            removed.append(f"no {g.name}")
    parts = [p for p in ("; ".join(options), ", ".join(extras), ", ".join(removed)) if p]
    return " | ".join(parts) if parts else None


class SelectionDraft:
    """Selection in progress for one item, before it is confirmed into the cart.

    Exclusive option groups behave like radio buttons (a new pick replaces the
    old one), inclusive groups like capped checkboxes, and picking the same
    option twice deselects it.
    """

    def __init__(self, item: Item, groups: list[ModifierGroup]):
        self.item = item
        self.groups = list(groups)
        self._by_id = {g.id: g for g in self.groups}
        self._options: dict[str, list[str]] = {}
        self._extras: dict[str, int] = {}
        self._removed: dict[str, bool] = {}

    def _group(self, group_id: str, kind: type):
        g = self._by_id.get(group_id)
        if not isinstance(g, kind):
            raise InvalidSelection(f"{group_id} is not a {kind.__name__} of {self.item.name}")
        return g

    def toggle_option(self, group_id: str, option_id: str) -> list[str]:
        g: OptionGroup = self._group(group_id, OptionGroup)
        if g.option(option_id) is None:
            raise InvalidSelection(f"unknown option {option_id!r} in '{g.name}'")
        picked = self._options.setdefault(group_id, [])
        if option_id in picked:
            picked.remove(option_id)
        elif g.exclusive:
            picked[:] = [option_id]
        elif len(picked) >= g.max_selections:
            raise SelectionLimitExceeded(g.name, g.max_selections)
        else:
            picked.append(option_id)
        return list(picked)

    def adjust_extra(self, extra_id: str, delta: int = 1) -> int:
        self._group(extra_id, Extra)
        qty = _clamp_extra(self._extras.get(extra_id, 0) + delta)
        if qty:
            self._extras[extra_id] = qty
        else:
            self._extras.pop(extra_id, None)
        return qty

    def set_extra(self, extra_id: str, qty: int) -> int:
        return self.adjust_extra(extra_id, qty - self._extras.get(extra_id, 0))

    def toggle_removable(self, removable_id: str) -> bool:
        self._group(removable_id, Removable)
        removed = not self._removed.get(removable_id, False)
        if removed:
            self._removed[removable_id] = True
        else:
            self._removed.pop(removable_id, None)
        return removed

    def selections(self) -> list[Selection]:
        out: list[Selection] = []
        for g in self.groups:
            if isinstance(g, OptionGroup):
                out += [Selection(group_id=g.id, option_id=o) for o in self._options.get(g.id, [])]
            elif isinstance(g, Extra) and g.id in self._extras:
                out.append(Selection(group_id=g.id, quantity=self._extras[g.id]))
            elif isinstance(g, Removable) and g.id in self._removed:
                out.append(Selection(group_id=g.id))
        return out

    def missing_required(self) -> list[str]:
        return [g.name for g in self.groups
                if isinstance(g, OptionGroup) and g.required and not self._options.get(g.id)]

    def can_confirm(self) -> bool:
        return not self.missing_required()

    def unit_price(self) -> Decimal:
        price = money(self.item.base_price)
        for g in self.groups:
            if isinstance(g, Extra):
                price += money(g.surcharge) * self._extras.get(g.id, 0)
            elif isinstance(g, OptionGroup):
                price += money_sum(g.option(o).price_delta for o in self._options.get(g.id, []))
        return price


class CartEngine:
    def __init__(self, catalog: CatalogAdapter | None = None, items: list[CartItem] | None = None):
        self.catalog = catalog
        self.items: list[CartItem] = list(items or [])

    # ---------- catalog ----------

    def resolve_modifiers(self, item: Item) -> list[ModifierGroup]:
        if self.catalog is None:
            return []
        return self.catalog.fetch_item_modifiers(item.id)

    def draft(self, item: Item) -> SelectionDraft:
        return SelectionDraft(item, self.resolve_modifiers(item))

    # ---------- mutations ----------

    def confirm_selection(self, item: Item, selections: list[Selection] | None = None,
                          quantity: int = 1, note: str | None = None,
                          groups: list[ModifierGroup] | None = None) -> CartItem:
        if quantity < 1:
            raise InvalidQuantity("quantity must be at least 1")
        if groups is None:
            groups = self.resolve_modifiers(item)
        priced = price_selection(item, groups, list(selections or []))
        unit = priced["unit_price"]
        line = CartItem(
            item_id=item.id,
            name=item.name,
            quantity=quantity,
            base_price=money(item.base_price),
            unit_price=unit,
            line_total=unit * quantity,
            selections=priced["selections"],
            modifiers_note=priced["note"],
            note=(note or None),
            payment_restriction=item.payment_restriction,
        )
        self.items.append(line)
        log.debug("cart + %s x%d @ %s", item.name, quantity, unit)
        return line

    def add_item(self, item: Item, quantity: int = 1, note: str | None = None) -> CartItem:
        """Shortcut for items confirmed without opening the modifier step."""
        return self.confirm_selection(item, [], quantity, note)

    def update_quantity(self, line_id: str, delta: int) -> CartItem | None:
        line = self.get(line_id)
        new_qty = line.quantity + int(delta)
        if new_qty <= 0:
            self.remove_item(line_id)
            return None
        line.quantity = new_qty
        line.line_total = line.unit_price * new_qty
        return line

    def remove_item(self, line_id: str) -> CartItem:
        line = self.get(line_id)
        self.items = [l for l in self.items if l.id != line_id]
        return line

    def update_note(self, line_id: str, note: str | None) -> CartItem:
        line = self.get(line_id)
        line.note = note or None
        return line

    # ---------- queries ----------

    def get(self, line_id: str) -> CartItem:
        for line in self.items:
            if line.id == line_id:
                return line
        raise NotFound(f"cart line {line_id} not found")

    def subtotal(self) -> Decimal:
        return money_sum(l.line_total for l in self.items)

    def is_empty(self) -> bool:
        return not self.items

    def snapshot(self) -> list[CartItem]:
        return [l.model_copy(deep=True) for l in self.items]

    def restore(self, snapshot: list[CartItem]) -> None:
        self.items = [l.model_copy(deep=True) for l in snapshot]
