"""Read-only pricing catalog lookups used by the cart engine."""
from typing import Protocol

from sqlalchemy.orm import Session

from poscore.errors import NotFound
from poscore.models.core import ItemModifierGroup, MenuItem, Modifier, ModifierGroup as ModifierGroupRow
from poscore.schemas.catalog import Extra, Item, ModifierGroup, Option, OptionGroup, Removable


class CatalogAdapter(Protocol):
    def fetch_item(self, item_id: str) -> Item: ...

    def fetch_item_modifiers(self, item_id: str) -> list[ModifierGroup]: ...


class MemoryCatalog:
    """Dict-backed catalog; handy for kiosks running off a cached menu and for tests."""

    def __init__(self):
        self._items: dict[str, Item] = {}
        self._groups: dict[str, list[ModifierGroup]] = {}

    def add(self, item: Item, groups: list[ModifierGroup] | None = None) -> Item:
        groups = list(groups or [])
        self._items[item.id] = item.model_copy(update={"has_modifiers": bool(groups)})
        self._groups[item.id] = groups
        return self._items[item.id]

    def fetch_item(self, item_id: str) -> Item:
        try:
            return self._items[item_id]
        except KeyError:
            raise NotFound(f"menu item {item_id} not found")

    def fetch_item_modifiers(self, item_id: str) -> list[ModifierGroup]:
        self.fetch_item(item_id)
        return list(self._groups.get(item_id, []))


class SqlCatalog:
    def __init__(self, db: Session):
        self.db = db

    def fetch_item(self, item_id: str) -> Item:
        m = self.db.get(MenuItem, item_id)
        if not m or m.deleted_at is not None or not m.is_active:
            raise NotFound(f"menu item {item_id} not found")
        has_groups = (
            self.db.query(ItemModifierGroup)
            .filter(ItemModifierGroup.item_id == item_id, ItemModifierGroup.deleted_at.is_(None))
            .first()
            is not None
        )
        return Item(
            id=m.id,
            name=m.name,
            base_price=m.base_price or 0,
            category_id=m.category_id,
            has_modifiers=has_groups,
            payment_restriction=m.payment_restriction,
        )

    def fetch_item_modifiers(self, item_id: str) -> list[ModifierGroup]:
        self.fetch_item(item_id)
        rows = (
            self.db.query(ModifierGroupRow)
            .join(ItemModifierGroup, ItemModifierGroup.group_id == ModifierGroupRow.id)
            .filter(
                ItemModifierGroup.item_id == item_id,
                ItemModifierGroup.deleted_at.is_(None),
                ModifierGroupRow.deleted_at.is_(None),
                ModifierGroupRow.is_active.is_(True),
            )
            .order_by(ItemModifierGroup.position)
            .all()
        )
        return [self._to_group(g) for g in rows]

    def _to_group(self, g: ModifierGroupRow) -> ModifierGroup:
        if g.kind == "EXTRA":
            return Extra(id=g.id, name=g.name, surcharge=g.surcharge or 0)
        if g.kind == "REMOVABLE":
            return Removable(id=g.id, name=g.name)
        if g.kind == "OPTION_GROUP":
            options = (
                self.db.query(Modifier)
                .filter(Modifier.group_id == g.id, Modifier.deleted_at.is_(None))
                .order_by(Modifier.position)
                .all()
            )
            return OptionGroup(
                id=g.id,
                name=g.name,
                required=bool(g.required),
                max_selections=g.max_sel or 1,
                options=[Option(id=o.id, name=o.name, price_delta=o.price_delta or 0) for o in options],
            )
        raise ValueError(f"unknown modifier group kind {g.kind!r}")
