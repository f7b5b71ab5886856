from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from poscore.models.enums import PaymentRestriction


class Item(BaseModel):
    id: str
    name: str
    base_price: Decimal = Field(ge=0)
    category_id: Optional[str] = None
    has_modifiers: bool = False
    payment_restriction: PaymentRestriction = PaymentRestriction.ANY


class Extra(BaseModel):
    kind: Literal["EXTRA"] = "EXTRA"
    id: str
    name: str
    surcharge: Decimal = Field(default=Decimal("0"), ge=0)


class Removable(BaseModel):
    kind: Literal["REMOVABLE"] = "REMOVABLE"
    id: str
    name: str


class Option(BaseModel):
    id: str
    name: str
    price_delta: Decimal = Decimal("0")


class OptionGroup(BaseModel):
    kind: Literal["OPTION_GROUP"] = "OPTION_GROUP"
    id: str
    name: str
    required: bool = False
    max_selections: int = Field(default=1, ge=1)
    options: list[Option] = []

    @property
    def exclusive(self) -> bool:
        return self.max_selections == 1

    def option(self, option_id: str) -> Option | None:
        return next((o for o in self.options if o.id == option_id), None)


ModifierGroup = Annotated[Union[Extra, Removable, OptionGroup], Field(discriminator="kind")]


class ItemModifiersOut(BaseModel):
    item: Item
    groups: list[ModifierGroup]
