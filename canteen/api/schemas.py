from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from canteen.core.money import to_cents
from canteen.services.orders import LineItem


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- auth ---

class SignupPayload(CamelModel):
    name: str = Field(min_length=1)
    student_id: str = Field(alias="studentId", min_length=1)
    password: str = Field(min_length=6)

class LoginPayload(CamelModel):
    student_id: str = Field(alias="studentId", min_length=1)
    password: str


# --- checkout ---

class CartItem(BaseModel):
    name: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    quantity: int = Field(gt=0, validation_alias=AliasChoices("quantity", "qty"))

    def to_line_item(self) -> LineItem:
        return LineItem(name=self.name, unit_price_cents=to_cents(self.price), quantity=self.quantity)

class WalletOrderPayload(BaseModel):
    items: List[CartItem]
    notes: Optional[str] = ""

class CardPaymentPayload(BaseModel):
    items: List[CartItem]
    notes: Optional[str] = ""


# --- push ---

class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str

class SubscribePayload(BaseModel):
    endpoint: str = Field(min_length=1)
    keys: SubscriptionKeys

class UnsubscribePayload(BaseModel):
    endpoint: str = Field(min_length=1)


# --- dashboard ---

class UpdateStatusPayload(CamelModel):
    display_id: int = Field(alias="displayId")
    status: str

class RejectPayload(CamelModel):
    display_id: int = Field(alias="displayId")
    reason: Optional[str] = ""

class FindUserPayload(CamelModel):
    student_id: str = Field(alias="studentId", min_length=1)

class ChargeWalletPayload(CamelModel):
    user_id: int = Field(alias="userId")
    amount: Decimal = Field(gt=0)
