"""Balance and settlement records returned by the settlements endpoint."""

from pydantic import BaseModel, Field


class Balance(BaseModel):
    """Net position of one user: positive is owed money, negative owes money."""

    user_id: str = Field(..., serialization_alias="userId")
    user_name: str = Field(..., serialization_alias="userName")
    balance: int  # Cents


class Settlement(BaseModel):
    """One proposed transfer from a debtor to a creditor."""

    settlement_id: str = Field(..., serialization_alias="settlementId")
    from_user_id: str = Field(..., serialization_alias="from")
    from_name: str = Field(..., serialization_alias="fromName")
    to_user_id: str = Field(..., serialization_alias="to")
    to_name: str = Field(..., serialization_alias="toName")
    amount_cents: int = Field(..., serialization_alias="amountCents")
    venmo_link: str = Field(..., serialization_alias="venmoLink")
    paypal_link: str = Field(..., serialization_alias="paypalLink")
    # False when the link was built from a guessed handle
    venmo_verified: bool = Field(False, serialization_alias="venmoVerified")
    paypal_verified: bool = Field(False, serialization_alias="paypalVerified")
    is_paid: bool = Field(False, serialization_alias="isPaid")
