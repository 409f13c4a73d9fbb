from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

UNKNOWN_EMAIL = "unknown@example.com"
UNKNOWN_CUSTOMER = "unknown"
UNKNOWN_FAILURE_CODE = "unknown"
NO_FAILURE_MESSAGE = "No message provided"


@dataclass(frozen=True)
class CustomerRef:
    email: str
    id: str


UNKNOWN_CUSTOMER_REF = CustomerRef(email=UNKNOWN_EMAIL, id=UNKNOWN_CUSTOMER)


@dataclass(frozen=True)
class PaymentIntentView:
    """The fields of a Stripe PaymentIntent the monitor reads."""

    id: str
    amount: int
    currency: str
    customer_id: Optional[str] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PaymentIntentView":
        if not isinstance(data, Mapping):
            raise ValueError("payment intent must be an object")

        missing = [key for key in ("id", "amount", "currency") if data.get(key) is None]
        if missing:
            raise ValueError(f"payment intent missing fields: {', '.join(missing)}")

        # Customer may be a plain id or an expanded customer object
        customer = data.get("customer")
        if isinstance(customer, Mapping):
            customer = customer.get("id")

        last_error = data.get("last_payment_error")
        if not isinstance(last_error, Mapping):
            last_error = {}

        return cls(
            id=str(data["id"]),
            amount=int(data["amount"]),
            currency=str(data["currency"]),
            customer_id=customer or None,
            failure_code=last_error.get("code") or None,
            failure_message=last_error.get("message") or None,
        )


@dataclass(frozen=True)
class FailureEvent:
    payment_id: str
    customer_email: str
    customer_id: str
    amount_minor_units: int
    currency: str
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None

    @classmethod
    def from_payment_intent(cls, intent: PaymentIntentView, customer: CustomerRef) -> "FailureEvent":
        return cls(
            payment_id=intent.id,
            customer_email=customer.email,
            customer_id=customer.id,
            amount_minor_units=intent.amount,
            currency=intent.currency,
            failure_code=intent.failure_code,
            failure_message=intent.failure_message,
        )

    @property
    def amount(self) -> Decimal:
        # Stripe amounts are integers in the smallest currency unit
        return Decimal(self.amount_minor_units) / 100

    @property
    def display_amount(self) -> str:
        return f"{self.amount:.2f}"

    @property
    def currency_code(self) -> str:
        return self.currency.upper()

    @property
    def failure_code_label(self) -> str:
        return self.failure_code or UNKNOWN_FAILURE_CODE

    @property
    def failure_message_label(self) -> str:
        return self.failure_message or NO_FAILURE_MESSAGE
