from typing import Optional

from audit.log_buffer import LogBuffer
from clients.stripe_client import StripeGateway
from exceptions.monitor_exceptions import MonitorError, UpstreamError
from models.failures import UNKNOWN_CUSTOMER_REF, UNKNOWN_EMAIL, CustomerRef


class CustomerResolver:
    def __init__(self, gateway: StripeGateway, log_buffer: LogBuffer):
        self._gateway = gateway
        self._log = log_buffer

    def resolve_customer(self, customer_id: Optional[str]) -> CustomerRef:
        """
        Look up the customer's email. Lookup problems are logged as a
        warning and resolve to the unknown customer, never raised.
        """
        if not customer_id:
            return UNKNOWN_CUSTOMER_REF

        try:
            customer = self._gateway.retrieve_customer(customer_id)
        except UpstreamError as exc:
            self._log.warn("Could not retrieve customer details", exc.detail)
            return UNKNOWN_CUSTOMER_REF
        except MonitorError as exc:
            self._log.warn("Could not retrieve customer details", str(exc))
            return UNKNOWN_CUSTOMER_REF

        return CustomerRef(
            email=customer.get("email") or UNKNOWN_EMAIL,
            id=customer.get("id") or customer_id,
        )
