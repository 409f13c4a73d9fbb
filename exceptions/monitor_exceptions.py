class MonitorError(Exception):
    pass


class ConfigurationError(MonitorError):
    """A capability was used without its credentials configured."""


class VerificationError(MonitorError):
    """The webhook body or its Stripe-Signature header could not be verified."""


class UpstreamError(MonitorError):
    """Stripe, Airtable or the mail relay rejected or failed a request."""

    def __init__(self, message, detail=None):
        super().__init__(message)
        self.detail = detail if detail is not None else message
