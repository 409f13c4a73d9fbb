import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app

from audit.log_buffer import LogBuffer
from clients.stripe_client import StripeGateway
from config import Settings
from services.alerts import EmailAlertNotifier
from services.enrichment import CustomerResolver
from services.intake import FailedPaymentDispatcher
from services.ledger import AirtableRecorder

EXTENSION_KEY = "payment_monitor"


@dataclass
class MonitorServices:
    settings: Settings
    log_buffer: LogBuffer
    gateway: StripeGateway
    resolver: CustomerResolver
    recorder: AirtableRecorder
    notifier: EmailAlertNotifier
    dispatcher: FailedPaymentDispatcher
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _started_monotonic: float = field(default_factory=time.monotonic)

    def uptime(self) -> float:
        return time.monotonic() - self._started_monotonic


def build_services(settings: Settings) -> MonitorServices:
    log_buffer = LogBuffer()
    gateway = StripeGateway(settings.stripe)
    resolver = CustomerResolver(gateway, log_buffer)
    recorder = AirtableRecorder(settings.airtable, log_buffer)
    notifier = EmailAlertNotifier(settings.gmail, log_buffer)

    return MonitorServices(
        settings=settings,
        log_buffer=log_buffer,
        gateway=gateway,
        resolver=resolver,
        recorder=recorder,
        notifier=notifier,
        dispatcher=FailedPaymentDispatcher(gateway, resolver, recorder, notifier, log_buffer),
    )


def init_services(app, settings: Settings) -> MonitorServices:
    services = build_services(settings)
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> MonitorServices:
    return current_app.extensions[EXTENSION_KEY]
