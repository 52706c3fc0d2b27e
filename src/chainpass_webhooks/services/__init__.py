"""Service layer exports."""
from chainpass_webhooks.services.audit import AuditLogger, UsageRecorder
from chainpass_webhooks.services.delivery import DeliveryExecutor
from chainpass_webhooks.services.replay import ReplayService
from chainpass_webhooks.services.sandbox import WebhookTestService
from chainpass_webhooks.services.verification import SignatureVerificationService
from chainpass_webhooks.services.webhooks import WebhookService, build_envelope

__all__ = [
    "AuditLogger",
    "DeliveryExecutor",
    "ReplayService",
    "SignatureVerificationService",
    "UsageRecorder",
    "WebhookTestService",
    "WebhookService",
    "build_envelope",
]
