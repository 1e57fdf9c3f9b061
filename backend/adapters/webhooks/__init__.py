"""Outbound customer webhooks."""

from .dispatcher import WebhookTarget, deliver_event, load_webhook_targets, sign_payload

__all__ = ["WebhookTarget", "deliver_event", "load_webhook_targets", "sign_payload"]
