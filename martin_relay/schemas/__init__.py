from martin_relay.schemas.webhook import HealthResponse, WebhookResponse, ZapiWebhookPayload

__all__ = ["HealthResponse", "WebhookResponse", "ZapiWebhookPayload"]
