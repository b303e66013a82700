from martin_relay.errors import DeliveryError
from martin_relay.logging_config import get_logger, mask_sender
from martin_relay.services.zapi_service import OutboundGateway

logger = get_logger("reply_dispatcher")


class ReplyDispatcher:
    """Hands a finished reply to the outbound gateway, once, without retry."""

    def __init__(self, gateway: OutboundGateway):
        self.gateway = gateway

    async def deliver(self, sender_key: str, reply_text: str) -> dict:
        try:
            result = await self.gateway.send_text(sender_key, reply_text)
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(sender_key, str(e)) from e
        logger.info(
            "Reply delivered",
            extra={"context": {"sender": mask_sender(sender_key), "chars": len(reply_text)}},
        )
        return result
