"""Pre-order block emitted by the assistant after the hand-off marker.

The assistant answers a closing customer with ``VOU_GERAR_PRE_PEDIDO``
followed by a JSON object (hotel, contact, qty, unitPrice, cnpj, obs).
That block is for the operator; the customer never sees it.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional

from martin_relay.logging_config import get_logger
from martin_relay.services.completion.driver import CONTROL_MARKERS, strip_control_markers

logger = get_logger("pre_order")

DEFAULT_QTY = 40
DEFAULT_UNIT_PRICE = 20.0

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class PreOrder:
    hotel: Optional[str] = None
    contact: Optional[str] = None
    qty: int = DEFAULT_QTY
    unit_price: float = DEFAULT_UNIT_PRICE
    cnpj: Optional[str] = None
    obs: Optional[str] = None

    @property
    def total(self) -> float:
        return self.qty * self.unit_price


def _text_field(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value).strip() or None


def _number_field(data: dict, key: str, default, cast):
    try:
        return cast(data[key])
    except (KeyError, TypeError, ValueError):
        return default


def _parse_block(block: str) -> PreOrder:
    try:
        data = json.loads(block)
    except ValueError:
        logger.warning("Pre-order block is not valid JSON, using defaults")
        return PreOrder()
    if not isinstance(data, dict):
        return PreOrder()
    return PreOrder(
        hotel=_text_field(data, "hotel"),
        contact=_text_field(data, "contact"),
        qty=_number_field(data, "qty", DEFAULT_QTY, int),
        unit_price=_number_field(data, "unitPrice", DEFAULT_UNIT_PRICE, float),
        cnpj=_text_field(data, "cnpj"),
        obs=_text_field(data, "obs"),
    )


def extract_pre_order(reply: str) -> tuple[str, Optional[PreOrder]]:
    """Split an assistant reply into customer text and the pre-order, if any.

    Without a control marker the reply only loses stray markers. With one,
    the JSON block is removed from the customer text and parsed; a missing
    or broken block yields a pre-order with default quantity and price.
    """
    if not any(marker in reply for marker in CONTROL_MARKERS):
        return strip_control_markers(reply), None

    match = _JSON_BLOCK.search(reply)
    if match is None:
        return strip_control_markers(reply), PreOrder()

    customer_text = reply[: match.start()] + reply[match.end() :]
    return strip_control_markers(customer_text), _parse_block(match.group(0))
