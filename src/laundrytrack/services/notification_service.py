"""Customer status notifications over SMS / WhatsApp (Twilio REST API).

Delivery is best effort: a failed message is logged and reported, it never
rolls back the status change that triggered it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from ..config import NotificationConfig
from ..domain import STATUS_MESSAGES, Order
from ..errors import DeliveryError, LaundryTrackError, NotFoundError, ValidationError
from ..ids import DEFAULT_PREFIX
from ..propagation import OrderStore
from ..validation import validate_notification_fields

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

STATUS_EMOJIS = {
    "received": "📥",
    "washing": "🧺",
    "ironing": "👔",
    "ready": "✅",
    "delivered": "🎉",
}


@dataclass(frozen=True)
class NotificationRequest:
    phone: str
    customer_name: str
    order_id: str
    status: str
    status_message: str
    channel: str


def format_message(req: NotificationRequest, shop_name: str = "Smart Laundry") -> str:
    emoji = STATUS_EMOJIS.get(req.status, "📋")
    return (
        f"{emoji} {shop_name} Update\n\n"
        f"Hi {req.customer_name}!\n\n"
        f"{req.status_message}\n\n"
        f"Order ID: {req.order_id}\n\n"
        "Track your order anytime!"
    )


class NotificationService:
    def __init__(
        self,
        *,
        cfg: NotificationConfig,
        store: OrderStore,
        session: Optional[requests.Session] = None,
        order_id_prefix: str = DEFAULT_PREFIX,
        shop_name: str = "Smart Laundry",
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.session = session or requests.Session()
        self.order_id_prefix = order_id_prefix
        self.shop_name = shop_name

    def build_request(self, order: Order, channel: Optional[str] = None) -> NotificationRequest:
        return NotificationRequest(
            phone=order.phone,
            customer_name=order.customer_name,
            order_id=order.order_id,
            status=order.status,
            status_message=STATUS_MESSAGES[order.status],
            channel=channel or self.cfg.channel,
        )

    def validate(self, req: NotificationRequest) -> None:
        errors = validate_notification_fields(
            phone=req.phone,
            customer_name=req.customer_name,
            order_id=req.order_id,
            status=req.status,
            channel=req.channel,
            prefix=self.order_id_prefix,
        )
        if errors:
            raise ValidationError(errors)

    def _post(self, to: str, from_: str, body: str) -> bool:
        url = TWILIO_MESSAGES_URL.format(sid=self.cfg.twilio_account_sid)
        try:
            response = self.session.post(
                url,
                data={"To": to, "From": from_, "Body": body},
                auth=(self.cfg.twilio_account_sid, self.cfg.twilio_auth_token),
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Message to %s failed: %s", to, e)
            return False
        if not response.ok:
            logger.warning("Message to %s rejected: HTTP %s %s", to, response.status_code, response.text[:200])
        return response.ok

    async def dispatch(self, req: NotificationRequest) -> dict[str, bool]:
        """Send ``req`` on its channel(s); returns per-channel success."""
        self.validate(req)

        # the order may have been deleted since its status was written
        if await self.store.get(req.order_id) is None:
            raise NotFoundError(f"Order {req.order_id} not found.")

        if not self.cfg.has_credentials:
            raise DeliveryError("Twilio credentials not configured")

        body = format_message(req, self.shop_name)
        phone = req.phone.strip()
        logger.info("Sending %s notification for order %s", req.channel, req.order_id)

        sends = {}
        if req.channel in ("sms", "both") and self.cfg.twilio_phone_number:
            sends["sms"] = (phone, self.cfg.twilio_phone_number)
        if req.channel in ("whatsapp", "both") and self.cfg.twilio_whatsapp_number:
            sends["whatsapp"] = (f"whatsapp:{phone}", f"whatsapp:{self.cfg.twilio_whatsapp_number}")

        # one thread per channel, sent together
        sent = await asyncio.gather(
            *(asyncio.to_thread(self._post, to, from_, body) for to, from_ in sends.values())
        )
        return dict(zip(sends, sent))

    async def notify_status_change(self, order: Order) -> dict[str, bool]:
        """Status listener for OrderService; every failure is a DeliveryError."""
        try:
            results = await self.dispatch(self.build_request(order))
        except DeliveryError:
            raise
        except LaundryTrackError as e:
            # storage and lookup failures included; the status write already happened
            raise DeliveryError(f"Notification for order {order.order_id} not sent: {e}") from e
        if not results or not any(results.values()):
            raise DeliveryError(f"No channel delivered the update for order {order.order_id}.")
        return results
