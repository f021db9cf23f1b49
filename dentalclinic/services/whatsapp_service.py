# dentalclinic/services/whatsapp_service.py - outbound WhatsApp gateway

import re
import asyncio
import logging
from datetime import datetime
from typing import Optional, Dict, Any

import httpx
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException

from ..config import get_settings
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: Optional[str], country_code: Optional[str] = None) -> str:
    """Return the digits-only international form of ``phone``.

    A leading "+" and any formatting characters are dropped and the country
    code is prefixed when absent. Normalising twice gives the same result.
    """
    if country_code is None:
        country_code = get_settings().default_country_code
    digits = _NON_DIGITS.sub("", (phone or "").strip())
    if not digits:
        raise ValidationError("Patient phone number not provided")
    if not digits.startswith(country_code):
        digits = country_code + digits
    return digits


class WhatsAppService:
    """Sends rendered text to the configured gateway.

    Twilio is used when its credentials are configured, otherwise the n8n
    webhook, otherwise sends are simulated and only logged.
    """

    def __init__(self):
        settings = get_settings()
        self.from_number = settings.twilio_whatsapp_number
        self.webhook_url = settings.n8n_webhook_url
        self.timeout = settings.gateway_timeout_seconds

        if settings.twilio_enabled:
            self.client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
            self.backend = "twilio"
            logger.info("Twilio WhatsApp gateway enabled")
        elif settings.webhook_enabled:
            self.client = None
            self.backend = "webhook"
            logger.info("n8n webhook WhatsApp gateway enabled")
        else:
            self.client = None
            self.backend = "simulated"
            logger.warning("WhatsApp gateway not configured - sends will be simulated")

    @property
    def enabled(self) -> bool:
        return self.backend != "simulated"

    async def send_message(self, phone_number: str, body: str) -> Dict[str, Any]:
        """Send a text message. ``phone_number`` must already be normalised.

        Never raises for gateway failures; the result dict carries ``success``
        and either ``message_id`` or ``error``.
        """
        if self.backend == "twilio":
            return await self._send_twilio(phone_number, body)
        if self.backend == "webhook":
            return await self._send_webhook(phone_number, body)

        logger.info(f"[SIMULATED] WhatsApp to {phone_number}")
        logger.debug(f"[SIMULATED] Body: {body}")
        return {"success": True, "message_id": "sim_" + str(datetime.now().timestamp())}

    async def _send_twilio(self, phone_number: str, body: str) -> Dict[str, Any]:
        to_number = f"whatsapp:+{phone_number}"
        from_number = self.from_number if self.from_number.startswith("whatsapp:") else f"whatsapp:{self.from_number}"
        try:
            # The Twilio client is blocking
            sent_message = await asyncio.to_thread(
                self.client.messages.create, from_=from_number, to=to_number, body=body
            )
            logger.info(f"WhatsApp sent via Twilio to {to_number}: {sent_message.sid}")
            return {"success": True, "message_id": sent_message.sid}
        except TwilioRestException as e:
            logger.error(f"Twilio API Error sending to {to_number}: {e}")
            return {"success": False, "error": f"Twilio Error: {e.status} - {e.msg}"}
        except Exception as e:
            logger.error(f"General Error sending WhatsApp message to {to_number}: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

    async def _send_webhook(self, phone_number: str, body: str) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json={"phone": phone_number, "message": body})
        except httpx.HTTPError as e:
            logger.error(f"Error calling n8n webhook for {phone_number}: {e}")
            return {"success": False, "error": f"Webhook error: {e}"}

        if response.is_error:
            logger.error(f"n8n webhook rejected message for {phone_number}: HTTP {response.status_code}")
            return {"success": False, "error": f"Webhook returned HTTP {response.status_code}"}

        message_id = None
        try:
            payload = response.json()
            if isinstance(payload, dict):
                message_id = payload.get("messageId") or payload.get("id")
        except ValueError:
            logger.debug(f"n8n webhook response for {phone_number} was not JSON")
        logger.info(f"WhatsApp sent via n8n webhook to {phone_number}")
        return {"success": True, "message_id": message_id or f"n8n_{datetime.now().timestamp()}"}


whatsapp_service = WhatsAppService()
