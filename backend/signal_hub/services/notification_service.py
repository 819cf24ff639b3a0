"""
Notification Service

Sends SMS alerts when an emergency is dispatched and when a request is
accepted. Delivery goes through the Twilio REST API; when Twilio is not
configured the console sender is used so the hub keeps running.

Calls are made fire-and-forget by the coordination hub: a failure here is
logged and never affects the emergency lifecycle.
"""

import os
from typing import Optional

import aiohttp

from signal_hub.errors import CollaboratorFailure


DISPATCH_TEMPLATE = "🚑 ALERT: Ambulance dispatched for {name}. Stay safe!"
ACCEPTED_TEMPLATE = "✅ Request accepted: ambulance is on the way to {name}."


class NotificationSender:
    """Interface used by the coordination hub"""

    async def notify(self, recipient: str, patient_name: str) -> str:
        """Alert that an ambulance is dispatched for the patient"""
        return await self.send(recipient, DISPATCH_TEMPLATE.format(name=patient_name))

    async def notify_accepted(self, recipient: str, patient_name: str) -> str:
        """Alert that the request for the patient was accepted"""
        return await self.send(recipient, ACCEPTED_TEMPLATE.format(name=patient_name))

    async def send(self, recipient: str, body: str) -> str:
        raise NotImplementedError

    async def close(self):
        pass


class ConsoleNotificationSender(NotificationSender):
    """Prints messages instead of sending them"""

    def __init__(self):
        self.sent = []

    async def send(self, recipient: str, body: str) -> str:
        self.sent.append((recipient, body))
        print(f"[SMS] (console) to {recipient}: {body}")
        return f"console-{len(self.sent)}"


class TwilioSmsSender(NotificationSender):
    """
    Send SMS through the Twilio Messages API

    Usage:
        sender = TwilioSmsSender()
        await sender.initialize()
        sid = await sender.notify("+15550100", "Jane Doe")
        await sender.close()
    """

    BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: float = 10.0
    ):
        """
        Initialize the sender

        Args:
            account_sid: Twilio account SID (defaults to TWILIO_ACCOUNT_SID)
            auth_token: Twilio auth token (defaults to TWILIO_AUTH_TOKEN)
            from_number: Sending number (defaults to TWILIO_PHONE_NUMBER)
            timeout: Total request timeout in seconds
        """
        self.account_sid = account_sid or os.getenv("TWILIO_ACCOUNT_SID", "")
        self.auth_token = auth_token or os.getenv("TWILIO_AUTH_TOKEN", "")
        self.from_number = from_number or os.getenv("TWILIO_PHONE_NUMBER", "")
        self.timeout = timeout

        self._session: Optional[aiohttp.ClientSession] = None

        self.sent_count = 0
        self.error_count = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def initialize(self):
        """Initialize the HTTP session"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                auth=aiohttp.BasicAuth(self.account_sid, self.auth_token)
            )

    async def close(self):
        """Close the HTTP session"""
        if self._session and not self._session.closed:
            await self._session.close()

    async def send(self, recipient: str, body: str) -> str:
        """
        Send one SMS

        Returns:
            Twilio message SID

        Raises:
            CollaboratorFailure: not configured, HTTP error, or network error
        """
        if not self.is_configured:
            raise CollaboratorFailure("sms", "Twilio credentials are not configured")
        if not recipient:
            raise CollaboratorFailure("sms", "no recipient configured")

        await self.initialize()

        url = f"{self.BASE_URL}/Accounts/{self.account_sid}/Messages.json"
        form = {"Body": body, "From": self.from_number, "To": recipient}

        print(f"[SMS] Sending to {recipient}: \"{body}\"")

        try:
            async with self._session.post(url, data=form) as response:
                payload = await response.json(content_type=None)
                if response.status >= 400:
                    self.error_count += 1
                    message = payload.get("message") if isinstance(payload, dict) else None
                    raise CollaboratorFailure(
                        "sms", f"HTTP {response.status}: {message or 'request failed'}"
                    )
        except aiohttp.ClientError as e:
            self.error_count += 1
            raise CollaboratorFailure("sms", str(e))

        self.sent_count += 1
        sid = payload.get("sid", "") if isinstance(payload, dict) else ""
        print(f"[SMS] Sent successfully: {sid}")
        return sid


def create_notification_sender() -> NotificationSender:
    """Twilio when credentials exist in the environment, console otherwise"""
    sender = TwilioSmsSender()
    if sender.is_configured:
        return sender

    print("[INFO] Twilio not configured. SMS alerts will be printed to the console.")
    return ConsoleNotificationSender()
