"""
HTTP Email Providers
====================
Brevo, Postmark, Mailgun and SendGrid transactional email APIs.
"""

from typing import Any, Dict, Optional, Tuple

import httpx

from .base import EmailMessage, HTTPEmailProvider


class BrevoProvider(HTTPEmailProvider):
    """Brevo (Sendinblue) transactional email API v3."""

    name = "brevo"
    base_url = "https://api.brevo.com/v3"
    verify_path = "/account"
    success_codes = (200, 201, 202)

    def __init__(self, api_key: str, **kwargs):
        """
        Args:
            api_key: Brevo API key
            **kwargs: default_from, sender_name, timeout, transport
        """
        kwargs.setdefault("sender_name", "OTP Service")
        super().__init__(**kwargs)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "api-key": self.api_key}

    def _build_request(self, message: EmailMessage) -> Tuple[str, Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "sender": {
                "email": message.from_ or self.default_from,
                "name": self.sender_name,
            },
            "to": [{"email": message.to}],
            "subject": message.subject,
        }
        if message.html:
            payload["htmlContent"] = message.html
        if message.text:
            payload["textContent"] = message.text
        return "/smtp/email", {"json": payload}


class PostmarkProvider(HTTPEmailProvider):
    """Postmark email API."""

    name = "postmark"
    base_url = "https://api.postmarkapp.com"
    verify_path = "/server"
    success_codes = (200,)

    def __init__(self, server_token: str, message_stream: str = "outbound", **kwargs):
        super().__init__(**kwargs)
        self.server_token = server_token
        self.message_stream = message_stream

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }

    def _build_request(self, message: EmailMessage) -> Tuple[str, Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "From": message.from_ or self.default_from,
            "To": message.to,
            "Subject": message.subject,
            "MessageStream": self.message_stream,
        }
        if message.html:
            payload["HtmlBody"] = message.html
        if message.text:
            payload["TextBody"] = message.text
        return "/email", {"json": payload}


class MailgunProvider(HTTPEmailProvider):
    """Mailgun messages API (form-encoded, basic auth)."""

    name = "mailgun"
    success_codes = (200,)

    def __init__(self, api_key: str, domain: str, region: str = "us", **kwargs):
        """
        Args:
            api_key: Mailgun private API key
            domain: Sending domain
            region: "us" or "eu"
        """
        super().__init__(**kwargs)
        self.api_key = api_key
        self.domain = domain
        self.base_url = (
            "https://api.eu.mailgun.net/v3" if region == "eu" else "https://api.mailgun.net/v3"
        )
        self.verify_path = f"/domains/{domain}"

    def _auth(self) -> Optional[httpx.Auth]:
        return httpx.BasicAuth("api", self.api_key)

    def _build_request(self, message: EmailMessage) -> Tuple[str, Dict[str, Any]]:
        sender = message.from_ or self.default_from
        if self.sender_name:
            sender = f"{self.sender_name} <{sender}>"
        data = {
            "from": sender,
            "to": message.to,
            "subject": message.subject,
        }
        if message.html:
            data["html"] = message.html
        if message.text:
            data["text"] = message.text
        return f"/{self.domain}/messages", {"data": data}


class SendGridProvider(HTTPEmailProvider):
    """SendGrid v3 mail send API."""

    name = "sendgrid"
    base_url = "https://api.sendgrid.com/v3"
    verify_path = "/scopes"
    success_codes = (202,)

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _build_request(self, message: EmailMessage) -> Tuple[str, Dict[str, Any]]:
        sender: Dict[str, str] = {"email": message.from_ or self.default_from}
        if self.sender_name:
            sender["name"] = self.sender_name

        content = []
        if message.text:
            content.append({"type": "text/plain", "value": message.text})
        if message.html:
            content.append({"type": "text/html", "value": message.html})

        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": sender,
            "subject": message.subject,
            "content": content,
        }
        return "/mail/send", {"json": payload}
