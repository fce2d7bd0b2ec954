"""
OTP Email Templates
===================
Built-in subject/HTML/text templates and Jinja2 rendering.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from jinja2.sandbox import SandboxedEnvironment

from .config import DEFAULT_SENDER_EMAIL, DEFAULT_SENDER_NAME, EmailTemplate

DEFAULT_SUBJECT = "Your Verification Code"

DEFAULT_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Verification Code</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;
               padding: 20px; background-color: #f8f9fa; }
        .container { background-color: #ffffff; border-radius: 8px; padding: 40px; }
        .header { text-align: center; margin-bottom: 30px; }
        .logo { font-size: 24px; font-weight: bold; color: #2563eb; }
        .otp-code { background-color: #f3f4f6; border: 2px solid #e5e7eb; border-radius: 8px;
                    padding: 20px; text-align: center; margin: 30px 0;
                    font-family: 'Courier New', monospace; font-size: 32px;
                    font-weight: bold; letter-spacing: 4px; color: #1f2937; }
        .expiry { background-color: #fef3c7; border: 1px solid #f59e0b; border-radius: 6px;
                  padding: 15px; margin: 20px 0; color: #92400e; }
        .warning { background-color: #fef2f2; border: 1px solid #fecaca; border-radius: 6px;
                   padding: 15px; margin: 20px 0; color: #991b1b; }
        .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb;
                  text-align: center; font-size: 14px; color: #6b7280; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <div class="logo">{{ company_name }}</div>
            <h1>Verification Code</h1>
        </div>
        <p>Hello,</p>
        <p>You requested a verification code for your account. Here's your secure code:</p>
        <div class="otp-code">{{ otp }}</div>
        <div class="expiry">
            <strong>Important:</strong> This code will expire in {{ expires_in }}.
        </div>
        <div class="warning">
            <strong>Security Notice:</strong>
            <ul>
                <li>Never share this code with anyone</li>
                <li>Our team will never ask for this code</li>
                <li>If you didn't request this code, please ignore this email</li>
            </ul>
        </div>
        <p>If you have any questions, please contact us at
           <a href="mailto:{{ support_email }}">{{ support_email }}</a>.</p>
        <div class="footer">
            <p>This is an automated message. Please do not reply to this email.</p>
            <p>&copy; {{ company_name }}. All rights reserved.</p>
        </div>
    </div>
</body>
</html>"""

DEFAULT_TEXT = """{{ company_name }} - Verification Code

Hello,

You requested a verification code for your account. Here's your secure code:

{{ otp }}

IMPORTANT: This code will expire in {{ expires_in }}.

SECURITY NOTICE:
- Never share this code with anyone
- Our team will never ask for this code
- If you didn't request this code, please ignore this email

If you have any questions, please contact us at {{ support_email }}.

---
This is an automated message. Please do not reply to this email.
(c) {{ company_name }}. All rights reserved."""

_html_env = SandboxedEnvironment(autoescape=True)
_text_env = SandboxedEnvironment(autoescape=False)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str
    sender_email: Optional[str] = None


def format_expiry(seconds: float) -> str:
    """Human-readable expiry, e.g. ``2 minutes`` or ``45 seconds``."""
    minutes = int(seconds // 60)
    if minutes >= 1:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    whole = int(seconds)
    return f"{whole} second{'s' if whole != 1 else ''}"


def build_template_data(
    code: str,
    destination: str,
    context: str,
    expiry_seconds: float,
    company_name: Optional[str] = None,
    support_email: Optional[str] = None,
) -> Dict[str, Any]:
    expires_in = format_expiry(expiry_seconds)
    company = company_name or DEFAULT_SENDER_NAME
    support = support_email or DEFAULT_SENDER_EMAIL
    return {
        "otp": code,
        "email": destination,
        "context": context,
        "expires_in": expires_in,
        "company_name": company,
        "support_email": support,
        # camelCase aliases for templates written against the JS placeholders
        "expiresIn": expires_in,
        "companyName": company,
        "supportEmail": support,
    }


def render_template(source: str, data: Dict[str, Any], html: bool = False) -> str:
    """Substitute template variables; HTML output is autoescaped."""
    env = _html_env if html else _text_env
    return env.from_string(source).render(**data)


def render_email(
    template: Optional[EmailTemplate],
    defaults: EmailTemplate,
    data: Dict[str, Any],
) -> RenderedEmail:
    """
    Render subject, HTML and text bodies.

    Args:
        template: Caller-supplied template for this issuance (optional)
        defaults: Configured default template
        data: Template variables from ``build_template_data``

    Returns:
        RenderedEmail ready for a provider
    """
    effective = template or defaults
    subject = effective.subject or defaults.subject or DEFAULT_SUBJECT
    html = effective.html or defaults.html or DEFAULT_HTML
    text = effective.text or defaults.text or DEFAULT_TEXT

    return RenderedEmail(
        subject=render_template(subject, data),
        html=render_template(html, data, html=True),
        text=render_template(text, data),
        sender_email=effective.sender_email or defaults.sender_email,
    )
