"""
Email service for sending transactional emails using Resend
"""
import html
import logging
import re
from typing import Optional, List, Dict, Any

import resend

from app.config import settings

logger = logging.getLogger(__name__)


_EMAIL_STYLE = """
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: {color}; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
        .content {{ padding: 20px; background-color: #f9f9f9; }}
        .details {{ background-color: #EEF2FF; border-left: 4px solid {color}; padding: 15px; margin: 20px 0; }}
        .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
"""


class EmailService:
    """Email service for sending transactional emails via Resend"""

    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        if api_key:
            resend.api_key = api_key
            self.is_configured = True
        else:
            self.is_configured = False
            logger.warning("Resend API key not configured. Email sending disabled.")

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
        reply_to: Optional[str] = None,
        cc: Optional[List[str]] = None,
    ) -> bool:
        """
        Send email using Resend

        Returns:
            True if email sent successfully, False otherwise. Never raises.
        """
        if not self.is_configured:
            logger.warning(f"Email not sent to {to_email}: Resend not configured")
            return False

        params: Dict[str, Any] = {
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
            "to": [to_email],
            "subject": subject,
            "html": html_body,
            "text": text_body or self._html_to_text(html_body),
        }
        if reply_to:
            params["reply_to"] = reply_to
        if cc:
            params["cc"] = cc

        try:
            response = resend.Emails.send(params)
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent successfully to {to_email}. Message ID: {message_id}")
        return True

    @staticmethod
    def _html_to_text(body: str) -> str:
        """Convert HTML to plain text (basic implementation)"""
        text = re.sub(r'<(style|head)[^>]*>.*?</\1>', '', body, flags=re.S | re.I)
        text = re.sub(r'<[^>]+>', '', text)
        text = html.unescape(text)
        return re.sub(r'\n\s*\n+', '\n\n', text).strip()

    @staticmethod
    def _render(title: str, color: str, greeting: str, paragraphs: List[str], details: Dict[str, Any]) -> str:
        rows = "".join(
            f"<p><strong>{html.escape(str(label))}:</strong> {html.escape(str(value))}</p>"
            for label, value in details.items()
        )
        body = "".join(f"<p>{p}</p>" for p in paragraphs)
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>{_EMAIL_STYLE.format(color=color)}</style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{html.escape(title)}</h1></div>
        <div class="content">
            <h2>{html.escape(greeting)}</h2>
            {body}
            <div class="details">{rows}</div>
        </div>
        <div class="footer"><p>{html.escape(settings.EMAIL_FROM_NAME)}</p></div>
    </div>
</body>
</html>
"""

    def send_session_confirmation_email(self, data: Dict[str, Any]) -> bool:
        """
        Booking received - sent to the client with the consultant copied

        ``data`` keys: session_id, session_title, session_type, client_name,
        client_email, consultant_name, consultant_email, session_date,
        session_time, amount, currency, meeting_platform
        """
        details = {
            "Session": data["session_title"],
            "Consultant": data["consultant_name"],
            "Date": data["session_date"],
            "Time": data["session_time"],
            "Amount": f"{data['currency']} {float(data['amount']):.2f}",
            "Platform": data.get("meeting_platform", "Online"),
            "Booking reference": data["session_id"],
        }
        html_body = self._render(
            title="Session Booked",
            color="#3B82F6",
            greeting=f"Dear {data['client_name']},",
            paragraphs=[
                "Thank you for booking a session. Your booking is pending payment.",
                "Complete payment to confirm your session. Meeting details will follow once payment is received.",
            ],
            details=details,
        )
        return self.send_email(
            to_email=data["client_email"],
            subject=f"Session booked with {data['consultant_name']}",
            html_body=html_body,
            reply_to=data.get("consultant_email"),
            cc=[data["consultant_email"]] if data.get("consultant_email") else None,
        )

    def send_payment_confirmation_email(self, data: Dict[str, Any]) -> bool:
        """
        Payment received - sent to the client with the consultant copied

        ``data`` keys: client_name, client_email, consultant_name,
        consultant_email, amount, currency, transaction_id, payment_method,
        session_title, session_date, meeting_link
        """
        details = {
            "Session": data["session_title"],
            "Date": data["session_date"],
            "Amount paid": f"{data['currency']} {float(data['amount']):.2f}",
            "Payment method": data.get("payment_method") or "Online",
            "Transaction": data["transaction_id"],
        }
        if data.get("meeting_link"):
            details["Meeting link"] = data["meeting_link"]
        html_body = self._render(
            title="Payment Received",
            color="#10B981",
            greeting=f"Dear {data['client_name']},",
            paragraphs=[f"Your payment for the session with {html.escape(data['consultant_name'])} is confirmed."],
            details=details,
        )
        return self.send_email(
            to_email=data["client_email"],
            subject="Payment confirmed - your session is booked",
            html_body=html_body,
            cc=[data["consultant_email"]] if data.get("consultant_email") else None,
        )

    def send_refund_notification_email(self, data: Dict[str, Any]) -> bool:
        """
        Refund processed - sent to the client with the consultant copied

        ``data`` keys: client_name, client_email, consultant_name,
        consultant_email, amount, currency, session_title, refund_reason,
        transaction_id
        """
        details = {
            "Session": data["session_title"],
            "Refund amount": f"{data['currency']} {float(data['amount']):.2f}",
            "Reason": data.get("refund_reason") or "Session cancelled",
            "Transaction": data.get("transaction_id") or "N/A",
        }
        html_body = self._render(
            title="Refund Processed",
            color="#F59E0B",
            greeting=f"Dear {data['client_name']},",
            paragraphs=[
                f"Your refund for the session with {html.escape(data['consultant_name'])} has been processed.",
                "It can take 5-7 business days to reflect in your account.",
            ],
            details=details,
        )
        return self.send_email(
            to_email=data["client_email"],
            subject="Refund processed",
            html_body=html_body,
            cc=[data["consultant_email"]] if data.get("consultant_email") else None,
        )
