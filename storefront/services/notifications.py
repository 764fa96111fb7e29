"""
Best-effort email notifications to operations staff.

``notify`` never blocks and never raises. Delivery runs as a background
task, with the blocking SMTP session pushed to a worker thread, and
failures are only logged.
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional, Set

from ..config.settings import Settings

logger = logging.getLogger(__name__)

SUBJECTS = {
    "order.cod_placed": "New COD Order Placed",
    "order.online_paid": "New Online Order Paid",
    "payment.unfulfillable": "Paid Order Could Not Be Fulfilled",
}


def render_order_email(event: str, payload: Dict[str, Any]) -> EmailMessage:
    """Build the plain-text + HTML admin email for an order event."""
    subject = SUBJECTS.get(event, f"Order event: {event}")
    address = payload.get("address") or {}
    lines = payload.get("line_items") or []

    rows = [
        ("Order ID", payload.get("id", "N/A")),
        ("User ID", payload.get("user_id", "N/A")),
        ("Payment Method", payload.get("payment_method", "N/A")),
        ("Payment Status", payload.get("payment_status", "N/A")),
        ("Amount", payload.get("amount", "N/A")),
        ("Gateway Order ID", payload.get("gateway_order_ref", "N/A")),
        ("Payment ID", payload.get("gateway_payment_ref", "N/A")),
    ]
    name = f"{address.get('first_name', '')} {address.get('last_name', '')}".strip() or "N/A"
    address_rows = [
        ("Name", name),
        ("Flat No", address.get("flat_no", "N/A")),
        ("Area", address.get("area", "N/A")),
        ("City", address.get("city", "N/A")),
        ("State", address.get("state", "N/A")),
        ("Zip Code", address.get("zip", "N/A")),
        ("Country", address.get("country", "N/A")),
        ("Mobile No", address.get("mobile_no", "N/A")),
    ]

    text = "\n".join(
        [subject, ""]
        + [f"{label}: {value}" for label, value in rows + address_rows]
        + [""]
        + [
            f"- {item.get('product_name') or item.get('product_id')} x{item.get('quantity')} "
            f"(size {item.get('size')})"
            for item in lines
        ]
    )
    html = (
        f"<h2>{subject}</h2>"
        + "".join(f"<p><strong>{label}:</strong> {value}</p>" for label, value in rows)
        + "<h3>Address Details</h3>"
        + "".join(f"<p><strong>{label}:</strong> {value}</p>" for label, value in address_rows)
        + "<h3>Product Details</h3>"
        + "<hr/>".join(
            f"<p>Product ID: {item.get('product_id')}<br/>Name: {item.get('product_name') or 'N/A'}<br/>"
            f"Price: {item.get('unit_price') or 'N/A'}<br/>Quantity: {item.get('quantity')}<br/>"
            f"Size: {item.get('size')}</p>"
            for item in lines
        )
    )

    message = EmailMessage()
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


class EmailNotifier:
    """Notification dispatcher backed by SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 465,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "orders@localhost",
        recipient: str = "",
        timeout: float = 10.0,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.recipient = recipient
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotifier":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
            recipient=settings.admin_email,
            timeout=settings.notification_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.smtp_host and self.recipient)

    def notify(self, event: str, payload: Dict[str, Any]) -> None:
        """Schedule delivery and return immediately."""
        try:
            task = asyncio.get_running_loop().create_task(self.send(event, payload))
        except RuntimeError as e:
            logger.warning(f"Could not schedule notification {event}: {e}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, event: str, payload: Dict[str, Any]) -> bool:
        """Deliver one notification. Returns False instead of raising on failure."""
        if not self.enabled:
            logger.info(f"Email notifications disabled, skipping {event} for order {payload.get('id')}")
            return False
        try:
            message = render_order_email(event, payload)
            message["From"] = self.sender
            message["To"] = self.recipient
            await asyncio.to_thread(self._deliver, message)
            logger.info(f"📧 Sent {event} notification for order {payload.get('id')}")
            return True
        except Exception as e:
            logger.warning(f"⚠️  Failed to send {event} notification for order {payload.get('id')}: {e}")
            return False

    def _deliver(self, message: EmailMessage) -> None:
        smtp_class = smtplib.SMTP_SSL if self.use_tls else smtplib.SMTP
        with smtp_class(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight notifications, e.g. at shutdown."""
        if not self._pending:
            return
        await asyncio.wait(set(self._pending), timeout=timeout)
