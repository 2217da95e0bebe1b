# Outgoing mail (SMTP through fastapi-mail)

import html
import logging
from fastapi import BackgroundTasks
from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType

from config import (
    MAIL_USERNAME,
    MAIL_PASSWORD,
    MAIL_FROM,
    MAIL_PORT,
    MAIL_SERVER,
    MAIL_SUPPRESS_SEND,
    SUPPORT_EMAIL,
    OTP_EXPIRY_MINUTES,
    FRONTEND_URL,
)

logger = logging.getLogger(__name__)

mail_config = ConnectionConfig(
    MAIL_USERNAME = MAIL_USERNAME,
    MAIL_PASSWORD = MAIL_PASSWORD,
    MAIL_FROM = MAIL_FROM,
    MAIL_PORT = MAIL_PORT,
    MAIL_SERVER = MAIL_SERVER,
    MAIL_STARTTLS = True,
    MAIL_SSL_TLS = False,
    USE_CREDENTIALS = bool(MAIL_USERNAME),
    VALIDATE_CERTS = True,
    SUPPRESS_SEND = MAIL_SUPPRESS_SEND,
)

fm = FastMail(mail_config)


async def _deliver(message: MessageSchema):
    # Runs after the response is sent, a broken SMTP server must never surface to the client
    try:
        await fm.send_message(message)
        logger.info("Mail sent to %s: %s", message.recipients, message.subject)
    except Exception:
        logger.exception("Failed to send mail to %s: %s", message.recipients, message.subject)


def _queue(background_tasks: BackgroundTasks, recipient: str, subject: str, body: str, reply_to=None):
    message = MessageSchema(
        subject=subject,
        recipients=[recipient],
        body=body,
        subtype=MessageType.html,
        reply_to=reply_to or [],
    )
    background_tasks.add_task(_deliver, message)


#--------------------------------------------------------------------------------------------------------------------------------------------

# OTP mails

def send_verification_email(email: str, otp: str, background_tasks: BackgroundTasks):
    _queue(
        background_tasks,
        email,
        "Afghan Grocery - Verify your Account",
        f"""
        <h3>Welcome to Afghan Grocery!</h3>
        <p>Please verify your email address to activate your account.</p>
        <p>Your Verification Code is:</p>
        <h1 style='color: #4CAF50;'>{otp}</h1>
        <p>This code is valid for {OTP_EXPIRY_MINUTES} minutes.</p>
        """,
    )


def send_password_reset_email(email: str, otp: str, background_tasks: BackgroundTasks):
    _queue(
        background_tasks,
        email,
        "Afghan Grocery - Password Reset Code",
        f"""
        <h3>Password Reset Request</h3>
        <p>Your code for resetting your password is:</p>
        <h1 style='color: #FF4B2B;'>{otp}</h1>
        <p>This code is valid for {OTP_EXPIRY_MINUTES} minutes.</p>
        <p>If you did not request this, please ignore this email.</p>
        """,
    )


#--------------------------------------------------------------------------------------------------------------------------------------------

# Order status notifications

ORDER_STATUS_TEMPLATES = {
    "confirmed": ("Your order has been confirmed", "Your order #{order_number} has been confirmed."),
    "processing": ("Your order is processing", "Your order #{order_number} is now processing."),
    "shipped": (
        "Your order has been shipped",
        "Your order #{order_number} has been shipped. "
        "You can track it on our website under Track your order with the Order ID {order_number}.",
    ),
    "delivered": ("Your order has been delivered", "Your order #{order_number} has been delivered."),
    "cancelled": (
        "Your order has been cancelled",
        "Your order #{order_number} has been cancelled. If you have questions, please contact support.",
    ),
}


def send_order_status_email(email: str, name: str, order_number: str, new_status: str, background_tasks: BackgroundTasks, tracking_number: str = None) -> bool:
    """Queues the status mail. Returns False when the status has no template (e.g. back to pending)."""
    template = ORDER_STATUS_TEMPLATES.get(new_status)
    if not template:
        return False

    subject, line = template
    tracking = f"<p>Tracking number: <b>{tracking_number}</b></p>" if tracking_number else ""
    _queue(
        background_tasks,
        email,
        subject,
        f"""
        <p>Dear {html.escape(name or "")},</p>
        <p>{line.format(order_number=order_number)}</p>
        {tracking}
        <p><a href="{FRONTEND_URL}/orders">View your orders</a></p>
        <p>Thank you for shopping with us!</p>
        <p>Afghan Grocery Team</p>
        """,
    )
    return True


#--------------------------------------------------------------------------------------------------------------------------------------------

# Contact form

def send_contact_email(form_data: dict, background_tasks: BackgroundTasks):
    subject = form_data.get("subject") or "New message from website"
    _queue(
        background_tasks,
        SUPPORT_EMAIL,
        f"[Contact] {subject}",
        f"""
        <h3>New Customer Query</h3>
        <p><b>Name:</b> {html.escape(form_data["name"])}</p>
        <p><b>Email:</b> {html.escape(form_data["email"])}</p>
        <p><b>Phone:</b> {html.escape(form_data.get("phone") or "-")}</p>
        <hr>
        <p>{html.escape(form_data["message"])}</p>
        """,
        reply_to=[form_data["email"]],
    )
