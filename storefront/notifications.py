"""
In-app notifications and customer emails.

In-app notifications are rows in the notifications table. Emails are composed
here and handed to the email client; both are best-effort side effects that
never fail the operation that triggered them.
"""
import logging
from decimal import Decimal
from html import escape
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from . import models
from .clients import email_client
from .config import SITE_URL
from .pricing import format_amount

logger = logging.getLogger(__name__)

NT = models.NotificationType

ORDER_STATUS_MESSAGES = {
    "PENDING": (NT.ORDER_PLACED, "Order Placed Successfully",
                "Your order {number} has been placed and is awaiting confirmation."),
    "CONFIRMED": (NT.ORDER_PLACED, "Order Confirmed",
                  "Your order {number} has been confirmed and is being prepared."),
    "PROCESSING": (NT.ORDER_PLACED, "Order Being Processed",
                   "Your order {number} is now being processed."),
    "SHIPPED": (NT.ORDER_SHIPPED, "Order Shipped",
                "Your order {number} has been shipped! Track your delivery in your account."),
    "OUT_FOR_DELIVERY": (NT.ORDER_SHIPPED, "Out for Delivery",
                         "Your order {number} is out for delivery and will arrive soon!"),
    "DELIVERED": (NT.ORDER_DELIVERED, "Order Delivered",
                  "Your order {number} has been delivered. Enjoy your purchase!"),
    "CANCELLED": (NT.SYSTEM, "Order Cancelled",
                  "Your order {number} has been cancelled. Contact support for details."),
    "REFUNDED": (NT.SYSTEM, "Order Refunded",
                 "Your order {number} has been refunded."),
}

APPOINTMENT_STATUS_MESSAGES = {
    "PENDING": (NT.APPOINTMENT_CONFIRMED, "Appointment Requested",
                "Your appointment {number} for {service} has been received and is awaiting confirmation."),
    "CONFIRMED": (NT.APPOINTMENT_CONFIRMED, "Appointment Confirmed",
                  "Your appointment {number} for {service} has been confirmed."),
    "CANCELLED": (NT.SYSTEM, "Appointment Cancelled",
                  "Your appointment {number} for {service} has been cancelled."),
    "COMPLETED": (NT.SYSTEM, "Appointment Completed",
                  "Thank you for visiting! Your appointment for {service} is complete."),
}


def create_notification(db: Session, user_id: int, notification_type: str, title: str,
                        message: str, link: Optional[str] = None) -> Optional[models.Notification]:
    """
    Persist an in-app notification in its own commit.

    Returns:
        The notification, or None if it could not be stored
    """
    try:
        notification = models.Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            link=link,
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create notification for user {user_id}: {e}")
        return None


def create_order_notification(db: Session, user_id: int, order_number: str, status: str,
                              order_id: Optional[int] = None) -> Optional[models.Notification]:
    """
    Notify a customer about their order entering a status.

    Statuses without a message produce no notification.
    """
    info = ORDER_STATUS_MESSAGES.get(status)
    if info is None:
        return None
    notification_type, title, message = info
    link = f"/account/orders/{order_id}" if order_id else "/account/orders"
    return create_notification(db, user_id, notification_type.value, title,
                               message.format(number=order_number), link)


def create_appointment_notification(db: Session, user_id: int, appointment_number: str, status: str,
                                    service_name: str) -> Optional[models.Notification]:
    info = APPOINTMENT_STATUS_MESSAGES.get(status)
    if info is None:
        return None
    notification_type, title, message = info
    return create_notification(db, user_id, notification_type.value, title,
                               message.format(number=appointment_number, service=service_name),
                               "/account/appointments")


def notify_order_status(db: Session, background_tasks: BackgroundTasks, order: models.Order) -> None:
    """In-app notification plus a background status email for an order's current status."""
    create_order_notification(db, order.user_id, order.order_number, order.status, order.id)
    customer_name = order.user.full_name if order.user else "Customer"
    background_tasks.add_task(
        send_order_status_update, order.email, customer_name, order.order_number,
        order.status, order.tracking_number,
    )


def get_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 50):
    query = db.query(models.Notification).filter(models.Notification.user_id == user_id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    return query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit).all()


def mark_read(db: Session, user_id: int, notification_id: int) -> Optional[models.Notification]:
    notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id, models.Notification.user_id == user_id
    ).first()
    if notification is None:
        return None
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    count = db.query(models.Notification).filter(
        models.Notification.user_id == user_id, models.Notification.is_read.is_(False)
    ).update({models.Notification.is_read: True}, synchronize_session=False)
    db.commit()
    return count


# ---------- Emails ----------

def order_email_payload(order: models.Order, customer_name: str) -> dict:
    """
    Snapshot the data the confirmation email needs, so the email can be sent
    after the request's database session is closed.
    """
    address = order.shipping_address or {}
    address_text = ", ".join(
        part for part in (address.get("address_line"), address.get("city"), address.get("district")) if part
    )
    return {
        "order_number": order.order_number,
        "customer_name": customer_name,
        "email": order.email,
        "items": [
            {
                "name": item.product_name,
                "variant": item.variant_name,
                "quantity": item.quantity,
                "price": str(item.price),
            }
            for item in order.items
        ],
        "subtotal": str(order.subtotal),
        "discount": str(Decimal(order.discount_amount) + Decimal(order.points_discount)),
        "tax": str(order.tax_amount),
        "shipping_cost": str(order.shipping_cost),
        "total": str(order.total_amount),
        "shipping_address": address_text or "Store pickup",
        "estimated_delivery": order.estimated_delivery or "2-5 business days",
        "payment_method": order.payment_method.replace("_", " ").title(),
    }


def _item_row(item: dict) -> str:
    name = escape(item["name"])
    if item.get("variant"):
        name += f" <small>({escape(item['variant'])})</small>"
    line_total = format_amount(Decimal(item["price"]) * item["quantity"])
    return (
        f"<tr><td>{name}</td>"
        f"<td style=\"text-align:center\">{item['quantity']}</td>"
        f"<td style=\"text-align:right\">{line_total}</td></tr>"
    )


def render_order_confirmation(data: dict) -> str:
    rows = "".join(_item_row(item) for item in data["items"])
    return (
        f"<h2>Thank you for your order, {escape(data['customer_name'])}!</h2>"
        f"<p>Order <strong>{escape(data['order_number'])}</strong> has been received.</p>"
        f"<table width=\"100%\">{rows}</table>"
        f"<p>Subtotal: {format_amount(Decimal(data['subtotal']))}<br>"
        f"Discount: -{format_amount(Decimal(data['discount']))}<br>"
        f"VAT: {format_amount(Decimal(data['tax']))}<br>"
        f"Shipping: {format_amount(Decimal(data['shipping_cost']))}<br>"
        f"<strong>Total: {format_amount(Decimal(data['total']))}</strong></p>"
        f"<p>Deliver to: {escape(data['shipping_address'])}<br>"
        f"Est. Delivery: {escape(data['estimated_delivery'])}<br>"
        f"Payment: {escape(data['payment_method'])}</p>"
        f"<p><a href=\"{SITE_URL}/account/orders\">View your orders</a></p>"
    )


async def send_order_confirmation(data: dict) -> bool:
    """
    Send the order confirmation email. Runs as a background task after checkout.

    Returns:
        True if sent, False otherwise; never raises
    """
    if not data.get("email"):
        logger.warning(f"No recipient for order {data.get('order_number')}; confirmation email skipped")
        return False
    try:
        sent = await email_client.send_email(
            [data["email"]],
            f"Order Confirmed - {data['order_number']} | CHOCKY'S",
            render_order_confirmation(data),
        )
    except Exception as e:
        logger.error(f"Failed to send order confirmation for {data.get('order_number')}: {e}")
        return False
    if not sent:
        logger.warning(f"Order confirmation email for {data['order_number']} was not delivered")
    return sent


async def send_order_status_update(email: Optional[str], customer_name: str, order_number: str,
                                   status: str, tracking_number: Optional[str] = None) -> bool:
    """Send a status-change email for an order. Never raises."""
    info = ORDER_STATUS_MESSAGES.get(status)
    if not email or info is None:
        return False
    status_label = status.replace("_", " ")
    html = (
        f"<h2>Order Update</h2>"
        f"<p>Hi {escape(customer_name)}, here's an update on your order {escape(order_number)}.</p>"
        f"<p><strong>{status_label}</strong></p>"
        f"<p>{escape(info[2].format(number=order_number))}</p>"
    )
    if tracking_number:
        html += f"<p>Tracking Number: <strong>{escape(tracking_number)}</strong></p>"
    try:
        return await email_client.send_email([email], f"Order {status_label} - {order_number} | CHOCKY'S", html)
    except Exception as e:
        logger.error(f"Failed to send status email for {order_number}: {e}")
        return False


async def send_appointment_confirmation(email: Optional[str], customer_name: str, service_name: str,
                                        date_text: str, time_text: str, stylist: Optional[str] = None) -> bool:
    """Send the booking confirmation email. Never raises."""
    if not email:
        return False
    html = (
        f"<h2>Appointment Booked</h2>"
        f"<p>Hi {escape(customer_name)}, your appointment for <strong>{escape(service_name)}</strong> "
        f"is booked for {escape(date_text)} at {escape(time_text)}"
        f"{f' with {escape(stylist)}' if stylist else ''}.</p>"
    )
    try:
        return await email_client.send_email([email], f"Appointment Confirmed - {date_text} | CHOCKY'S", html)
    except Exception as e:
        logger.error(f"Failed to send appointment confirmation to {email}: {e}")
        return False
