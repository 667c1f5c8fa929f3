# Overview: Minimal HTML bodies for customer e-mails.

from __future__ import annotations

from html import escape


def _items(order) -> str:
    rows = []
    for line in order.lines:
        name = line.product.name if line.product else f"Product {line.product_id}"
        rows.append(f"<li>{escape(name)} x{line.quantity}</li>")
    return "".join(rows)


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def order_confirmation(order, customer, base_url: str) -> tuple[str, str]:
    subject = f"Order Confirmed - {order.order_number}"
    body = (
        f"<h2>Hi {escape(customer.name)}!</h2>"
        f"<p>Your order <strong>{escape(order.order_number)}</strong> is confirmed.</p>"
        f"<ul>{_items(order)}</ul>"
        f"<p>Total: {_money(order.total_cents)}</p>"
        f'<p><a href="{escape(base_url)}/orders/{order.id}">View order</a></p>'
    )
    return subject, body


def return_reminder(order, customer, days_left: int, base_url: str) -> tuple[str, str]:
    subject = f"Return Reminder - Order {order.order_number}"
    plural = "s" if days_left != 1 else ""
    body = (
        f"<h2>Return Reminder</h2>"
        f"<p>Hi {escape(customer.name)},</p>"
        f"<p>Your rental is due in <strong>{days_left} day{plural}</strong> "
        f"({order.rental_end:%Y-%m-%d}).</p>"
        f"<ul>{_items(order)}</ul>"
        f"<p>Late returns incur a fee of 10% of the daily rental rate per day.</p>"
        f'<p><a href="{escape(base_url)}/orders/{order.id}">View order</a></p>'
    )
    return subject, body


def overdue_alert(order, customer, late_days: int, late_fee_cents: int, base_url: str) -> tuple[str, str]:
    subject = f"URGENT: Order {order.order_number} is Overdue"
    plural = "s" if late_days != 1 else ""
    body = (
        f"<h2>Your rental is overdue</h2>"
        f"<p>Hi {escape(customer.name)},</p>"
        f"<p>Order <strong>{escape(order.order_number)}</strong> is "
        f"<strong>{late_days} day{plural} overdue</strong>.</p>"
        f"<p>Current late fee: {_money(late_fee_cents)}</p>"
        f"<ul>{_items(order)}</ul>"
        f'<p><a href="{escape(base_url)}/orders/{order.id}">View order and return</a></p>'
    )
    return subject, body
