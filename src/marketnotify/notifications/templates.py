"""HTML email templates, one per notification kind.

Every interpolated value is HTML-escaped: order numbers, product names and
free-text reasons originate in other services and are not trusted markup.
"""

from html import escape
from typing import Iterable

from .models import OrderItem

BRAND_NAME = "House of Spells Marketplace"

_BASE_STYLES = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { color: white; padding: 20px; text-align: center; }
    .content { padding: 20px; background: #f7fafc; }
    .footer { text-align: center; padding: 20px; color: #718096; font-size: 12px; }
    table { width: 100%; border-collapse: collapse; margin: 20px 0; }
    th, td { padding: 12px; text-align: left; border-bottom: 1px solid #ddd; }
    th { background: #e2e8f0; }
    .total { font-size: 18px; font-weight: bold; text-align: right; margin-top: 20px; }
    .tracking { background: #edf2f7; padding: 15px; border-radius: 4px; margin: 20px 0; }
    .button { display: inline-block; padding: 12px 24px; background: #4299e1; color: white; text-decoration: none; border-radius: 4px; margin: 20px 0; }
"""

# Header colours
_NEUTRAL = "#4a5568"
_BLUE = "#4299e1"
_GREEN = "#48bb78"


def _money(amount: float) -> str:
    return f"&pound;{amount:.2f}"


def _wrap(header_bg: str, header_title: str, body_html: str) -> str:
    """Wrap a rendered body in the shared layout. header_title must be escaped."""
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>{_BASE_STYLES}</style>
</head>
<body>
  <div class="container">
    <div class="header" style="background: {header_bg};">
      <h1>{header_title}</h1>
    </div>
    <div class="content">
      {body_html}
    </div>
    <div class="footer">
      <p>{BRAND_NAME}</p>
    </div>
  </div>
</body>
</html>
"""


def render_order_confirmation(order_number: str, items: Iterable[OrderItem], total: float) -> str:
    rows = "".join(
        f"<tr><td>{escape(item.name)}</td><td>{item.quantity}</td>"
        f"<td>{_money(item.price)}</td><td>{_money(item.line_total)}</td></tr>"
        for item in items
    )
    body = f"""
      <h2>Thank you for your order!</h2>
      <p>Your order <strong>{escape(order_number)}</strong> has been confirmed.</p>
      <table>
        <thead>
          <tr><th>Product</th><th>Quantity</th><th>Price</th><th>Total</th></tr>
        </thead>
        <tbody>{rows}</tbody>
      </table>
      <div class="total">Total: {_money(total)}</div>
      <p>We'll send you another email when your order ships.</p>
    """
    return _wrap(_NEUTRAL, "Order Confirmation", body)


def render_order_shipped(order_number: str, tracking_code: str) -> str:
    body = f"""
      <h2>Great news!</h2>
      <p>Your order <strong>{escape(order_number)}</strong> has been shipped.</p>
      <div class="tracking"><strong>Tracking Code:</strong> {escape(tracking_code)}</div>
      <p>You can track your order using the tracking code above.</p>
    """
    return _wrap(_BLUE, "Your Order Has Shipped!", body)


def render_order_delivered(order_number: str) -> str:
    body = f"""
      <h2>Your order has been delivered</h2>
      <p>Your order <strong>{escape(order_number)}</strong> has been successfully delivered.</p>
      <p>We hope you enjoy your purchase! If you have any questions, please don't hesitate to contact us.</p>
    """
    return _wrap(_GREEN, "Order Delivered!", body)


def render_generic(subject: str, content: str) -> str:
    """Subject becomes the header; newlines in content become <br>."""
    body = "<br>".join(escape(line) for line in content.split("\n"))
    return _wrap(_NEUTRAL, escape(subject), body)


def render_seller_invitation(seller_type_name: str, invitation_link: str, message: str | None = None) -> str:
    """Invitation to register as a seller. The link is used both as href and as text."""
    link = escape(invitation_link, quote=True)
    note = f"<p>{escape(message)}</p>" if message else ""
    body = f"""
      <h2>You've Been Invited!</h2>
      <p>You have been invited to join {BRAND_NAME} as a <strong>{escape(seller_type_name)}</strong>.</p>
      {note}
      <a href="{link}" class="button">Accept Invitation</a>
      <p>Or copy and paste this link into your browser:</p>
      <p style="word-break: break-all; color: {_BLUE};">{link}</p>
      <p>This invitation will expire in 7 days.</p>
    """
    return _wrap(_NEUTRAL, BRAND_NAME, body)
