"""
Email service for sale receipts.
Uses Flask-Mail for SMTP integration with UTF-8 support.
"""
import logging
from flask import current_app
from flask_mail import Mail, Message
from markupsafe import escape

from stockpos.services.ticket_service import tenant_timezone
from stockpos.utils.dates import to_local
from stockpos.utils.formatters import money_ar, date_ar, time_ar, payment_method_label

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def render_sale_receipt(sale, tenant) -> dict:
    """
    Build the receipt subject and bodies for a committed sale.

    Returns:
        dict with 'subject', 'text' and 'html'
    """
    local_created = to_local(sale.created_at, tenant_timezone(tenant))
    store_name = tenant.name
    payment_label = payment_method_label(sale.payment_method)

    rows = "".join(
        f"""
            <tr>
                <td>{escape(line.product_name)}</td>
                <td align="center">{line.qty}</td>
                <td align="right">${money_ar(line.unit_price)}</td>
                <td align="right">${money_ar(line.line_total)}</td>
            </tr>"""
        for line in sale.lines
    )

    html_body = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <style>
                body {{ font-family: Arial, sans-serif; color: #333; }}
                .container {{ max-width: 600px; margin: auto; padding: 20px; }}
                .header {{ background: #007bff; color: #fff; padding: 20px; text-align: center; }}
                table {{ width: 100%; border-collapse: collapse; }}
                th, td {{ padding: 6px; border-bottom: 1px solid #eee; }}
                .total {{ font-size: 18px; font-weight: bold; text-align: right; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>{escape(store_name)}</h1>
                    <p>Comprobante de compra</p>
                </div>
                <p><strong>Ticket:</strong> {escape(sale.ticket_number)}</p>
                <p><strong>Fecha:</strong> {date_ar(local_created)} {time_ar(local_created)}</p>
                <p><strong>Método de pago:</strong> {escape(payment_label)}</p>
                <table>
                    <tr>
                        <th align="left">Producto</th>
                        <th>Cant.</th>
                        <th align="right">Precio</th>
                        <th align="right">Subtotal</th>
                    </tr>
                    {rows}
                </table>
                <p class="total">TOTAL: ${money_ar(sale.total)}</p>
                <p style="font-size: 13px; color: #666;">¡Gracias por su compra!</p>
            </div>
        </body>
        </html>
        """

    text_lines = "\n".join(
        f"{line.product_name} x{line.qty}  ${money_ar(line.line_total)}"
        for line in sale.lines
    )
    text_body = f"""
{store_name}
Comprobante de compra

Ticket: {sale.ticket_number}
Fecha: {date_ar(local_created)} {time_ar(local_created)}
Método de pago: {payment_label}

{text_lines}

TOTAL: ${money_ar(sale.total)}

¡Gracias por su compra!
"""

    return {
        'subject': f"Comprobante {sale.ticket_number} - {store_name}",
        'text': text_body,
        'html': html_body,
    }


def send_sale_receipt(sale, tenant, to_email: str = None) -> bool:
    """
    Send the receipt of a committed sale to the customer.

    Never raises: the sale is already committed and must not be affected by
    delivery problems.

    Args:
        sale: committed Sale (lines loaded)
        tenant: Tenant owning the sale
        to_email: overrides the sale's customer email

    Returns:
        True if sent (or mail disabled), False on failure or missing recipient
    """
    recipient = to_email or sale.customer_email
    if not recipient:
        logger.info(f"[EMAIL] Sale {sale.id} has no customer email, receipt skipped")
        return False

    try:
        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] Receipt for ticket {sale.ticket_number} skipped for {recipient}")
            return True

        receipt = render_sale_receipt(sale, tenant)
        msg = Message(
            subject=receipt['subject'],
            recipients=[recipient],
            body=receipt['text'],
            html=receipt['html'],
        )
        mail.send(msg)
        logger.info(f"[EMAIL] ✓ Receipt {sale.ticket_number} sent to {recipient}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Error sending receipt {sale.ticket_number}: {e}")
        return False
