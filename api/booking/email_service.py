import logging

import sib_api_v3_sdk
from django.conf import settings
from sib_api_v3_sdk.rest import ApiException

logger = logging.getLogger(__name__)


class Email:

    def format_date(self, value):
        if not value:
            return "N/A"
        # "23 July 2025, 10:00"
        return f"{value.day} {value.strftime('%B %Y, %H:%M')}"

    def __init__(self):
        self.configuration = sib_api_v3_sdk.Configuration()
        self.configuration.api_key['api-key'] = settings.BREVO_API_KEY

    def _send_email_via_brevo(self, subject, html_content, recipient_list, sender_name=None, sender_email=None):
        """
        Internal method to send email using Brevo API.
        Returns the API response, or None when nothing was sent.
        """
        if not settings.BREVO_API_KEY:
            logger.info("BREVO_API_KEY not set, skipping email %r to %s", subject, recipient_list)
            return None

        api_instance = sib_api_v3_sdk.TransactionalEmailsApi(
            sib_api_v3_sdk.ApiClient(self.configuration)
        )

        sender = {
            "name": sender_name or settings.DEFAULT_FROM_NAME,
            "email": sender_email or settings.DEFAULT_FROM_EMAIL,
        }
        to = [{"email": email} for email in recipient_list]

        send_smtp_email = sib_api_v3_sdk.SendSmtpEmail(
            sender=sender,
            to=to,
            html_content=html_content,
            subject=subject
        )

        try:
            return api_instance.send_transac_email(send_smtp_email)
        except ApiException as e:
            logger.error("Brevo send_transac_email failed for %r: %s", subject, e)
            return None

    def _booking_rows(self, booking):
        vehicle = booking.vehicle
        rows = [
            ("Booking Reference", booking.id),
            ("Vehicle", f"{vehicle.year} {vehicle.make} {vehicle.model}"),
            ("License Plate", vehicle.license_plate),
            ("Pickup", f"{self.format_date(booking.start_date)} – {booking.pickup_location}"),
            ("Return", f"{self.format_date(booking.end_date)} – {booking.dropoff_location}"),
            ("Total Amount", f"${booking.total_amount}"),
        ]
        return "\n".join(
            f"<tr><td><strong>{label}:</strong></td><td>{value}</td></tr>" for label, value in rows
        )

    def send_booking_confirmation_email(self, booking):
        """Sent once the payment for a booking has succeeded."""
        user = booking.user
        subject = f"Booking Confirmed – Reference #{booking.id}"

        html_content = f"""
        <html>
            <body>
                <p>Dear {user.first_name or 'Valued Customer'} {user.last_name},</p>

                <p>Thank you for your payment. Your reservation with <strong>{settings.DEFAULT_FROM_NAME}</strong> is confirmed.</p>

                <h3>Booking Details</h3>
                <table style="border-collapse: collapse; width: 100%;">
                    {self._booking_rows(booking)}
                </table>

                <p>You can review your booking at any time in your
                <a href="{settings.BASE_URL_FRONTEND}/dashboard/bookings/{booking.id}">dashboard</a>.</p>

                <p>Best regards,<br>
                <strong>{settings.DEFAULT_FROM_NAME}</strong></p>
            </body>
        </html>
        """

        return self._send_email_via_brevo(
            subject=subject,
            html_content=html_content.strip(),
            recipient_list=[user.email]
        )

    def send_booking_cancellation_email(self, booking):
        """Send booking cancellation confirmation email via Brevo"""
        user = booking.user
        subject = f"Booking Cancellation Confirmation – Reference #{booking.id}"

        html_content = f"""
        <html>
            <body>
                <p>Dear {user.first_name or 'Valued Customer'} {user.last_name},</p>

                <p>We confirm that your reservation with <strong>{settings.DEFAULT_FROM_NAME}</strong> has been cancelled.</p>

                <h3>Cancelled Booking Details</h3>
                <table style="border-collapse: collapse; width: 100%;">
                    {self._booking_rows(booking)}
                </table>

                <p>If a payment was made, any refund will be processed to your original payment method.</p>

                <p>Best regards,<br>
                <strong>{settings.DEFAULT_FROM_NAME}</strong></p>
            </body>
        </html>
        """

        return self._send_email_via_brevo(
            subject=subject,
            html_content=html_content.strip(),
            recipient_list=[user.email]
        )

    def send_admin_booking_cancellation_email(self, booking):
        """Notify the admin mailbox of a cancelled booking"""
        user = booking.user
        subject = f"Admin Notification: Booking Cancelled – Ref #{booking.id}"

        html_content = f"""
        <html>
            <body>
                <p>The following reservation has been <strong>cancelled</strong>.</p>

                <table style="border-collapse: collapse; width: 100%;">
                    <tr><td><strong>Customer:</strong></td><td>{user.first_name} {user.last_name}</td></tr>
                    <tr><td><strong>Email:</strong></td><td>{user.email}</td></tr>
                    <tr><td><strong>Phone:</strong></td><td>{user.phone or 'N/A'}</td></tr>
                    {self._booking_rows(booking)}
                </table>
            </body>
        </html>
        """

        return self._send_email_via_brevo(
            subject=subject,
            html_content=html_content.strip(),
            recipient_list=[settings.ADMIN_EMAIL]
        )

    def send_invoice_email(self, invoice):
        customer = invoice.customer
        subject = f"Invoice {invoice.invoice_number} from {settings.DEFAULT_FROM_NAME}"

        items = "\n".join(
            f"<tr><td>{item.get('description', '')}</td><td>{item.get('quantity', '')}</td>"
            f"<td>${item.get('unit_price', '')}</td><td>${item.get('amount', '')}</td></tr>"
            for item in invoice.line_items
        )

        html_content = f"""
        <html>
            <body>
                <p>Dear {customer.first_name or 'Valued Customer'} {customer.last_name},</p>

                <p>Please find your invoice <strong>{invoice.invoice_number}</strong> below.</p>

                <table style="border-collapse: collapse; width: 100%;">
                    <tr><th align="left">Description</th><th align="left">Qty</th><th align="left">Unit Price</th><th align="left">Amount</th></tr>
                    {items}
                </table>

                <table style="border-collapse: collapse; margin-top: 12px;">
                    <tr><td><strong>Subtotal:</strong></td><td>${invoice.subtotal}</td></tr>
                    <tr><td><strong>Tax:</strong></td><td>${invoice.tax_amount}</td></tr>
                    <tr><td><strong>Discount:</strong></td><td>${invoice.discount_amount}</td></tr>
                    <tr><td><strong>Total Due:</strong></td><td>${invoice.total_amount}</td></tr>
                    <tr><td><strong>Due Date:</strong></td><td>{self.format_date(invoice.due_date)}</td></tr>
                </table>

                <p>Best regards,<br>
                <strong>{settings.DEFAULT_FROM_NAME}</strong></p>
            </body>
        </html>
        """

        return self._send_email_via_brevo(
            subject=subject,
            html_content=html_content.strip(),
            recipient_list=[customer.email]
        )

    def send_password_reset_email(self, user, token):
        reset_link = f"{settings.BASE_URL_FRONTEND}/reset-password?token={token}"
        subject = "Reset your password"

        html_content = f"""
        <html>
            <body>
                <p>Hello {user.first_name or ''},</p>

                <p>We received a request to reset your password. The link below is valid for
                {settings.PASSWORD_RESET_TTL_HOURS} hour(s).</p>

                <p><a href="{reset_link}">Reset password</a></p>

                <p>If you did not request this, you can ignore this email.</p>
            </body>
        </html>
        """

        return self._send_email_via_brevo(
            subject=subject,
            html_content=html_content.strip(),
            recipient_list=[user.email]
        )
