import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import TYPE_CHECKING

from clinic.core.config import settings
from clinic.models.appointment import NotificationKind

if TYPE_CHECKING:
    from clinic.services.notification_service import AppointmentNotice

logger = logging.getLogger(__name__)

_HEADINGS = {
    NotificationKind.CREATION: ("Appointment Confirmed", "your appointment is booked."),
    NotificationKind.UPDATE: ("Appointment Rescheduled", "your appointment has been moved."),
    NotificationKind.CANCELLATION: ("Appointment Cancelled", "your appointment has been cancelled."),
    NotificationKind.REMINDER: ("Appointment Reminder", "this is a reminder of your upcoming appointment."),
}


def _send_email_sync(to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send to %s", to_email)
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def build_appointment_html(notice: "AppointmentNotice") -> str:
    title, lead = _HEADINGS[notice.kind]
    date_str = notice.start.strftime("%A, %B %d, %Y")
    time_str = f"{notice.start.strftime('%H:%M')} – {notice.end.strftime('%H:%M')}"
    logo_html = ""
    if settings.email_logo_url:
        logo_html = f'<img src="{settings.email_logo_url}" alt="{escape(settings.site_name)}" width="120" style="display:block;margin-bottom:24px;" />'
    reason_html = ""
    if notice.kind == NotificationKind.CANCELLATION and notice.cancellation_reason:
        reason_html = f'<p style="margin:0 0 16px 0;color:#6b7280;font-size:14px;"><strong>Reason:</strong> {escape(notice.cancellation_reason)}</p>'
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{title}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;margin:40px auto;background:#ffffff;border-radius:12px;">
    <tr>
      <td style="padding:32px;">
        {logo_html}
        <h1 style="margin:0 0 8px 0;font-size:22px;color:#111827;">{title}</h1>
        <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">Hi {escape(notice.patient_name or 'there')}, {lead}</p>
        <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{date_str}</p>
        <p style="margin:4px 0 16px 0;font-size:16px;color:#111827;">{time_str}</p>
        <p style="margin:0 0 4px 0;color:#374151;">Dentist: Dr. {escape(notice.dentist_name)}</p>
        <p style="margin:0 0 16px 0;color:#374151;">Treatment: {escape(notice.treatment_name)}</p>
        {reason_html}
        <p style="margin:0;font-size:14px;color:#374151;">If you need to reschedule or cancel, please contact us.</p>
      </td>
    </tr>
    <tr>
      <td style="padding:24px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
        <p style="margin:0 0 4px 0;font-size:13px;font-weight:600;color:#111827;">{escape(settings.site_name)}</p>
        <p style="margin:0;font-size:13px;color:#6b7280;">{escape(settings.contact_email)} &nbsp;·&nbsp; {escape(settings.contact_phone)}<br>{escape(settings.contact_address)}</p>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_appointment_email(notice: "AppointmentNotice") -> None:
    """Compose and send the patient email for ``notice`` (call from background task)."""
    if not notice.patient_email:
        logger.info("Patient of appointment %s has no email, skipping %s notice", notice.appointment_id, notice.kind.value)
        return
    title, _ = _HEADINGS[notice.kind]
    subject = f"{settings.site_name} – {title}"
    _send_email_sync(notice.patient_email, subject, build_appointment_html(notice))
