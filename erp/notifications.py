import logging
import os
from typing import Protocol

from django.core.files.storage import Storage, default_storage
from django.core.mail import EmailMultiAlternatives
from django.utils.html import format_html, strip_tags

from erp.models import Tender

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """
    Side-effect only message transport. Callers treat a raised exception
    as a failed delivery and never as a failed operation.
    """

    def send(
        self,
        recipient_email: str,
        subject: str,
        html_body: str,
        attachments: list[str] | None = None,
    ) -> None:
        ...


class EmailNotifier:
    def __init__(
        self,
        from_email: str | None = None,
        storage: Storage | None = None,
        connection=None,
    ):
        self.from_email = from_email
        self.storage = storage or default_storage
        self.connection = connection

    def send(
        self,
        recipient_email: str,
        subject: str,
        html_body: str,
        attachments: list[str] | None = None,
    ) -> None:
        message = EmailMultiAlternatives(
            subject=subject,
            body=strip_tags(html_body),
            from_email=self.from_email,
            to=[recipient_email],
            connection=self.connection,
        )
        message.attach_alternative(html_body, "text/html")
        for path in attachments or []:
            with self.storage.open(path, "rb") as f:
                message.attach(os.path.basename(path), f.read())
        message.send(fail_silently=False)
        logger.debug("Sent %r to %s", subject, recipient_email)


def render_tender_invitation(
    engineer_name: str, tender: Tender, invitation_link: str
) -> tuple[str, str]:
    subject = f"Tender Invitation: {tender.name}"
    html_body = format_html(
        "<p>Dear {},</p>"
        "<p>You have been invited to participate in the following tender opportunity:</p>"
        "<h3>Tender details</h3>"
        "<p><strong>Project name:</strong> {}</p>"
        "<p><strong>Reference number:</strong> {}</p>"
        "<p><strong>Client:</strong> {}</p>"
        '<p>View tender invitation: <a href="{}">{}</a></p>',
        engineer_name,
        tender.name,
        tender.reference_number or "N/A",
        tender.client.name if tender.client else "N/A",
        invitation_link,
        invitation_link,
    )
    return subject, html_body
