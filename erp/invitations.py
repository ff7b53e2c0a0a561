import logging
import re
import secrets
from typing import Any

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.utils import timezone

from django_aggregates.conf import get_setting
from django_aggregates.config import clean_pk
from django_aggregates.exceptions import (
    Forbidden,
    InvalidState,
    NotFound,
    StoreFailure,
)
from erp.models import Tender, TenderInvitation
from erp.notifications import EmailNotifier, Notifier, render_tender_invitation

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "inv_"
TOKEN_RE = re.compile(r"^inv_[A-Za-z0-9_-]{16,}$")


def generate_invitation_token() -> str:
    """
    Opaque token, it does not embed the tender or the engineer
    """
    return TOKEN_PREFIX + secrets.token_urlsafe(get_setting("INVITATION_TOKEN_BYTES"))


def is_valid_invitation_token(token: str) -> bool:
    return bool(token) and TOKEN_RE.match(token) is not None


def build_invitation_link(token: str) -> str:
    frontend_url = get_setting("FRONTEND_URL").rstrip("/")
    return f"{frontend_url}/tender/invitation/{token}"


class InvitationWorkflow:
    """
    Issues tender invitations to engineers and applies their acceptance.

    Invitations only move PENDING -> ACCEPTED. Acceptance is a single
    conditional UPDATE, so concurrent attempts on one token apply it once.
    """

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier or EmailNotifier()

    def issue(self, tender_id: Any, engineer_id: Any) -> TenderInvitation:
        user_model = get_user_model()
        try:
            tender_id = clean_pk(Tender, tender_id)
            engineer_id = clean_pk(user_model, engineer_id)
        except NotFound as e:
            raise NotFound("Tender or engineer not found") from e

        try:
            with transaction.atomic():
                tender = (
                    Tender.objects.select_related("client").filter(pk=tender_id).first()
                )
                engineer = user_model._default_manager.filter(pk=engineer_id).first()
                if tender is None or engineer is None:
                    raise NotFound("Tender or engineer not found")

                invitation = TenderInvitation.objects.create(
                    tender=tender,
                    engineer=engineer,
                    invitation_token=generate_invitation_token(),
                    status=TenderInvitation.Status.PENDING,
                )
                transaction.on_commit(lambda: self._notify(invitation))
        except DatabaseError as e:
            raise StoreFailure(f"Failed to issue invitation: {e}") from e

        logger.info(
            "Issued invitation %s for tender %s to engineer %s",
            invitation.pk,
            tender.pk,
            engineer.pk,
        )
        return invitation

    def _notify(self, invitation: TenderInvitation) -> None:
        engineer = invitation.engineer
        try:
            email = getattr(engineer, engineer.get_email_field_name())
            if not email:
                logger.warning(
                    "Engineer %s has no email, invitation %s was not sent",
                    engineer.pk,
                    invitation.pk,
                )
                return

            tender = invitation.tender
            subject, html_body = render_tender_invitation(
                engineer_name=engineer.get_full_name() or engineer.get_username(),
                tender=tender,
                invitation_link=build_invitation_link(invitation.invitation_token),
            )
            attachments = (
                [tender.attachment_file.name] if tender.attachment_file else None
            )
            self.notifier.send(email, subject, html_body, attachments)
        except Exception:
            # the invitation is already committed
            logger.exception("Error on sending invitation %s", invitation.pk)

    def lookup(self, token: str) -> TenderInvitation:
        if not is_valid_invitation_token(token):
            raise NotFound("Invitation not found")
        try:
            invitation = (
                TenderInvitation.objects.select_related(
                    "tender__project", "tender__client", "engineer"
                )
                .filter(invitation_token=token)
                .first()
            )
        except DatabaseError as e:
            raise StoreFailure(f"Failed to load invitation: {e}") from e

        if invitation is None:
            raise NotFound("Invitation not found")
        return invitation

    def accept(self, token: str, acting_user_id: Any) -> TenderInvitation:
        if not is_valid_invitation_token(token):
            raise NotFound("Invitation not found")

        try:
            acting_user_pk = clean_pk(get_user_model(), acting_user_id)
        except NotFound:
            # no invitation can belong to it
            acting_user_pk = None

        updated_count = 0
        try:
            with transaction.atomic():
                if acting_user_pk is not None:
                    updated_count = TenderInvitation.objects.filter(
                        invitation_token=token,
                        status=TenderInvitation.Status.PENDING,
                        engineer_id=acting_user_pk,
                    ).update(
                        status=TenderInvitation.Status.ACCEPTED,
                        accepted_at=timezone.now(),
                    )
                invitation = TenderInvitation.objects.filter(
                    invitation_token=token
                ).first()
        except DatabaseError as e:
            raise StoreFailure(f"Failed to accept invitation: {e}") from e

        if updated_count == 1:
            logger.info(
                "Invitation %s accepted by engineer %s", invitation.pk, acting_user_id
            )
            return invitation

        if invitation is None:
            raise NotFound("Invitation not found")
        if invitation.status != TenderInvitation.Status.PENDING:
            raise InvalidState("Invitation already processed")
        if invitation.engineer_id != acting_user_pk:
            raise Forbidden("Invitation belongs to another engineer")
        raise InvalidState("Invitation was not accepted")
