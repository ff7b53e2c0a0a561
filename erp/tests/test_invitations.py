import pytest
from django.contrib.auth.models import User
from django.core.files.base import ContentFile
from django.core.files.storage import FileSystemStorage
from django.db import DatabaseError

from django_aggregates.exceptions import (
    Forbidden,
    InvalidState,
    NotFound,
    StoreFailure,
)
from erp.invitations import (
    InvitationWorkflow,
    build_invitation_link,
    generate_invitation_token,
    is_valid_invitation_token,
)
from erp.models import TenderInvitation
from erp.notifications import EmailNotifier
from erp.tests.factories import (
    ClientFactory,
    TenderFactory,
    TenderInvitationFactory,
    UserFactory,
)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, recipient_email, subject, html_body, attachments=None):
        self.sent.append((recipient_email, subject, html_body, attachments))


class BrokenNotifier:
    def send(self, recipient_email, subject, html_body, attachments=None):
        raise ConnectionRefusedError("SMTP server is down")


def test_generated_tokens_are_opaque():
    tokens = {generate_invitation_token() for _ in range(100)}

    assert len(tokens) == 100
    for token in tokens:
        assert is_valid_invitation_token(token)
        assert len(token) >= 32


@pytest.mark.parametrize(
    "token",
    [
        "",
        "inv_",
        "inv_short",
        "invitation_abcdefghijklmnopqrstuv",
        "inv_abc def ghi jkl mno",
    ],
)
def test_invalid_tokens(token):
    assert not is_valid_invitation_token(token)


def test_build_invitation_link(settings):
    settings.AGGREGATES = {"FRONTEND_URL": "https://erp.example.com/"}

    assert (
        build_invitation_link("inv_abc")
        == "https://erp.example.com/tender/invitation/inv_abc"
    )


@pytest.mark.django_db
def test_issue(django_capture_on_commit_callbacks):
    notifier = RecordingNotifier()
    tender = TenderFactory(name="Tower B", client=ClientFactory(name="Acme"))
    engineer = UserFactory(first_name="Ada", last_name="Lovelace")

    with django_capture_on_commit_callbacks(execute=True):
        invitation = InvitationWorkflow(notifier=notifier).issue(tender.id, engineer.id)

    invitation.refresh_from_db()
    assert invitation.status == TenderInvitation.Status.PENDING
    assert invitation.accepted_at is None
    assert invitation.tender_id == tender.id
    assert invitation.engineer_id == engineer.id
    token = invitation.invitation_token
    assert not token.startswith(f"inv_{tender.id}_{engineer.id}_")
    assert is_valid_invitation_token(invitation.invitation_token)

    assert len(notifier.sent) == 1
    recipient, subject, html_body, attachments = notifier.sent[0]
    assert recipient == engineer.email
    assert subject == "Tender Invitation: Tower B"
    assert "Ada Lovelace" in html_body
    assert "Acme" in html_body
    assert build_invitation_link(invitation.invitation_token) in html_body
    assert attachments is None


@pytest.mark.django_db
def test_issue_sends_email(mailoutbox, django_capture_on_commit_callbacks, tmp_path):
    storage = FileSystemStorage(location=tmp_path)
    tender = TenderFactory(
        attachment_file=storage.save("tenders/scope.pdf", ContentFile(b"%PDF-1.4"))
    )
    engineer = UserFactory()

    with django_capture_on_commit_callbacks(execute=True):
        invitation = InvitationWorkflow(notifier=EmailNotifier(storage=storage)).issue(
            tender.id, engineer.id
        )

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.to == [engineer.email]
    assert message.subject == f"Tender Invitation: {tender.name}"
    assert invitation.invitation_token in message.body
    assert message.alternatives[0][1] == "text/html"
    assert message.attachments[0][0] == "scope.pdf"
    assert message.attachments[0][1] == b"%PDF-1.4"


@pytest.mark.django_db
def test_issue_notification_only_after_commit(django_capture_on_commit_callbacks):
    notifier = RecordingNotifier()

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        InvitationWorkflow(notifier=notifier).issue(
            TenderFactory().id, UserFactory().id
        )

    assert len(callbacks) == 1
    assert notifier.sent == []


@pytest.mark.django_db
def test_issue_notification_failure_keeps_invitation(django_capture_on_commit_callbacks):
    tender = TenderFactory()
    engineer = UserFactory()

    with django_capture_on_commit_callbacks(execute=True):
        invitation = InvitationWorkflow(notifier=BrokenNotifier()).issue(
            tender.id, engineer.id
        )

    assert TenderInvitation.objects.filter(id=invitation.id).exists()


@pytest.mark.django_db
def test_issue_engineer_without_email(django_capture_on_commit_callbacks):
    notifier = RecordingNotifier()

    with django_capture_on_commit_callbacks(execute=True):
        InvitationWorkflow(notifier=notifier).issue(
            TenderFactory().id, UserFactory(email="").id
        )

    assert notifier.sent == []
    assert TenderInvitation.objects.count() == 1


@pytest.mark.django_db
def test_issue_unknown_tender():
    with pytest.raises(NotFound):
        InvitationWorkflow(notifier=RecordingNotifier()).issue(404, UserFactory().id)

    assert TenderInvitation.objects.count() == 0


@pytest.mark.django_db
def test_issue_unknown_engineer():
    with pytest.raises(NotFound):
        InvitationWorkflow(notifier=RecordingNotifier()).issue(TenderFactory().id, 404)

    assert TenderInvitation.objects.count() == 0


@pytest.mark.django_db
def test_issue_twice_creates_second_invitation():
    tender = TenderFactory()
    engineer = UserFactory()
    workflow = InvitationWorkflow(notifier=RecordingNotifier())

    first = workflow.issue(tender.id, engineer.id)
    second = workflow.issue(tender.id, engineer.id)

    assert first.invitation_token != second.invitation_token
    assert TenderInvitation.objects.filter(tender=tender, engineer=engineer).count() == 2


@pytest.mark.django_db
def test_issue_store_failure(monkeypatch):
    def broken_create(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(TenderInvitation.objects, "create", broken_create)

    with pytest.raises(StoreFailure):
        InvitationWorkflow(notifier=RecordingNotifier()).issue(
            TenderFactory().id, UserFactory().id
        )


@pytest.mark.django_db
def test_lookup():
    client = ClientFactory()
    invitation = TenderInvitationFactory(tender=TenderFactory(client=client))

    found = InvitationWorkflow().lookup(invitation.invitation_token)

    assert found == invitation
    assert found.tender.client == client
    assert found.tender.project == invitation.tender.project
    assert found.engineer == invitation.engineer


@pytest.mark.django_db
def test_lookup_unknown_token():
    with pytest.raises(NotFound):
        InvitationWorkflow().lookup(generate_invitation_token())


@pytest.mark.django_db
def test_lookup_malformed_token(django_assert_num_queries):
    with django_assert_num_queries(0):
        with pytest.raises(NotFound):
            InvitationWorkflow().lookup("not-a-token")


@pytest.mark.django_db
def test_accept():
    invitation = TenderInvitationFactory()

    accepted = InvitationWorkflow().accept(
        invitation.invitation_token, invitation.engineer_id
    )

    invitation.refresh_from_db()
    assert invitation.status == TenderInvitation.Status.ACCEPTED
    assert invitation.accepted_at is not None
    assert accepted.accepted_at == invitation.accepted_at


@pytest.mark.django_db
def test_accept_twice_applies_once():
    invitation = TenderInvitationFactory()
    workflow = InvitationWorkflow()
    workflow.accept(invitation.invitation_token, invitation.engineer_id)
    invitation.refresh_from_db()
    accepted_at = invitation.accepted_at

    with pytest.raises(InvalidState):
        workflow.accept(invitation.invitation_token, invitation.engineer_id)

    invitation.refresh_from_db()
    assert invitation.status == TenderInvitation.Status.ACCEPTED
    assert invitation.accepted_at == accepted_at


@pytest.mark.django_db
def test_accept_does_not_trust_a_pending_lookup():
    invitation = TenderInvitationFactory()
    workflow = InvitationWorkflow()
    # both requests looked the invitation up before either of them accepted
    first_view = workflow.lookup(invitation.invitation_token)
    second_view = workflow.lookup(invitation.invitation_token)
    assert first_view.status == second_view.status == TenderInvitation.Status.PENDING

    accepted = workflow.accept(first_view.invitation_token, first_view.engineer_id)
    with pytest.raises(InvalidState):
        workflow.accept(second_view.invitation_token, second_view.engineer_id)

    assert (
        TenderInvitation.objects.filter(
            id=invitation.id,
            status=TenderInvitation.Status.ACCEPTED,
            accepted_at=accepted.accepted_at,
        ).count()
        == 1
    )


@pytest.mark.django_db
def test_accept_by_other_user_is_forbidden():
    invitation = TenderInvitationFactory()
    intruder = UserFactory()

    with pytest.raises(Forbidden):
        InvitationWorkflow().accept(invitation.invitation_token, intruder.id)

    invitation.refresh_from_db()
    assert invitation.status == TenderInvitation.Status.PENDING
    assert invitation.accepted_at is None


@pytest.mark.django_db
def test_accept_processed_invitation_by_other_user_is_invalid_state():
    invitation = TenderInvitationFactory()
    workflow = InvitationWorkflow()
    workflow.accept(invitation.invitation_token, invitation.engineer_id)

    with pytest.raises(InvalidState):
        workflow.accept(invitation.invitation_token, UserFactory().id)


@pytest.mark.django_db
def test_accept_unknown_token():
    with pytest.raises(NotFound):
        InvitationWorkflow().accept(generate_invitation_token(), UserFactory().id)


@pytest.mark.django_db
def test_accept_does_not_touch_other_invitations():
    invitation = TenderInvitationFactory()
    other = TenderInvitationFactory(engineer=invitation.engineer)

    InvitationWorkflow().accept(invitation.invitation_token, invitation.engineer_id)

    other.refresh_from_db()
    assert other.status == TenderInvitation.Status.PENDING


@pytest.mark.django_db
@pytest.mark.parametrize("bad_id", ["not-a-user", None, ""])
def test_accept_with_malformed_user_id_is_forbidden(bad_id):
    invitation = TenderInvitationFactory()

    with pytest.raises(Forbidden):
        InvitationWorkflow().accept(invitation.invitation_token, bad_id)

    invitation.refresh_from_db()
    assert invitation.status == TenderInvitation.Status.PENDING


@pytest.mark.django_db
def test_accept_processed_invitation_with_malformed_user_id_is_invalid_state():
    invitation = TenderInvitationFactory()
    workflow = InvitationWorkflow()
    workflow.accept(invitation.invitation_token, invitation.engineer_id)

    with pytest.raises(InvalidState):
        workflow.accept(invitation.invitation_token, "not-a-user")


@pytest.mark.django_db
def test_accept_with_string_user_id():
    invitation = TenderInvitationFactory()

    accepted = InvitationWorkflow().accept(
        invitation.invitation_token, str(invitation.engineer_id)
    )

    assert accepted.status == TenderInvitation.Status.ACCEPTED


@pytest.mark.django_db
@pytest.mark.parametrize("bad_field", ["tender_id", "engineer_id"])
@pytest.mark.parametrize("bad_id", ["abc", None, ""])
def test_issue_with_malformed_ids(bad_field, bad_id):
    ids = {"tender_id": TenderFactory().id, "engineer_id": UserFactory().id}
    ids[bad_field] = bad_id

    with pytest.raises(NotFound, match="Tender or engineer not found"):
        InvitationWorkflow(notifier=RecordingNotifier()).issue(**ids)

    assert TenderInvitation.objects.count() == 0


@pytest.mark.django_db
def test_issue_notification_rendering_failure_keeps_invitation(
    monkeypatch, django_capture_on_commit_callbacks
):
    def broken_full_name(self):
        raise AttributeError("get_full_name")

    monkeypatch.setattr(User, "get_full_name", broken_full_name)
    notifier = RecordingNotifier()

    with django_capture_on_commit_callbacks(execute=True):
        invitation = InvitationWorkflow(notifier=notifier).issue(
            TenderFactory().id, UserFactory().id
        )

    assert notifier.sent == []
    assert TenderInvitation.objects.filter(id=invitation.id).exists()
