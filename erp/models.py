from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from django_aggregates.reference import ReferenceNumberMixin

# Owned relations use PROTECT, the lifecycle orchestrator removes aggregates
# children first and the store rejects anything it missed.


class Company(models.Model):
    name = models.CharField(max_length=200)
    logo = models.FileField(upload_to="companies/logos/", blank=True)

    class Meta:
        verbose_name_plural = "companies"


class Client(ReferenceNumberMixin, models.Model):
    reference_prefix = "O-CL"

    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    document_attachment = models.FileField(upload_to="clients/documents/", blank=True)
    created = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("id",)


class Contract(ReferenceNumberMixin, models.Model):
    reference_prefix = "O-CT"

    name = models.CharField(max_length=200)
    created = models.DateTimeField(auto_now_add=True)


class Project(ReferenceNumberMixin, models.Model):
    reference_prefix = "O-PR"

    name = models.CharField(max_length=200)
    pin = models.CharField(max_length=50, unique=True, null=True, blank=True)
    client = models.ForeignKey(
        Client,
        null=True,
        blank=True,
        related_name="projects",
        on_delete=models.PROTECT,
    )
    created = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("id",)


class ProjectAssignment(models.Model):
    project = models.ForeignKey(
        Project, related_name="assignments", on_delete=models.PROTECT
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="project_assignments",
        on_delete=models.CASCADE,
    )
    role = models.CharField(max_length=100, blank=True)


class ProjectChecklist(models.Model):
    project = models.ForeignKey(
        Project, related_name="checklists", on_delete=models.PROTECT
    )
    title = models.CharField(max_length=200)
    is_completed = models.BooleanField(default=False)


class ProjectAttachment(models.Model):
    project = models.ForeignKey(
        Project, related_name="attachments", on_delete=models.PROTECT
    )
    file = models.FileField(upload_to="projects/attachments/")


class Document(ReferenceNumberMixin, models.Model):
    reference_prefix = "O-DC"

    project = models.ForeignKey(
        Project,
        null=True,
        blank=True,
        related_name="documents",
        on_delete=models.PROTECT,
    )
    title = models.CharField(max_length=200)
    file = models.FileField(upload_to="documents/", blank=True)


class Task(models.Model):
    project = models.ForeignKey(Project, related_name="tasks", on_delete=models.PROTECT)
    title = models.CharField(max_length=200)

    class Meta:
        ordering = ("id",)


class TaskAssignment(models.Model):
    task = models.ForeignKey(Task, related_name="assignments", on_delete=models.PROTECT)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="task_assignments",
        on_delete=models.CASCADE,
    )


class TaskChecklist(models.Model):
    task = models.ForeignKey(Task, related_name="checklists", on_delete=models.PROTECT)
    title = models.CharField(max_length=200)
    is_completed = models.BooleanField(default=False)


class TaskAttachment(models.Model):
    task = models.ForeignKey(Task, related_name="attachments", on_delete=models.PROTECT)
    file = models.FileField(upload_to="tasks/attachments/")


class TaskComment(models.Model):
    task = models.ForeignKey(Task, related_name="comments", on_delete=models.PROTECT)
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="task_comments",
        on_delete=models.SET_NULL,
    )
    text = models.TextField()


class Tender(models.Model):
    reference_number = models.CharField(max_length=100, blank=True)
    name = models.CharField(max_length=200)
    project = models.ForeignKey(
        Project, related_name="tenders", on_delete=models.PROTECT
    )
    client = models.ForeignKey(
        Client,
        null=True,
        blank=True,
        related_name="tenders",
        on_delete=models.PROTECT,
    )
    attachment_file = models.FileField(upload_to="tenders/", blank=True)

    class Meta:
        ordering = ("id",)


class TenderInvitation(models.Model):
    class Status(models.TextChoices):
        # PENDING -> ACCEPTED is the only transition
        PENDING = "PENDING", _("Pending")
        ACCEPTED = "ACCEPTED", _("Accepted")

    tender = models.ForeignKey(
        Tender, related_name="invitations", on_delete=models.PROTECT
    )
    engineer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="tender_invitations",
        on_delete=models.CASCADE,
    )
    invitation_token = models.CharField(max_length=128, unique=True)
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.PENDING
    )
    accepted_at = models.DateTimeField(null=True, blank=True)
    created = models.DateTimeField(auto_now_add=True)


class TechnicalSubmission(models.Model):
    tender = models.ForeignKey(
        Tender, related_name="technical_submissions", on_delete=models.PROTECT
    )
    engineer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="technical_submissions",
        on_delete=models.SET_NULL,
    )
    notes = models.TextField(blank=True)
