"""
Management command to delete all Projects with their tasks, tenders, checklists,
attachments and assignments. Documents are kept and detached from their project.
Usage: python manage.py delete_all_projects [--confirm]
"""
from erp.lifecycle import LifecycleOrchestrator
from erp.management.commands._bulk_delete import BulkDeleteCommand
from erp.models import Document, Project, Task, Tender, TenderInvitation


class Command(BulkDeleteCommand):
    help = "Delete all Projects and the rows they own, keeping their Documents"
    model = Project

    def get_related_counts(self):
        return [
            ("Tasks", Task.objects.count()),
            ("Tenders", Tender.objects.count()),
            ("Tender invitations", TenderInvitation.objects.count()),
            (
                "Documents to detach",
                Document.objects.filter(project__isnull=False).count(),
            ),
        ]

    def run_delete(self):
        return LifecycleOrchestrator().bulk_delete_projects()
