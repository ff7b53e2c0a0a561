"""
Management command to delete all Clients, detaching the Projects and Tenders that reference them
Usage: python manage.py delete_all_clients [--confirm]
"""
from erp.lifecycle import LifecycleOrchestrator
from erp.management.commands._bulk_delete import BulkDeleteCommand
from erp.models import Client, Project, Tender


class Command(BulkDeleteCommand):
    help = "Delete all Clients, setting client to NULL on Projects and Tenders"
    model = Client

    def get_related_counts(self):
        return [
            (
                "Projects referencing a client",
                Project.objects.filter(client__isnull=False).count(),
            ),
            (
                "Tenders referencing a client",
                Tender.objects.filter(client__isnull=False).count(),
            ),
        ]

    def run_delete(self):
        return LifecycleOrchestrator().bulk_delete_clients()
