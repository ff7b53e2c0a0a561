"""
Management command to delete all Companies
Usage: python manage.py delete_all_companies [--confirm]
"""
from erp.lifecycle import LifecycleOrchestrator
from erp.management.commands._bulk_delete import BulkDeleteCommand
from erp.models import Company


class Command(BulkDeleteCommand):
    help = "Delete all Companies and their logos"
    model = Company

    def run_delete(self):
        return LifecycleOrchestrator().bulk_delete_companies()
