from django.core.management.base import BaseCommand, CommandError
from django.db.models import Model

from django_aggregates.delete_request import DeleteResult
from django_aggregates.exceptions import LifecycleError


def _format_counts(count_map: dict[str, int]) -> str:
    return ", ".join(f"{name}: {count}" for name, count in sorted(count_map.items()))


class BulkDeleteCommand(BaseCommand):
    """
    Base for commands wiping every row of ``model`` through the
    LifecycleOrchestrator, after a typed "YES" unless ``--confirm`` is given
    """

    model: type[Model]

    def add_arguments(self, parser):
        parser.add_argument(
            "--confirm",
            action="store_true",
            help="Skip confirmation prompt",
        )

    def get_related_counts(self) -> list[tuple[str, int]]:
        return []

    def run_delete(self) -> DeleteResult:
        raise NotImplementedError

    def handle(self, *args, **options):
        verbose_name = self.model._meta.verbose_name
        verbose_name_plural = self.model._meta.verbose_name_plural
        root_count = self.model._default_manager.count()

        self.stdout.write("Found:")
        self.stdout.write(f"  - {verbose_name_plural.capitalize()}: {root_count}")
        for label, count in self.get_related_counts():
            self.stdout.write(f"  - {label}: {count}")

        if not root_count:
            self.stdout.write(self.style.SUCCESS(f"No {verbose_name_plural} to delete."))
            return

        if not options["confirm"]:
            confirm = input('Type "YES" to confirm: ')
            if confirm != "YES":
                self.stdout.write(self.style.ERROR("Operation cancelled."))
                return

        try:
            result = self.run_delete()
        except LifecycleError as e:
            raise CommandError(f"Failed to delete {verbose_name_plural}: {e}") from e

        deleted_map = dict(result.deleted_map)
        deleted_count = deleted_map.pop(self.model.__name__, 0)
        self.stdout.write(
            self.style.SUCCESS(f"Deleted {deleted_count} {verbose_name}(s)")
        )
        if deleted_map:
            self.stdout.write(f"Also deleted {_format_counts(deleted_map)}")
        if result.detached_map:
            self.stdout.write(f"Detached {_format_counts(result.detached_map)}")
        if result.failed_file_paths:
            self.stdout.write(
                self.style.WARNING(
                    f"{len(result.failed_file_paths)} file(s) were not removed"
                )
            )
