import logging
from collections.abc import Iterable
from typing import Any

from django.core.files.storage import Storage
from django.db import DatabaseError, transaction
from django.db.models import ProtectedError, RestrictedError

from django_aggregates.config import ModelDeleteConfig, clean_pk
from django_aggregates.delete_request import AbortReason, DeleteRequest, DeleteResult
from django_aggregates.exceptions import Conflict, NotFound, StoreFailure
from django_aggregates.remover import Remover
from erp.lifecycle_config import (
    ALL_CLIENTS_DELETE_CONFIG,
    ALL_COMPANIES_DELETE_CONFIG,
    ALL_PROJECTS_DELETE_CONFIG,
    CLIENT_DELETE_CONFIG,
    CLIENT_FORCE_DELETE_CONFIG,
    COMPANY_DELETE_CONFIG,
    PROJECT_DELETE_CONFIG,
    PROJECT_LIST_DELETE_CONFIG,
    ROOT_TENDER_DELETE_CONFIG,
)
from erp.models import Client, Company, Project, Tender

logger = logging.getLogger(__name__)


def _describe_blocking(model_name: str, blocking: dict[str, int]) -> str:
    counts = " and ".join(
        f"{count} {name.lower()}(s)" for name, count in sorted(blocking.items())
    )
    return f"Cannot delete {model_name.lower()}, it has {counts} associated"


class LifecycleOrchestrator:
    """
    Deletes aggregate roots together with the rows that depend on them.

    Every public method runs one transaction: it either commits the whole
    graph or raises without changing anything. Stored files of deleted rows
    are removed after commit and failures there are only logged.
    """

    def __init__(self, storage: Storage | None = None):
        self.storage = storage

    def _execute(
        self, config: ModelDeleteConfig, input_data: dict[str, Any]
    ) -> DeleteResult:
        model_name = config.model.__name__
        remover = Remover(
            DeleteRequest(input_data=input_data, config=config), storage=self.storage
        )
        try:
            result = remover.execute_delete_request()
        except (ProtectedError, RestrictedError) as e:
            # a dependent row appeared after validation
            dependents = (
                e.protected_objects
                if isinstance(e, ProtectedError)
                else e.restricted_objects
            )
            blocking: dict[str, int] = {}
            for instance in dependents:
                name = type(instance).__name__
                blocking[name] = blocking.get(name, 0) + 1
            raise Conflict(_describe_blocking(model_name, blocking), blocking) from e
        except DatabaseError as e:
            raise StoreFailure(f"Failed to delete {model_name.lower()}: {e}") from e

        if result.reason == AbortReason.NOT_FOUND:
            raise NotFound(f"{model_name} not found")
        if result.reason == AbortReason.BLOCKED:
            raise Conflict(
                _describe_blocking(model_name, result.blocked_map), result.blocked_map
            )
        return result

    def delete_project(self, project_id: Any) -> DeleteResult:
        project_id = clean_pk(Project, project_id)
        return self._execute(PROJECT_DELETE_CONFIG, {"project_id": project_id})

    def delete_projects(self, project_ids: Iterable[Any]) -> DeleteResult:
        """
        Deletes all given projects or none of them, an unknown id rejects the
        whole batch with NotFound.
        """
        project_ids = {clean_pk(Project, project_id) for project_id in project_ids}
        if not project_ids:
            raise ValueError("Expected at least one project id")

        with transaction.atomic():
            try:
                found_ids = set(
                    Project.objects.select_for_update()
                    .filter(id__in=project_ids)
                    .values_list("id", flat=True)
                )
            except DatabaseError as e:
                raise StoreFailure(f"Failed to delete projects: {e}") from e
            missing_ids = project_ids - found_ids
            if missing_ids:
                raise NotFound(
                    f"Some projects not found: "
                    f"{', '.join(str(i) for i in sorted(missing_ids))}"
                )
            return self._execute(
                PROJECT_LIST_DELETE_CONFIG, {"project_ids": sorted(project_ids)}
            )

    def bulk_delete_projects(self) -> DeleteResult:
        return self._execute(ALL_PROJECTS_DELETE_CONFIG, {})

    def delete_tender(self, tender_id: Any) -> DeleteResult:
        tender_id = clean_pk(Tender, tender_id)
        return self._execute(ROOT_TENDER_DELETE_CONFIG, {"tender_id": tender_id})

    def delete_client(self, client_id: Any, force_detach: bool = False) -> DeleteResult:
        """
        Deleting a client referenced by projects or tenders is refused with
        Conflict, unless ``force_detach`` is set, then the references are
        set to NULL first.
        """
        client_id = clean_pk(Client, client_id)
        config = CLIENT_FORCE_DELETE_CONFIG if force_detach else CLIENT_DELETE_CONFIG
        return self._execute(config, {"client_id": client_id})

    def bulk_delete_clients(self) -> DeleteResult:
        return self._execute(ALL_CLIENTS_DELETE_CONFIG, {})

    def delete_company(self, company_id: Any) -> DeleteResult:
        company_id = clean_pk(Company, company_id)
        return self._execute(COMPANY_DELETE_CONFIG, {"company_id": company_id})

    def bulk_delete_companies(self) -> DeleteResult:
        return self._execute(ALL_COMPANIES_DELETE_CONFIG, {})
