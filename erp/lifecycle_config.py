from dataclasses import replace

from django_aggregates.config import (
    BLOCK,
    CASCADE,
    DETACH,
    Cascade,
    ModelDeleteConfig,
)
from erp.models import (
    Client,
    Company,
    Project,
    ProjectAttachment,
    Task,
    TaskAttachment,
    Tender,
)

TENDER_DELETE_CONFIG = ModelDeleteConfig(
    model=Tender,
    relation_actions={
        "invitations": CASCADE,
        "technical_submissions": CASCADE,
    },
    file_fields=["attachment_file"],
)

TASK_DELETE_CONFIG = ModelDeleteConfig(
    model=Task,
    relation_actions={
        "checklists": CASCADE,
        "attachments": Cascade(
            ModelDeleteConfig(model=TaskAttachment, file_fields=["file"])
        ),
        "comments": CASCADE,
        "assignments": CASCADE,
    },
)

PROJECT_RELATION_ACTIONS = {
    "tenders": Cascade(TENDER_DELETE_CONFIG),
    "tasks": Cascade(TASK_DELETE_CONFIG),
    "checklists": CASCADE,
    "attachments": Cascade(
        ModelDeleteConfig(model=ProjectAttachment, file_fields=["file"])
    ),
    "assignments": CASCADE,
    # documents outlive their project
    "documents": DETACH,
}

PROJECT_DELETE_CONFIG = ModelDeleteConfig(
    model=Project,
    filter_field_to_input_key={"id": "project_id"},
    relation_actions=PROJECT_RELATION_ACTIONS,
)

PROJECT_LIST_DELETE_CONFIG = ModelDeleteConfig(
    model=Project,
    filter_field_to_input_key={"id__in": "project_ids"},
    relation_actions=PROJECT_RELATION_ACTIONS,
)

ALL_PROJECTS_DELETE_CONFIG = ModelDeleteConfig(
    model=Project,
    select_all=True,
    relation_actions=PROJECT_RELATION_ACTIONS,
)

ROOT_TENDER_DELETE_CONFIG = replace(
    TENDER_DELETE_CONFIG, filter_field_to_input_key={"id": "tender_id"}
)

CLIENT_DELETE_CONFIG = ModelDeleteConfig(
    model=Client,
    filter_field_to_input_key={"id": "client_id"},
    relation_actions={
        "projects": BLOCK,
        "tenders": BLOCK,
    },
    file_fields=["document_attachment"],
)

CLIENT_FORCE_DELETE_CONFIG = replace(
    CLIENT_DELETE_CONFIG,
    relation_actions={
        "projects": DETACH,
        "tenders": DETACH,
    },
)

ALL_CLIENTS_DELETE_CONFIG = replace(
    CLIENT_FORCE_DELETE_CONFIG, filter_field_to_input_key={}, select_all=True
)

COMPANY_DELETE_CONFIG = ModelDeleteConfig(
    model=Company,
    filter_field_to_input_key={"id": "company_id"},
    file_fields=["logo"],
)

ALL_COMPANIES_DELETE_CONFIG = replace(
    COMPANY_DELETE_CONFIG, filter_field_to_input_key={}, select_all=True
)
