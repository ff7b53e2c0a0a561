from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from django.core.exceptions import ValidationError
from django.db.models import Model, Q, QuerySet

from django_aggregates.exceptions import NotFound


class RelationActions(StrEnum):
    """
    Policy applied to rows referencing a deleted instance through a reverse
    foreign key
    """

    # Delete referencing rows, after their own relations were handled
    CASCADE = "CASCADE"
    # Keep referencing rows, set their foreign key to NULL
    DETACH = "DETACH"
    # Abort the whole deletion if any referencing row exists
    BLOCK = "BLOCK"


@dataclass
class RelationConfig:
    """
    Describes how a single reverse relation of a model is handled on deletion.

    :param action: The policy for rows behind the relation.
    :type action: RelationActions
    :param delete_with_config: Config used to delete the referencing rows with
        their own relations, only valid for ``CASCADE``. When omitted,
        referencing rows are deleted as leaves, defaults to None.
    :type delete_with_config: ModelDeleteConfig, optional
    """

    action: RelationActions
    delete_with_config: Optional["ModelDeleteConfig"] = None

    def __post_init__(self):
        if self.delete_with_config and self.action != RelationActions.CASCADE:
            raise ValueError(
                f"delete_with_config is only allowed for {RelationActions.CASCADE}, "
                f"got {self.action}"
            )


@dataclass
class ModelDeleteConfig:
    """
    Describes deletion of a model and everything that references it.

    :param model: The model whose rows are deleted.
    :type model: type[Model]
    :param filter_field_to_input_key: Root-only map of queryset filter to
        ``DeleteRequest.input_data`` key, used to select rows to delete.
        Nested configs are narrowed by their parent instead, defaults to {}.
    :type filter_field_to_input_key: dict[str, str], optional
    :param select_all: Root-only flag allowing a config without filters to
        target every row of the model, defaults to False.
    :type select_all: bool, optional
    :param relation_actions: Map of reverse relation accessor name to the
        policy applied to it. Relations are handled in declaration order,
        all of them before rows of the model itself are deleted, defaults to {}.
    :type relation_actions: dict[str, RelationConfig], optional
    :param file_fields: Names of file fields whose stored files are removed
        after the deletion is committed, defaults to [].
    :type file_fields: list[str], optional
    """

    model: type[Model]
    filter_field_to_input_key: dict[str, str] = field(default_factory=dict)
    select_all: bool = False
    relation_actions: dict[str, RelationConfig] = field(default_factory=dict)
    file_fields: list[str] = field(default_factory=list)


def Cascade(config: ModelDeleteConfig | None = None) -> RelationConfig:
    return RelationConfig(action=RelationActions.CASCADE, delete_with_config=config)


CASCADE = RelationConfig(action=RelationActions.CASCADE)
DETACH = RelationConfig(action=RelationActions.DETACH)
BLOCK = RelationConfig(action=RelationActions.BLOCK)


def get_queryset_for_model_config(
    model_config: ModelDeleteConfig,
    extra_filters: Q | None,
    input_data: dict[str, Any],
) -> QuerySet:
    queryset = model_config.model._default_manager.all()
    filters = {}
    for filter_field, input_key in model_config.filter_field_to_input_key.items():
        if input_key not in input_data:
            raise ValueError(
                f"Filter {filter_field} was declared on "
                f"{model_config.model.__name__}, but {input_key} not found in input_data"
            )
        filters[filter_field] = input_data[input_key]
    if filters:
        queryset = queryset.filter(**filters)
    if extra_filters:
        queryset = queryset.filter(extra_filters)
    return queryset.order_by("pk")


def clean_pk(model: type[Model], value: Any) -> Any:
    """
    Coerce ``value`` to the primary key type of ``model``. A value the field
    can not hold can not match any row, so it is reported as NotFound.
    """
    try:
        pk = model._meta.pk.to_python(value)
    except ValidationError as e:
        raise NotFound(f"{model.__name__} not found") from e
    if pk is None:
        raise NotFound(f"{model.__name__} not found")
    return pk
