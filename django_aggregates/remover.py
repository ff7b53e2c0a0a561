import logging
from typing import Any

from django.core.files.storage import Storage, default_storage
from django.db import DatabaseError, transaction
from django.db.models import ForeignKey, Q
from django.db.models.fields.related_descriptors import (
    ManyToManyDescriptor,
    ReverseManyToOneDescriptor,
)

from django_aggregates.config import (
    ModelDeleteConfig,
    RelationActions,
    RelationConfig,
    get_queryset_for_model_config,
)
from django_aggregates.delete_request import (
    AbortReason,
    CountMap,
    DeleteRequest,
    DeleteResult,
)
from django_aggregates.files import remove_files

logger = logging.getLogger(__name__)


def _add_count(count_map: CountMap, model_name: str, count: int) -> None:
    if not count:
        return
    count_map[model_name] = count_map.get(model_name, 0) + count


class Remover:
    def __init__(self, delete_request: DeleteRequest, storage: Storage | None = None):
        self.request = delete_request
        self.config = delete_request.config
        self.input_data = delete_request.input_data
        self.storage = storage or default_storage

        self._root_id_list: list[Any] | None = None
        self._blocked_map: CountMap | None = None

    @property
    def root_id_list(self) -> list[Any]:
        if self._root_id_list is None:
            raise AttributeError("root_id_list referenced before validation")
        return self._root_id_list

    @property
    def blocked_map(self) -> CountMap:
        if self._blocked_map is None:
            raise AttributeError("blocked_map referenced before validation")
        return self._blocked_map

    def _get_relation_field(
        self, model_config: ModelDeleteConfig, field_name: str
    ) -> ForeignKey:
        field_link = getattr(model_config.model, field_name, None)
        if not field_link:
            raise ValueError(
                f"Relation {field_name} was declared in {model_config.model.__name__} "
                f"config, but not present on model"
            )
        if isinstance(field_link, ManyToManyDescriptor) or not isinstance(
            field_link, ReverseManyToOneDescriptor
        ):
            raise ValueError(
                f"Expected reverse ForeignKey relation on {field_name} of "
                f"{model_config.model.__name__}, but got {field_link.__class__.__name__}"
            )
        return field_link.field

    def _get_child_config(
        self, relation_field: ForeignKey, relation_config: RelationConfig
    ) -> ModelDeleteConfig:
        child_model = relation_field.model
        child_config = relation_config.delete_with_config
        if child_config is None:
            return ModelDeleteConfig(model=child_model)
        if child_config.model != child_model:
            raise ValueError(
                f'"{child_config.model.__name__}" was configured for relation '
                f'"{relation_field.remote_field.get_accessor_name()}", '
                f'but "{child_model.__name__}" was found by that name'
            )
        if child_config.filter_field_to_input_key or child_config.select_all:
            raise ValueError(
                f"Nested config for {child_model.__name__} is narrowed by its parent, "
                f"filter_field_to_input_key and select_all are only allowed on root"
            )
        return child_config

    def _get_root_id_list(self) -> list[Any]:
        if not self.config.filter_field_to_input_key and not self.config.select_all:
            raise ValueError(
                f"Root config must describe filter_field_to_input_key map or set "
                f"select_all, to narrow the query on {self.config.model.__name__}"
            )
        queryset = get_queryset_for_model_config(
            model_config=self.config, extra_filters=None, input_data=self.input_data
        ).select_for_update()
        return list(queryset.values_list("pk", flat=True))

    def _run_validation_for_model(
        self, model_config: ModelDeleteConfig, id_list: list[Any]
    ) -> None:
        for field_name, relation_config in model_config.relation_actions.items():
            relation_field = self._get_relation_field(model_config, field_name)
            child_model = relation_field.model
            child_queryset = child_model._default_manager.filter(
                **{f"{relation_field.attname}__in": id_list}
            )

            if relation_config.action == RelationActions.BLOCK:
                if id_list:
                    _add_count(
                        self._blocked_map, child_model.__name__, child_queryset.count()
                    )
            elif relation_config.action == RelationActions.DETACH:
                if not relation_field.null:
                    raise ValueError(
                        f"Relation {field_name} of {model_config.model.__name__} "
                        f"can not be detached, {child_model.__name__}.{relation_field.name} "
                        f"is not nullable"
                    )
            elif relation_config.action == RelationActions.CASCADE:
                child_config = self._get_child_config(relation_field, relation_config)
                child_id_list = (
                    list(child_queryset.values_list("pk", flat=True)) if id_list else []
                )
                self._run_validation_for_model(child_config, child_id_list)
            else:
                raise NotImplementedError(f"Unknown action {relation_config.action}")

    def validate_config(self):
        self._blocked_map = {}
        self._root_id_list = self._get_root_id_list()
        self._run_validation_for_model(self.config, self._root_id_list)

    def _check_should_abort(self) -> DeleteResult | None:
        abort_reason = None

        if not self.root_id_list and not self.config.select_all:
            abort_reason = AbortReason.NOT_FOUND
        elif self.blocked_map:
            abort_reason = AbortReason.BLOCKED

        if not abort_reason:
            return None

        return DeleteResult(
            is_delete_successful=False,
            blocked_map=self.blocked_map,
            reason=abort_reason,
        )

    def _collect_file_paths(
        self, model_config: ModelDeleteConfig, id_list: list[Any], result: DeleteResult
    ) -> None:
        if not model_config.file_fields:
            return
        value_rows = model_config.model._default_manager.filter(
            pk__in=id_list
        ).values_list(*model_config.file_fields)
        for values in value_rows:
            result.file_paths.extend(value for value in values if value)

    def delete_model(
        self,
        model_config: ModelDeleteConfig,
        result: DeleteResult,
        extra_filters: Q | None = None,
        id_list: list[Any] | None = None,
    ) -> None:
        if id_list is None:
            id_list = list(
                get_queryset_for_model_config(
                    model_config=model_config,
                    extra_filters=extra_filters,
                    input_data=self.input_data,
                ).values_list("pk", flat=True)
            )
        if not id_list:
            return

        for field_name, relation_config in model_config.relation_actions.items():
            relation_field = self._get_relation_field(model_config, field_name)
            child_filter = Q(**{f"{relation_field.attname}__in": id_list})

            if relation_config.action == RelationActions.CASCADE:
                self.delete_model(
                    model_config=self._get_child_config(relation_field, relation_config),
                    result=result,
                    extra_filters=child_filter,
                )
            elif relation_config.action == RelationActions.DETACH:
                child_model = relation_field.model
                detached_count = child_model._default_manager.filter(
                    child_filter
                ).update(**{relation_field.attname: None})
                _add_count(result.detached_map, child_model.__name__, detached_count)

        self._collect_file_paths(model_config, id_list, result)

        _, deleted_per_label = model_config.model._default_manager.filter(
            pk__in=id_list
        ).delete()
        for label, count in deleted_per_label.items():
            _add_count(result.deleted_map, label.rsplit(".", 1)[-1], count)

    def _remove_files(self, result: DeleteResult) -> None:
        removed, failed = remove_files(result.file_paths, self.storage)
        result.removed_file_paths.extend(removed)
        result.failed_file_paths.extend(failed)
        if failed:
            logger.warning(
                "%s of %s files were not removed after deleting %s",
                len(failed),
                len(result.file_paths),
                self.config.model.__name__,
            )

    def execute_delete(self) -> DeleteResult:
        result = DeleteResult(is_delete_successful=True)
        try:
            self.delete_model(
                model_config=self.config, result=result, id_list=self.root_id_list
            )
        except DatabaseError:
            logger.exception("Error on deleting %s", self.config.model.__name__)
            raise
        return result

    def execute_delete_request(self) -> DeleteResult:
        with transaction.atomic():
            self.validate_config()
            abort_result = self._check_should_abort()
            if abort_result:
                return abort_result

            result = self.execute_delete()
            if result.file_paths:
                transaction.on_commit(lambda: self._remove_files(result))

        logger.info(
            "Deleted %s: deleted %s, detached %s",
            self.config.model.__name__,
            result.deleted_map,
            result.detached_map,
        )
        return result
