import typing
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

if typing.TYPE_CHECKING:
    from django_aggregates.config import ModelDeleteConfig

CountMap = dict[str, int]


@dataclass
class DeleteRequest:
    """
    This is the base class for a delete request, which serves as the input for the Remover.

    :param input_data: The input data used to determine which root rows should be deleted,
        keys are referenced by ``filter_field_to_input_key`` of the root config.
    :type input_data: dict[str, Any]
    :param config: The root ModelDeleteConfig describing the aggregate to delete.
    :type config: ModelDeleteConfig
    """

    input_data: dict[str, Any]
    config: "ModelDeleteConfig"


class AbortReason(StrEnum):
    # Delete aborted because no root rows matched the request
    NOT_FOUND = "NOT_FOUND"
    # Delete aborted because rows behind a BLOCK relation exist
    BLOCKED = "BLOCKED"


@dataclass
class DeleteResult:
    """
    This is the base class for a delete result, which serves as the output for the Remover.

    :param is_delete_successful: A flag indicating whether the deletion was committed.
    :type is_delete_successful: bool
    :param deleted_map: A dictionary of model names to the number of deleted rows,
        defaults to {}.
    :type deleted_map: dict[str, int], optional
    :param detached_map: A dictionary of model names to the number of rows whose
        foreign key was set to NULL, defaults to {}.
    :type detached_map: dict[str, int], optional
    :param blocked_map: A dictionary of model names to the number of rows that
        blocked the deletion, filled only when ``reason`` is ``BLOCKED``, defaults to {}.
    :type blocked_map: dict[str, int], optional
    :param file_paths: Storage names of files scheduled for removal once the
        deletion is committed, defaults to [].
    :type file_paths: list[str], optional
    :param removed_file_paths: Storage names of files that were removed.
        Filled by the post-commit hook, so it stays empty until the outermost
        transaction commits, defaults to [].
    :type removed_file_paths: list[str], optional
    :param failed_file_paths: Storage names of files that could not be removed,
        filled by the post-commit hook, defaults to [].
    :type failed_file_paths: list[str], optional
    :param reason: The reason code, returned if `is_delete_successful` is False,
        defaults to None.
    :type reason: AbortReason, optional
    """

    is_delete_successful: bool
    deleted_map: CountMap = field(default_factory=dict)
    detached_map: CountMap = field(default_factory=dict)
    blocked_map: CountMap = field(default_factory=dict)
    file_paths: list[str] = field(default_factory=list)
    removed_file_paths: list[str] = field(default_factory=list)
    failed_file_paths: list[str] = field(default_factory=list)
    reason: AbortReason | None = None
