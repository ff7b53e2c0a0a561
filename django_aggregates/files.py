import logging
from collections.abc import Iterable

from django.core.files.storage import Storage

logger = logging.getLogger(__name__)


def remove_files(paths: Iterable[str], storage: Storage) -> tuple[list[str], list[str]]:
    """
    Best-effort removal of stored files. A failure on one file never stops
    the others and is never raised.

    :return: removed and failed storage names
    """
    removed: list[str] = []
    failed: list[str] = []
    for path in paths:
        try:
            storage.delete(path)
        except Exception:
            # storage backends raise their own error types
            logger.warning("Error on removing file %s", path, exc_info=True)
            failed.append(path)
            continue
        logger.debug("Removed file %s", path)
        removed.append(path)
    return removed, failed
