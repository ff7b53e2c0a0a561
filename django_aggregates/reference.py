import logging
import secrets
import string
import time

from django.db import DatabaseError, IntegrityError, models, transaction

from django_aggregates.conf import get_setting
from django_aggregates.exceptions import Conflict, StoreUnavailable

logger = logging.getLogger(__name__)

BASE36_ALPHABET = string.digits + string.ascii_uppercase


def base36_encode(value: int) -> str:
    if value < 0:
        raise ValueError(f"Expected non negative value, got {value}")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def _current_millis() -> int:
    return time.time_ns() // 1_000_000


class ReferenceCodeGenerator:
    """
    Produces human-readable codes like ``O-CL-7Q2M0ZKD`` that are not yet used
    by ``field_name`` of ``model``.

    The existence check is an optimization against the unique index on the field,
    two concurrent generations may still pick the same candidate. Callers have
    to handle the unique violation at write time, see ReferenceNumberMixin.
    """

    def __init__(
        self,
        model: type[models.Model],
        field_name: str = "reference_number",
        max_attempts: int | None = None,
        code_length: int | None = None,
    ):
        self.model = model
        self.field_name = field_name
        if max_attempts is None:
            max_attempts = get_setting("REFERENCE_MAX_ATTEMPTS")
        if code_length is None:
            code_length = get_setting("REFERENCE_CODE_LENGTH")
        if max_attempts < 0 or code_length < 1:
            raise ValueError(
                f"Expected max_attempts >= 0 and code_length >= 1, "
                f"got {max_attempts} and {code_length}"
            )
        self.max_attempts = max_attempts
        self.code_length = code_length

    def exists(self, value: str) -> bool:
        try:
            return self.model._default_manager.filter(
                **{self.field_name: value}
            ).exists()
        except DatabaseError as e:
            raise StoreUnavailable(
                f"Could not check {self.model.__name__}.{self.field_name} uniqueness"
            ) from e

    def generate(self, prefix: str) -> str:
        if not prefix:
            raise ValueError("Reference prefix must not be empty")

        for _ in range(self.max_attempts):
            candidate = f"{prefix}-{_random_base36(self.code_length)}"
            if not self.exists(candidate):
                return candidate

        # not re-checked, the unique index has the final say
        fallback = f"{prefix}-{base36_encode(_current_millis())}"
        logger.warning(
            "All %s candidates for %s.%s collided, falling back to %s",
            self.max_attempts,
            self.model.__name__,
            self.field_name,
            fallback,
        )
        return fallback


class ReferenceNumberMixin(models.Model):
    """
    Assigns a generated ``reference_number`` to new rows saved without one
    """

    reference_prefix: str = ""

    reference_number = models.CharField(max_length=32, unique=True, blank=True)

    class Meta:
        abstract = True

    @classmethod
    def get_reference_prefix(cls) -> str:
        prefixes = get_setting("REFERENCE_PREFIXES")
        return prefixes.get(cls._meta.label, cls.reference_prefix)

    def save(self, *args, **kwargs):
        if self.reference_number or not self._state.adding:
            return super().save(*args, **kwargs)

        generator = ReferenceCodeGenerator(type(self))
        prefix = self.get_reference_prefix()
        write_attempts = get_setting("REFERENCE_WRITE_ATTEMPTS")
        for _ in range(write_attempts):
            self.reference_number = generator.generate(prefix)
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError:
                if not generator.exists(self.reference_number):
                    self.reference_number = ""
                    raise
                logger.warning(
                    "Reference number %s of %s was taken before insert, regenerating",
                    self.reference_number,
                    type(self).__name__,
                )

        self.reference_number = ""
        raise Conflict(
            f"Could not store a unique reference number for {type(self).__name__} "
            f"after {write_attempts} attempts"
        )
