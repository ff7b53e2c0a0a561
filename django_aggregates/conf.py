from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "REFERENCE_MAX_ATTEMPTS": 100,
    "REFERENCE_CODE_LENGTH": 8,
    "REFERENCE_WRITE_ATTEMPTS": 3,
    # model label ("erp.Client") -> prefix, overrides Model.reference_prefix
    "REFERENCE_PREFIXES": {},
    "INVITATION_TOKEN_BYTES": 24,
    "FRONTEND_URL": "http://localhost:3000",
}


def get_setting(name: str) -> Any:
    """
    Read a value from the ``AGGREGATES`` settings dict, falling back to DEFAULTS
    """
    if name not in DEFAULTS:
        raise KeyError(f"Unknown django_aggregates setting {name}")
    user_settings = getattr(settings, "AGGREGATES", None) or {}
    return user_settings.get(name, DEFAULTS[name])
