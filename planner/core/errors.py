"""
Error types shared by the core, the settings store and the plugins.
"""


class PlannerError(Exception):
    """Base class for planner errors."""


class ProviderUnavailable(PlannerError):
    """Prayer times could not be fetched or the response was malformed. Retryable."""


class ConfigInvalid(PlannerError):
    """Activity list, downtime rotation or settings payload is not usable."""


class StorageError(PlannerError):
    """Settings store read or write failed."""


class SettingsNotFound(PlannerError):
    """No settings blob has been stored yet (location not set up)."""
