"""Exceptions raised by the configuration core."""

from __future__ import annotations


class ZEVConfigError(Exception):
    """Base exception for zev-config errors."""


class ValidationError(ZEVConfigError):
    """A required field is missing or holds an invalid value."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Invalid value for '{field}'")


class MissingField(ValidationError):
    """A field required by the active configuration is empty."""

    def __init__(self, field: str) -> None:
        super().__init__(field, f"Missing required field '{field}'")


class PercentageSumInvalid(ValidationError):
    """Custom split percentages do not add up to 100."""

    def __init__(self, total: float) -> None:
        self.total = total
        super().__init__(
            "custom_splits",
            f"Custom split percentages must total 100% (currently {total:.2f}%)",
        )


class NoActiveOccupants(ValidationError):
    """A share was requested for a building without active occupants."""

    def __init__(self, building_id: int | None = None) -> None:
        self.building_id = building_id
        where = f" in building {building_id}" if building_id is not None else ""
        super().__init__("occupants", f"No active occupants{where}")


class AllocationExhausted(ZEVConfigError):
    """No unused identifier was found within the attempt budget."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"No unique identifier found after {attempts} attempts")


class PresetNotFound(ZEVConfigError):
    """Unknown device preset name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown preset '{name}'")


class ConfigParseError(ZEVConfigError):
    """A stored connection_config or custom split could not be decoded."""
