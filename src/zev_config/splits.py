"""Shared meter cost splitting among a building's active occupants.

``equal`` splits are never stored: every active occupant at billing time gets
``100 / N`` percent. ``custom`` splits store a percentage per occupant id and
must total 100 (within PERCENT_TOLERANCE) before they can be saved. Edits are
never normalized automatically.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from zev_config.errors import MissingField, NoActiveOccupants, PercentageSumInvalid, ValidationError
from zev_config.models import CUSTOM, EQUAL, SPLIT_TYPES, Meter, SharedMeterConfig

_LOGGER = logging.getLogger(__name__)

PERCENT_TOLERANCE = 0.01
SPLIT_DECIMALS = 2

# Meter types whose cost can be shared
SHAREABLE_METER_TYPES = frozenset({"heating_meter", "other"})


# ---------------------------------------------------------------------------
# Percentages
# ---------------------------------------------------------------------------


def equal_shares(occupant_ids: Sequence[int]) -> dict[int, float]:
    """Exact ``100 / N`` percent per occupant."""
    if not occupant_ids:
        raise NoActiveOccupants()
    share = 100.0 / len(occupant_ids)
    return {oid: share for oid in occupant_ids}


def seed_equal_split(occupant_ids: Sequence[int]) -> dict[int, float]:
    """Even division rounded to 2 decimals, remainder on the last occupant.

    Only a starting point for the custom editor; sums to exactly 100.00.
    """
    if not occupant_ids:
        return {}
    share = round(100.0 / len(occupant_ids), SPLIT_DECIMALS)
    splits = {oid: share for oid in occupant_ids}
    last = occupant_ids[-1]
    splits[last] = round(100.0 - share * (len(occupant_ids) - 1), SPLIT_DECIMALS)
    return splits


def split_total(custom_splits: dict[int, float], occupant_ids: Iterable[int]) -> float:
    """Sum of the percentages assigned to the given (active) occupants."""
    return sum(custom_splits.get(oid, 0.0) for oid in occupant_ids)


def is_total_valid(total: float) -> bool:
    # Rounded so float noise (e.g. 99.99000000000001) does not flip the boundary
    return round(abs(total - 100.0), 9) <= PERCENT_TOLERANCE


def validate_split(
    split_type: str,
    occupant_ids: Sequence[int],
    custom_splits: dict[int, float] | None,
) -> None:
    """Raise unless the split is acceptable for saving."""
    if split_type not in SPLIT_TYPES:
        raise ValidationError("split_type", f"Split type must be one of: {', '.join(SPLIT_TYPES)}")
    if split_type == EQUAL:
        return
    splits = custom_splits or {}
    for oid, pct in splits.items():
        if not 0.0 <= pct <= 100.0:
            raise ValidationError("custom_splits", f"Percentage for occupant {oid} must be between 0 and 100")
    if not occupant_ids:
        # Nothing to misallocate
        return
    total = split_total(splits, occupant_ids)
    if not is_total_valid(total):
        raise PercentageSumInvalid(total)


def parse_percentage(value: str | float | int | None) -> float:
    """Operator input to a percentage; blank or unparseable input counts as 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value.strip() or 0)
    except ValueError:
        return 0.0


# ---------------------------------------------------------------------------
# Billing-time computation
# ---------------------------------------------------------------------------


def compute_shares(config: SharedMeterConfig, occupant_ids: Sequence[int]) -> dict[int, float]:
    """Percent per occupant active at billing time."""
    if not occupant_ids:
        raise NoActiveOccupants(config.building_id)
    if config.split_type == CUSTOM:
        # Occupants without a stored percentage fall back to the equal share
        equal = 100.0 / len(occupant_ids)
        missing = [oid for oid in occupant_ids if oid not in config.custom_splits]
        if missing:
            _LOGGER.warning(
                "Shared meter %s: custom %% not configured for occupant(s) %s, using equal share",
                config.meter_name or config.meter_id,
                ", ".join(str(m) for m in missing),
            )
        return {oid: config.custom_splits.get(oid, equal) for oid in occupant_ids}
    return equal_shares(occupant_ids)


def allocate_cost(
    config: SharedMeterConfig,
    consumption_kwh: float,
    occupant_ids: Sequence[int],
    proration: float = 1.0,
) -> dict[int, float]:
    """Cost per occupant: consumption x unit price x share, prorated for partial periods."""
    if not 0.0 <= proration <= 1.0:
        raise ValidationError("proration", "Proration factor must be between 0 and 1")
    total_cost = consumption_kwh * config.unit_price
    shares = compute_shares(config, occupant_ids)
    return {oid: total_cost * pct / 100.0 * proration for oid, pct in shares.items()}


def eligible_shared_meters(meters: Iterable[Meter], building_id: int | None = None) -> list[Meter]:
    """Building-level heating/other meters that can be shared."""
    return [
        m
        for m in meters
        if m.user_id is None
        and m.meter_type in SHAREABLE_METER_TYPES
        and (building_id is None or m.building_id == building_id)
    ]


# ---------------------------------------------------------------------------
# Draft (form state)
# ---------------------------------------------------------------------------


@dataclass
class SharedMeterDraft:
    """Editable shared meter configuration.

    ``occupant_ids`` are the active occupants of ``building_id``; the caller
    passes the new set whenever the building (or its occupants) changes.
    """

    building_id: int | None = None
    meter_id: int | None = None
    meter_name: str = ""
    split_type: str = EQUAL
    unit_price: float = 0.0
    occupant_ids: list[int] = field(default_factory=list)
    custom_splits: dict[int, float] = field(default_factory=dict)
    config_id: int | None = None

    @classmethod
    def from_config(cls, config: SharedMeterConfig, occupant_ids: Sequence[int]) -> SharedMeterDraft:
        return cls(
            building_id=config.building_id,
            meter_id=config.meter_id,
            meter_name=config.meter_name,
            split_type=config.split_type if config.split_type in SPLIT_TYPES else EQUAL,
            unit_price=config.unit_price,
            occupant_ids=list(occupant_ids),
            custom_splits=dict(config.custom_splits),
            config_id=config.id,
        )

    def change_building(self, building_id: int, occupant_ids: Sequence[int]) -> None:
        """Select another building; meter and custom splits must be re-entered."""
        if building_id != self.building_id:
            self.meter_id = None
            self.meter_name = ""
            self.custom_splits = {}
        self.building_id = building_id
        self.occupant_ids = list(occupant_ids)

    def change_split_type(self, split_type: str) -> None:
        if split_type not in SPLIT_TYPES:
            raise ValidationError("split_type", f"Split type must be one of: {', '.join(SPLIT_TYPES)}")
        if split_type == self.split_type:
            return
        self.split_type = split_type
        if split_type == EQUAL:
            self.custom_splits = {}
        else:
            self.reseed()

    def reseed(self) -> None:
        """Fill the custom editor with an even division over current occupants."""
        self.custom_splits = seed_equal_split(self.occupant_ids)

    def set_percentage(self, occupant_id: int, value: str | float | int | None) -> None:
        self.custom_splits[occupant_id] = parse_percentage(value)

    @property
    def total(self) -> float:
        return split_total(self.custom_splits, self.occupant_ids)

    def validate(self) -> None:
        if not self.building_id:
            raise MissingField("building_id")
        if not self.meter_id:
            raise MissingField("meter_id")
        if self.unit_price <= 0:
            raise ValidationError("unit_price", "Unit price must be greater than 0")
        validate_split(self.split_type, self.occupant_ids, self.custom_splits)

    def to_payload(self) -> dict[str, Any]:
        """Validated payload for the shared-meters API."""
        self.validate()
        payload: dict[str, Any] = {
            "meter_id": self.meter_id,
            "building_id": self.building_id,
            "meter_name": self.meter_name,
            "split_type": self.split_type,
            "unit_price": self.unit_price,
        }
        if self.split_type == CUSTOM:
            payload["custom_splits"] = {str(k): v for k, v in self.custom_splits.items()}
        return payload
