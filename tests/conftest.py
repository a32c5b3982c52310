"""Shared test fixtures with mock ZEV API data."""

from __future__ import annotations

import json
from typing import Any

import pytest

from zev_config.registry import (
    Fleet,
    _parse_building,
    _parse_charger,
    _parse_meter,
    _parse_occupant,
    _parse_shared_meter,
)

BUILDING_ID = 1
OTHER_BUILDING_ID = 2

METER_KEY = "11111111-aaaa-4aaa-8aaa-000000000001_power_kwh"
HEATING_KEY = "22222222-bbbb-4bbb-8bbb-000000000002_power_kwh"
CHARGER_UUID = "33333333-cccc-4ccc-8ccc-000000000003"
SOLAR_TOPIC = "meters/haus_a/solar"

HEATING_METER_ID = 102
COMMON_METER_ID = 104
SHARED_CONFIG_ID = 301


@pytest.fixture
def raw_buildings() -> list[dict[str, Any]]:
    return [
        {"id": BUILDING_ID, "name": "Haus A", "is_group": False},
        {"id": OTHER_BUILDING_ID, "name": "Haus B", "is_group": False},
    ]


@pytest.fixture
def raw_users() -> list[dict[str, Any]]:
    return [
        {"id": 11, "first_name": "Anna", "last_name": "Muster", "building_id": BUILDING_ID,
         "apartment_unit": "1.1", "is_active": True},
        {"id": 12, "first_name": "Beat", "last_name": "Keller", "building_id": BUILDING_ID,
         "apartment_unit": "1.2", "is_active": True},
        {"id": 13, "first_name": "Carla", "last_name": "Rossi", "building_id": BUILDING_ID,
         "apartment_unit": "2.1", "is_active": True},
        {"id": 14, "first_name": "Dora", "last_name": "Frei", "building_id": BUILDING_ID,
         "apartment_unit": "2.2", "is_active": False},
        {"id": 21, "first_name": "Emil", "last_name": "Weber", "building_id": OTHER_BUILDING_ID,
         "apartment_unit": "", "is_active": True},
    ]


@pytest.fixture
def raw_meters() -> list[dict[str, Any]]:
    return [
        {
            "id": 101, "name": "Apt 1.1", "building_id": BUILDING_ID,
            "meter_type": "apartment_meter", "user_id": 11, "apartment_unit": "1.1",
            "connection_type": "udp",
            "connection_config": json.dumps({"listen_port": 8888, "data_key": METER_KEY}),
            "is_active": True,
        },
        {
            "id": HEATING_METER_ID, "name": "Heating", "building_id": BUILDING_ID,
            "meter_type": "heating_meter", "user_id": None,
            "connection_type": "udp",
            "connection_config": json.dumps({"listen_port": 8888, "data_key": HEATING_KEY}),
            "is_active": True,
        },
        {
            "id": 103, "name": "Solar", "building_id": BUILDING_ID,
            "meter_type": "solar_meter", "user_id": None,
            "connection_type": "mqtt",
            "connection_config": json.dumps({
                "mqtt_topic": SOLAR_TOPIC, "mqtt_broker": "localhost", "mqtt_port": 1883, "mqtt_qos": 1,
            }),
            "is_active": True,
        },
        {
            "id": COMMON_METER_ID, "name": "Common Areas", "building_id": BUILDING_ID,
            "meter_type": "other", "user_id": None,
            "connection_type": "modbus_tcp",
            "connection_config": json.dumps({
                "ip_address": "192.168.1.50", "port": 502, "unit_id": 1,
                "register_address": 0, "register_count": 2,
            }),
            "is_active": True,
        },
    ]


@pytest.fixture
def raw_chargers() -> list[dict[str, Any]]:
    return [
        {
            "id": 201, "name": "Wallbox 1", "building_id": BUILDING_ID, "preset": "weidmuller",
            "connection_type": "udp",
            "connection_config": json.dumps({
                "listen_port": 8888,
                "power_key": f"{CHARGER_UUID}_power",
                "state_key": f"{CHARGER_UUID}_state",
                "user_id_key": f"{CHARGER_UUID}_user",
                "mode_key": f"{CHARGER_UUID}_mode",
                "state_cable_locked": "65", "state_waiting_auth": "66",
                "state_charging": "67", "state_idle": "50",
                "mode_normal": "1", "mode_priority": "2",
            }),
            "is_active": True,
        },
        {
            "id": 202, "name": "Zaptec Go", "building_id": OTHER_BUILDING_ID, "preset": "zaptec",
            "connection_type": "zaptec_api",
            "connection_config": json.dumps({
                "zaptec_username": "ops@example.ch", "zaptec_password": "secret",
                "zaptec_charger_id": "ZAP-001",
            }),
            "is_active": True,
        },
    ]


@pytest.fixture
def raw_shared_meters() -> list[dict[str, Any]]:
    return [
        {
            "id": SHARED_CONFIG_ID, "meter_id": HEATING_METER_ID, "building_id": BUILDING_ID,
            "meter_name": "Heating", "split_type": "custom", "unit_price": 0.25,
            "custom_splits": {"11": 50, "12": 30, "13": 20},
        },
    ]


@pytest.fixture
def api_responses(
    raw_buildings: list[dict[str, Any]],
    raw_users: list[dict[str, Any]],
    raw_meters: list[dict[str, Any]],
    raw_chargers: list[dict[str, Any]],
    raw_shared_meters: list[dict[str, Any]],
) -> dict[str, Any]:
    return {
        "/buildings": raw_buildings,
        "/users": raw_users,
        "/meters": raw_meters,
        "/chargers": raw_chargers,
        "/shared-meters": raw_shared_meters,
    }


@pytest.fixture
def fleet(
    raw_buildings: list[dict[str, Any]],
    raw_users: list[dict[str, Any]],
    raw_meters: list[dict[str, Any]],
    raw_chargers: list[dict[str, Any]],
    raw_shared_meters: list[dict[str, Any]],
) -> Fleet:
    return Fleet(
        buildings=[_parse_building(b) for b in raw_buildings],
        occupants=[_parse_occupant(u) for u in raw_users],
        meters=[_parse_meter(m) for m in raw_meters],
        chargers=[_parse_charger(c) for c in raw_chargers],
        shared_meters=[_parse_shared_meter(s) for s in raw_shared_meters],
    )


class FakeClient:
    """Stand-in for ZEVClient serving canned GET responses and recording writes."""

    def __init__(self, responses: dict[str, Any]) -> None:
        self._responses = responses
        self.requests: list[tuple[str, str, Any]] = []

    async def __aenter__(self) -> FakeClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        pass

    async def get(self, path: str) -> Any:
        self.requests.append(("GET", path, None))
        return self._responses.get(path)

    async def post(self, path: str, payload: Any) -> Any:
        self.requests.append(("POST", path, payload))
        return {"id": 999, **payload}

    async def put(self, path: str, payload: Any) -> Any:
        self.requests.append(("PUT", path, payload))
        return payload

    def writes(self) -> list[tuple[str, str, Any]]:
        return [r for r in self.requests if r[0] != "GET"]


@pytest.fixture
def fake_client(api_responses: dict[str, Any]) -> FakeClient:
    return FakeClient(api_responses)
