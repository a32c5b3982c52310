"""Tests for meter/charger drafts."""

from __future__ import annotations

import json

import click
import pytest

from zev_config.connection import (
    CHARGER,
    METER,
    HttpConfig,
    LoxoneConfig,
    ModbusTcpConfig,
    MqttConfig,
    UdpConfig,
    ZaptecConfig,
)
from zev_config.devices import DeviceDraft, _parse_overrides
from zev_config.errors import MissingField, ValidationError
from zev_config.models import Charger
from zev_config.presets import HTTP, LOXONE_API, MODBUS_TCP, MQTT, UDP, ZAPTEC_API
from zev_config.registry import Fleet

from tests.conftest import BUILDING_ID, METER_KEY, SOLAR_TOPIC


def test_new_meter_gets_unique_data_key(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, name="Apt 1.2", building_id=BUILDING_ID)
    assert isinstance(draft.config, UdpConfig)
    key = draft.config.signals["data_key"]
    assert key.endswith("_power_kwh")
    assert key != METER_KEY
    assert draft.identifier_conflicts() == []


def test_new_charger_gets_four_keys(fleet: Fleet) -> None:
    draft = DeviceDraft.create(CHARGER, fleet.devices, preset="weidmuller", name="Wallbox 2",
                               building_id=BUILDING_ID)
    signals = draft.config.signals
    base = signals["power_key"].removesuffix("_power")
    assert signals["state_key"] == f"{base}_state"
    assert signals["user_id_key"] == f"{base}_user"
    assert signals["mode_key"] == f"{base}_mode"
    assert draft.config.mapping.states.charging == "67"


def test_reserved_key_survives_type_round_trip(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, name="M", building_id=BUILDING_ID)
    key = draft.config.signals["data_key"]

    draft.change_connection_type(MODBUS_TCP)
    assert isinstance(draft.config, ModbusTcpConfig)
    assert "data_key" not in draft.config.to_dict()

    draft.change_connection_type(UDP)
    assert draft.config.signals["data_key"] == key


def test_http_meter_uses_reserved_key_as_power_field(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, connection_type=HTTP, name="M", building_id=BUILDING_ID)
    assert isinstance(draft.config, HttpConfig)
    assert draft.config.power_field == draft.reserved_keys["data_key"]


def test_new_mqtt_meter_gets_topic(fleet: Fleet) -> None:
    draft = DeviceDraft.create(
        METER, fleet.devices, connection_type=MQTT, name="Solar",
        building_id=BUILDING_ID, building_name="Haus A",
    )
    assert isinstance(draft.config, MqttConfig)
    assert draft.config.topic == f"{SOLAR_TOPIC}_1"

    draft.change_name("Roof PV")
    assert draft.config.topic == "meters/haus_a/roof_pv"


def test_existing_device_is_not_rekeyed(fleet: Fleet) -> None:
    solar = next(m for m in fleet.meters if m.name == "Solar")
    draft = DeviceDraft.edit(solar, fleet.devices)
    assert not draft.is_new
    draft.change_name("Solar East")
    assert draft.config.topic == SOLAR_TOPIC
    # The device itself is excluded from the conflict check
    assert draft.identifier_conflicts() == []


def test_edit_keeps_stored_udp_key(fleet: Fleet) -> None:
    meter = next(m for m in fleet.meters if m.id == 101)
    draft = DeviceDraft.edit(meter, fleet.devices)
    assert draft.config.signals["data_key"] == METER_KEY
    assert draft.meter_type == "apartment_meter"
    assert draft.user_id == 11


def test_identifier_conflict_detected(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, name="Copy", building_id=BUILDING_ID)
    draft.set_fields(data_key=METER_KEY)
    assert draft.identifier_conflicts() == [METER_KEY]


def test_zaptec_preset_forces_zaptec_api(fleet: Fleet) -> None:
    draft = DeviceDraft.create(CHARGER, fleet.devices, preset="zaptec", name="Go", building_id=BUILDING_ID)
    assert draft.connection_type == ZAPTEC_API
    assert isinstance(draft.config, ZaptecConfig)


def test_preset_switch_keeps_wiring(fleet: Fleet) -> None:
    draft = DeviceDraft.create(CHARGER, fleet.devices, connection_type=MODBUS_TCP, name="Box",
                               building_id=BUILDING_ID)
    draft.set_fields(ip_address="10.0.0.7", power_register="100")
    draft.change_preset("weidmuller")
    assert draft.connection_type == MODBUS_TCP
    assert draft.config.ip_address == "10.0.0.7"
    assert draft.config.signals["power_register"] == 100


def test_unknown_preset_falls_back(fleet: Fleet) -> None:
    draft = DeviceDraft.create(CHARGER, fleet.devices, preset="acme", name="Box", building_id=BUILDING_ID)
    assert draft.preset == "generic"


def test_validate_requires_name_and_building(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices)
    with pytest.raises(MissingField) as exc_info:
        draft.validate()
    assert exc_info.value.field == "name"

    draft.change_name("Meter")
    with pytest.raises(MissingField) as building_exc:
        draft.validate()
    assert building_exc.value.field == "building_id"


def test_validate_missing_connection_field(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, connection_type=MODBUS_TCP, name="M",
                               building_id=BUILDING_ID)
    with pytest.raises(MissingField) as exc_info:
        draft.validate()
    assert exc_info.value.field == "ip_address"


def test_meter_payload(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, name="Apt 1.2", building_id=BUILDING_ID,
                               apartment_unit="1.2")
    draft.meter_type = "apartment_meter"
    draft.user_id = 12
    payload = draft.to_payload()
    assert payload["meter_type"] == "apartment_meter"
    assert payload["user_id"] == 12
    assert payload["apartment_unit"] == "1.2"
    config = json.loads(payload["connection_config"])
    assert set(config) == {"listen_port", "data_key"}


def test_charger_payload(fleet: Fleet) -> None:
    draft = DeviceDraft.create(CHARGER, fleet.devices, preset="weidmuller", name="Wallbox 2",
                               building_id=BUILDING_ID)
    payload = draft.to_payload()
    assert payload["preset"] == "weidmuller"
    assert payload["supports_priority"] is True
    config = json.loads(payload["connection_config"])
    assert config["mode_priority"] == "2"
    assert "listen_port" in config


def test_edit_single_block_charger_keeps_block_uuid(fleet: Fleet) -> None:
    stored = {
        "loxone_connection_mode": "remote",
        "loxone_mac_address": "504F94A00000",
        "loxone_username": "admin",
        "loxone_password": "pw",
        "loxone_charger_block_uuid": "1f2e3d4c-0001",
    }
    charger = Charger(
        id=203, name="Wallbox Garage", building_id=BUILDING_ID, connection_type=LOXONE_API,
        connection_config=json.dumps(stored), preset="weidmuller_single",
    )
    draft = DeviceDraft.edit(charger, fleet.devices)
    draft.change_name("Wallbox Carport")

    payload = draft.to_payload()
    assert payload["preset"] == "weidmuller_single"
    assert json.loads(payload["connection_config"]) == stored


def test_new_single_block_charger(fleet: Fleet) -> None:
    draft = DeviceDraft.create(CHARGER, fleet.devices, preset="weidmuller_single", name="Wallbox 3",
                               building_id=BUILDING_ID)
    assert isinstance(draft.config, LoxoneConfig)
    assert draft.config.single_block
    with pytest.raises(MissingField) as exc_info:
        draft.validate()
    assert exc_info.value.field == "loxone_host"


def test_set_fields_rejects_unknown(fleet: Fleet) -> None:
    draft = DeviceDraft.create(METER, fleet.devices, name="M", building_id=BUILDING_ID)
    with pytest.raises(ValidationError):
        draft.set_fields(mqtt_topic="meters/x")


def test_parse_overrides() -> None:
    assert _parse_overrides(("ip_address=10.0.0.1", "port=5020")) == {"ip_address": "10.0.0.1", "port": "5020"}
    assert _parse_overrides(("endpoint=http://x/?a=b",)) == {"endpoint": "http://x/?a=b"}
    with pytest.raises(click.BadParameter):
        _parse_overrides(("nonsense",))
