"""Per-protocol connection configuration for meters and chargers.

Each connection type has its own frozen dataclass, so a configuration only ever
holds the fields meaningful for its type. Switching the type of a draft builds a
fresh variant instead of mutating the old one; nothing from the previous
protocol can end up in the persisted ``connection_config`` JSON.

Signal fields (keys, UUIDs, registers, endpoints) are kept in ``signals`` under
their persisted names. Meters have one signal (power), chargers four (power,
state, user_id, mode).
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from typing import Any, ClassVar

from zev_config.errors import ConfigParseError, MissingField, ValidationError
from zev_config.presets import (
    DEFAULT_PRESET,
    HTTP,
    LOXONE_API,
    MODBUS_TCP,
    MQTT,
    UDP,
    ZAPTEC_API,
    DevicePreset,
    ModeMapping,
    StateMapping,
)

METER = "meter"
CHARGER = "charger"

DEFAULT_UDP_PORT = 8888
DEFAULT_MODBUS_PORT = 502
DEFAULT_UNIT_ID = 1
DEFAULT_REGISTER_COUNT = 2
DEFAULT_MQTT_BROKER = "localhost"
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_QOS = 1

LOXONE_LOCAL = "local"
LOXONE_REMOTE = "remote"

KIND_CONNECTION_TYPES: dict[str, tuple[str, ...]] = {
    METER: (LOXONE_API, MODBUS_TCP, UDP, MQTT, HTTP),
    CHARGER: (LOXONE_API, MODBUS_TCP, UDP, HTTP, ZAPTEC_API),
}

# Persisted field name for each signal, per connection type and device kind
_SIGNAL_FIELDS: dict[str, dict[str, tuple[str, ...]]] = {
    LOXONE_API: {
        METER: ("loxone_device_id",),
        CHARGER: ("loxone_power_uuid", "loxone_state_uuid", "loxone_user_id_uuid", "loxone_mode_uuid"),
    },
    MODBUS_TCP: {
        METER: ("register_address",),
        CHARGER: ("power_register", "state_register", "user_id_register", "mode_register"),
    },
    UDP: {
        METER: ("data_key",),
        CHARGER: ("power_key", "state_key", "user_id_key", "mode_key"),
    },
    HTTP: {
        METER: ("endpoint",),
        CHARGER: ("power_endpoint", "state_endpoint", "user_id_endpoint", "mode_endpoint"),
    },
}

CHARGER_BLOCK_FIELD = "loxone_charger_block_uuid"

# Charger connection types that carry state/mode value mappings
_MAPPING_TYPES = frozenset({LOXONE_API, MODBUS_TCP, UDP, HTTP})

MAPPING_FIELDS = (
    "state_cable_locked",
    "state_waiting_auth",
    "state_charging",
    "state_idle",
    "mode_normal",
    "mode_priority",
)


def signal_fields(connection_type: str, kind: str) -> tuple[str, ...]:
    """Persisted signal field names for a connection type and device kind."""
    return _SIGNAL_FIELDS.get(connection_type, {}).get(kind, ())


def carries_mapping(connection_type: str, kind: str) -> bool:
    return kind == CHARGER and connection_type in _MAPPING_TYPES


def is_single_block(
    connection_type: str,
    kind: str,
    preset: DevicePreset | None = None,
    raw: dict[str, Any] | None = None,
) -> bool:
    """Whether a Loxone charger is read through one block UUID.

    Decided by the preset, or by a block UUID already stored in *raw*.
    """
    if connection_type != LOXONE_API or kind != CHARGER:
        return False
    if preset is not None and preset.single_block:
        return True
    return bool(raw and not _is_empty(raw.get(CHARGER_BLOCK_FIELD)))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


# ---------------------------------------------------------------------------
# State / mode value mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValueMapping:
    """Device-reported raw values mapped to charger states and modes."""

    states: StateMapping
    modes: ModeMapping

    @classmethod
    def from_preset(cls, preset: DevicePreset) -> ValueMapping:
        return cls(states=preset.default_states, modes=preset.default_modes)

    @classmethod
    def from_dict(cls, raw: dict[str, Any], fallback: ValueMapping) -> ValueMapping:
        """Read mapping fields from a stored config; absent values use *fallback*."""

        def pick(key: str, default: str) -> str:
            val = raw.get(key)
            return default if _is_empty(val) else str(val)

        return cls(
            states=StateMapping(
                cable_locked=pick("state_cable_locked", fallback.states.cable_locked),
                waiting_auth=pick("state_waiting_auth", fallback.states.waiting_auth),
                charging=pick("state_charging", fallback.states.charging),
                idle=pick("state_idle", fallback.states.idle),
            ),
            modes=ModeMapping(
                normal=pick("mode_normal", fallback.modes.normal),
                priority=pick("mode_priority", fallback.modes.priority),
            ),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "state_cable_locked": self.states.cable_locked,
            "state_waiting_auth": self.states.waiting_auth,
            "state_charging": self.states.charging,
            "state_idle": self.states.idle,
            "mode_normal": self.modes.normal,
            "mode_priority": self.modes.priority,
        }

    def state_name(self, raw_value: Any) -> str | None:
        """Symbolic state for a raw device value, or None if unmapped."""
        value = str(raw_value).strip()
        for name in ("cable_locked", "waiting_auth", "charging", "idle"):
            if value == str(getattr(self.states, name)).strip():
                return name
        return None

    def mode_name(self, raw_value: Any) -> str:
        """Symbolic mode for a raw device value; unmapped values count as normal."""
        value = str(raw_value).strip()
        if value == self.modes.priority.strip() and value != self.modes.normal.strip():
            return "priority"
        return "normal"


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoxoneConfig:
    """Loxone Miniserver remote points.

    A single-block charger is read through one block UUID that returns power,
    state, user and mode together; it has no per-signal UUIDs and no value
    mapping.
    """

    connection_type: ClassVar[str] = LOXONE_API

    kind: str
    connection_mode: str = LOXONE_LOCAL
    host: str = ""
    mac_address: str = ""
    username: str = ""
    password: str = ""
    signals: dict[str, str] = field(default_factory=dict)
    mapping: ValueMapping | None = None
    charger_block_uuid: str = ""
    single_block: bool = False

    def required(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if self.connection_mode == LOXONE_REMOTE:
            values["loxone_mac_address"] = self.mac_address
        else:
            values["loxone_host"] = self.host
        values["loxone_username"] = self.username
        values["loxone_password"] = self.password
        if self.single_block:
            values[CHARGER_BLOCK_FIELD] = self.charger_block_uuid
        else:
            values.update(self.signals)
        return values

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"loxone_connection_mode": self.connection_mode}
        data.update(self.required())
        if self.mapping:
            data.update(self.mapping.to_dict())
        return data

    @classmethod
    def from_dict(
        cls,
        kind: str,
        raw: dict[str, Any],
        mapping: ValueMapping | None,
        single_block: bool = False,
    ) -> LoxoneConfig:
        return cls(
            kind=kind,
            connection_mode=raw.get("loxone_connection_mode") or LOXONE_LOCAL,
            host=raw.get("loxone_host") or "",
            mac_address=raw.get("loxone_mac_address") or "",
            username=raw.get("loxone_username") or "",
            password=raw.get("loxone_password") or "",
            signals={} if single_block else {f: raw.get(f) or "" for f in signal_fields(LOXONE_API, kind)},
            mapping=None if single_block else mapping,
            charger_block_uuid=(raw.get(CHARGER_BLOCK_FIELD) or "") if single_block else "",
            single_block=single_block,
        )

    def with_block_layout(self, single_block: bool, preset: DevicePreset) -> LoxoneConfig:
        """Copy switched between single-block and per-signal UUIDs.

        The Miniserver address and credentials are kept; the UUIDs are not.
        """
        if single_block == self.single_block:
            return self
        if single_block:
            return dataclasses.replace(self, signals={}, mapping=None, single_block=True)
        return dataclasses.replace(
            self,
            signals=_default_signals(LOXONE_API, self.kind),
            mapping=ValueMapping.from_preset(preset),
            charger_block_uuid="",
            single_block=False,
        )


@dataclass(frozen=True)
class ModbusTcpConfig:
    """Modbus TCP registers."""

    connection_type: ClassVar[str] = MODBUS_TCP

    kind: str
    ip_address: str = ""
    port: int = DEFAULT_MODBUS_PORT
    unit_id: int = DEFAULT_UNIT_ID
    register_count: int = DEFAULT_REGISTER_COUNT
    signals: dict[str, int] = field(default_factory=dict)
    mapping: ValueMapping | None = None

    def required(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            "ip_address": self.ip_address,
            "port": self.port,
            "unit_id": self.unit_id,
        }
        values.update(self.signals)
        if self.kind == METER:
            values["register_count"] = self.register_count
        return values

    def to_dict(self) -> dict[str, Any]:
        data = self.required()
        if self.mapping:
            data.update(self.mapping.to_dict())
        return data

    @classmethod
    def from_dict(cls, kind: str, raw: dict[str, Any], mapping: ValueMapping | None) -> ModbusTcpConfig:
        defaults = _default_signals(MODBUS_TCP, kind)
        return cls(
            kind=kind,
            ip_address=raw.get("ip_address") or "",
            port=_as_int(raw.get("port"), DEFAULT_MODBUS_PORT),
            unit_id=_as_int(raw.get("unit_id"), DEFAULT_UNIT_ID),
            register_count=_as_int(raw.get("register_count"), DEFAULT_REGISTER_COUNT),
            signals={f: _as_int(raw.get(f), defaults[f]) for f in defaults},
            mapping=mapping,
        )


@dataclass(frozen=True)
class UdpConfig:
    """Shared UDP listen port, one JSON key per signal."""

    connection_type: ClassVar[str] = UDP

    kind: str
    listen_port: int = DEFAULT_UDP_PORT
    signals: dict[str, str] = field(default_factory=dict)
    mapping: ValueMapping | None = None

    def required(self) -> dict[str, Any]:
        return {"listen_port": self.listen_port, **self.signals}

    def to_dict(self) -> dict[str, Any]:
        data = self.required()
        if self.mapping:
            data.update(self.mapping.to_dict())
        return data

    def with_keys(self, keys: dict[str, str]) -> UdpConfig:
        """Copy with signal keys replaced (keys must be this kind's signal fields)."""
        unknown = set(keys) - set(signal_fields(UDP, self.kind))
        if unknown:
            raise ValidationError(sorted(unknown)[0], f"Not a UDP {self.kind} key: {sorted(unknown)[0]}")
        return dataclasses.replace(self, signals={**self.signals, **keys})

    @classmethod
    def from_dict(cls, kind: str, raw: dict[str, Any], mapping: ValueMapping | None) -> UdpConfig:
        return cls(
            kind=kind,
            listen_port=_as_int(raw.get("listen_port"), DEFAULT_UDP_PORT),
            signals={f: raw.get(f) or "" for f in signal_fields(UDP, kind)},
            mapping=mapping,
        )


@dataclass(frozen=True)
class MqttConfig:
    """One topic on an MQTT broker."""

    connection_type: ClassVar[str] = MQTT

    kind: str
    topic: str = ""
    broker: str = DEFAULT_MQTT_BROKER
    port: int = DEFAULT_MQTT_PORT
    username: str = ""
    password: str = ""
    qos: int = DEFAULT_MQTT_QOS

    def required(self) -> dict[str, Any]:
        return {
            "mqtt_topic": self.topic,
            "mqtt_broker": self.broker,
            "mqtt_port": self.port,
            "mqtt_qos": self.qos,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.required()
        if self.username:
            data["mqtt_username"] = self.username
        if self.password:
            data["mqtt_password"] = self.password
        return data

    @classmethod
    def from_dict(cls, kind: str, raw: dict[str, Any], mapping: ValueMapping | None) -> MqttConfig:
        return cls(
            kind=kind,
            topic=raw.get("mqtt_topic") or "",
            broker=raw.get("mqtt_broker") or DEFAULT_MQTT_BROKER,
            port=_as_int(raw.get("mqtt_port"), DEFAULT_MQTT_PORT),
            username=raw.get("mqtt_username") or "",
            password=raw.get("mqtt_password") or "",
            qos=_as_int(raw.get("mqtt_qos"), DEFAULT_MQTT_QOS),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP endpoints polled per signal."""

    connection_type: ClassVar[str] = HTTP

    kind: str
    signals: dict[str, str] = field(default_factory=dict)
    power_field: str = ""  # JSON field holding the reading (meters)
    mapping: ValueMapping | None = None

    def required(self) -> dict[str, Any]:
        values: dict[str, Any] = dict(self.signals)
        if self.kind == METER:
            values["power_field"] = self.power_field
        return values

    def to_dict(self) -> dict[str, Any]:
        data = self.required()
        if self.mapping:
            data.update(self.mapping.to_dict())
        return data

    @classmethod
    def from_dict(cls, kind: str, raw: dict[str, Any], mapping: ValueMapping | None) -> HttpConfig:
        return cls(
            kind=kind,
            signals={f: raw.get(f) or "" for f in signal_fields(HTTP, kind)},
            power_field=raw.get("power_field") or "",
            mapping=mapping,
        )


@dataclass(frozen=True)
class ZaptecConfig:
    """Zaptec cloud account and charger identity."""

    connection_type: ClassVar[str] = ZAPTEC_API

    kind: str
    username: str = ""
    password: str = ""
    charger_id: str = ""
    installation_id: str = ""

    def required(self) -> dict[str, Any]:
        return {
            "zaptec_username": self.username,
            "zaptec_password": self.password,
            "zaptec_charger_id": self.charger_id,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.required()
        if self.installation_id:
            data["zaptec_installation_id"] = self.installation_id
        return data

    @classmethod
    def from_dict(cls, kind: str, raw: dict[str, Any], mapping: ValueMapping | None) -> ZaptecConfig:
        return cls(
            kind=kind,
            username=raw.get("zaptec_username") or "",
            password=raw.get("zaptec_password") or "",
            charger_id=raw.get("zaptec_charger_id") or "",
            installation_id=raw.get("zaptec_installation_id") or "",
        )


ConnectionConfig = LoxoneConfig | ModbusTcpConfig | UdpConfig | MqttConfig | HttpConfig | ZaptecConfig

CONFIG_TYPES: dict[str, type] = {
    cls.connection_type: cls
    for cls in (LoxoneConfig, ModbusTcpConfig, UdpConfig, MqttConfig, HttpConfig, ZaptecConfig)
}


# ---------------------------------------------------------------------------
# Construction and transitions
# ---------------------------------------------------------------------------


def _as_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigParseError(f"Expected an integer, got {value!r}") from None


def _coerce(key: str, current: Any, value: Any) -> Any:
    """Convert operator input to the type of the field it replaces."""
    if isinstance(current, int) and isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ValidationError(key, f"'{key}' must be an integer") from None
    return value


def _default_signals(connection_type: str, kind: str) -> dict[str, Any]:
    names = signal_fields(connection_type, kind)
    if connection_type == MODBUS_TCP:
        # Consecutive registers starting at 0
        return {name: i for i, name in enumerate(names)}
    return {name: "" for name in names}


def _check_supported(connection_type: str, kind: str) -> None:
    if kind not in KIND_CONNECTION_TYPES:
        raise ValidationError("kind", f"Unknown device kind '{kind}'")
    if connection_type not in KIND_CONNECTION_TYPES[kind]:
        raise ValidationError(
            "connection_type",
            f"Connection type '{connection_type}' is not available for {kind}s",
        )


def new_config(
    connection_type: str,
    kind: str,
    preset: DevicePreset | None = None,
) -> ConnectionConfig:
    """Blank configuration for *connection_type* with mappings from *preset*."""
    _check_supported(connection_type, kind)
    if is_single_block(connection_type, kind, preset):
        return LoxoneConfig(kind=kind, single_block=True)
    kwargs: dict[str, Any] = {"kind": kind}
    if connection_type in _SIGNAL_FIELDS:
        kwargs["signals"] = _default_signals(connection_type, kind)
    if carries_mapping(connection_type, kind):
        kwargs["mapping"] = ValueMapping.from_preset(preset or DEFAULT_PRESET)
    return CONFIG_TYPES[connection_type](**kwargs)


def switch_connection_type(
    config: ConnectionConfig,
    connection_type: str,
    preset: DevicePreset | None = None,
) -> ConnectionConfig:
    """Replace *config* with a blank variant of another type.

    The previous type's fields are dropped. A state/mode mapping the operator
    already edited survives when the new type carries one too.
    """
    if connection_type == config.connection_type:
        return config
    fresh = new_config(connection_type, config.kind, preset)
    old_mapping = getattr(config, "mapping", None)
    if old_mapping is not None and getattr(fresh, "mapping", None) is not None:
        fresh = dataclasses.replace(fresh, mapping=old_mapping)
    return fresh


def apply_preset(config: ConnectionConfig, preset: DevicePreset) -> ConnectionConfig:
    """Overwrite only the state/mode mapping with *preset* defaults.

    A Loxone charger also follows the preset's single-block layout.
    """
    if isinstance(config, LoxoneConfig) and config.kind == CHARGER:
        config = config.with_block_layout(preset.single_block, preset)
    if getattr(config, "mapping", None) is None:
        return config
    return dataclasses.replace(config, mapping=ValueMapping.from_preset(preset))


def update_config(config: ConnectionConfig, **changes: Any) -> ConnectionConfig:
    """Set fields on a config by persisted name (e.g. ``listen_port=9000``)."""
    attrs: dict[str, Any] = {}
    signals = dict(getattr(config, "signals", {}))
    attr_names = {f.name for f in dataclasses.fields(config)} - {"kind", "signals", "mapping", "single_block"}
    if not getattr(config, "single_block", False):
        attr_names.discard("charger_block_uuid")
    mapping = getattr(config, "mapping", None)
    mapping_changes: dict[str, Any] = {}
    prefix = {LOXONE_API: "loxone_", MQTT: "mqtt_", ZAPTEC_API: "zaptec_"}.get(config.connection_type, "")
    for key, value in changes.items():
        if key in signals:
            signals[key] = _coerce(key, signals[key], value)
            continue
        if mapping is not None and key in MAPPING_FIELDS:
            if _is_empty(value):
                raise MissingField(key)
            mapping_changes[key] = value
            continue
        name = key[len(prefix):] if prefix and key.startswith(prefix) else key
        if name not in attr_names:
            raise ValidationError(key, f"'{key}' is not a {config.connection_type} field")
        attrs[name] = _coerce(key, getattr(config, name), value)
    if "signals" in {f.name for f in dataclasses.fields(config)}:
        attrs["signals"] = signals
    if mapping_changes:
        attrs["mapping"] = ValueMapping.from_dict(mapping_changes, mapping)
    return dataclasses.replace(config, **attrs)


# ---------------------------------------------------------------------------
# Validation and (de)serialization
# ---------------------------------------------------------------------------


def missing_fields(config: ConnectionConfig) -> list[str]:
    """Names of required fields that are still empty."""
    return [name for name, value in config.required().items() if _is_empty(value)]


def validate_config(config: ConnectionConfig) -> None:
    """Raise if *config* is not ready to be persisted."""
    missing = missing_fields(config)
    if missing:
        raise MissingField(missing[0])

    for name, value in config.required().items():
        if name in ("port", "listen_port", "mqtt_port"):
            if not isinstance(value, int) or not 1 <= value <= 65535:
                raise ValidationError(name, f"'{name}' must be a port number (1-65535)")
    if isinstance(config, MqttConfig) and config.qos not in (0, 1, 2):
        raise ValidationError("mqtt_qos", "'mqtt_qos' must be 0, 1 or 2")
    if isinstance(config, ModbusTcpConfig):
        for name, value in config.signals.items():
            if not isinstance(value, int) or value < 0:
                raise ValidationError(name, f"'{name}' must be a non-negative register address")
    if isinstance(config, LoxoneConfig) and config.connection_mode not in (LOXONE_LOCAL, LOXONE_REMOTE):
        raise ValidationError("loxone_connection_mode", "Loxone connection mode must be 'local' or 'remote'")


def config_to_dict(config: ConnectionConfig) -> dict[str, Any]:
    return config.to_dict()


def serialize_config(config: ConnectionConfig) -> str:
    """Flat JSON object with only the keys of *config*'s connection type."""
    return json.dumps(config_to_dict(config))


def parse_config(
    connection_type: str,
    raw: str | dict[str, Any] | None,
    kind: str,
    preset: DevicePreset | None = None,
) -> ConnectionConfig:
    """Decode a stored connection_config into its variant.

    Keys that do not belong to *connection_type* are dropped.
    """
    if connection_type not in CONFIG_TYPES:
        raise ConfigParseError(f"Unknown connection type '{connection_type}'")
    if raw is None or raw == "":
        data: Any = {}
    elif isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigParseError(f"Invalid connection_config JSON: {exc}") from None
    else:
        data = raw
    if not isinstance(data, dict):
        raise ConfigParseError("connection_config must be a JSON object")

    if is_single_block(connection_type, kind, preset, data):
        return LoxoneConfig.from_dict(kind, data, None, single_block=True)
    mapping = None
    if carries_mapping(connection_type, kind):
        mapping = ValueMapping.from_dict(data, ValueMapping.from_preset(preset or DEFAULT_PRESET))
    return CONFIG_TYPES[connection_type].from_dict(kind, data, mapping)


def identifier_fields(config: ConnectionConfig) -> dict[str, str]:
    """Identifiers held by *config* that must be unique across the fleet."""
    if isinstance(config, UdpConfig):
        return {k: v for k, v in config.signals.items() if not _is_empty(v)}
    if isinstance(config, HttpConfig) and config.kind == METER and config.power_field:
        return {"power_field": config.power_field}
    if isinstance(config, MqttConfig) and config.topic:
        return {"mqtt_topic": config.topic}
    return {}
