"""Device preset catalog and connection type definitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from zev_config.errors import PresetNotFound

_LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Connection types
# ---------------------------------------------------------------------------

LOXONE_API = "loxone_api"
MODBUS_TCP = "modbus_tcp"
UDP = "udp"
MQTT = "mqtt"
HTTP = "http"
ZAPTEC_API = "zaptec_api"


@dataclass(frozen=True)
class ConnectionTypeOption:
    """A selectable connection type."""

    value: str
    label: str
    description: str


CONNECTION_TYPES: dict[str, ConnectionTypeOption] = {
    LOXONE_API: ConnectionTypeOption(
        LOXONE_API, "Loxone API", "Remote points read over the Loxone Miniserver WebSocket"
    ),
    MODBUS_TCP: ConnectionTypeOption(MODBUS_TCP, "Modbus TCP", "Direct Modbus TCP connection"),
    UDP: ConnectionTypeOption(UDP, "UDP Listener", "JSON datagrams pushed to a shared port"),
    MQTT: ConnectionTypeOption(MQTT, "MQTT", "Subscribe to a topic on an MQTT broker"),
    HTTP: ConnectionTypeOption(HTTP, "HTTP REST API", "Poll HTTP endpoints for device data"),
    ZAPTEC_API: ConnectionTypeOption(ZAPTEC_API, "Zaptec Cloud API", "Connect via Zaptec cloud service"),
}

# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateMapping:
    """Raw charger state values for the four symbolic states."""

    cable_locked: str
    waiting_auth: str
    charging: str
    idle: str


@dataclass(frozen=True)
class ModeMapping:
    """Raw charger mode values for normal and priority charging."""

    normal: str
    priority: str


@dataclass(frozen=True)
class DevicePreset:
    """Named default configuration profile for a device brand/model."""

    name: str
    label: str
    description: str
    supports_priority: bool
    default_states: StateMapping
    default_modes: ModeMapping
    supported_connection_types: tuple[str, ...] = field(default_factory=tuple)
    # Charger reports all of its data through one Loxone block UUID
    single_block: bool = False


_WALLBOX_STATES = StateMapping(cable_locked="65", waiting_auth="66", charging="67", idle="50")

GENERIC_PRESET = DevicePreset(
    name="generic",
    label="Generic",
    description="Generic device with default value mappings",
    supports_priority=True,
    default_states=_WALLBOX_STATES,
    default_modes=ModeMapping(normal="1", priority="2"),
    supported_connection_types=tuple(CONNECTION_TYPES),
)

WEIDMULLER_PRESET = DevicePreset(
    name="weidmuller",
    label="Weidmüller",
    description="Weidmüller AC Smart chargers",
    supports_priority=True,
    default_states=_WALLBOX_STATES,
    default_modes=ModeMapping(normal="1", priority="2"),
    supported_connection_types=(LOXONE_API, MODBUS_TCP, UDP, HTTP),
)

WEIDMULLER_SINGLE_PRESET = DevicePreset(
    name="weidmuller_single",
    label="Weidmüller (Single-Block UUID)",
    description="Weidmüller AC Smart chargers read through one Loxone block UUID",
    supports_priority=True,
    default_states=_WALLBOX_STATES,
    default_modes=ModeMapping(normal="1", priority="2"),
    supported_connection_types=(LOXONE_API,),
    single_block=True,
)

ZAPTEC_PRESET = DevicePreset(
    name="zaptec",
    label="Zaptec",
    description="Zaptec Go/Pro chargers",
    supports_priority=False,
    default_states=_WALLBOX_STATES,
    default_modes=ModeMapping(normal="1", priority="1"),
    supported_connection_types=(ZAPTEC_API,),
)

PRESETS: dict[str, DevicePreset] = {
    p.name: p for p in (GENERIC_PRESET, WEIDMULLER_PRESET, WEIDMULLER_SINGLE_PRESET, ZAPTEC_PRESET)
}

DEFAULT_PRESET = GENERIC_PRESET


def find_preset(name: str) -> DevicePreset:
    """Strict lookup; raises PresetNotFound for unknown names."""
    try:
        return PRESETS[name]
    except KeyError:
        raise PresetNotFound(name) from None


def get_preset(name: str | None) -> DevicePreset:
    """Return the named preset, or the generic preset if the name is unknown."""
    try:
        return find_preset(name or "")
    except PresetNotFound:
        _LOGGER.debug("Preset %r not found, using %s", name, DEFAULT_PRESET.name)
        return DEFAULT_PRESET


def available_connection_types(preset_name: str | None) -> list[ConnectionTypeOption]:
    """Connection types a preset can be wired with."""
    preset = get_preset(preset_name)
    return [CONNECTION_TYPES[t] for t in preset.supported_connection_types if t in CONNECTION_TYPES]
