"""Shared helpers for microphone capture and speech playback."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

__all__ = ["coerce_sample_rate", "describe_device", "device_info_dict"]


def device_info_dict(info: object) -> dict[str, object]:
    """Return a plain dict from sounddevice info objects for logging/debugging."""
    if isinstance(info, dict):
        return dict(info)
    if isinstance(info, Mapping):
        return dict(info.items())
    if hasattr(info, "__dict__"):
        return dict(vars(info))
    return {}


def coerce_sample_rate(value: object) -> Optional[int]:
    """Parse the ``default_samplerate`` field PortAudio reports as float or string."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None


def describe_device(sd: Any, device: object) -> str:
    """Return ``"<name> (id <index>)"`` for log lines, tolerating lookup failures."""

    if device is None:
        return "system default"

    try:
        info = device_info_dict(sd.query_devices(device))
    except Exception:
        return str(device)
    name_obj = info.get("name")
    name = str(name_obj) if name_obj not in (None, "") else "Unknown device"
    idx_obj = info.get("index")
    index = idx_obj if isinstance(idx_obj, int) else device if isinstance(device, int) else "?"
    return f"{name} (id {index})"
