"""
Feedback predicates evaluated against the device state.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, Optional

from .state import DeviceState

Options = Optional[Dict[str, Any]]


def combine_rgb(red: int, green: int, blue: int) -> int:
    return ((red & 0xFF) << 16) | ((green & 0xFF) << 8) | (blue & 0xFF)


WHITE = combine_rgb(255, 255, 255)
GREEN = combine_rgb(51, 102, 0)
RED = combine_rgb(128, 0, 0)


def _option(options: Options, key: str, default: Any = None) -> Any:
    return (options or {}).get(key, default)


def png64(image: bytes) -> str:
    return base64.b64encode(image).decode("ascii")


def streaming(state: DeviceState, options: Options = None) -> bool:
    return state.is_live(_option(options, "channel"))


def active(state: DeviceState, options: Options = None) -> bool:
    channel = _option(options, "channel")
    return channel is not None and str(channel) == str(state.current_channel)


def playing(state: DeviceState, options: Options = None) -> bool:
    return state.is_playing()


def stopped(state: DeviceState, options: Options = None) -> bool:
    return not state.is_playing()


def cuepoint(state: DeviceState, options: Options = None) -> dict:
    """Style for an occupied cuepoint slot, or ``{}`` when the slot is empty."""

    slot = str(_option(options, "cuepoint_id", ""))
    saved = state.cuepoints.get(slot)
    if saved is None:
        return {}
    style: Dict[str, Any] = {
        "color": _option(options, "fg", WHITE),
        "bgcolor": _option(options, "bg", RED),
    }
    if _option(options, "use_preview") == "image" and saved.image:
        style["png64"] = png64(saved.image)
    return style


def preview(state: DeviceState, options: Options = None) -> dict:
    if state.preview_image:
        return {"png64": png64(state.preview_image)}
    return {}


EVALUATORS = {
    "streaming": streaming,
    "active": active,
    "playing": playing,
    "stopped": stopped,
    "cuepoint": cuepoint,
    "previewpic": preview,
}


def evaluate(state: DeviceState, feedback_id: str, options: Options = None) -> Any:
    try:
        evaluator = EVALUATORS[feedback_id]
    except KeyError:
        raise KeyError(f"Unknown feedback '{feedback_id}'") from None
    return evaluator(state, options)
