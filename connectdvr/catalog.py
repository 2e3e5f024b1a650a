"""
Action, feedback and variable catalogs published to the host.

Channel dropdowns depend on the device snapshot, so the catalogs are rebuilt
every time the device sends its initial state.
"""

from __future__ import annotations

from typing import Dict, List

from . import feedbacks
from .feedbacks import GREEN, RED, WHITE
from .commands import CommandDispatcher
from .host import ActionDefinition, FeedbackDefinition, VariableDefinition
from .state import CUEPOINT_SLOTS, DeviceState
from .utils.timecode import seconds_to_text

VARIABLES = [
    VariableDefinition("time", "Current playing time of video (HH:MM:SS format)."),
    VariableDefinition("duration", "Current duration of playing video (HH:MM:SS format)."),
    VariableDefinition("remaining", "Remaining time in playing video (HH:MM:SS format)."),
]


def initial_variable_values() -> Dict[str, str]:
    zero = seconds_to_text(0)
    return {variable.variable_id: zero for variable in VARIABLES}


def cuepoint_choices() -> List[dict]:
    return [{"id": slot, "label": f"Slot {slot}"} for slot in CUEPOINT_SLOTS]


def build_action_definitions(
    dispatcher: CommandDispatcher, state: DeviceState
) -> Dict[str, ActionDefinition]:
    channels = state.channel_choices(blank=True)

    async def load_channel(options: dict) -> bool:
        return await dispatcher.load_channel_at(options.get("channel"), options.get("initial_time", ""))

    async def skip(options: dict) -> bool:
        return await dispatcher.skip(options.get("skip_time", 5))

    async def goto(options: dict) -> bool:
        return await dispatcher.go_to_time(options.get("time", ""))

    async def set_cuepoint(options: dict) -> bool:
        return dispatcher.set_cuepoint(options.get("cuepoint_id", "1"))

    async def recall_cuepoint(options: dict) -> bool:
        return await dispatcher.recall_cuepoint(
            options.get("cuepoint_id", "1"), options.get("play_state", "pause")
        )

    return {
        "playpause": ActionDefinition(
            name="Play/Pause Toggle",
            callback=lambda options: dispatcher.play_pause(),
        ),
        "channel": ActionDefinition(
            name="Load Channel",
            options=[
                {"type": "dropdown", "label": "Channel ID", "id": "channel", "choices": channels},
                {
                    "type": "textinput",
                    "label": "Start time in seconds or HH:MM:SS format "
                    "(empty for end, if live, or start if not live)",
                    "id": "initial_time",
                    "default": "",
                },
            ],
            callback=load_channel,
        ),
        "reboot": ActionDefinition(
            name="Reboot Device",
            callback=lambda options: dispatcher.reboot(),
        ),
        "play": ActionDefinition(name="Play", callback=lambda options: dispatcher.play()),
        "pause": ActionDefinition(name="Pause", callback=lambda options: dispatcher.pause()),
        "skip": ActionDefinition(
            name="Skip backward or forward",
            description="Time, in seconds, to skip backward or forward. "
            "Use negative numbers to skip backwards.",
            options=[{"type": "textinput", "label": "Skip Time", "id": "skip_time", "default": 5}],
            callback=skip,
        ),
        "goto": ActionDefinition(
            name="Go to time in current channel",
            options=[
                {
                    "type": "textinput",
                    "label": "Time",
                    "id": "time",
                    "default": "",
                    "tooltip": "Time to go to in seconds or HH:MM:SS format.",
                }
            ],
            callback=goto,
        ),
        "set_cuepoint": ActionDefinition(
            name="Set Cue Point",
            options=[
                {
                    "type": "dropdown",
                    "label": "Slot Number",
                    "id": "cuepoint_id",
                    "default": "1",
                    "tooltip": "Store the current elapsed time and channel for later recall. "
                    "Cue points do not survive a restart.",
                    "choices": cuepoint_choices(),
                }
            ],
            callback=set_cuepoint,
        ),
        "recall_cuepoint": ActionDefinition(
            name="Recall Cue Point",
            options=[
                {
                    "type": "dropdown",
                    "label": "Slot Number",
                    "id": "cuepoint_id",
                    "default": "1",
                    "choices": cuepoint_choices(),
                },
                {
                    "type": "dropdown",
                    "label": "Play State",
                    "id": "play_state",
                    "default": "pause",
                    "choices": [
                        {"id": "play", "label": "Playing"},
                        {"id": "pause", "label": "Paused"},
                    ],
                },
            ],
            callback=recall_cuepoint,
        ),
    }


def build_feedback_definitions(state: DeviceState) -> Dict[str, FeedbackDefinition]:
    channels = state.channel_choices(blank=True)
    channel_option = [{"type": "dropdown", "label": "Channel ID", "id": "channel", "choices": channels}]

    def bind(feedback_id: str):
        return lambda options: feedbacks.evaluate(state, feedback_id, options)

    return {
        "streaming": FeedbackDefinition(
            name="Channel is Streaming",
            type="boolean",
            description="Indicates this channel is currently live streaming.",
            default_style={"color": WHITE, "bgcolor": GREEN},
            options=list(channel_option),
            callback=bind("streaming"),
        ),
        "active": FeedbackDefinition(
            name="Channel is Active",
            type="boolean",
            description="Indicates this channel is currently active (playing/paused).",
            default_style={"color": WHITE, "bgcolor": GREEN},
            options=list(channel_option),
            callback=bind("active"),
        ),
        "playing": FeedbackDefinition(
            name="Output playing",
            type="boolean",
            description="Indicates a channel is currently playing.",
            default_style={"color": WHITE, "bgcolor": GREEN},
            callback=bind("playing"),
        ),
        "stopped": FeedbackDefinition(
            name="Output stopped",
            type="boolean",
            description="Indicates a channel is currently stopped.",
            default_style={"color": WHITE, "bgcolor": RED},
            callback=bind("stopped"),
        ),
        "cuepoint": FeedbackDefinition(
            name="Cue Point Slot Saved",
            type="advanced",
            description="Indicates a cue point is saved.",
            options=[
                {"type": "colorpicker", "label": "Foreground color", "id": "fg", "default": WHITE},
                {"type": "colorpicker", "label": "Background color", "id": "bg", "default": RED},
                {
                    "type": "dropdown",
                    "label": "Use preview image if available?",
                    "id": "use_preview",
                    "choices": [{"id": "", "label": "No"}, {"id": "image", "label": "Yes"}],
                },
                {
                    "type": "dropdown",
                    "label": "Cuepoint Slot",
                    "id": "cuepoint_id",
                    "choices": cuepoint_choices(),
                },
            ],
            callback=bind("cuepoint"),
        ),
        "previewpic": FeedbackDefinition(
            name="Preview",
            type="advanced",
            description="Preview output image",
            callback=bind("previewpic"),
        ),
    }
