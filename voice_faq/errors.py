"""
Exception taxonomy for the assistant.
Capture and playback failures are caught by the conversation controller
and turned into a state reset; none of them end the session.
"""


class AssistantError(Exception):
    """Base class for all assistant errors."""


class ConfigError(AssistantError):
    """Raised when an environment value cannot be parsed."""


class RulePackError(AssistantError):
    """Raised when a rule pack file is missing or malformed."""


class CaptureUnavailable(AssistantError):
    """The capture service is absent or unsupported on this host."""


class CaptureError(AssistantError):
    """Capture failed mid-listening (no speech, permission denied, ...)."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PlaybackError(AssistantError):
    """Playback failed to start or broke while speaking."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
