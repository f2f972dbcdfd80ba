"""Exception types raised or emitted by the voice presence client.

Only ``ConfigError`` is ever raised to the caller. Everything that happens
after construction is recoverable and reaches the host through the client's
``error`` event instead.
"""


class VoicePresenceError(Exception):
    """Base class for all voice presence errors."""


class ConfigError(VoicePresenceError):
    """Client configuration is missing a required value or is malformed."""


class RejoinRetriesExhausted(VoicePresenceError):
    """Displacement rejoin gave up after the configured number of attempts."""

    def __init__(self, attempts: int, max_retries: int):
        super().__init__(
            f"Voice channel rejoin stopped after {attempts} attempts "
            f"(max_retries={max_retries})"
        )
        self.attempts = attempts
        self.max_retries = max_retries
