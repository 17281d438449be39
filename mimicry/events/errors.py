"""
Exceptions raised by the event emitter.

Only misuse is an error. Absence (removing unknown keys, emitting events that
nobody listens to, querying unknown keys) is a normal state and never raises.
"""


class EventEmitterError(Exception):
    """Base class for emitter errors."""


class ListenerNotFound(EventEmitterError, KeyError):
    """A listener key was referenced before it was registered."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Listener is not added: {self.key!r}"


class InvalidTarget(EventEmitterError, ValueError):
    """A listen/mimic target is not an emitter or cannot be resolved."""


class NotListening(EventEmitterError):
    """A per-target operation named a target that is not being listened to."""


class InvalidListenerKey(EventEmitterError, ValueError):
    """The add-method hook of listen() returned no usable listener key."""
