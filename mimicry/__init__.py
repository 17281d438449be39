"""mimicry - publish/subscribe emitter with cross-instance relay and mimicry."""

from mimicry.events import EventEmitter, IdentifierService, current_context

__version__ = "1.0.0"

__all__ = ['EventEmitter', 'IdentifierService', 'current_context', '__version__']
