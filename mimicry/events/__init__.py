"""Event emitter: listener registry, dispatch and cross-emitter relay."""

from .emitter import EventEmitter, current_context
from .errors import (
    EventEmitterError,
    InvalidListenerKey,
    InvalidTarget,
    ListenerNotFound,
    NotListening,
)
from .event_types import (
    Binding,
    ByCallable,
    ByKey,
    ListenerOptions,
    ListenerRecord,
    ListeningRecord,
    ListenOptions,
)
from .identifiers import IdentifierService, default_identifiers

__all__ = [
    'EventEmitter',
    'current_context',
    'EventEmitterError',
    'InvalidListenerKey',
    'InvalidTarget',
    'ListenerNotFound',
    'NotListening',
    'Binding',
    'ByCallable',
    'ByKey',
    'ListenerOptions',
    'ListenerRecord',
    'ListeningRecord',
    'ListenOptions',
    'IdentifierService',
    'default_identifiers',
]
