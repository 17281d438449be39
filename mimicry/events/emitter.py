"""
Event emitter implementation.

Named listeners with priority, repetition limits and optional deferred
invocation, plus listening to other emitters: their ``notify`` channel is
relayed here under namespaced names and, when mimicry applies, under the
original name.

Works standalone or as a mixin; ``__init__`` is cooperative.
"""
from contextvars import ContextVar
from itertools import count
from operator import itemgetter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union

from mimicry.events.errors import (
    InvalidListenerKey,
    InvalidTarget,
    ListenerNotFound,
    NotListening,
)
from mimicry.events.event_types import (
    Binding,
    ByKey,
    ListenerOptions,
    ListenerRecord,
    ListeningRecord,
    ListenOptions,
    listener_ref,
    to_name_list,
    to_name_set,
)
from mimicry.events.identifiers import IdentifierService, default_identifiers
from mimicry.logging.logger import get_logger, is_verbose_logging
from mimicry.threading.scheduler import Scheduler, get_default_scheduler, normalize_delay
from mimicry.utils.decorators import log_errors, suppress_exceptions

logger = get_logger(__name__)

NOTIFY_EVENT = 'notify'
EMITTED_EVENT = 'event_emitted'
NOTIFIED_EVENT = 'notified'
COMPLETE_SUFFIX = '_complete'

_invocation_context: ContextVar = ContextVar('mimicry_invocation_context', default=None)


def current_context() -> Any:
    """Return the invocation context of the listener currently running.

    Listeners are plain callables; the context an emitter would bind as
    ``this`` is published here for the duration of the call.
    """
    return _invocation_context.get()


def _invoke(callback: Callable[..., Any], data: tuple, context: Any) -> Any:
    token = _invocation_context.set(context)
    try:
        return callback(*data)
    finally:
        _invocation_context.reset(token)


# Deferred listeners have no caller left to receive their exceptions.
_invoke_deferred = suppress_exceptions(logger, "Deferred listener failed")(_invoke)


def _is_reference(value: Any) -> bool:
    """True for plain id/name references (str or int, not bool)."""
    return isinstance(value, (str, int)) and not isinstance(value, bool)


class EventEmitter:
    """
    Publish/subscribe emitter with cross-instance listening.

    Attributes:
        id: Unique id, generated from ``type_prefix`` unless already set
        bound: Default invocation context for listeners, the emitter itself
    """

    # Subclasses may set a prefix so their ids read e.g. "widget_3".
    type_prefix: Optional[str] = None

    def __init__(self, *args: Any, identifiers: Optional[IdentifierService] = None,
                 scheduler: Optional[Scheduler] = None, settings: Any = None,
                 bound: Any = None, **kwargs: Any):
        """
        Args:
            identifiers: Id service shared by cooperating emitters
            scheduler: Runs async listeners, defaults to the Qt timer scheduler
            settings: Optional SettingsManager supplying listener/listen defaults
            bound: Default invocation context, defaults to this instance
        """
        self._identifiers = identifiers or default_identifiers
        self._scheduler = scheduler
        self._settings = settings

        if not self.type_prefix:
            self.type_prefix = settings.emitter_prefix() if settings is not None else 'event_emitter'
        if not getattr(self, 'id', None):
            self.id = self._identifiers.generate(f"{self.type_prefix}_")

        self._events: Dict[str, Dict[str, Binding]] = {}
        self._listeners: Dict[str, ListenerRecord] = {}
        self._listening: Dict[Union[str, int], ListeningRecord] = {}
        self._mimics: Union[bool, Set[str]] = set()
        self._private_events: Union[bool, Set[str]] = set()
        self._slot_counter = count()

        self.bound = self if bound is None else bound

        # Emitter state exists before host constructors may bind or emit.
        super().__init__(*args, **kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = get_default_scheduler()
        return self._scheduler

    @staticmethod
    def is_event_emitter(obj: Any) -> bool:
        return isinstance(obj, EventEmitter)

    # Registry --------------------------------------------------------------

    def _listener_defaults(self) -> Mapping[str, Any]:
        if self._settings is None:
            return {}
        return self._settings.listener_defaults()

    def _listen_defaults(self) -> Mapping[str, Any]:
        if self._settings is None:
            return {}
        return self._settings.listen_defaults()

    def add_listener(self, events: Union[str, Iterable[str]],
                     listener: Union[str, Callable[..., Any]],
                     options: Any = None) -> str:
        """
        Bind a listener to one or more events.

        Args:
            events: Event name or iterable of names (duplicates ignored)
            listener: Callable, or the key of an already added listener
            options: Priority int, mapping or ListenerOptions. Fields:
                priority (500, lower fires first), times (True = unlimited),
                context, async, delay (ms), key

        Returns:
            str: Listener key

        Raises:
            ListenerNotFound: If ``listener`` is a key that was never added
        """
        names = to_name_list(events)
        opts = ListenerOptions.resolve(options, self._listener_defaults())
        ref = listener_ref(listener)

        if isinstance(ref, ByKey):
            if ref.key not in self._listeners:
                raise ListenerNotFound(ref.key)
            key = ref.key
        else:
            if not callable(ref.callback):
                raise ValueError("Listener must be callable or a listener key")
            key = opts.key or self._identifiers.generate(f"{self.id}_listener_")
            existing = self._listeners.get(key)
            if existing is not None:
                # Explicit key reuse swaps the callback but keeps its bindings.
                logger.debug("Listener key %s re-registered with a new callback", key)
                existing.callback = ref.callback
            else:
                self._listeners[key] = ListenerRecord(ref.callback)

        record = self._listeners[key]
        for event in names:
            slot = f"_{next(self._slot_counter)}"
            self._events.setdefault(event, {})[slot] = Binding.from_options(opts, key)
            record.events.setdefault(event, set()).add(slot)

        logger.debug("Listener %s bound to %s (priority=%s, times=%s, async=%s)",
                     key, names, opts.priority, opts.times, opts.is_async)
        return key

    on = add_listener

    def add_once_listener(self, events: Union[str, Iterable[str]],
                          listener: Union[str, Callable[..., Any]],
                          options: Any = None) -> str:
        """Like add_listener() but the binding fires a single time."""
        opts = ListenerOptions.resolve(options, self._listener_defaults())
        opts.times = 1
        return self.add_listener(events, listener, opts)

    def add_listeners(self, event_map: Mapping[str, Any]) -> List[str]:
        """
        Register several listeners at once.

        Each value is a listener, a ``(listener, options)`` tuple, or a list
        of either. Keys come back in declaration order.
        """
        keys: List[str] = []
        for event, entries in event_map.items():
            if not isinstance(entries, list):
                entries = [entries]
            for entry in entries:
                options = None
                if isinstance(entry, tuple):
                    entry, options = entry[0], (entry[1] if len(entry) > 1 else None)
                keys.append(self.add_listener(event, entry, options))
        return keys

    def has(self, listener_key: str, listening: bool = True) -> bool:
        """
        Check whether a listener key exists.

        Args:
            listener_key: Key returned by add_listener()
            listening: Also require at least one bound event
        """
        record = self._listeners.get(listener_key)
        if record is None:
            return False
        return not listening or bool(record.events)

    def _keys_for_callback(self, callback: Callable[..., Any]) -> List[str]:
        # == so that bound methods of the same object match
        return [key for key, record in self._listeners.items()
                if record.callback is callback or record.callback == callback]

    def remove_listener(self, listener: Union[str, Callable[..., Any]],
                        events: Union[str, Iterable[str], None] = None) -> None:
        """
        Unbind a listener.

        Args:
            listener: Listener key, or a callable (every key registered with it)
            events: Only these events; default is every event of the listener
        """
        ref = listener_ref(listener)
        keys = [ref.key] if isinstance(ref, ByKey) else self._keys_for_callback(ref.callback)

        for key in keys:
            record = self._listeners.get(key)
            if record is None:
                continue
            if events is None:
                targets = list(record.events)
            else:
                targets = [event for event in to_name_list(events) if event in record.events]

            for event in targets:
                slots = record.events.pop(event)
                table = self._events.get(event)
                if table is None:
                    continue
                for slot in slots:
                    table.pop(slot, None)
                if not table:
                    del self._events[event]

            self._release_if_idle(key)
            if targets:
                logger.debug("Listener %s removed from %s", key, targets)

    def remove_listeners(self, listeners: Iterable[Union[str, Callable[..., Any]]],
                         events: Union[str, Iterable[str], None] = None) -> None:
        for listener in list(listeners):
            self.remove_listener(listener, events)

    def _unbind_slot(self, event: str, slot: str) -> None:
        table = self._events.get(event)
        if table is None:
            return
        binding = table.pop(slot, None)
        if not table:
            del self._events[event]
        if binding is None:
            return

        record = self._listeners.get(binding.listener_key)
        if record is None:
            return
        slots = record.events.get(event)
        if slots is None:
            return
        slots.discard(slot)
        if not slots:
            del record.events[event]
        self._release_if_idle(binding.listener_key)

    def _release_if_idle(self, key: str) -> None:
        """Forget a listener, callback included, once it has no events left."""
        record = self._listeners.get(key)
        if record is not None and not record.events:
            del self._listeners[key]

    def reset_events(self, *events: Union[str, Iterable[str]]) -> 'EventEmitter':
        """
        Drop whole events and unlink them from every listener.

        Args:
            *events: Names or iterables of names; none means every event
        """
        if not events:
            names = list(self._events)
        else:
            names = []
            for item in events:
                names.extend(to_name_list(item))

        for event in names:
            table = self._events.pop(event, None)
            if not table:
                continue
            for slot, binding in table.items():
                record = self._listeners.get(binding.listener_key)
                if record is None or event not in record.events:
                    continue
                record.events[event].discard(slot)
                if not record.events[event]:
                    del record.events[event]
                self._release_if_idle(binding.listener_key)

        logger.debug("Emitter %s reset events %s", self.id, names)
        return self

    reset = reset_events

    def event_names(self) -> List[str]:
        """Events that currently have at least one binding."""
        return [event for event, table in self._events.items() if table]

    def listener_keys(self, event: Optional[str] = None) -> List[str]:
        """
        Keys of live listeners.

        Args:
            event: Limit to one event, in dispatch order
        """
        if event is None:
            return [key for key, record in self._listeners.items() if record.events]
        return [self._events[event][slot].listener_key for slot in self._dispatch_order(event)]

    # Dispatch --------------------------------------------------------------

    def _has_bindings(self, event: str) -> bool:
        return bool(self._events.get(event))

    def _dispatch_order(self, event: str) -> List[str]:
        table = self._events.get(event)
        if not table:
            return []
        # Copy before iterating: listeners may add or remove bindings.
        live = [(slot, binding.priority) for slot, binding in list(table.items())
                if binding.listener_key in self._listeners]
        live.sort(key=itemgetter(1))
        return [slot for slot, _ in live]

    def _dispatch(self, event: str, data: tuple) -> None:
        order = self._dispatch_order(event)
        if not order:
            return

        if is_verbose_logging():
            logger.debug("Dispatching %s on %s to %d listener(s)", event, self.id, len(order))

        for slot in order:
            table = self._events.get(event)
            binding = table.get(slot) if table else None
            if binding is None:
                # Removed by an earlier listener or a re-entrant emit.
                continue
            record = self._listeners.get(binding.listener_key)
            if record is None:
                continue

            if binding.unlimited:
                self._call(record.callback, binding, data)
                continue

            if binding.times <= 0:
                self._unbind_slot(event, slot)
                continue

            # Written back before the call so re-entrant emits see the budget.
            binding.times -= 1
            try:
                self._call(record.callback, binding, data)
            finally:
                if binding.times <= 0:
                    self._unbind_slot(event, slot)

    def _call(self, callback: Callable[..., Any], binding: Binding, data: tuple) -> None:
        context = binding.context if binding.context is not None else self.bound
        if binding.is_async:
            self.scheduler.call_later(normalize_delay(binding.delay),
                                      _invoke_deferred, callback, data, context)
        else:
            _invoke(callback, data, context)

    def emit(self, event: str, *data: Any) -> None:
        """
        Emit an event.

        Runs the event's listeners, relays it on ``notify`` unless private,
        then emits ``<event>_complete`` and ``event_emitted``.
        """
        if self._has_bindings(event):
            self._dispatch(event, data)

        if self._has_bindings(NOTIFY_EVENT) and not self.is_private(event):
            self._dispatch(NOTIFY_EVENT, (event,) + data)

        self._dispatch(event + COMPLETE_SUFFIX, data)

        if event != EMITTED_EVENT:
            self._dispatch(EMITTED_EVENT, (event,) + data)

    emit_event = emit
    trigger = emit

    def emit_then(self, event: str, final_callback: Callable[..., Any], *data: Any) -> None:
        """
        Emit an event, then call ``final_callback(*data)``.

        The callback runs once, after every synchronous listener, even when
        nothing listens. Async listeners may still be pending at that point.
        """
        self.emit(event, *data)
        _invoke(final_callback, data, self.bound)

    emit_event_then = emit_then
    trigger_then = emit_then

    # Private events --------------------------------------------------------

    def private(self, *events: Union[bool, str, Iterable[str]]) -> None:
        """
        Exclude events from the ``notify`` relay.

        ``private(True)`` makes every event private, ``private(False)`` none.
        Names replace the all-events flag with an explicit set.
        """
        if len(events) == 1 and isinstance(events[0], bool):
            self._private_events = True if events[0] else set()
            return

        names: Set[str] = set()
        for item in events:
            if isinstance(item, bool):
                continue
            names |= to_name_set(item)

        if isinstance(self._private_events, bool):
            self._private_events = set()
        self._private_events |= names

    def is_private(self, event: str) -> bool:
        if self._private_events is True:
            return True
        return isinstance(self._private_events, set) and event in self._private_events

    # Listening -------------------------------------------------------------

    @staticmethod
    def _is_emitter_like(target: Any) -> bool:
        if target is None or isinstance(target, (str, bytes, int, float, bool)):
            return False
        return getattr(target, 'id', None) is not None

    @staticmethod
    def _target_id(target: Any) -> Any:
        if _is_reference(target):
            return target
        return getattr(target, 'id', None)

    def _listen_id(self, name: Any) -> Any:
        """Resolve a listening id or alias to the id the record is stored under."""
        if not _is_reference(name):
            return None
        if name in self._listening:
            return name
        for listen_id, record in self._listening.items():
            if record.name == name:
                return listen_id
        return None

    def is_listening(self, target: Any, event: Optional[str] = None) -> bool:
        """
        Check whether this emitter listens to ``target``.

        Args:
            target: Emitter, id or alias
            event: Also require that the filters accept this event
        """
        target_id = self._target_id(target)
        if not _is_reference(target_id):
            return False

        record = self._listening.get(target_id)
        if record is not None and (_is_reference(target) or record.target is target):
            if event:
                return record.accepts(event)
            return True

        return self._listen_id(target_id) is not None

    def listening_ids(self) -> List[Any]:
        return list(self._listening)

    def listen(self, target: Any, name: Any = None, options: Any = None) -> Any:
        """
        Relay ``target``'s events into this emitter.

        Args:
            target: Emitter to listen to
            name: Alias used for ``<alias>.<event>`` names, default target id.
                Anything else than a string is taken as ``options``.
            options: Mapping, ListenOptions, or an iterable of event names
                (the ``only`` filter). Fields: only, except, async,
                add_method, remove_method, event, mimics

        Returns:
            Listener key on the target, or True if already listening

        Raises:
            InvalidTarget: If target is not an emitter-like object
            InvalidListenerKey: If the add method returned no key
        """
        if not self._is_emitter_like(target):
            raise InvalidTarget(f"Listen target must be an emitter, got {target!r}")
        if self.is_listening(target):
            return True

        if not isinstance(name, str):
            if name is not None:
                options = name
            name = target.id

        opts = ListenOptions.resolve(options, self._listen_defaults())

        def relay(event: str, *data: Any) -> None:
            self._relay(target, event, data)

        listen_opts = {'async': opts.async_}

        self.emit('before_listen', target, opts)

        opts.listener_key = self._subscribe(target, opts, relay, listen_opts)
        if opts.listener_key is None:
            raise InvalidListenerKey("Added listener key received by add method is invalid")

        self.emit('listen', target, opts)
        self._listening[target.id] = ListeningRecord(
            target=target,
            name=name,
            listener_key=opts.listener_key,
            only=opts.only,
            except_=opts.except_,
            mimics=opts.mimics,
            remove_method=opts.remove_method,
        )
        logger.debug("Emitter %s listening to %s as %r on %r",
                     self.id, target.id, name, opts.event)
        return opts.listener_key

    @log_errors(logger, "Subscribing to listen target failed in {func_name}")
    def _subscribe(self, target: Any, opts: ListenOptions,
                   relay: Callable[..., None], listen_opts: Dict[str, Any]) -> Any:
        if isinstance(opts.add_method, str):
            method = getattr(target, opts.add_method, None)
            if not callable(method):
                raise InvalidTarget(f"Listen target has no method {opts.add_method!r}")
            return method(opts.event, relay, listen_opts)
        return opts.add_method(self, target, opts, relay, listen_opts)

    def _relay(self, source: Any, event: str, data: tuple) -> None:
        if not self.is_listening(source):
            return
        record = self._listening.get(source.id)
        if record is None or not record.accepts(event):
            return

        names = dict.fromkeys([f"{source.id}.{event}", f"{record.name}.{event}"])
        if self.is_mimic(event, source.id):
            names[event] = None

        if is_verbose_logging():
            logger.debug("[RELAY] %s -> %s: %s as %s", source.id, self.id, event, list(names))

        for relayed in names:
            self.emit(relayed, *data)
        self.emit(NOTIFIED_EVENT, event, *data)

    def unlisten(self, target: Any = None) -> None:
        """
        Stop listening to ``target`` (emitter, id or alias), or to everything.
        """
        if target is None:
            for listen_id in list(self._listening):
                self._teardown(listen_id)
            self._listening.clear()
            return

        listen_id = self._listen_id(self._target_id(target))
        if listen_id is not None:
            self._teardown(listen_id)

    def _teardown(self, listen_id: Any) -> None:
        record = self._listening.get(listen_id)
        if record is None:
            return

        self.emit('before_unlisten', record.target, record)

        if isinstance(record.remove_method, str):
            getattr(record.target, record.remove_method)(record.listener_key)
        else:
            record.remove_method(record.listener_key)

        self.emit('unlisten', record.target, record)
        self._listening.pop(listen_id, None)
        logger.debug("Emitter %s stopped listening to %s", self.id, listen_id)

    # Mimicry ---------------------------------------------------------------

    def _listening_record(self, target: Any) -> ListeningRecord:
        if not (_is_reference(target) or self._is_emitter_like(target)):
            raise InvalidTarget(f"Invalid mimic target: {target!r}")
        listen_id = self._listen_id(self._target_id(target))
        if listen_id is None:
            raise NotListening(f"Not listening to {self._target_id(target)!r}")
        return self._listening[listen_id]

    def set_global_mimic(self, flag: bool = True) -> None:
        """Mimic every relayed event (True) or drop the global mimic setting."""
        self._mimics = bool(flag)
        logger.debug("Emitter %s global mimic set to %s", self.id, self._mimics)

    def add_global_mimic_events(self, events: Union[str, Iterable[str]]) -> None:
        """Mimic these events from every listened emitter.

        Replaces a previous True/False flag with the explicit set.
        """
        names = to_name_set(events)
        if isinstance(self._mimics, bool):
            self._mimics = set()
        self._mimics |= names

    def set_target_mimic(self, target: Any, flag: bool = True) -> None:
        """Mimic everything (or nothing) relayed from one listened emitter."""
        self._listening_record(target).mimics = bool(flag)

    def add_target_mimic_events(self, target: Any, events: Union[str, Iterable[str]]) -> None:
        """Mimic these events relayed from one listened emitter."""
        record = self._listening_record(target)
        if isinstance(record.mimics, bool):
            record.mimics = set()
        record.mimics |= to_name_set(events)

    def mimic(self, *args: Any) -> None:
        """
        Overloaded mimic setter.

        - ``mimic()``: mimic everything
        - ``mimic(flag)``: set the global flag
        - ``mimic(target)``: mimic everything from a listened emitter
        - ``mimic(events)``: add events to the global set
        - ``mimic(flag, target)`` / ``mimic(events, target)``: per target
        """
        if not args:
            self.set_global_mimic(True)
            return

        if len(args) == 1:
            value = args[0]
            if isinstance(value, bool):
                self.set_global_mimic(value)
            elif self._is_emitter_like(value):
                self.set_target_mimic(value, True)
            else:
                self.add_global_mimic_events(value)
            return

        events, target = args[0], args[1]
        if isinstance(events, bool):
            self.set_target_mimic(target, events)
        else:
            self.add_target_mimic_events(target, events)

    def is_mimic(self, event: str, target: Any = None) -> bool:
        """
        Check whether ``event`` is re-emitted under its bare name.

        Args:
            event: Event name
            target: Optional listened emitter, id or alias for per-target rules
        """
        if self._mimics is True:
            return True
        if isinstance(self._mimics, set) and event in self._mimics:
            return True
        if target is None:
            return False

        listen_id = self._listen_id(self._target_id(target))
        record = self._listening.get(listen_id) if listen_id is not None else None
        return record is not None and record.mimics_event(event)

    # camelCase aliases
    addListener = add_listener
    addOnceListener = add_once_listener
    addListeners = add_listeners
    removeListener = remove_listener
    removeListeners = remove_listeners
    emitEvent = emit
    emitEventThen = emit_then
    emitThen = emit_then
    triggerThen = emit_then
    isListening = is_listening
    isMimic = is_mimic
    resetEvents = reset_events
    isEventEmitter = is_event_emitter
