"""
Value types for the event emitter.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Union


# times=True means unlimited
Times = Union[bool, int]
EventFilter = Union[bool, Set[str]]

DEFAULT_PRIORITY = 500
DEFAULT_DELAY_MS = 1

_LISTENER_OPTION_ALIASES = {
    'async': 'is_async',
    'remaining_calls': 'times',
    'delay_ms': 'delay',
    'invocation_context': 'context',
}

_LISTEN_OPTION_ALIASES = {
    'except': 'except_',
    'is_async': 'async_',
    'async': 'async_',
}


def to_name_set(names: Any) -> Set[str]:
    """Turn a name or an iterable of names into a set of strings."""
    if names is None or isinstance(names, bool):
        return set()
    if isinstance(names, str):
        return {names}
    if isinstance(names, Mapping):
        return {str(name) for name, enabled in names.items() if enabled}
    return {str(name) for name in names}


def to_name_list(names: Any) -> list:
    """Turn a name or an iterable of names into a de-duplicated ordered list."""
    if isinstance(names, str):
        return [names]
    return list(dict.fromkeys(names))


@dataclass
class ListenerOptions:
    """Options for one add_listener() call."""
    priority: int = DEFAULT_PRIORITY
    times: Times = True
    context: Any = None
    is_async: bool = False
    delay: int = DEFAULT_DELAY_MS
    key: str = ''

    @classmethod
    def resolve(cls, options: Any = None,
                defaults: Optional[Mapping[str, Any]] = None) -> 'ListenerOptions':
        """
        Merge caller options over the defaults.

        Args:
            options: None, an int (priority shorthand), a mapping or a
                ListenerOptions instance
            defaults: Field overrides applied before the caller's options

        Returns:
            ListenerOptions: A fresh instance, never the caller's object
        """
        base = cls(**dict(defaults or {}))
        if options is None or isinstance(options, bool):
            return base
        if isinstance(options, ListenerOptions):
            return replace(options)
        if isinstance(options, (int, float)):
            return replace(base, priority=options)
        if isinstance(options, Mapping):
            fields = {}
            for name, value in options.items():
                name = _LISTENER_OPTION_ALIASES.get(name, name)
                if name in cls.__dataclass_fields__:
                    fields[name] = value
            return replace(base, **fields)
        raise TypeError(f"Unsupported listener options: {options!r}")


@dataclass
class Binding:
    """One listener's registration for one event."""
    listener_key: str
    priority: int = DEFAULT_PRIORITY
    times: Times = True
    context: Any = None
    is_async: bool = False
    delay: int = DEFAULT_DELAY_MS

    @classmethod
    def from_options(cls, options: ListenerOptions, listener_key: str) -> 'Binding':
        return cls(
            listener_key=listener_key,
            priority=options.priority,
            times=options.times,
            context=options.context,
            is_async=bool(options.is_async),
            delay=options.delay,
        )

    @property
    def unlimited(self) -> bool:
        return self.times is True


@dataclass
class ListenerRecord:
    """A stored callback and the slots it is bound to, per event."""
    callback: Callable[..., Any]
    events: Dict[str, Set[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class ByKey:
    """Listener reference by registered key."""
    key: str


@dataclass(frozen=True)
class ByCallable:
    """Listener reference by callback identity."""
    callback: Callable[..., Any]


ListenerRef = Union[ByKey, ByCallable]


def listener_ref(value: Union[str, Callable[..., Any], ListenerRef]) -> ListenerRef:
    """Classify a string-or-callable argument once, before any registry lookup."""
    if isinstance(value, (ByKey, ByCallable)):
        return value
    if isinstance(value, str):
        return ByKey(value)
    return ByCallable(value)


@dataclass
class ListenOptions:
    """Options for EventEmitter.listen()."""
    only: EventFilter = True
    except_: Set[str] = field(default_factory=set)
    async_: bool = True
    add_method: Union[str, Callable[..., Any]] = 'add_listener'
    remove_method: Union[str, Callable[..., Any]] = 'remove_listener'
    event: str = 'notify'
    mimics: EventFilter = field(default_factory=set)
    # Filled in by listen() once the target accepted the relay.
    listener_key: Any = None

    @classmethod
    def resolve(cls, options: Any = None,
                defaults: Optional[Mapping[str, Any]] = None) -> 'ListenOptions':
        """
        Merge caller options over the defaults and normalize the filters.

        Args:
            options: None, a mapping, a ListenOptions, or an iterable of event
                names used as the ``only`` filter
            defaults: Field overrides applied before the caller's options
        """
        fields: Dict[str, Any] = {}
        for source in (defaults or {}, cls._as_mapping(options)):
            for name, value in source.items():
                name = _LISTEN_OPTION_ALIASES.get(name, name)
                if name in cls.__dataclass_fields__:
                    fields[name] = value

        resolved = cls(**fields)
        if resolved.only is not True:
            resolved.only = to_name_set(resolved.only)
        resolved.except_ = to_name_set(resolved.except_)
        if not isinstance(resolved.mimics, bool):
            resolved.mimics = to_name_set(resolved.mimics)
        return resolved

    @staticmethod
    def _as_mapping(options: Any) -> Mapping[str, Any]:
        if options is None:
            return {}
        if isinstance(options, ListenOptions):
            return {name: getattr(options, name) for name in ListenOptions.__dataclass_fields__}
        if isinstance(options, Mapping):
            return options
        if isinstance(options, (str, Iterable)):
            return {'only': options}
        raise TypeError(f"Unsupported listen options: {options!r}")

    def accepts(self, event: str) -> bool:
        return accepts_event(event, self.only, self.except_)


@dataclass
class ListeningRecord:
    """This emitter's subscription to another emitter's channel."""
    target: Any
    name: str
    listener_key: Any
    only: EventFilter = True
    except_: Set[str] = field(default_factory=set)
    mimics: EventFilter = field(default_factory=set)
    remove_method: Union[str, Callable[..., Any]] = 'remove_listener'

    def accepts(self, event: str) -> bool:
        return accepts_event(event, self.only, self.except_)

    def mimics_event(self, event: str) -> bool:
        if isinstance(self.mimics, bool):
            return self.mimics
        return event in self.mimics


def accepts_event(event: str, only: EventFilter, except_: Set[str]) -> bool:
    """``except`` always wins; otherwise accept everything or members of ``only``."""
    if event in except_:
        return False
    return only is True or event in only
