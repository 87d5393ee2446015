"""Named signals built on :class:`param.Event` parameters."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Iterable
from typing import Any

import param

logger = logging.getLogger(__name__)

#: Listener signature: called with the signal name and keyword payload
Listener = Callable[..., Any]


class Eventable(param.Parameterized):
    """Parameterized object emitting named signals.

    Every :class:`param.Event` parameter declared on a subclass is a signal.
    Listeners are attached as ``param`` watchers and receive the payload of
    :meth:`fire` as keyword arguments plus ``type``, the signal name.
    Exceptions raised by listeners propagate to the caller of :meth:`fire`.

    Examples
    --------
    >>> class Source(Eventable):
    ...     load = param.Event()
    >>> source = Source()
    >>> seen = []
    >>> _ = source.on("load", lambda **kw: seen.append(kw["type"]))
    >>> source.fire("load")
    >>> seen
    ['load']
    """

    def __init__(self, **params: Any) -> None:
        super().__init__(**params)
        self._payloads: list[dict[str, Any]] = []
        self._watchers: list[tuple[str, Listener, param.parameterized.Watcher]] = []

    @classmethod
    def signals(cls) -> list[str]:
        """Names of the signals this class emits."""
        return [
            name
            for name, parameter in cls.param.objects(instance=False).items()
            if isinstance(parameter, param.Event)
        ]

    def _check_signals(self, names: Iterable[str]) -> list[str]:
        names = list(names)
        unknown = [name for name in names if name not in self.signals()]
        if unknown:
            msg = (
                f"{type(self).__name__} has no signal {', '.join(map(repr, unknown))}. "
                f"Available signals: {', '.join(self.signals())}"
            )
            raise KeyError(msg)
        return names

    def _dispatch(self, listener: Listener, event: param.parameterized.Event) -> None:
        listener(type=event.name, **self._payloads[-1])

    def on(self, events: str | Iterable[str], listener: Listener) -> Eventable:
        """Register ``listener`` for one or several signals.

        Returns ``self`` to allow chaining.

        Raises
        ------
        KeyError
            If a signal is not declared on this class.
        """
        for name in self._check_signals([events] if isinstance(events, str) else events):
            watcher = self.param.watch(
                functools.partial(self._dispatch, listener), name, onlychanged=False
            )
            self._watchers.append((name, listener, watcher))
        return self

    def off(
        self, events: str | Iterable[str] | None = None, listener: Listener | None = None
    ) -> Eventable:
        """Remove listeners.

        With no arguments, every listener is removed. With only ``events``, every
        listener of those signals is removed.
        """
        names = None if events is None else [events] if isinstance(events, str) else list(events)
        kept = []
        for name, registered, watcher in self._watchers:
            if (names is None or name in names) and listener in (None, registered):
                self.param.unwatch(watcher)
            else:
                kept.append((name, registered, watcher))
        self._watchers = kept
        return self

    def fire(self, event: str, **data: Any) -> None:
        """Trigger signal ``event``, calling its listeners in registration order."""
        self._check_signals([event])
        logger.debug("%s fired '%s'", type(self).__name__, event)
        self._payloads.append(data)
        try:
            setattr(self, event, True)
        finally:
            self._payloads.pop()

    def listens(self, event: str) -> bool:
        """Whether any listener is registered for ``event``."""
        return any(name == event for name, _, _ in self._watchers)
