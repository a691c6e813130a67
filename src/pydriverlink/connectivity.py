"""Network reachability and app lifecycle signals.

The platform layer feeds two booleans in; the connection manager reads
:meth:`ConnectivityObserver.should_be_connected` and reacts to changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from pydriverlink.events import Channel

_logger = logging.getLogger(__name__)

_BACKGROUND_APP_STATES: frozenset[str] = frozenset({"background", "inactive"})


@dataclass(frozen=True, slots=True)
class ConnectivityChange:
    online: bool | None
    foregrounded: bool
    previous_online: bool | None
    previous_foregrounded: bool

    @property
    def resumed(self) -> bool:
        """The app just came back to the foreground."""
        return self.foregrounded and not self.previous_foregrounded

    @property
    def should_be_connected(self) -> bool:
        return self.online is not False and self.foregrounded


class ConnectivityObserver:
    """Holds the latest ``online``/``foregrounded`` values.

    ``online`` is ``None`` until the reachability signal reports; unknown
    counts as reachable.
    """

    def __init__(self, *, online: bool | None = None, foregrounded: bool = True) -> None:
        self._online = online
        self._foregrounded = foregrounded
        self._changes: Channel[ConnectivityChange] = Channel("connectivity")

    @property
    def online(self) -> bool | None:
        return self._online

    @property
    def foregrounded(self) -> bool:
        return self._foregrounded

    def should_be_connected(self) -> bool:
        return self._online is not False and self._foregrounded

    def subscribe(self, listener: Callable[[ConnectivityChange], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    def set_online(self, online: bool | None) -> None:
        self._update(online, self._foregrounded)

    def set_foregrounded(self, foregrounded: bool) -> None:
        self._update(self._online, foregrounded)

    def set_app_state(self, state: str) -> None:
        """Map a mobile lifecycle string (``active``/``inactive``/``background``)."""
        normalized = state.strip().lower()
        self.set_foregrounded(normalized not in _BACKGROUND_APP_STATES)

    def _update(self, online: bool | None, foregrounded: bool) -> None:
        if online == self._online and foregrounded == self._foregrounded:
            return
        change = ConnectivityChange(
            online=online,
            foregrounded=foregrounded,
            previous_online=self._online,
            previous_foregrounded=self._foregrounded,
        )
        self._online = online
        self._foregrounded = foregrounded
        _logger.debug("Connectivity changed online=%s foregrounded=%s", online, foregrounded)
        self._changes.publish(change)
