"""Idle-player eviction.

Liveness is observed on the server: heartbeats and every successful action
reset a player's clock. While a room is choosing or playing, a background
task sweeps it periodically and evicts players idle for longer than
INACTIVITY_TIMEOUT_SEC. The monitor is torn down as soon as the room leaves
those phases.
"""

import threading
import time
from typing import Dict, Iterable, List, Optional

from guessteam import socketio
from .errors import GameError

ACTIVE_STATUSES = ('choosing', 'playing')


class InactivityMonitor:
    """Last-seen clocks for the players of one room."""

    def __init__(self, room_id: int, timeout: float):
        self.room_id = room_id
        self.timeout = timeout
        self.cancelled = False
        self._last_seen: Dict[int, float] = {}
        self._lock = threading.Lock()

    def watch(self, player_ids: Iterable[int], now: Optional[float] = None) -> None:
        """Track exactly ``player_ids``; newcomers start their clock now."""
        now = time.monotonic() if now is None else now
        ids = set(player_ids)
        with self._lock:
            for pid in list(self._last_seen):
                if pid not in ids:
                    del self._last_seen[pid]
            for pid in ids:
                self._last_seen.setdefault(pid, now)

    def touch(self, player_id: int, now: Optional[float] = None) -> None:
        now = time.monotonic() if now is None else now
        with self._lock:
            if not self.cancelled:
                self._last_seen[player_id] = now

    def forget(self, player_id: int) -> None:
        with self._lock:
            self._last_seen.pop(player_id, None)

    def last_seen(self, player_id: int) -> Optional[float]:
        with self._lock:
            return self._last_seen.get(player_id)

    def idle_players(self, now: Optional[float] = None) -> List[int]:
        """Players idle for at least ``timeout`` seconds, longest idle first."""
        now = time.monotonic() if now is None else now
        with self._lock:
            idle = [(seen, pid) for pid, seen in self._last_seen.items() if now - seen >= self.timeout]
        return [pid for _, pid in sorted(idle)]

    def cancel(self) -> None:
        with self._lock:
            self.cancelled = True
            self._last_seen.clear()


_monitors: Dict[int, InactivityMonitor] = {}
_monitors_guard = threading.Lock()


def get_monitor(room_id: int) -> Optional[InactivityMonitor]:
    return _monitors.get(room_id)


def sync_room(app, room_id: int, status: str, player_ids: Iterable[int]) -> Optional[InactivityMonitor]:
    """Start, update or tear down the monitor to match the room's committed state."""
    if status not in ACTIVE_STATUSES:
        stop_monitor(app, room_id)
        return None
    player_ids = list(player_ids)
    with _monitors_guard:
        monitor = _monitors.get(room_id)
        created = monitor is None
        if created:
            timeout = float(app.config.get('INACTIVITY_TIMEOUT_SEC', 45))
            monitor = _monitors[room_id] = InactivityMonitor(room_id, timeout)
    monitor.watch(player_ids)
    if created:
        app.logger.info(f"[monitor-start] room={room_id} players={len(player_ids)} timeout={monitor.timeout}s")
        _start_watch_loop(app, monitor)
    return monitor


def stop_monitor(app, room_id: int) -> None:
    with _monitors_guard:
        monitor = _monitors.pop(room_id, None)
    if monitor is not None:
        monitor.cancel()
        app.logger.info(f"[monitor-stop] room={room_id}")


def record_activity(room_id: int, player_id: int, now: Optional[float] = None) -> None:
    monitor = _monitors.get(room_id)
    if monitor is not None:
        monitor.touch(player_id, now)


def forget_player(room_id: int, player_id: int) -> None:
    monitor = _monitors.get(room_id)
    if monitor is not None:
        monitor.forget(player_id)


def sweep(app, room_id: int, now: Optional[float] = None) -> List[int]:
    """Evict every idle player of the room; returns the evicted player ids."""
    monitor = _monitors.get(room_id)
    if monitor is None or monitor.cancelled:
        return []
    from .lifecycle import evict_inactive_player

    evicted = []
    for player_id in monitor.idle_players(now):
        if monitor.cancelled:
            break
        try:
            evict_inactive_player(room_id, player_id)
        except GameError as exc:
            app.logger.info(f"[evict-skip] room={room_id} player={player_id} reason={exc.reason}")
            if exc.reason == 'player_not_found':
                monitor.forget(player_id)
            continue
        evicted.append(player_id)
    return evicted


def _start_watch_loop(app, monitor: InactivityMonitor) -> None:
    # Tests drive sweep() directly
    if app.config.get('TESTING'):
        return
    interval = float(app.config.get('INACTIVITY_CHECK_INTERVAL_SEC', 5))

    def _worker():
        while not monitor.cancelled:
            socketio.sleep(interval)
            if monitor.cancelled:
                break
            with app.app_context():
                try:
                    sweep(app, monitor.room_id)
                except GameError as exc:
                    app.logger.warning(f"[monitor-error] room={monitor.room_id} reason={exc.reason}")

    socketio.start_background_task(_worker)
