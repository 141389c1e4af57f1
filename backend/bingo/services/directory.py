"""Who is connected, and how to reach them.

The directory keeps transport identity (a Socket.IO sid, or any other
channel key) apart from game identity: players are looked up by id here
and the game engine never sees a socket.
"""
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol
import logging
import threading
import time

from bingo.models import ChatEntry

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 1000
DEFAULT_ADMIN_STALE_SEC = 300


class Broadcaster(Protocol):
    def emit(self, event: str, payload: Dict[str, Any], to: str) -> None:
        ...


class SocketIOBroadcaster:
    """Delivers events to a single Socket.IO sid on the game namespace."""

    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event, payload, to):
        self.socketio.emit(event, payload, to=to, namespace=self.namespace)


class SessionDirectory:

    def __init__(
        self,
        broadcaster: Broadcaster,
        retention: int = DEFAULT_RETENTION,
        admin_stale_sec: float = DEFAULT_ADMIN_STALE_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self.broadcaster = broadcaster
        self.admin_stale_sec = admin_stale_sec
        self.clock = clock
        self.chat_history = deque(maxlen=retention)
        self.journal = deque(maxlen=retention)
        self._player_channels: Dict[str, str] = {}
        self._admins: Dict[str, float] = {}
        self._lock = threading.RLock()

    # ---- Players ----

    def bind_player(self, player_id: str, channel: str) -> None:
        with self._lock:
            # a channel speaks for one player at a time
            for pid, ch in list(self._player_channels.items()):
                if ch == channel and pid != player_id:
                    self._player_channels.pop(pid, None)
            self._player_channels[player_id] = channel

    def unbind_player(self, player_id: str) -> Optional[str]:
        with self._lock:
            return self._player_channels.pop(player_id, None)

    def channel_for(self, player_id: str) -> Optional[str]:
        with self._lock:
            return self._player_channels.get(player_id)

    def player_for(self, channel: str) -> Optional[str]:
        with self._lock:
            for pid, ch in self._player_channels.items():
                if ch == channel:
                    return pid
        return None

    # ---- Admins ----

    def add_admin(self, channel: str) -> None:
        with self._lock:
            self._admins[channel] = self.clock()

    def remove_admin(self, channel: str) -> None:
        with self._lock:
            self._admins.pop(channel, None)

    def is_admin(self, channel: str) -> bool:
        with self._lock:
            return channel in self._admins

    def admin_channels(self) -> List[str]:
        with self._lock:
            return list(self._admins)

    def prune_admins(self) -> List[str]:
        """Forget admin observers idle longer than the stale threshold."""
        now = self.clock()
        with self._lock:
            stale = [ch for ch, seen in self._admins.items() if now - seen > self.admin_stale_sec]
            for ch in stale:
                self._admins.pop(ch, None)
        for ch in stale:
            logger.info(f"[admin-stale] channel={ch} pruned")
        return stale

    # ---- Delivery ----

    def send(self, channel: Optional[str], event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        if not channel:
            return False
        try:
            self.broadcaster.emit(event, payload or {}, to=channel)
            return True
        except Exception:
            logger.exception(f"[send-failed] event={event} channel={channel}")
            return False

    def send_to_player(self, player_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        return self.send(self.channel_for(player_id), event, payload)

    def broadcast_to_players(self, event: str, payload: Optional[Dict[str, Any]] = None, exclude: Optional[str] = None) -> int:
        with self._lock:
            targets = [(pid, ch) for pid, ch in self._player_channels.items() if pid != exclude]
        delivered = 0
        for _pid, channel in targets:
            if self.send(channel, event, payload):
                delivered += 1
        return delivered

    def notify_admins(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        self.prune_admins()
        delivered = 0
        for channel in self.admin_channels():
            if self.send(channel, event, payload):
                delivered += 1
        return delivered

    # ---- Logs ----

    def add_chat(self, entry: ChatEntry) -> None:
        self.chat_history.append(entry)

    def recent_chat(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in list(self.chat_history)[-limit:]]

    def record(self, message: str) -> str:
        stamp = datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat()
        line = f"[{stamp}] {message}"
        self.journal.append(line)
        return line

    def recent_journal(self, limit: int = 100) -> List[str]:
        return list(self.journal)[-limit:]
