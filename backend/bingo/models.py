from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
import random
import string
import time

from flask_login import UserMixin


class BoardType(str, Enum):
    BALL_75 = '75ball'
    BALL_90 = '90ball'
    BALL_30 = '30ball'
    BALL_50 = '50ball'
    PATTERN = 'pattern'
    COVERALL = 'coverall'

    @classmethod
    def parse(cls, value) -> Optional['BoardType']:
        """Return the matching board type, or None for anything unknown."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def max_number(self) -> int:
        return _MAX_NUMBER[self]

    @property
    def cell_count(self) -> int:
        return _CELL_COUNT[self]

    @property
    def is_grid(self) -> bool:
        # 5x5 cards with a free centre cell
        return self in GRID_BOARD_TYPES


GRID_BOARD_TYPES = frozenset({
    BoardType.BALL_75,
    BoardType.BALL_50,
    BoardType.PATTERN,
    BoardType.COVERALL,
})

_MAX_NUMBER = {
    BoardType.BALL_75: 75,
    BoardType.BALL_90: 90,
    BoardType.BALL_30: 30,
    BoardType.BALL_50: 50,
    BoardType.PATTERN: 75,
    BoardType.COVERALL: 75,
}

_CELL_COUNT = {
    BoardType.BALL_75: 25,
    BoardType.BALL_90: 15,
    BoardType.BALL_30: 9,
    BoardType.BALL_50: 25,
    BoardType.PATTERN: 25,
    BoardType.COVERALL: 25,
}


class RoundPhase(str, Enum):
    IDLE = 'idle'
    ACTIVE = 'active'
    WON = 'won'


def isoformat(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def generate_id(prefix: str, length: int = 9) -> str:
    """Generate an opaque id such as ``player_1718000000000_k3j9x0a1b``."""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class AdminUser(UserMixin):
    """The single admin principal behind the shared admin key."""

    id = 'admin'

    def to_dict(self):
        return {'id': self.id, 'role': 'admin'}


@dataclass
class Player:
    id: str
    name: str
    phone: str
    board_type: BoardType
    board_number: int
    stake: int
    grid: Tuple[int, ...]
    joined_at: float
    last_active: float
    marked_numbers: Set[int] = field(default_factory=set)
    balance: int = 0
    total_won: int = 0
    is_online: bool = True
    is_winner: bool = False

    def reset_round_state(self) -> None:
        self.marked_numbers = set()
        self.is_winner = False

    def to_dict(self):
        """Public view shared with other players."""
        return {
            'id': self.id,
            'name': self.name,
            'boardType': self.board_type.value,
            'boardNumber': self.board_number,
            'stake': self.stake,
        }

    def to_admin_dict(self):
        data = self.to_dict()
        data.update({
            'phone': self.phone,
            'balance': self.balance,
            'totalWon': self.total_won,
            'isOnline': self.is_online,
            'isWinner': self.is_winner,
            'markedNumbers': len(self.marked_numbers),
            'joinedAt': isoformat(self.joined_at),
            'lastActive': isoformat(self.last_active),
        })
        return data


@dataclass(frozen=True)
class WinnerRecord:
    player_id: str
    player_name: str
    prize: int
    pattern: str

    def to_dict(self):
        return {
            'id': self.player_id,
            'name': self.player_name,
            'prize': self.prize,
            'pattern': self.pattern,
        }


@dataclass
class GameSession:
    id: str
    phase: RoundPhase = RoundPhase.IDLE
    called_numbers: List[int] = field(default_factory=list)
    current_number: Optional[int] = None
    current_display: str = ''
    started_at: Optional[float] = None
    winner: Optional[WinnerRecord] = None
    draw_board_type: Optional[BoardType] = None
    prize_pool: int = 0
    total_collected: int = 0
    total_paid_out: int = 0
    players: Dict[str, Player] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.phase is RoundPhase.ACTIVE

    def clear_round(self) -> None:
        self.called_numbers = []
        self.current_number = None
        self.current_display = ''
        self.winner = None
        for player in self.players.values():
            player.reset_round_state()

    def to_dict(self):
        return {
            'gameId': self.id,
            'phase': self.phase.value,
            'gameActive': self.is_active,
            'calledNumbers': list(self.called_numbers),
            'currentNumber': self.current_number,
            'currentDisplay': self.current_display,
            'startedAt': isoformat(self.started_at),
            'totalPlayers': len(self.players),
            'prizePool': self.prize_pool,
            'winner': {'id': self.winner.player_id, 'name': self.winner.player_name} if self.winner else None,
        }

    def to_admin_dict(self):
        data = self.to_dict()
        data.update({
            'winner': self.winner.to_dict() if self.winner else None,
            'totalCollected': self.total_collected,
            'totalPaidOut': self.total_paid_out,
            'drawBoardType': self.draw_board_type.value if self.draw_board_type else None,
            'players': [p.to_admin_dict() for p in self.players.values()],
        })
        return data


@dataclass(frozen=True)
class ChatEntry:
    player_id: str
    player_name: str
    message: str
    timestamp: float
    kind: str = 'chat'  # chat, system

    def to_dict(self):
        return {
            'playerId': self.player_id,
            'playerName': self.player_name,
            'message': self.message,
            'timestamp': isoformat(self.timestamp),
            'kind': self.kind,
        }
