from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from catch_ai import PursuitPolicy
from catch_config import (
    BonusKind,
    DifficultyProfile,
    Direction,
    RoundSettings,
    Signal,
    Tokens,
    difficulty_profile,
)

BLOCK_PENALTY = 8
GROW_SCORE = 25
SCORE_BONUS = 15
OBSTACLE_BONUS_SCORE = 10

# Fixed counts for the obstacle burst triggered by an OBSTACLES bonus.
SPAWN_CLUSTERS = 1
SPAWN_WALK = 3

MAX_ANCHOR_ATTEMPTS = 32
BONUS_EDGE_RINGS = 2


class BoundsError(IndexError):
    pass


class MapFormatError(ValueError):
    pass


class RoundOverError(RuntimeError):
    pass


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    w: int
    h: int

    def cells(self) -> Iterator[Tuple[int, int]]:
        for y in range(self.y, self.y + self.h):
            for x in range(self.x, self.x + self.w):
                yield (x, y)

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.w and self.y <= y < self.y + self.h

    def intersects(self, other: "Rect") -> bool:
        return (
            self.x < other.x + other.w
            and other.x < self.x + self.w
            and self.y < other.y + other.h
            and other.y < self.y + self.h
        )

    def shifted(self, dx: int, dy: int) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.w, self.h)


class Grid:
    def __init__(self, cells: np.ndarray, tokens: Tokens, with_border: bool):
        if cells.ndim != 2 or cells.shape[0] == 0 or cells.shape[1] == 0:
            raise ValueError("Grid needs a non-empty 2D cell array")
        self.cells = cells
        self.tokens = tokens
        self.with_border = with_border
        self.locked = False

    @classmethod
    def create(cls, height: int, width: int, with_border: bool, tokens: Optional[Tokens] = None) -> "Grid":
        tokens = tokens or Tokens()
        if height <= 0 or width <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {height}x{width}")
        grid = cls(np.full((height, width), tokens.empty, dtype="<U1"), tokens, with_border)
        if with_border:
            grid.stamp_border()
        return grid

    @property
    def height(self) -> int:
        return int(self.cells.shape[0])

    @property
    def width(self) -> int:
        return int(self.cells.shape[1])

    def lock(self) -> None:
        self.locked = True

    def in_bounds(self, y: int, x: int) -> bool:
        return 0 <= y < self.height and 0 <= x < self.width

    def is_border(self, y: int, x: int) -> bool:
        if not self.with_border:
            return False
        return y in (0, self.height - 1) or x in (0, self.width - 1)

    def playable_bounds(self) -> Tuple[int, int, int, int]:
        """Return (x_lo, y_lo, x_hi, y_hi) of the playable area, hi exclusive."""
        if self.with_border:
            return 1, 1, self.width - 1, self.height - 1
        return 0, 0, self.width, self.height

    def in_playable(self, y: int, x: int) -> bool:
        x_lo, y_lo, x_hi, y_hi = self.playable_bounds()
        return x_lo <= x < x_hi and y_lo <= y < y_hi

    def get(self, y: int, x: int) -> str:
        self._check(y, x)
        return str(self.cells[y, x])

    def set(self, y: int, x: int, token: str) -> None:
        self._check(y, x)
        if self.locked and self.is_border(y, x):
            raise BoundsError(f"Border cell ({x}, {y}) is immutable during play")
        self.cells[y, x] = token

    def stamp_footprint(self, rect: Rect, token: str) -> None:
        self._check_rect(rect)
        self.cells[rect.y : rect.y + rect.h, rect.x : rect.x + rect.w] = token

    def clear_footprint(self, rect: Rect) -> None:
        self.stamp_footprint(rect, self.tokens.empty)

    def stamp_border(self) -> None:
        border = self.tokens.border
        self.cells[0, :] = border
        self.cells[-1, :] = border
        self.cells[:, 0] = border
        self.cells[:, -1] = border

    def find(self, token: str) -> List[Tuple[int, int]]:
        return [(int(x), int(y)) for y, x in np.argwhere(self.cells == token)]

    def rows(self) -> List[str]:
        return ["".join(row) for row in self.cells.tolist()]

    def copy(self) -> "Grid":
        grid = Grid(self.cells.copy(), self.tokens, self.with_border)
        grid.locked = self.locked
        return grid

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.cells.shape == other.cells.shape and bool(np.array_equal(self.cells, other.cells))

    def __repr__(self) -> str:
        return f"Grid({self.height}x{self.width}, border={self.with_border})"

    def _check(self, y: int, x: int) -> None:
        if not self.in_bounds(y, x):
            raise BoundsError(f"Cell ({x}, {y}) outside {self.width}x{self.height} grid")

    def _check_rect(self, rect: Rect) -> None:
        if rect.w <= 0 or rect.h <= 0:
            raise BoundsError(f"Empty rectangle {rect}")
        if rect.x < 0 or rect.y < 0 or rect.x + rect.w > self.width or rect.y + rect.h > self.height:
            raise BoundsError(f"Rectangle {rect} outside {self.width}x{self.height} grid")
        if self.locked and self.with_border:
            x_lo, y_lo, x_hi, y_hi = self.playable_bounds()
            if rect.x < x_lo or rect.y < y_lo or rect.x + rect.w > x_hi or rect.y + rect.h > y_hi:
                raise BoundsError(f"Rectangle {rect} overlaps the border")


@dataclass
class Player:
    player_id: int
    token: str
    x: int
    y: int
    size_x: int = 1
    size_y: int = 1
    score: int = 0
    history: List[str] = field(default_factory=list)
    is_ai: bool = False
    pass_through: bool = False

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.size_x, self.size_y)

    @property
    def passes_obstacles(self) -> bool:
        return self.pass_through or self.size_x > 1 or self.size_y > 1

    def occupies(self, x: int, y: int) -> bool:
        return self.rect.contains(x, y)


@dataclass(frozen=True)
class Obstacle:
    x: int
    y: int
    token: str


@dataclass(frozen=True)
class Bonus:
    x: int
    y: int
    token: str
    kind: BonusKind


class ObstacleRegistry:
    """Obstacle positions for one round; the movement engine checks blocking against it."""

    def __init__(self) -> None:
        self._obstacles: List[Obstacle] = []
        self._cells: Set[Tuple[int, int]] = set()

    def register(self, obstacle: Obstacle) -> bool:
        key = (obstacle.x, obstacle.y)
        if key in self._cells:
            return False
        self._cells.add(key)
        self._obstacles.append(obstacle)
        return True

    def contains(self, x: int, y: int) -> bool:
        return (x, y) in self._cells

    def positions(self) -> List[Tuple[int, int]]:
        return [(o.x, o.y) for o in self._obstacles]

    def __len__(self) -> int:
        return len(self._obstacles)

    def __iter__(self) -> Iterator[Obstacle]:
        return iter(self._obstacles)


def put_obstacle(grid: Grid, registry: ObstacleRegistry, obstacle: Obstacle) -> bool:
    if not registry.register(obstacle):
        return False
    grid.set(obstacle.y, obstacle.x, obstacle.token)
    return True


def put_bonus(grid: Grid, bonus: Bonus) -> None:
    grid.set(bonus.y, bonus.x, bonus.token)


def _occupied_by(players: Iterable[Player], x: int, y: int) -> bool:
    return any(p.occupies(x, y) for p in players)


def _anchor_range(lo: int, hi: int, margin: float) -> Tuple[int, int]:
    trim = int((hi - lo) * margin)
    return lo + trim, hi - trim - 1


def generate_obstacles(
    grid: Grid,
    registry: ObstacleRegistry,
    players: Sequence[Player],
    profile: DifficultyProfile,
    rng: random.Random,
    clusters: Optional[int] = None,
    walk_length: Optional[int] = None,
) -> List[Obstacle]:
    """Seed obstacle clusters as short random walks from centre-biased anchors.

    The anchor is the walk's first cell; every later step extends by one along
    Y or X with equal probability. Cells that would land on a player, a border
    or a non-empty cell are skipped. A grid too small for the anchor region
    places nothing.
    """
    x_lo, y_lo, x_hi, y_hi = grid.playable_bounds()
    ax_lo, ax_hi = _anchor_range(x_lo, x_hi, profile.anchor_margin)
    ay_lo, ay_hi = _anchor_range(y_lo, y_hi, profile.anchor_margin)
    if ax_lo > ax_hi or ay_lo > ay_hi:
        return []

    token = grid.tokens.obstacle
    placed: List[Obstacle] = []
    for _ in range(profile.clusters if clusters is None else clusters):
        anchor: Optional[Tuple[int, int]] = None
        for _attempt in range(MAX_ANCHOR_ATTEMPTS):
            x = rng.randint(ax_lo, ax_hi)
            y = rng.randint(ay_lo, ay_hi)
            if _occupied_by(players, x, y) or grid.get(y, x) != grid.tokens.empty:
                continue
            anchor = (x, y)
            break
        if anchor is None:
            continue

        steps = walk_length if walk_length is not None else rng.randint(profile.walk_min, profile.walk_max)
        x, y = anchor
        for step in range(steps):
            if step > 0:
                if rng.randint(1, 2) == 1:
                    y += 1
                else:
                    x += 1
            if not grid.in_playable(y, x):
                continue
            if _occupied_by(players, x, y) or grid.get(y, x) != grid.tokens.empty:
                continue
            obstacle = Obstacle(x=x, y=y, token=token)
            if put_obstacle(grid, registry, obstacle):
                placed.append(obstacle)
    return placed


def place_bonus(grid: Grid, players: Sequence[Player], rng: random.Random) -> Optional[Bonus]:
    """Drop one bonus of a random kind near the far corner.

    Cells in the outer two rings of the grid, or cells that are not empty, are
    silently dropped and None is returned.
    """
    x_lo, y_lo, x_hi, y_hi = grid.playable_bounds()
    rx_lo, ry_lo = x_lo + (x_hi - x_lo) // 2, y_lo + (y_hi - y_lo) // 2
    if rx_lo > x_hi - 1 or ry_lo > y_hi - 1:
        return None
    x = rng.randint(rx_lo, x_hi - 1)
    y = rng.randint(ry_lo, y_hi - 1)
    kind = rng.choice(list(BonusKind))

    if not (BONUS_EDGE_RINGS <= x < grid.width - BONUS_EDGE_RINGS):
        return None
    if not (BONUS_EDGE_RINGS <= y < grid.height - BONUS_EDGE_RINGS):
        return None
    if _occupied_by(players, x, y) or grid.get(y, x) != grid.tokens.empty:
        return None

    bonus = Bonus(x=x, y=y, token=grid.tokens.bonus_token(kind), kind=kind)
    put_bonus(grid, bonus)
    return bonus


def seed_round(
    grid: Grid,
    registry: ObstacleRegistry,
    players: Sequence[Player],
    profile: DifficultyProfile,
    rng: random.Random,
) -> Tuple[List[Obstacle], List[Bonus]]:
    obstacles = generate_obstacles(grid, registry, players, profile, rng)
    bonuses: List[Bonus] = []
    for _ in range(profile.bonuses):
        bonus = place_bonus(grid, players, rng)
        if bonus is not None:
            bonuses.append(bonus)
    return obstacles, bonuses


class MoveOutcome(Enum):
    MOVED = "moved"
    BLOCKED = "blocked"
    OUT_OF_BOUNDS = "out_of_bounds"


@dataclass
class MoveResult:
    outcome: MoveOutcome
    collected: List[Bonus] = field(default_factory=list)
    spawned: List[Obstacle] = field(default_factory=list)
    events: List[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.outcome is MoveOutcome.MOVED


def _edges(old: Rect, new: Rect, direction: Direction) -> Tuple[Rect, Rect]:
    """Return (trailing edge of old, leading edge of new) for a one-cell shift."""
    if direction is Direction.UP:
        return Rect(old.x, old.y + old.h - 1, old.w, 1), Rect(new.x, new.y, new.w, 1)
    if direction is Direction.DOWN:
        return Rect(old.x, old.y, old.w, 1), Rect(new.x, new.y + new.h - 1, new.w, 1)
    if direction is Direction.LEFT:
        return Rect(old.x + old.w - 1, old.y, 1, old.h), Rect(new.x, new.y, 1, new.h)
    return Rect(old.x, old.y, 1, old.h), Rect(new.x + new.w - 1, new.y, 1, new.h)


def _restore(grid: Grid, registry: ObstacleRegistry, area: Rect, others: Sequence[Player]) -> None:
    grid.clear_footprint(area)
    for x, y in area.cells():
        if registry.contains(x, y):
            grid.set(y, x, grid.tokens.obstacle)
    for other in others:
        if other.rect.intersects(area):
            grid.stamp_footprint(other.rect, other.token)


def _fits(grid: Grid, rect: Rect) -> bool:
    x_lo, y_lo, x_hi, y_hi = grid.playable_bounds()
    return rect.x >= x_lo and rect.y >= y_lo and rect.x + rect.w <= x_hi and rect.y + rect.h <= y_hi


def move_player(
    grid: Grid,
    direction: Direction,
    player: Player,
    registry: ObstacleRegistry,
    *,
    rng: Optional[random.Random] = None,
    others: Sequence[Player] = (),
    profile: Optional[DifficultyProfile] = None,
) -> MoveResult:
    """Validate and apply one step for ``player``, mutating it and ``grid`` in place.

    Rejected moves (blocked by an obstacle or by the border) leave position,
    grid and history untouched; only a blocked move costs points.
    """
    if not player.passes_obstacles and registry.contains(player.x + direction.dx, player.y + direction.dy):
        player.score -= BLOCK_PENALTY
        return MoveResult(MoveOutcome.BLOCKED, events=[f"blocked:{direction.name}"])

    old = player.rect
    new = old.shifted(direction.dx, direction.dy)
    x_lo, y_lo, x_hi, y_hi = grid.playable_bounds()
    # Grown players keep a spare row/column on the far edges for the next growth.
    clearance = 1 if player.passes_obstacles else 0
    if (
        (direction is Direction.UP and new.y < y_lo)
        or (direction is Direction.LEFT and new.x < x_lo)
        or (direction is Direction.DOWN and new.y + new.h > y_hi - clearance)
        or (direction is Direction.RIGHT and new.x + new.w > x_hi - clearance)
    ):
        return MoveResult(MoveOutcome.OUT_OF_BOUNDS, events=[f"out_of_bounds:{direction.name}"])

    kinds = grid.tokens.bonus_kinds()
    covered: List[Bonus] = []
    for x, y in new.cells():
        token = grid.get(y, x)
        if token in kinds:
            covered.append(Bonus(x=x, y=y, token=token, kind=kinds[token]))

    player.x, player.y = new.x, new.y
    trailing, leading = _edges(old, new, direction)
    _restore(grid, registry, trailing, others)
    grid.stamp_footprint(leading, player.token)

    result = MoveResult(MoveOutcome.MOVED, collected=covered)
    for bonus in covered:
        if bonus.kind is BonusKind.GROW:
            player.score += GROW_SCORE
            player.pass_through = True
            grown = Rect(player.x, player.y, player.size_x + 1, player.size_y + 1)
            if _fits(grid, grown):
                player.size_x += 1
                player.size_y += 1
                result.events.append("bonus_grow")
            else:
                result.events.append("bonus_grow_capped")
        elif bonus.kind is BonusKind.SCORE:
            player.score += SCORE_BONUS
            result.events.append("bonus_score")
        else:
            player.score += OBSTACLE_BONUS_SCORE
            spawned = generate_obstacles(
                grid,
                registry,
                [player, *others],
                profile or difficulty_profile(1),
                rng or random.Random(),
                clusters=SPAWN_CLUSTERS,
                walk_length=SPAWN_WALK,
            )
            result.spawned.extend(spawned)
            result.events.append(f"bonus_obstacles:{len(spawned)}")

    if covered:
        grid.stamp_footprint(player.rect, player.token)

    player.history.append(direction.name)
    return result


def check_win(first: Player, second: Player) -> bool:
    return first.rect.intersects(second.rect)


class RoundState(Enum):
    IN_PROGRESS = "in_progress"
    WON = "won"
    DRAW = "draw"


@dataclass
class RoundResult:
    state: RoundState
    winner_id: Optional[int]
    winner_token: Optional[str]
    half_turns: int
    scores: List[int]
    histories: List[List[str]]


MoveProvider = Callable[["CatchRound", Player], Optional[Union[Direction, Signal]]]


class CatchRound:
    def __init__(
        self,
        settings: Optional[RoundSettings] = None,
        *,
        grid: Optional[Grid] = None,
        players: Optional[Sequence[Player]] = None,
        registry: Optional[ObstacleRegistry] = None,
        bonuses: Optional[Sequence[Bonus]] = None,
    ):
        self.settings = (settings or RoundSettings()).validate()
        self.profile = self.settings.profile
        self.random = random.Random(self.settings.seed)
        self.policy = PursuitPolicy()

        self.state = RoundState.IN_PROGRESS
        self.half_turn = 0
        self.max_half_turns = self.settings.rounds * 2
        self.winner_id: Optional[int] = None
        self.logs: Dict[int, List[str]] = {0: [], 1: []}
        self.frames: List[Dict[str, Any]] = []

        if grid is None:
            tokens = self.settings.tokens
            self.grid = Grid.create(self.settings.grid_height, self.settings.grid_width, self.settings.with_border, tokens)
            (x1, y1), (x2, y2) = self.settings.start_positions()
            self.players = [
                Player(player_id=0, token=tokens.first_player, x=x1, y=y1),
                Player(player_id=1, token=tokens.second_player, x=x2, y=y2, is_ai=self.settings.vs_ai),
            ]
            for p in self.players:
                self.grid.stamp_footprint(p.rect, p.token)
            self.registry = ObstacleRegistry()
            _, placed = seed_round(self.grid, self.registry, self.players, self.profile, self.random)
            self.bonuses: List[Bonus] = placed
        else:
            if players is None or len(players) != 2:
                raise ValueError("A prebuilt grid needs exactly 2 players")
            self.grid = grid
            if grid.with_border:
                grid.stamp_border()
            self.players = list(players)
            self.players[1].is_ai = self.settings.vs_ai
            self.registry = registry or ObstacleRegistry()
            self.bonuses = list(bonuses or [])

        self.grid.lock()
        self._capture_frame(events=["round_start"])

    @property
    def active_player(self) -> Player:
        return self.players[self.half_turn % 2]

    @property
    def is_over(self) -> bool:
        return self.state is not RoundState.IN_PROGRESS

    @property
    def ai_turn(self) -> int:
        """1-based count of the current turn among the second player's turns."""
        return self.half_turn // 2 + 1

    def append_log(self, player_id: int, line: str) -> None:
        self.logs[player_id].append(line)

    def submit_move(self, direction: Optional[Direction]) -> RoundState:
        if self.is_over:
            raise RoundOverError(f"Round already finished ({self.state.value})")

        player = self.active_player
        pid = player.player_id
        others = [p for p in self.players if p is not player]
        events: List[str] = []

        if direction is None:
            events.append(f"p{pid}_idle")
        else:
            result = move_player(
                self.grid,
                direction,
                player,
                self.registry,
                rng=self.random,
                others=others,
                profile=self.profile,
            )
            events.extend(f"p{pid}_{e}" for e in result.events)
            if result.outcome is MoveOutcome.BLOCKED:
                self.append_log(pid, f"turn {self.half_turn}: {direction.name} blocked by obstacle, -{BLOCK_PENALTY} points")
            elif result.outcome is MoveOutcome.OUT_OF_BOUNDS:
                self.append_log(pid, f"turn {self.half_turn}: {direction.name} rejected at border")
            for bonus in result.collected:
                self.append_log(pid, f"turn {self.half_turn}: picked {bonus.kind.value} bonus at ({bonus.x}, {bonus.y})")
            if result.collected or result.spawned:
                self._sync_bonuses()

        if check_win(self.players[0], self.players[1]):
            self.state = RoundState.WON
            # Parity rule: even half-turns belong to the first player, odd to the second.
            self.winner_id = 0 if self.half_turn % 2 == 0 else 1
            events.append(f"p{self.winner_id}_win")
        self.half_turn += 1
        if not self.is_over and self.half_turn >= self.max_half_turns:
            self.state = RoundState.DRAW
            events.append("draw")
        if self.is_over:
            events.append("game_end")

        self._capture_frame(events=events)
        return self.state

    def play_ai_turn(self) -> RoundState:
        player = self.active_player
        if not player.is_ai:
            raise ValueError(f"Player {player.player_id} is not AI-controlled")
        return self.submit_move(self.policy.act(self, player.player_id))

    def run(self, next_move: MoveProvider) -> RoundResult:
        while not self.is_over:
            player = self.active_player
            if player.is_ai:
                self.play_ai_turn()
                continue
            move = next_move(self, player)
            if move is None or isinstance(move, Signal):
                break
            self.submit_move(move)
        return self.result()

    def result(self) -> RoundResult:
        winner = self.players[self.winner_id] if self.winner_id is not None else None
        return RoundResult(
            state=self.state,
            winner_id=self.winner_id,
            winner_token=winner.token if winner else None,
            half_turns=self.half_turn,
            scores=[p.score for p in self.players],
            histories=[list(p.history) for p in self.players],
        )

    def rules_text(self) -> List[str]:
        tokens = self.settings.tokens
        keys = self.settings.bindings
        return [
            f"{tokens.first_player} chases {tokens.second_player}: overlap the other player to win.",
            f"Move with {'/'.join(keys.key_for(d) for d in Direction)}, {keys.quit} quits, {keys.restart} restarts.",
            f"Bumping into {tokens.obstacle} costs {BLOCK_PENALTY} points.",
            f"{tokens.bonus_grow}: grow by one and walk through obstacles (+{GROW_SCORE}).",
            f"{tokens.bonus_score}: +{SCORE_BONUS} points.",
            f"{tokens.bonus_obstacles}: +{OBSTACLE_BONUS_SCORE} points, but more obstacles appear.",
            f"No catch after {self.settings.rounds} rounds is a draw.",
        ]

    def snapshot(self) -> Dict[str, Any]:
        snap: Dict[str, Any] = {
            "seed": self.settings.seed,
            "difficulty": self.profile.name,
            "half_turn": self.half_turn,
            "max_half_turns": self.max_half_turns,
            "state": self.state.value,
            "done": self.is_over,
            "winner_id": self.winner_id,
            "active_player": None if self.is_over else self.active_player.player_id,
            "players": [self._player_view(p) for p in self.players],
            "grid": self.grid.rows(),
            "obstacles": [[x, y] for x, y in self.registry.positions()],
            "bonuses": [{"x": b.x, "y": b.y, "kind": b.kind.value} for b in self.bonuses],
            "logs": self.logs,
            "frames": self.frames,
        }
        if self.settings.show_rules:
            snap["rules"] = self.rules_text()
        return snap

    def _player_view(self, p: Player) -> Dict[str, Any]:
        view: Dict[str, Any] = {
            "id": p.player_id,
            "token": p.token,
            "x": p.x,
            "y": p.y,
            "size": [p.size_x, p.size_y],
            "score": p.score,
            "ai": p.is_ai,
            "pass_through": p.passes_obstacles,
        }
        if self.settings.show_history:
            view["history"] = list(p.history)
        return view

    def _sync_bonuses(self) -> None:
        # Bonuses swallowed by a footprint are gone even without triggering.
        self.bonuses = [b for b in self.bonuses if self.grid.get(b.y, b.x) == b.token]

    def _capture_frame(self, events: Optional[List[str]] = None) -> None:
        self.frames.append(
            {
                "half_turn": self.half_turn,
                "players": [
                    {"id": p.player_id, "x": p.x, "y": p.y, "size": [p.size_x, p.size_y], "score": p.score}
                    for p in self.players
                ],
                "events": events or [],
            }
        )
