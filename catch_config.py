from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

MIN_SIZE = 4
MAX_SIZE = 200
MAX_ROUNDS = 10_000


class ConfigError(ValueError):
    pass


class Direction(Enum):
    UP = (0, -1)
    LEFT = (-1, 0)
    DOWN = (0, 1)
    RIGHT = (1, 0)

    @property
    def dx(self) -> int:
        return self.value[0]

    @property
    def dy(self) -> int:
        return self.value[1]

    @classmethod
    def parse(cls, raw: str) -> "Direction":
        key = raw.strip().upper()
        if key not in cls.__members__:
            raise ValueError(f"Unknown direction '{raw}'")
        return cls[key]


class Signal(Enum):
    QUIT = "quit"
    RESTART = "restart"


class BonusKind(Enum):
    GROW = "grow"
    SCORE = "score"
    OBSTACLES = "obstacles"


@dataclass(frozen=True)
class DifficultyProfile:
    level: int
    name: str
    # Fraction of each axis trimmed on both sides of the obstacle anchor region.
    anchor_margin: float
    walk_min: int
    walk_max: int
    clusters: int
    bonuses: int


DIFFICULTIES: Dict[int, DifficultyProfile] = {
    1: DifficultyProfile(level=1, name="easy", anchor_margin=1 / 3, walk_min=1, walk_max=3, clusters=2, bonuses=3),
    2: DifficultyProfile(level=2, name="hard", anchor_margin=1 / 5, walk_min=2, walk_max=5, clusters=4, bonuses=2),
}


def register_difficulty(profile: DifficultyProfile) -> None:
    if profile.walk_min < 1 or profile.walk_max < profile.walk_min:
        raise ConfigError(f"Invalid walk range for difficulty {profile.level}")
    if not 0.0 <= profile.anchor_margin < 0.5:
        raise ConfigError(f"anchor_margin must be in [0, 0.5) for difficulty {profile.level}")
    DIFFICULTIES[profile.level] = profile


def difficulty_profile(level: int) -> DifficultyProfile:
    try:
        return DIFFICULTIES[level]
    except KeyError:
        raise ConfigError(f"Unknown difficulty level {level}") from None


@dataclass(frozen=True)
class KeyBindings:
    up: str = "z"
    left: str = "q"
    down: str = "s"
    right: str = "d"
    quit: str = "x"
    restart: str = "r"

    def decode(self, key: str) -> Optional[Union[Direction, Signal]]:
        k = key.strip().lower()
        if not k:
            return None
        table = {
            self.up.lower(): Direction.UP,
            self.left.lower(): Direction.LEFT,
            self.down.lower(): Direction.DOWN,
            self.right.lower(): Direction.RIGHT,
            self.quit.lower(): Signal.QUIT,
            self.restart.lower(): Signal.RESTART,
        }
        return table.get(k[0])

    def key_for(self, direction: Direction) -> str:
        return {
            Direction.UP: self.up,
            Direction.LEFT: self.left,
            Direction.DOWN: self.down,
            Direction.RIGHT: self.right,
        }[direction]


@dataclass(frozen=True)
class Tokens:
    empty: str = "."
    obstacle: str = "#"
    border: str = "#"
    first_player: str = "X"
    second_player: str = "O"
    bonus_grow: str = "B"
    bonus_score: str = "$"
    bonus_obstacles: str = "%"

    def bonus_token(self, kind: BonusKind) -> str:
        return {
            BonusKind.GROW: self.bonus_grow,
            BonusKind.SCORE: self.bonus_score,
            BonusKind.OBSTACLES: self.bonus_obstacles,
        }[kind]

    def bonus_kinds(self) -> Dict[str, BonusKind]:
        return {self.bonus_token(kind): kind for kind in BonusKind}


@dataclass(frozen=True)
class RoundSettings:
    size_x: int = 10
    size_y: int = 10
    difficulty: int = 1
    rounds: int = 20
    with_border: bool = True
    vs_ai: bool = False
    seed: Optional[int] = None
    show_rules: bool = True
    show_history: bool = True
    bindings: KeyBindings = field(default_factory=KeyBindings)
    tokens: Tokens = field(default_factory=Tokens)

    @property
    def grid_width(self) -> int:
        return self.size_x + 2 if self.with_border else self.size_x

    @property
    def grid_height(self) -> int:
        return self.size_y + 2 if self.with_border else self.size_y

    @property
    def profile(self) -> DifficultyProfile:
        return difficulty_profile(self.difficulty)

    def start_positions(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        lo = 1 if self.with_border else 0
        return (lo, lo), (self.size_x - 2, self.size_y - 2)

    def validate(self) -> "RoundSettings":
        for name, value in (("size_x", self.size_x), ("size_y", self.size_y)):
            if not MIN_SIZE <= value <= MAX_SIZE:
                raise ConfigError(f"{name} must be in [{MIN_SIZE}, {MAX_SIZE}], got {value}")
        if not 1 <= self.rounds <= MAX_ROUNDS:
            raise ConfigError(f"rounds must be in [1, {MAX_ROUNDS}], got {self.rounds}")
        difficulty_profile(self.difficulty)

        keys = [getattr(self.bindings, f.name) for f in fields(self.bindings)]
        if any(len(k) != 1 for k in keys):
            raise ConfigError("Key bindings must be single characters")
        if len({k.lower() for k in keys}) != len(keys):
            raise ConfigError("Key bindings must be distinct")

        tokens = self.tokens
        all_tokens = [getattr(tokens, f.name) for f in fields(tokens)]
        if any(len(t) != 1 for t in all_tokens):
            raise ConfigError("Tokens must be single characters")
        # Border and obstacle may share a character; every other token is unique.
        distinct = [t for f, t in zip(fields(tokens), all_tokens) if f.name != "border"]
        if len(set(distinct)) != len(distinct):
            raise ConfigError("Tokens must be distinct (only border may match obstacle)")
        if tokens.border in distinct and tokens.border != tokens.obstacle:
            raise ConfigError("Border token collides with a non-obstacle token")
        return self


class OptionKind(Enum):
    SIZE_X = "size_x"
    SIZE_Y = "size_y"
    DIFFICULTY = "difficulty"
    ROUNDS = "rounds"
    KEY_UP = "key_up"
    KEY_LEFT = "key_left"
    KEY_DOWN = "key_down"
    KEY_RIGHT = "key_right"
    KEY_QUIT = "key_quit"
    KEY_RESTART = "key_restart"
    TOKEN_EMPTY = "token_empty"
    TOKEN_OBSTACLE = "token_obstacle"
    TOKEN_BORDER = "token_border"
    TOKEN_FIRST_PLAYER = "token_first_player"
    TOKEN_SECOND_PLAYER = "token_second_player"
    TOKEN_BONUS_GROW = "token_bonus_grow"
    TOKEN_BONUS_SCORE = "token_bonus_score"
    TOKEN_BONUS_OBSTACLES = "token_bonus_obstacles"
    SHOW_RULES = "show_rules"
    SHOW_HISTORY = "show_history"
    BORDER = "border"
    VS_AI = "vs_ai"
    SEED = "seed"


def _parse_int(raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"Expected an integer, got '{raw}'") from None


def _parse_char(raw: str) -> str:
    # Menus historically passed values with trailing whitespace ("d ").
    v = raw.strip()
    if len(v) != 1:
        raise ConfigError(f"Expected a single character, got '{raw}'")
    return v


def _parse_bool(raw: str) -> bool:
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    raise ConfigError(f"Expected a boolean, got '{raw}'")


def _parse_seed(raw: str) -> Optional[int]:
    if raw.strip().lower() in {"", "none", "random"}:
        return None
    return _parse_int(raw)


Setter = Callable[[RoundSettings, str], RoundSettings]


def _top(name: str, parse: Callable[[str], object]) -> Setter:
    def setter(settings: RoundSettings, raw: str) -> RoundSettings:
        return replace(settings, **{name: parse(raw)})

    return setter


def _binding(name: str) -> Setter:
    def setter(settings: RoundSettings, raw: str) -> RoundSettings:
        return replace(settings, bindings=replace(settings.bindings, **{name: _parse_char(raw).lower()}))

    return setter


def _token(name: str) -> Setter:
    def setter(settings: RoundSettings, raw: str) -> RoundSettings:
        return replace(settings, tokens=replace(settings.tokens, **{name: _parse_char(raw)}))

    return setter


SETTERS: Dict[OptionKind, Setter] = {
    OptionKind.SIZE_X: _top("size_x", _parse_int),
    OptionKind.SIZE_Y: _top("size_y", _parse_int),
    OptionKind.DIFFICULTY: _top("difficulty", _parse_int),
    OptionKind.ROUNDS: _top("rounds", _parse_int),
    OptionKind.KEY_UP: _binding("up"),
    OptionKind.KEY_LEFT: _binding("left"),
    OptionKind.KEY_DOWN: _binding("down"),
    OptionKind.KEY_RIGHT: _binding("right"),
    OptionKind.KEY_QUIT: _binding("quit"),
    OptionKind.KEY_RESTART: _binding("restart"),
    OptionKind.TOKEN_EMPTY: _token("empty"),
    OptionKind.TOKEN_OBSTACLE: _token("obstacle"),
    OptionKind.TOKEN_BORDER: _token("border"),
    OptionKind.TOKEN_FIRST_PLAYER: _token("first_player"),
    OptionKind.TOKEN_SECOND_PLAYER: _token("second_player"),
    OptionKind.TOKEN_BONUS_GROW: _token("bonus_grow"),
    OptionKind.TOKEN_BONUS_SCORE: _token("bonus_score"),
    OptionKind.TOKEN_BONUS_OBSTACLES: _token("bonus_obstacles"),
    OptionKind.SHOW_RULES: _top("show_rules", _parse_bool),
    OptionKind.SHOW_HISTORY: _top("show_history", _parse_bool),
    OptionKind.BORDER: _top("with_border", _parse_bool),
    OptionKind.VS_AI: _top("vs_ai", _parse_bool),
    OptionKind.SEED: _top("seed", _parse_seed),
}


def option_value(settings: RoundSettings, kind: OptionKind) -> str:
    name = kind.value
    if name.startswith("key_"):
        return getattr(settings.bindings, name[len("key_"):])
    if name.startswith("token_"):
        return getattr(settings.tokens, name[len("token_"):])
    if kind is OptionKind.BORDER:
        return str(settings.with_border).lower()
    value = getattr(settings, name)
    if isinstance(value, bool):
        return str(value).lower()
    if value is None:
        return "none"
    return str(value)


def resolve_option(key: Union[OptionKind, str, int]) -> OptionKind:
    if isinstance(key, OptionKind):
        return key
    if isinstance(key, int):
        kinds = list(OptionKind)
        if not 0 <= key < len(kinds):
            raise ConfigError(f"Unknown option index {key}")
        return kinds[key]
    name = key.strip().lower()
    if name.isdigit():
        return resolve_option(int(name))
    try:
        return OptionKind(name)
    except ValueError:
        raise ConfigError(f"Unknown option '{key}'") from None


class OptionSet:
    """Mutable option menu state; rounds only ever see a frozen RoundSettings."""

    def __init__(self, settings: Optional[RoundSettings] = None):
        self._settings = (settings or RoundSettings()).validate()

    def update(self, key: Union[OptionKind, str, int], raw: str) -> RoundSettings:
        kind = resolve_option(key)
        candidate = SETTERS[kind](self._settings, raw)
        # Cross-field checks run before committing; on failure the old value stays.
        self._settings = candidate.validate()
        return self._settings

    def get(self, key: Union[OptionKind, str, int]) -> str:
        return option_value(self._settings, resolve_option(key))

    def listing(self) -> List[Tuple[int, str, str]]:
        return [(i, kind.value, option_value(self._settings, kind)) for i, kind in enumerate(OptionKind)]

    def as_mapping(self) -> Dict[str, str]:
        return {name: value for _, name, value in self.listing()}

    def freeze(self) -> RoundSettings:
        return self._settings


def settings_from_mapping(values: Mapping[str, str], base: Optional[RoundSettings] = None) -> RoundSettings:
    options = OptionSet(base)
    for name, raw in values.items():
        options.update(name, str(raw))
    return options.freeze()
