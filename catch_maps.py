from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import numpy as np

from catch_config import RoundSettings, Tokens
from catch_engine import (
    Bonus,
    CatchRound,
    Grid,
    MapFormatError,
    Obstacle,
    ObstacleRegistry,
    Player,
)

MAP_SUFFIX = ".txt"


def encode_map(grid: Grid) -> str:
    return "\n".join(grid.rows()) + "\n"


def decode_map(
    text: str,
    tokens: Optional[Tokens] = None,
    with_border: bool = False,
    height: Optional[int] = None,
    width: Optional[int] = None,
) -> Grid:
    """Parse the flat map format: one line per row, one character per cell.

    Rows must all be as long as the first one; nothing is padded or truncated.
    """
    lines = text.splitlines()
    if not lines:
        raise MapFormatError("Map is empty")
    row_width = len(lines[0])
    if row_width == 0:
        raise MapFormatError("First map row is empty")
    for i, line in enumerate(lines):
        if len(line) != row_width:
            raise MapFormatError(f"Row {i} has {len(line)} cells, expected {row_width}")
    if height is not None and len(lines) != height:
        raise MapFormatError(f"Map has {len(lines)} rows, expected {height}")
    if width is not None and row_width != width:
        raise MapFormatError(f"Map has {row_width} columns, expected {width}")

    cells = np.array([list(line) for line in lines], dtype="<U1")
    return Grid(cells, tokens or Tokens(), with_border)


def rebuild_registry(grid: Grid) -> ObstacleRegistry:
    registry = ObstacleRegistry()
    token = grid.tokens.obstacle
    for x, y in grid.find(token):
        if grid.is_border(y, x):
            continue
        registry.register(Obstacle(x=x, y=y, token=token))
    return registry


def locate_players(grid: Grid) -> List[Player]:
    players: List[Player] = []
    for pid, token in enumerate((grid.tokens.first_player, grid.tokens.second_player)):
        cells = grid.find(token)
        if not cells:
            raise MapFormatError(f"Player token '{token}' not found in map")
        xs = [x for x, _ in cells]
        ys = [y for _, y in cells]
        x, y = min(xs), min(ys)
        w, h = max(xs) - x + 1, max(ys) - y + 1
        if w * h != len(cells):
            raise MapFormatError(f"Player token '{token}' does not form a rectangle")
        if not (grid.in_playable(y, x) and grid.in_playable(y + h - 1, x + w - 1)):
            raise MapFormatError(f"Player token '{token}' overlaps the border")
        players.append(
            Player(player_id=pid, token=token, x=x, y=y, size_x=w, size_y=h, pass_through=w > 1 or h > 1)
        )
    return players


def locate_bonuses(grid: Grid) -> List[Bonus]:
    bonuses: List[Bonus] = []
    for token, kind in grid.tokens.bonus_kinds().items():
        for x, y in grid.find(token):
            if grid.is_border(y, x):
                continue
            bonuses.append(Bonus(x=x, y=y, token=token, kind=kind))
    bonuses.sort(key=lambda b: (b.y, b.x))
    return bonuses


def round_from_map(text: str, settings: Optional[RoundSettings] = None) -> CatchRound:
    settings = (settings or RoundSettings()).validate()
    grid = decode_map(
        text,
        settings.tokens,
        settings.with_border,
        height=settings.grid_height,
        width=settings.grid_width,
    )
    return CatchRound(
        settings,
        grid=grid,
        players=locate_players(grid),
        registry=rebuild_registry(grid),
        bonuses=locate_bonuses(grid),
    )


def read_map_file(path: Path, tokens: Optional[Tokens] = None, with_border: bool = False) -> Grid:
    return decode_map(path.read_text(encoding="utf-8"), tokens, with_border)


def write_map_file(grid: Grid, path: Path) -> Path:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(encode_map(grid), encoding="utf-8")
    tmp.replace(path)
    return path
