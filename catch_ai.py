from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from catch_config import Direction

if TYPE_CHECKING:
    from catch_engine import CatchRound, Player


def pursue(ai: "Player", target: "Player", turn: int) -> Optional[Direction]:
    """Greedy axis alignment: odd turns close the X gap, even turns the Y gap.

    An axis that is already aligned yields None, so the AI idles that turn.
    """
    if turn % 2 == 1:
        if ai.x == target.x:
            return None
        return Direction.RIGHT if ai.x - 1 < target.x else Direction.LEFT
    if ai.y == target.y:
        return None
    return Direction.DOWN if ai.y - 1 < target.y else Direction.UP


class ScriptedPolicy:
    name = "scripted"

    def act(self, game: "CatchRound", player_id: int) -> Optional[Direction]:
        raise NotImplementedError


class PursuitPolicy(ScriptedPolicy):
    name = "scripted_pursuit"

    def act(self, game: "CatchRound", player_id: int) -> Optional[Direction]:
        me = game.players[player_id]
        target = game.players[1 - player_id]
        return pursue(me, target, game.ai_turn)
