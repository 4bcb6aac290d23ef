import tempfile
import unittest
from pathlib import Path

from catch_config import BonusKind, Direction, RoundSettings
from catch_engine import CatchRound, MapFormatError, MoveOutcome
from catch_maps import (
    decode_map,
    encode_map,
    locate_bonuses,
    locate_players,
    read_map_file,
    rebuild_registry,
    round_from_map,
    write_map_file,
)

SAMPLE = """\
########
#X.....#
#..#...#
#...B..#
#.$..OO#
#....OO#
#......#
########
"""


class MapCodecTests(unittest.TestCase):
    def test_round_trip_generated_round(self) -> None:
        for seed in range(5):
            game = CatchRound(RoundSettings(seed=seed, difficulty=2))
            text = encode_map(game.grid)
            loaded = decode_map(text, game.settings.tokens, with_border=True)
            self.assertEqual(loaded, game.grid)
            self.assertEqual(encode_map(loaded), text)

    def test_dimensions_come_from_text(self) -> None:
        grid = decode_map(SAMPLE)
        self.assertEqual((grid.height, grid.width), (8, 8))
        self.assertEqual(grid.get(1, 1), "X")

    def test_ragged_rows_are_rejected(self) -> None:
        with self.assertRaises(MapFormatError):
            decode_map("#####\n#..#\n#####\n")

    def test_empty_map_is_rejected(self) -> None:
        with self.assertRaises(MapFormatError):
            decode_map("")
        with self.assertRaises(MapFormatError):
            decode_map("\n...\n")

    def test_expected_size_mismatch(self) -> None:
        with self.assertRaises(MapFormatError):
            decode_map(SAMPLE, height=12)
        with self.assertRaises(MapFormatError):
            decode_map(SAMPLE, width=12)

    def test_rebuild_registry_skips_border(self) -> None:
        grid = decode_map(SAMPLE, with_border=True)
        self.assertEqual(rebuild_registry(grid).positions(), [(3, 2)])

        unbordered = decode_map(SAMPLE, with_border=False)
        self.assertEqual(len(rebuild_registry(unbordered)), 29)

    def test_locate_entities(self) -> None:
        grid = decode_map(SAMPLE, with_border=True)
        first, second = locate_players(grid)
        self.assertEqual((first.x, first.y, first.size_x, first.size_y), (1, 1, 1, 1))
        self.assertEqual((second.x, second.y, second.size_x, second.size_y), (5, 4, 2, 2))
        self.assertFalse(first.pass_through)
        self.assertTrue(second.pass_through)

        bonuses = locate_bonuses(grid)
        self.assertEqual([(b.x, b.y, b.kind) for b in bonuses], [(4, 3, BonusKind.GROW), (2, 4, BonusKind.SCORE)])

    def test_broken_player_shapes(self) -> None:
        with self.assertRaises(MapFormatError):
            locate_players(decode_map("#####\n#X..#\n#...#\n#####\n", with_border=True))
        with self.assertRaises(MapFormatError):
            locate_players(decode_map("######\n#XO..#\n#..O.#\n######\n", with_border=True))

    def test_round_from_map(self) -> None:
        game = round_from_map(SAMPLE, RoundSettings(size_x=6, size_y=6, rounds=5))
        first, second = game.players
        self.assertTrue(game.registry.contains(3, 2))
        self.assertEqual(len(game.bonuses), 2)

        game.submit_move(Direction.RIGHT)
        game.submit_move(Direction.LEFT)
        self.assertEqual(game.submit_move(Direction.RIGHT), game.state)
        self.assertEqual((first.x, first.y), (3, 1))

        before = first.score
        game.submit_move(Direction.UP)
        game.submit_move(Direction.DOWN)
        self.assertEqual(first.score, before - 8)
        self.assertEqual(game.grid.get(2, 3), "#")

    def test_round_from_map_checks_size_against_settings(self) -> None:
        with self.assertRaises(MapFormatError):
            round_from_map("XO\n", RoundSettings())
        with self.assertRaises(MapFormatError):
            round_from_map(SAMPLE, RoundSettings())
        with self.assertRaises(MapFormatError):
            round_from_map(SAMPLE, RoundSettings(size_x=6, size_y=6, with_border=False))

    def test_bonus_on_border_is_ignored(self) -> None:
        text = "####B#\n#X...#\n#....#\n#....#\n#...O#\n######\n"
        self.assertEqual(locate_bonuses(decode_map(text, with_border=True)), [])

        game = round_from_map(text, RoundSettings(size_x=4, size_y=4))
        self.assertEqual(game.grid.get(0, 4), "#")
        self.assertEqual(game.snapshot()["bonuses"], [])

    def test_file_round_trip(self) -> None:
        game = CatchRound(RoundSettings(seed=3))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_map_file(game.grid, Path(tmpdir) / "round.txt")
            self.assertTrue(path.exists())
            loaded = read_map_file(path, game.settings.tokens, with_border=True)
        self.assertEqual(loaded, game.grid)


if __name__ == "__main__":
    unittest.main()
