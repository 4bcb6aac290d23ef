import random
import unittest

from catch_config import DIFFICULTIES, BonusKind, DifficultyProfile, RoundSettings, difficulty_profile, register_difficulty
from catch_engine import CatchRound, Grid, ObstacleRegistry, Player, generate_obstacles, place_bonus, seed_round


def two_players():
    return [Player(player_id=0, token="X", x=1, y=1), Player(player_id=1, token="O", x=8, y=8)]


class ObstacleGenerationTests(unittest.TestCase):
    def test_obstacles_avoid_players_and_border(self) -> None:
        for seed in range(30):
            grid = Grid.create(12, 12, True)
            registry = ObstacleRegistry()
            players = two_players()
            placed = generate_obstacles(grid, registry, players, difficulty_profile(2), random.Random(seed))

            self.assertEqual(len(placed), len(registry))
            for obstacle in placed:
                self.assertTrue(grid.in_playable(obstacle.y, obstacle.x))
                self.assertFalse(any(p.occupies(obstacle.x, obstacle.y) for p in players))
                self.assertEqual(grid.get(obstacle.y, obstacle.x), "#")

    def test_single_step_walk_lands_in_anchor_region(self) -> None:
        easy = difficulty_profile(1)
        hard = difficulty_profile(2)
        for seed in range(30):
            grid = Grid.create(12, 12, True)
            placed = generate_obstacles(
                grid, ObstacleRegistry(), two_players(), easy, random.Random(seed), clusters=1, walk_length=1
            )
            self.assertEqual(len(placed), 1)
            self.assertTrue(4 <= placed[0].x <= 7 and 4 <= placed[0].y <= 7)

            grid = Grid.create(12, 12, True)
            placed = generate_obstacles(
                grid, ObstacleRegistry(), two_players(), hard, random.Random(seed), clusters=1, walk_length=1
            )
            self.assertTrue(3 <= placed[0].x <= 8 and 3 <= placed[0].y <= 8)

    def test_walk_extends_right_or_down(self) -> None:
        grid = Grid.create(22, 22, True)
        placed = generate_obstacles(
            grid, ObstacleRegistry(), [], difficulty_profile(1), random.Random(3), clusters=1, walk_length=5
        )
        self.assertEqual(len(placed), 5)
        for prev, cur in zip(placed, placed[1:]):
            self.assertIn((cur.x - prev.x, cur.y - prev.y), [(1, 0), (0, 1)])

    def test_walk_length_follows_profile(self) -> None:
        profile = difficulty_profile(1)
        for seed in range(20):
            grid = Grid.create(32, 32, True)
            placed = generate_obstacles(grid, ObstacleRegistry(), [], profile, random.Random(seed))
            self.assertGreaterEqual(len(placed), 1)
            self.assertLessEqual(len(placed), profile.clusters * profile.walk_max)

    def test_degenerate_grid_places_nothing(self) -> None:
        grid = Grid.create(2, 2, True)
        registry = ObstacleRegistry()
        self.assertEqual(generate_obstacles(grid, registry, [], difficulty_profile(2), random.Random(1)), [])
        self.assertEqual(len(registry), 0)

        grid = Grid.create(3, 3, True)
        blocker = [Player(player_id=0, token="X", x=1, y=1)]
        self.assertEqual(generate_obstacles(grid, ObstacleRegistry(), blocker, difficulty_profile(1), random.Random(1)), [])


class BonusPlacementTests(unittest.TestCase):
    def test_bonus_lands_in_far_corner_inside_inner_rings(self) -> None:
        kinds = set()
        for seed in range(60):
            grid = Grid.create(12, 12, True)
            bonus = place_bonus(grid, two_players(), random.Random(seed))
            if bonus is None:
                continue
            kinds.add(bonus.kind)
            self.assertTrue(6 <= bonus.x < 10 and 6 <= bonus.y < 10)
            self.assertEqual(grid.get(bonus.y, bonus.x), grid.tokens.bonus_token(bonus.kind))
        self.assertEqual(kinds, set(BonusKind))

    def test_bonus_dropped_outside_inner_rings(self) -> None:
        dropped = 0
        for seed in range(60):
            grid = Grid.create(12, 12, True)
            if place_bonus(grid, [], random.Random(seed)) is None:
                dropped += 1
                self.assertEqual(sum(grid.find(t) != [] for t in ("B", "$", "%")), 0)
        self.assertGreater(dropped, 0)

    def test_bonus_never_overwrites_player(self) -> None:
        for seed in range(60):
            grid = Grid.create(12, 12, True)
            players = [Player(player_id=0, token="X", x=6, y=6, size_x=4, size_y=4)]
            grid.stamp_footprint(players[0].rect, "X")
            self.assertIsNone(place_bonus(grid, players, random.Random(seed)))

    def test_tiny_grid_places_no_bonus(self) -> None:
        grid = Grid.create(3, 3, True)
        self.assertIsNone(place_bonus(grid, [], random.Random(0)))


class SeedRoundTests(unittest.TestCase):
    def test_seed_round_counts(self) -> None:
        profile = difficulty_profile(1)
        grid = Grid.create(12, 12, True)
        registry = ObstacleRegistry()
        obstacles, bonuses = seed_round(grid, registry, two_players(), profile, random.Random(9))
        self.assertLessEqual(len(bonuses), profile.bonuses)
        self.assertEqual(len(obstacles), len(registry))

    def test_custom_difficulty_tier(self) -> None:
        register_difficulty(
            DifficultyProfile(level=3, name="brutal", anchor_margin=0.0, walk_min=5, walk_max=5, clusters=6, bonuses=0)
        )
        self.addCleanup(DIFFICULTIES.pop, 3)

        game = CatchRound(RoundSettings(seed=4, difficulty=3))
        self.assertEqual(game.profile.name, "brutal")
        self.assertEqual(game.bonuses, [])
        self.assertGreater(len(game.registry), 0)


if __name__ == "__main__":
    unittest.main()
