import tempfile
import unittest
from pathlib import Path

from catch_config import Direction, RoundSettings
from catch_maps import encode_map
from catch_session import SessionStore


class SessionStoreTests(unittest.TestCase):
    def test_new_session_and_step(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SessionStore(Path(tmpdir))
            session = store.new_session(RoundSettings(seed=2))
            self.assertIs(store.get_session(session.session_id), session)

            session.round.submit_move(Direction.RIGHT)
            snap = session.round.snapshot()
            self.assertEqual(snap["half_turn"], 1)
            self.assertEqual(snap["active_player"], 1)

    def test_unknown_session(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SessionStore(Path(tmpdir))
            with self.assertRaises(KeyError):
                store.get_session("nope")
            with self.assertRaises(KeyError):
                store.drop_session("nope")

    def test_save_list_and_load_map(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SessionStore(Path(tmpdir))
            session = store.new_session(RoundSettings(seed=7))
            session.round.submit_move(Direction.DOWN)

            path = store.save_map(session.session_id, "unit test/../map")
            self.assertTrue(path.exists())
            self.assertNotIn("/", path.name)
            self.assertEqual([p.name for p in Path(tmpdir).iterdir()], [path.name])
            self.assertEqual(path.read_text(encoding="utf-8"), encode_map(session.round.grid))

            files = store.list_saved()
            self.assertEqual(files, [path.name])

            loaded = store.new_session_from_map(files[0], RoundSettings(seed=7))
            self.assertEqual(loaded.round.grid, session.round.grid)
            self.assertEqual(
                [(p.x, p.y) for p in loaded.round.players],
                [(p.x, p.y) for p in session.round.players],
            )
            self.assertEqual(loaded.round.registry.positions(), sorted(session.round.registry.positions(), key=lambda c: (c[1], c[0])))

    def test_load_rejects_bad_names(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SessionStore(Path(tmpdir))
            with self.assertRaises(ValueError):
                store.load_map("../secret.txt")
            with self.assertRaises(FileNotFoundError):
                store.load_map("missing.txt")

    def test_restart_and_drop(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SessionStore(Path(tmpdir))
            session = store.new_session(RoundSettings(seed=11))
            original_rows = session.round.grid.rows()
            session.round.submit_move(Direction.RIGHT)

            restarted = store.restart_session(session.session_id)
            self.assertEqual(restarted.round.half_turn, 0)
            self.assertEqual(restarted.round.grid.rows(), original_rows)

            store.drop_session(session.session_id)
            with self.assertRaises(KeyError):
                store.get_session(session.session_id)


if __name__ == "__main__":
    unittest.main()
