from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from catch_config import RoundSettings
from catch_engine import CatchRound
from catch_maps import MAP_SUFFIX, round_from_map, write_map_file


@dataclass
class CatchSession:
    session_id: str
    round: CatchRound
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    source_map: Optional[str] = None
    # Held by callers around every engine call on this round.
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class SessionStore:
    def __init__(self, save_dir: Path):
        self.save_dir = save_dir
        self.save_dir.mkdir(parents=True, exist_ok=True)
        self.sessions: Dict[str, CatchSession] = {}

    def new_session(self, settings: Optional[RoundSettings] = None) -> CatchSession:
        sid = uuid.uuid4().hex[:12]
        session = CatchSession(session_id=sid, round=CatchRound(settings))
        self.sessions[sid] = session
        return session

    def new_session_from_map(self, filename: str, settings: Optional[RoundSettings] = None) -> CatchSession:
        text = self.load_map(filename)
        sid = uuid.uuid4().hex[:12]
        session = CatchSession(session_id=sid, round=round_from_map(text, settings), source_map=filename)
        self.sessions[sid] = session
        return session

    def get_session(self, sid: str) -> CatchSession:
        if sid not in self.sessions:
            raise KeyError(f"Unknown session '{sid}'")
        return self.sessions[sid]

    def restart_session(self, sid: str) -> CatchSession:
        """Replace the session's round with a fresh one built from the same settings."""
        session = self.get_session(sid)
        if session.source_map is not None:
            session.round = round_from_map(self.load_map(session.source_map), session.round.settings)
        else:
            session.round = CatchRound(session.round.settings)
        return session

    def drop_session(self, sid: str) -> None:
        self.get_session(sid)
        del self.sessions[sid]

    def save_map(self, sid: str, name: str) -> Path:
        session = self.get_session(sid)
        safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_")
        if not safe_name:
            safe_name = "map"
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        path = self.save_dir / f"{safe_name}_{timestamp}{MAP_SUFFIX}"
        return write_map_file(session.round.grid, path)

    def list_saved(self) -> List[str]:
        return sorted([p.name for p in self.save_dir.glob(f"*{MAP_SUFFIX}")])

    def load_map(self, filename: str) -> str:
        if "/" in filename or "\\" in filename:
            raise ValueError("Invalid filename")
        path = self.save_dir / filename
        if not path.exists():
            raise FileNotFoundError(filename)
        return path.read_text(encoding="utf-8")
