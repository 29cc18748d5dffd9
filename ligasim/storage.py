from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ligasim.competition import CompetitionState
from ligasim.config import SAVES_PATH, CompetitionConfig
from ligasim.models import Competitor, NewsItem, match_from_dict

logger = logging.getLogger(__name__)


def snapshot(state: CompetitionState) -> Dict:
    return {
        "config": state.config.to_dict(),
        "competitors": [c.to_dict() for c in state.competitors],
        "matches": [m.to_dict() for m in state.matches],
        "news": [n.to_dict() for n in state.news],
        "current_round": state.current_round,
    }


def restore(data: Dict) -> CompetitionState:
    return CompetitionState(
        config=CompetitionConfig.from_dict(data["config"]),
        competitors=[Competitor.from_dict(c) for c in data["competitors"]],
        matches=[match_from_dict(m) for m in data["matches"]],
        news=[NewsItem.from_dict(n) for n in data.get("news", [])],
        current_round=int(data.get("current_round", 1)),
    )


class SaveStore:
    """Snapshots in one JSON file, at most one per competition id."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else SAVES_PATH

    def _read(self) -> List[Dict]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            saves = json.load(f)
        if not isinstance(saves, list):
            raise ValueError(f"Save file {self.path} must contain a list of snapshots")
        return saves

    def _write(self, saves: List[Dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(saves, f, indent=2)
        tmp.replace(self.path)

    def save(self, state: CompetitionState) -> None:
        if not state.config.id:
            raise ValueError("Cannot save a competition without an id")
        entry = snapshot(state)
        entry["timestamp"] = pd.Timestamp.now(tz="UTC").isoformat()
        saves = [s for s in self._read() if s["config"]["id"] != state.config.id]
        saves.append(entry)
        self._write(saves)
        logger.info("Saved %s to %s", state.config.id, self.path)

    def load(self, competition_id: str) -> CompetitionState:
        for s in self._read():
            if s["config"]["id"] == competition_id:
                return restore(s)
        raise KeyError(f"No save for competition {competition_id}")

    def latest(self) -> Optional[CompetitionState]:
        saves = self._read()
        if not saves:
            return None
        newest = max(saves, key=lambda s: s.get("timestamp") or "")
        return restore(newest)

    def list_ids(self) -> List[str]:
        return [s["config"]["id"] for s in self._read()]

    def delete(self, competition_id: str) -> bool:
        saves = self._read()
        kept = [s for s in saves if s["config"]["id"] != competition_id]
        if len(kept) == len(saves):
            return False
        self._write(kept)
        return True
