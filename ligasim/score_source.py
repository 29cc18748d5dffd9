from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import google.generativeai as genai
import numpy as np
from google.api_core import exceptions as google_exceptions

from ligasim import config
from ligasim.models import Competitor, Match

logger = logging.getLogger(__name__)


@dataclass
class SimulatedResult:
    match_id: str
    home_score: int
    away_score: int
    commentary: Optional[str] = None


@dataclass
class RoundSimulation:
    results: List[SimulatedResult] = field(default_factory=list)
    headline: Optional[str] = None
    content: Optional[str] = None


class ScoreSource:
    """Supplies results for a round. Returning None means "no result, fall back"."""

    def simulate_round(
        self, matches: Sequence[Match], competitors: Sequence[Competitor]
    ) -> Optional[RoundSimulation]:
        raise NotImplementedError


def _strength(competitors: Dict[str, Competitor], competitor_id: str) -> float:
    c = competitors.get(competitor_id)
    return float(c.strength) if c is not None else 50.0


def goal_rates(home_strength: float, away_strength: float) -> Tuple[float, float]:
    diff = config.STRENGTH_GOAL_SCALE * (home_strength - away_strength)
    base = math.log(config.BASE_GOAL_RATE)
    lam_h = math.exp(base + config.HOME_GOAL_BONUS + diff)
    lam_a = math.exp(base - diff)
    return lam_h, lam_a


def sample_score(rng: np.random.Generator, lam_h: float, lam_a: float) -> Tuple[int, int]:
    h = rng.poisson(lam_h) if lam_h > 0.0 else 0
    a = rng.poisson(lam_a) if lam_a > 0.0 else 0
    return int(h), int(a)


def fallback_result(
    match: Match, competitors: Dict[str, Competitor], rng: np.random.Generator
) -> SimulatedResult:
    """Stand-in score used when the score source has nothing. Not authoritative."""
    lam_h, lam_a = goal_rates(
        _strength(competitors, match.home_id), _strength(competitors, match.away_id)
    )
    home, away = sample_score(rng, lam_h, lam_a)
    return SimulatedResult(match.id, home, away, "Simulated result.")


def draw_penalty_winner(
    match: Match, competitors: Dict[str, Competitor], rng: np.random.Generator
) -> str:
    skilldiff = _strength(competitors, match.home_id) - _strength(competitors, match.away_id)
    p_home_pen = 1.0 / (1.0 + math.exp(-config.PENALTY_STRENGTH_COEF * skilldiff))
    return match.home_id if rng.random() < p_home_pen else match.away_id


class PoissonScoreSource(ScoreSource):
    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def simulate_round(self, matches, competitors):
        by_id = {c.id: c for c in competitors}
        return RoundSimulation(
            results=[fallback_result(m, by_id, self.rng) for m in matches],
        )


RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "results": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "homeScore": {"type": "INTEGER"},
                    "awayScore": {"type": "INTEGER"},
                    "commentary": {"type": "STRING"},
                },
            },
        },
        "news": {
            "type": "OBJECT",
            "properties": {
                "headline": {"type": "STRING"},
                "content": {"type": "STRING"},
            },
        },
    },
}


class GeminiScoreSource(ScoreSource):
    """
    Asks a Gemini model for the round's scores and a news headline.

    Any failure (no API key, API error, unusable payload) is logged and
    reported as None so the caller can fall back to simulated scores.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = config.GEMINI_MODEL,
        timeout: float = config.GEMINI_TIMEOUT_SECONDS,
        competition_name: str = "LigaSim 2000",
        retries: int = config.GEMINI_RETRIES,
    ):
        self.api_key = api_key if api_key is not None else config.gemini_api_key()
        self.model = model
        self.timeout = float(timeout)
        self.retries = max(1, int(retries))
        self.competition_name = competition_name

    def build_prompt(self, matches: Sequence[Match], competitors: Sequence[Competitor]) -> str:
        by_id = {c.id: c for c in competitors}
        knockout = any(m.is_knockout for m in matches)
        described = [
            {
                "id": m.id,
                "matchup": f"{by_id[m.home_id].name} vs {by_id[m.away_id].name}"
                if m.home_id in by_id and m.away_id in by_id
                else f"{m.home_id} vs {m.away_id}",
                "homeStrength": _strength(by_id, m.home_id),
                "awayStrength": _strength(by_id, m.away_id),
            }
            for m in matches
        ]
        if knockout:
            rules = (
                "These are knockout cup matches. Prefer a decisive result; "
                "level scores will be settled by a penalty shootout."
            )
        else:
            rules = (
                "Scores should be realistic (0-0, 1-0, 2-1, 3-2, occasionally 4-0). "
                "Draws are allowed."
            )
        return (
            f'Simulate the following football matches for the "{self.competition_name}" '
            "competition. Consider team strengths (higher is better).\n"
            f"{rules}\n"
            "Also provide a short news headline and a brief summary of the round's "
            "most exciting event.\n" + json.dumps(described)
        )

    def simulate_round(self, matches, competitors):
        if not self.api_key:
            logger.warning("No Gemini API key found, falling back to simulated scores")
            return None
        if not matches:
            return RoundSimulation()

        genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(
            self.model,
            generation_config={
                "response_mime_type": "application/json",
                "response_schema": RESPONSE_SCHEMA,
            },
        )
        prompt = self.build_prompt(matches, competitors)

        response = None
        for attempt in range(1, self.retries + 1):
            try:
                response = model.generate_content(
                    prompt, request_options={"timeout": self.timeout}
                )
                break
            except google_exceptions.GoogleAPIError:
                if attempt < self.retries:
                    logger.warning("Gemini request failed (attempt %d), retrying", attempt)
                    time.sleep(0.5 * attempt)
                else:
                    logger.exception("Gemini request failed")
        if response is None:
            return None

        try:
            return self.parse_text(response_text(response), matches)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("Could not parse Gemini response: %s", exc)
            return None

    def parse_text(self, text: str, matches: Sequence[Match]) -> RoundSimulation:
        cleaned = text.strip()
        if cleaned.startswith("```"):
            parts = cleaned.split("```")
            if len(parts) >= 3:
                cleaned = parts[1].strip()
                if cleaned.startswith("json"):
                    cleaned = cleaned[len("json"):].strip()
        data = json.loads(cleaned)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        wanted = {m.id for m in matches}
        results: List[SimulatedResult] = []
        for item in data.get("results") or []:
            match_id = str(item["id"])
            if match_id not in wanted:
                logger.warning("Gemini returned a result for unknown match %s", match_id)
                continue
            home = int(item["homeScore"])
            away = int(item["awayScore"])
            if home < 0 or away < 0:
                logger.warning("Gemini returned a negative score for %s", match_id)
                continue
            results.append(SimulatedResult(match_id, home, away, item.get("commentary")))
        news = data.get("news") or {}
        return RoundSimulation(
            results=results,
            headline=news.get("headline"),
            content=news.get("content"),
        )


def response_text(response) -> str:
    """Text of a generate_content response, joining candidate parts when `.text` is unusable."""
    try:
        text = response.text
    except ValueError:
        # blocked or multi-part responses refuse the shortcut
        text = None
    if text:
        return text
    parts = response.candidates[0].content.parts
    texts = [p.text for p in parts if getattr(p, "text", None)]
    if not texts:
        raise ValueError("Gemini response has no text")
    return "\n".join(texts)
