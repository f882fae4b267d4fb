"""Short plain-language summaries for the event details panel.

Summaries come from an OpenRouter chat model when an API key is configured
and fall back to a deterministic local sentence otherwise, or on any
upstream failure. :class:`SummaryService` caches results per event id.
"""

from __future__ import annotations

import json
import logging
import re
from collections import OrderedDict
from datetime import datetime, timezone

from requests import RequestException, Session

from quakescope.http import create_session
from quakescope.models import SeismicEvent

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
MAX_SUMMARY_CHARS = 320

_SYSTEM_PROMPT = (
    "Return JSON only. Do not include chain-of-thought. "
    "Keep it concise and safety-aware."
)


def _iso_time(event: SeismicEvent) -> str:
    return datetime.fromtimestamp(event.time_ms / 1000, tz=timezone.utc).isoformat()


def felt_intensity(magnitude: float, depth_km: float) -> str:
    """Plain-word shaking estimate from magnitude and depth."""
    if magnitude >= 6.0:
        return "strong"
    if magnitude >= 5.0:
        return "moderate" if depth_km <= 70 else "light"
    if magnitude < 3.5:
        return "weak"
    return "light"


def local_summary(event: SeismicEvent) -> str:
    """Deterministic two-sentence summary used when the model is unreachable."""
    intensity = felt_intensity(event.magnitude, event.depth_km)
    text = (
        f"M{event.magnitude:.1f} near {event.place} at {_iso_time(event)}. "
        f"Depth {event.depth_km:.1f} km; likely {intensity} shaking."
    )
    if intensity in ("moderate", "strong"):
        text += " If nearby, secure loose items and avoid damaged structures."
    return text[:MAX_SUMMARY_CHARS]


def keyless_summary(event: SeismicEvent) -> str:
    return (
        f"A magnitude {event.magnitude:.1f} event occurred near {event.place} at "
        f"{_iso_time(event)}. Depth was approximately {event.depth_km:.1f} km. "
        "This brief local summary is shown because no AI key is configured."
    )


def build_prompt(event: SeismicEvent) -> str:
    return (
        "You are an assistant for an earthquake map. Generate a short, clean summary.\n"
        "RULES:\n"
        '- Output ONLY valid minified JSON: {"summary":"..."}. No extra text.\n'
        "- 2 sentences max, concise and descriptive.\n"
        "- Mention likely felt intensity in plain terms (weak/light/moderate/strong) "
        "using magnitude+depth heuristics.\n"
        "- No analysis, no reasoning, no predictions.\n"
        "- Add a brief safety note only if intensity is moderate or stronger.\n"
        "EVENT:\n"
        f"magnitude={event.magnitude}\n"
        f"depth_km={event.depth_km}\n"
        f"place={event.place}\n"
        f"time={_iso_time(event)}"
    )


def limit_sentences(text: str, max_sentences: int = 2) -> str:
    """Keep the first sentences of *text*, capped at 320 characters."""
    collapsed = re.sub(r"\s+", " ", text).strip()
    sentences = [s for s in re.split(r"(?<=[.!?])\s+", collapsed) if s]
    joined = " ".join(sentences[:max_sentences])
    return (joined or text)[:MAX_SUMMARY_CHARS]


def _summary_field(raw: str) -> str | None:
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    if isinstance(obj, dict) and isinstance(obj.get("summary"), str):
        return obj["summary"]
    return None


def _sanitize(text: str) -> str:
    text = re.sub(r"^\s*(analysis|explanation)\s*:?\s*", "", text, flags=re.IGNORECASE)
    return limit_sentences(text.replace("`", "").strip())


def parse_model_output(content: str) -> str:
    """Pull the summary out of model output that may not be clean JSON."""
    cleaned = content.strip()
    summary = _summary_field(cleaned)
    if summary is None:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start != -1 and end > start:
            summary = _summary_field(cleaned[start:end + 1])
    if summary is not None:
        return _sanitize(summary)
    return limit_sentences(cleaned)


def generate_summary(
    event: SeismicEvent,
    api_key: str | None = None,
    *,
    model: str = "openai/gpt-oss-20b:free",
    timeout: float = 8.0,
    app_url: str | None = None,
    app_title: str | None = None,
    session: Session | None = None,
) -> str:
    """Summarize *event* in at most two sentences.

    Never raises for upstream trouble: without a key, on network errors,
    non-200 responses or empty content a local summary is returned.
    """
    if not api_key:
        return keyless_summary(event)
    if session is None:
        session = create_session(retries=0)

    headers = {"Authorization": f"Bearer {api_key}"}
    if app_url:
        headers["HTTP-Referer"] = app_url
    if app_title:
        headers["X-Title"] = app_title
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(event)},
        ],
        "max_tokens": 120,
        "temperature": 0.2,
    }

    try:
        resp = session.post(OPENROUTER_URL, json=body, headers=headers, timeout=timeout)
    except RequestException:
        logger.warning("Summary request failed for %s", event.id, exc_info=True)
        return local_summary(event)
    if resp.status_code != 200:
        logger.warning("Summary endpoint returned HTTP %d for %s", resp.status_code, event.id)
        return local_summary(event)

    try:
        content = resp.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError):
        content = None
    if not content:
        logger.warning("No summary content returned for %s", event.id)
        return local_summary(event)
    return parse_model_output(content)


class SummaryCache:
    """Bounded least-recently-used map from event id to summary text."""

    def __init__(self, max_entries: int = 128) -> None:
        self._max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._entries

    def get(self, event_id: str) -> str | None:
        text = self._entries.get(event_id)
        if text is not None:
            self._entries.move_to_end(event_id)
        return text

    def put(self, event_id: str, text: str) -> None:
        self._entries[event_id] = text
        self._entries.move_to_end(event_id)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, event_id: str) -> None:
        self._entries.pop(event_id, None)


class SummaryService:
    """Cached summaries for the details panel; ``force`` regenerates."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = "openai/gpt-oss-20b:free",
        timeout: float = 8.0,
        app_url: str | None = None,
        app_title: str | None = None,
        cache: SummaryCache | None = None,
        session: Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._app_url = app_url
        self._app_title = app_title
        self.cache = cache or SummaryCache()
        self._session = session

    def summarize(self, event: SeismicEvent, force: bool = False) -> str:
        if force:
            self.cache.invalidate(event.id)
        else:
            cached = self.cache.get(event.id)
            if cached is not None:
                return cached
        text = generate_summary(
            event,
            self._api_key,
            model=self._model,
            timeout=self._timeout,
            app_url=self._app_url,
            app_title=self._app_title,
            session=self._session,
        )
        self.cache.put(event.id, text)
        return text
