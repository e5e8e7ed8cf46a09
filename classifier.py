"""Classification adapter: footprint imagery in, candidate pollution detections out.

Two implementations share the PollutionClassifier contract: the OpenRouter
vision model below and the synthetic MockPollutionClassifier in
mock_pollution.py. Both raise only TransientRateLimit or Fatal; rate limits
are retried here under an explicit RetryPolicy and surface as Fatal once the
policy is exhausted.
"""

import asyncio
import json
import logging
import os
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional
from urllib.error import HTTPError, URLError

import openai
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from PIL import UnidentifiedImageError

from geom.polygons import ring_from_geometry
from imagery import (
    ImageRef,
    decode_image,
    encode_pil_image_as_data_url,
    fetch_image_bytes,
    is_uniform,
    looks_like_placeholder,
)
from patrol_config import DEFAULT_MODEL
from pollution_types import (
    CandidateDetection,
    clamp_confidence,
    normalize_kind,
    parse_hazard_level,
    parse_impact_area,
)
from prompts import RESPONSE_KEY, get_pollution_detection_prompt, get_system_prompt
from scan_log import EventLogger

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
MAX_RETRIES = 3
LLM_TIMEOUT_S = 60.0


class ClassificationError(Exception):
    """Base for every failure the adapter surfaces."""


class TransientRateLimit(ClassificationError):
    """The service asked us to slow down; worth retrying after a pause."""


class Fatal(ClassificationError):
    """Non-retryable failure for this scan (auth, network, bad imagery, persistent rate limit)."""


class RetryPolicy:
    """Bounded exponential backoff with random jitter for TransientRateLimit.

    `call` invokes the coroutine function at most `max_attempts` times in total.
    """

    def __init__(
        self,
        max_attempts: int = MAX_RETRIES,
        base_delay: float = 10.0,
        max_delay: float = 60.0,
        jitter_ratio: float = 0.2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_ratio = jitter_ratio
        self.sleep = sleep
        self._rng = rng or random.Random()

    def delay(self, attempt: int) -> float:
        """Pause after failed attempt number `attempt` (1-based)."""
        backoff = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return backoff + self._rng.uniform(0.0, self.jitter_ratio * backoff)

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn(*args, **kwargs)
            except TransientRateLimit as e:
                if attempt >= self.max_attempts:
                    raise Fatal(f"rate limit persisted after {attempt} attempts: {e}") from e
                pause = self.delay(attempt)
                logger.warning("rate limited (attempt %d/%d), retrying in %.1fs", attempt, self.max_attempts, pause)
                await self.sleep(pause)


@dataclass
class ClassificationResult:
    detections: List[CandidateDetection] = field(default_factory=list)
    discarded: int = 0  # entries dropped for unusable geometry or shape

    @property
    def received(self) -> int:
        return len(self.detections) + self.discarded


def extract_json(text: str) -> Optional[Any]:
    text = (text or "").strip()
    # Try direct parse
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Attempt to extract the first {...} block
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        snippet = text[start : end + 1]
        try:
            return json.loads(snippet)
        except json.JSONDecodeError:
            return None
    return None


def parse_candidate(item: Any) -> Optional[CandidateDetection]:
    """Build a candidate from one response entry; None when its boundary is unusable."""
    if not isinstance(item, dict):
        return None
    ring = ring_from_geometry(item.get("geometry") or item.get("boundary"))
    if ring is None:
        return None
    label = item.get("type") or item.get("kind")
    return CandidateDetection(
        boundary=ring,
        kind=normalize_kind(label),
        confidence=clamp_confidence(item.get("confidence")),
        impact_area=parse_impact_area(item.get("impactArea") or item.get("impact_area")),
        hazard_level=parse_hazard_level(item.get("hazardLevel") or item.get("hazard_level")),
        label=label if isinstance(label, str) else None,
    )


def parse_detections(payload: Any) -> ClassificationResult:
    """Turn a decoded service reply into candidates, dropping malformed entries.

    Accepts {"detections": [...]} or a bare list. Anything else counts as a
    single discarded entry.
    """
    items = payload.get(RESPONSE_KEY) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return ClassificationResult(detections=[], discarded=1)
    result = ClassificationResult()
    for item in items:
        cand = parse_candidate(item)
        if cand is None:
            result.discarded += 1
        else:
            result.detections.append(cand)
    return result


class PollutionClassifier:
    """Contract shared by every classification backend."""

    name = "classifier"

    async def analyze(self, image_ref: ImageRef) -> ClassificationResult:
        raise NotImplementedError


def silence_external_loggers():
    """Reduce noisy INFO logs from HTTP/LLM libs unless explicitly enabled.
    Controlled by env var PATROL_SILENCE_HTTP (default: '1' = silence)."""
    if os.getenv("PATROL_SILENCE_HTTP", "1") != "1":
        return
    for name in ("httpx", "httpcore", "openai", "langchain", "langchain_core", "langchain_openai", "urllib3"):
        lg = logging.getLogger(name)
        lg.setLevel(logging.WARNING)
        lg.propagate = False


def build_langchain_llm(model: str, api_key: str) -> ChatOpenAI:
    return ChatOpenAI(
        model=model,
        api_key=api_key,
        base_url=OPENROUTER_BASE_URL,
        temperature=0,
        timeout=LLM_TIMEOUT_S,
        max_retries=0,  # retries belong to RetryPolicy
        model_kwargs={"response_format": {"type": "json_object"}},
        default_headers={
            "HTTP-Referer": "https://local.script",
            "X-Title": "Arctic pollution patrol",
        },
    )


def _message_text(ai_msg: Any) -> str:
    content = getattr(ai_msg, "content", "")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for p in content:
            if isinstance(p, dict) and isinstance(p.get("text"), str):
                parts.append(p["text"])
            elif isinstance(p, str):
                parts.append(p)
        return "\n".join(parts)
    return ""


class OpenRouterPollutionClassifier(PollutionClassifier):
    """Vision LLM via LangChain ChatOpenAI against OpenRouter."""

    name = "openrouter"

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        llm: Optional[ChatOpenAI] = None,
        retry_policy: Optional[RetryPolicy] = None,
        events: Optional[EventLogger] = None,
        fetch: Callable[[str], bytes] = fetch_image_bytes,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._llm = llm
        self.retry_policy = retry_policy or RetryPolicy()
        self.events = events or EventLogger(None)
        self._fetch = fetch

    def _get_llm(self) -> ChatOpenAI:
        if self._llm is None:
            if not self._api_key:
                raise Fatal("Missing OPENROUTER_API_KEY in environment")
            self._llm = build_langchain_llm(self.model, self._api_key)
        return self._llm

    def _emit(self, kind: str, image_ref: ImageRef, **extra) -> None:
        self.events.emit({
            "type": kind,
            "model": self.model,
            "scan_count": image_ref.scan_count,
            "url": image_ref.url,
            **{k: v for k, v in extra.items() if v is not None},
        })

    async def analyze(self, image_ref: ImageRef) -> ClassificationResult:
        data_url = await self.retry_policy.call(self._encode_image, image_ref)
        payload = await self.retry_policy.call(self._request, data_url, image_ref)
        result = parse_detections(payload)
        if result.discarded:
            logger.debug("dropped %d malformed detection(s) for scan %d", result.discarded, image_ref.scan_count)
        return result

    async def _encode_image(self, image_ref: ImageRef) -> str:
        try:
            data = await asyncio.to_thread(self._fetch, image_ref.url)
        except HTTPError as e:
            if e.code == 429:
                raise TransientRateLimit("imagery server rate limit (HTTP 429)") from e
            raise Fatal(f"imagery fetch failed: HTTP {e.code}") from e
        except (URLError, OSError) as e:
            raise Fatal(f"imagery fetch failed: {e}") from e
        try:
            img = decode_image(data)
        except (UnidentifiedImageError, OSError) as e:
            raise Fatal(f"imagery could not be decoded: {e}") from e
        if is_uniform(img) or looks_like_placeholder(img):
            raise Fatal("no imagery available for the current footprint")
        return encode_pil_image_as_data_url(img)

    async def _request(self, image_data_url: str, image_ref: ImageRef) -> Any:
        llm = self._get_llm()
        prompt = get_pollution_detection_prompt(image_ref.footprint)
        messages = [
            SystemMessage(content=get_system_prompt()),
            HumanMessage(
                content=[
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_data_url}},
                ]
            ),
        ]
        self._emit("sent", image_ref, prompt=prompt)
        try:
            ai_msg = await llm.ainvoke(messages)
        except openai.RateLimitError as e:
            self._emit("error", image_ref, error=f"rate_limit: {e}")
            raise TransientRateLimit(str(e)) from e
        except openai.AuthenticationError as e:
            self._emit("error", image_ref, error=f"auth: {e}")
            raise Fatal(f"authentication failed: {e}") from e
        except openai.APIError as e:
            self._emit("error", image_ref, error=f"api: {e.__class__.__name__}: {e}")
            raise Fatal(f"{e.__class__.__name__}: {e}") from e
        except Exception as e:
            self._emit("error", image_ref, error=f"llm_exception: {e.__class__.__name__}: {e}")
            raise Fatal(f"{e.__class__.__name__}: {e}") from e

        content_text = _message_text(ai_msg)
        result = extract_json(content_text)
        self._emit("done", image_ref, response_text=content_text,
                   status=(getattr(ai_msg, "response_metadata", None) or {}).get("status_code"))
        return result
