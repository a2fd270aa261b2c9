# core/anthropic_client.py
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence, Tuple
import httpx
from config.settings import settings
from core.entities import ChatTurn, GeneratedAnswer, ScoredResult, SourceRef
from util.functions import clip_words
from util.timing import timed

logger = logging.getLogger(__name__)

_SUGGESTIONS = re.compile(r"\[SUGGESTIONS\](.*?)(?:\[/SUGGESTIONS\]|$)", re.S)
_SUGGESTION_LINE = re.compile(r"^\s*-\s*(?:\w+:\s*)?(.+?)\s*$")

_LABELS = {
    "en": {
        "kb": "### KNOWLEDGE BASE (TRUTH SOURCE):",
        "history": "### CONVERSATION HISTORY:",
        "question": "### QUESTION:",
        "answer": "### ANSWER:",
        "rag": "Use the following information as the SINGLE source of truth. If the answer is not here, state: \"I'm sorry, that information is not currently in my database.\"",
        "instructions": (
            "Instructions:\n"
            "- Answer in a friendly and informative way\n"
            "- Use markdown formatting for better structure\n"
            "- When mentioning projects or skills, include specific details\n"
            "- Keep it concise but complete (2-4 paragraphs)\n"
            "- End with up to 4 follow-up questions inside [SUGGESTIONS] ... [/SUGGESTIONS], one per line starting with '- '"
        ),
    },
    "id": {
        "kb": "### KNOWLEDGE BASE (SUMBER KEBENARAN):",
        "history": "### RIWAYAT PERCAKAPAN:",
        "question": "### PERTANYAAN:",
        "answer": "### JAWABAN:",
        "rag": "Gunakan informasi berikut sebagai SATU-SATUNYA sumber kebenaran. Jika tidak ada di sini, katakan: \"Maaf, informasi tersebut tidak tersedia di data saya.\"",
        "instructions": (
            "Petunjuk:\n"
            "- Jawab dengan ramah dan informatif\n"
            "- Gunakan format markdown untuk struktur yang lebih baik\n"
            "- Jika menyebutkan proyek atau skill, sebutkan detail spesifik\n"
            "- Tetap singkat tapi lengkap (2-4 paragraf)\n"
            "- Akhiri dengan maksimal 4 pertanyaan lanjutan di dalam [SUGGESTIONS] ... [/SUGGESTIONS], satu per baris diawali '- '"
        ),
    },
}


def _labels(language: str) -> Dict[str, str]:
    return _LABELS.get(language, _LABELS["en"])


def system_prompt(language: str, owner: str = settings.PORTFOLIO_OWNER) -> str:
    template = settings.SYSTEM_PROMPT_ID if language == "id" else settings.SYSTEM_PROMPT_EN
    return template.format(owner=owner)


def build_prompt(
    query: str,
    context: Sequence[ScoredResult],
    history: Sequence[ChatTurn] = (),
    language: str = "en",
    history_turns: int = settings.HISTORY_TURNS,
) -> str:
    """
    User message: knowledge base sources, recent history, the question and
    answer instructions. The persona goes in the system prompt.
    """
    labels = _labels(language)
    parts: List[str] = []
    if context:
        sources = "\n\n---\n\n".join(
            f"[Source {i}: {r.entry.title}]\n{clip_words(r.entry.content, 400)}"
            for i, r in enumerate(context, start=1)
        )
        parts.append(
            f"{labels['rag']}\n\n{labels['kb']}\n{sources}"
        )
    recent = list(history)[-history_turns:] if history_turns > 0 else []
    if recent:
        lines = "\n".join(
            f"{'User' if t.role == 'user' else 'Assistant'}: {t.content}" for t in recent
        )
        parts.append(f"{labels['history']}\n{lines}")
    parts.append(f"{labels['question']}\n{query}")
    parts.append(labels["instructions"])
    parts.append(labels["answer"])
    return "\n\n".join(parts)


def split_suggestions(text: str) -> Tuple[str, Tuple[str, ...]]:
    """Strip a trailing [SUGGESTIONS] block and return (answer, questions)."""
    m = _SUGGESTIONS.search(text or "")
    if not m:
        return (text or "").strip(), ()
    found: List[str] = []
    for line in m.group(1).splitlines():
        lm = _SUGGESTION_LINE.match(line)
        if lm:
            found.append(lm.group(1).strip().strip('"'))
    answer = (text[: m.start()] + text[m.end():]).strip()
    return answer, tuple(found[:4])


def sources_of(context: Sequence[ScoredResult]) -> Tuple[SourceRef, ...]:
    return tuple(
        SourceRef(id=r.entry.id, title=r.entry.title, similarity=round(r.hybrid_score, 4))
        for r in context
    )


@dataclass(frozen=True)
class AnswerEvent:
    kind: Literal["partial", "complete", "failed"]
    text: str = ""
    answer: Optional[GeneratedAnswer] = None
    error: Optional[str] = None


class AnthropicGenerator:
    """
    Answer generation over the Anthropic Messages API.

    `generate` raises on failure; `stream` never raises for upstream problems
    and reports them as a terminal "failed" event instead.
    """

    def __init__(
        self,
        api_key: str = settings.ANTHROPIC_API_KEY,
        model: str = settings.ANTHROPIC_MODEL,
        api_url: str = settings.ANTHROPIC_API_URL,
        timeout: float = settings.GENERATION_TIMEOUT_SECONDS,
        max_tokens: int = settings.GENERATION_MAX_TOKENS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._api_url = api_url
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": settings.ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _payload(
        self, query: str, context: Sequence[ScoredResult], history: Sequence[ChatTurn], language: str, stream: bool
    ) -> Dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system_prompt(language),
            "messages": [
                {"role": "user", "content": build_prompt(query, context, history, language)}
            ],
            "temperature": 0.4,
            "stream": stream,
        }

    def _answer(self, raw: str, context: Sequence[ScoredResult], t0: float) -> GeneratedAnswer:
        text, suggestions = split_suggestions(raw)
        return GeneratedAnswer(
            text=text,
            sources=sources_of(context),
            suggestions=suggestions,
            response_time_ms=int((time.perf_counter() - t0) * 1000),
        )

    async def generate(
        self,
        query: str,
        context: Sequence[ScoredResult],
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> GeneratedAnswer:
        payload = self._payload(query, context, history, language, stream=False)
        t0 = time.perf_counter()
        with timed(logger, "ai.generate", model=self._model, sources=len(context)):
            if self._client is not None:
                r = await self._client.post(
                    self._api_url, headers=self._headers(), json=payload, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.post(self._api_url, headers=self._headers(), json=payload)
            r.raise_for_status()
            data = r.json()

        raw = ""
        for node in data.get("content") or []:
            if isinstance(node, dict) and node.get("type") == "text":
                raw += node.get("text") or ""
        if not raw.strip():
            raise ValueError("empty completion")
        return self._answer(raw, context, t0)

    async def stream(
        self,
        query: str,
        context: Sequence[ScoredResult],
        history: Sequence[ChatTurn] = (),
        language: str = "en",
    ) -> AsyncIterator[AnswerEvent]:
        """
        Yields "partial" events with text deltas, then exactly one terminal
        event: "complete" with the assembled answer, or "failed".
        """
        payload = self._payload(query, context, history, language, stream=True)
        t0 = time.perf_counter()
        chunks: List[str] = []
        owned = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            async with client.stream(
                "POST", self._api_url, headers=self._headers(), json=payload, timeout=self._timeout
            ) as r:
                if r.status_code >= 400:
                    await r.aread()
                    logger.error("ai.stream.bad_status status=%d", r.status_code)
                    yield AnswerEvent("failed", error=f"upstream status {r.status_code}")
                    return
                async for line in r.aiter_lines():
                    event = _parse_sse_line(line)
                    if event is None:
                        continue
                    etype = event.get("type")
                    if etype == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            chunks.append(delta["text"])
                            yield AnswerEvent("partial", text=delta["text"])
                    elif etype == "error":
                        err = (event.get("error") or {}).get("message", "stream error")
                        logger.error("ai.stream.error msg=%s", err)
                        yield AnswerEvent("failed", error=err)
                        return
                    elif etype == "message_stop":
                        break
        except httpx.HTTPError as e:
            logger.error("ai.stream.request_error err=%s", e.__class__.__name__)
            yield AnswerEvent("failed", error=str(e) or e.__class__.__name__)
            return
        finally:
            if owned:
                await client.aclose()

        raw = "".join(chunks)
        if not raw.strip():
            yield AnswerEvent("failed", error="empty completion")
            return
        answer = self._answer(raw, context, t0)
        logger.info("ai.stream.done ms=%d chars=%d", answer.response_time_ms, len(raw))
        yield AnswerEvent("complete", text=answer.text, answer=answer)


def _parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    body = line[len("data:"):].strip()
    if not body or body == "[DONE]":
        return None
    try:
        obj = json.loads(body)
    except json.JSONDecodeError:
        # drop malformed frames
        return None
    return obj if isinstance(obj, dict) else None
