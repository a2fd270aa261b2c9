# core/streaming.py
import json
from typing import Any, Dict, Final
from core.entities import GeneratedAnswer
from core.reveal import RevealPhase, RevealSession
from util.types import RevealPayload

LINE_SEP: Final[str] = "\n"


def ndjson_line(obj: Dict[str, object]) -> bytes:
    return (json.dumps(obj, separators=(",", ":"), ensure_ascii=False) + LINE_SEP).encode("utf-8")


def reveal_payload(phase: RevealPhase, session: RevealSession) -> RevealPayload:
    """
    Client view of a reveal session. Only visible steps are sent; the
    client cannot render the final step early because it never has it.
    """
    return {
        "sessionId": session.session_id,
        "phase": phase.value,
        "steps": [{"icon": s.icon, "text": s.text} for s in session.visible_steps],
        "visible": session.visible_count,
        "total": session.total,
        "responseReady": session.response_ready,
        "streaming": session.streaming,
    }


def answer_payload(answer: GeneratedAnswer, session_id: str, forced: bool) -> Dict[str, Any]:
    return {
        "sessionId": session_id,
        "response": answer.text,
        "responseTime": answer.response_time_ms,
        "sources": [
            {"id": s.id, "title": s.title, "similarity": s.similarity}
            for s in answer.sources
        ],
        "suggestions": list(answer.suggestions),
        "degraded": answer.degraded,
        "forced": forced,
    }
