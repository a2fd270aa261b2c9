# util/types.py
from typing import List, Literal, TypedDict


# Flow: Narrow types for NDJSON chat events.
EventType = Literal["reveal", "final", "error", "done"]


class RevealPayload(TypedDict):
    sessionId: str
    phase: str
    steps: List[dict]
    visible: int
    total: int
    responseReady: bool
    streaming: bool
