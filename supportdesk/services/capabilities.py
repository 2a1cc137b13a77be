"""Signatures of the external capabilities the core consumes.

Classification, generation, embedding, speech and transport live outside the
resilience layer; they are injected as plain async callables so that tests and
alternative providers can stand in for the default adapters.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

# classify(text) -> intent label
ClassifyFn = Callable[[str], Awaitable[str]]

# embed(text) -> fixed-length vector
EmbedFn = Callable[[str], Awaitable[List[float]]]

# generate(text, context_docs, history, system_prompt) -> reply text
GenerateFn = Callable[
    [str, List[str], Optional[List[Dict[str, str]]], Optional[str]],
    Awaitable[str]
]

# transcribe(recording_url) -> text
TranscribeFn = Callable[[str], Awaitable[str]]

# notify(recipient, text) -> None; sends an out-of-band message to the user
NotifyFn = Callable[[str, str], Awaitable[Any]]

# capture(intent, session_id) -> list of attachment urls
VisualAidFn = Callable[[str, str], Awaitable[List[str]]]

# Control markers a generated reply may carry; stripped before delivery
ESCALATE_MARKER = "[ESCALATE]"
VISUAL_AID_MARKER = "[NEED_SCREENSHOTS]"
