"""
Text extraction from generation response bodies.

Providers disagree on where the generated text lives. These helpers pull
the text and the termination marker out of the shapes we know about and
return empty values for anything else.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ExtractedText:
    """
    Generated text plus the provider's termination marker, if any.

    ``events`` holds the decoded JSON objects of a streamed body, so error
    objects delivered mid-stream can still be inspected.
    """

    text: str = ""
    finish_reason: Optional[str] = None
    events: tuple[dict, ...] = field(default=(), repr=False, compare=False)

    @property
    def word_count(self) -> int:
        return count_words(self.text)


def count_words(text: str) -> int:
    """Whitespace-delimited word count of the stripped text."""
    return len(text.split())


def _join_parts(parts: Any) -> str:
    """Concatenate text parts (OpenAI content arrays, Gemini parts)."""
    if not isinstance(parts, list):
        return ""
    texts = [p.get("text", "") for p in parts if isinstance(p, dict)]
    return "".join(t for t in texts if isinstance(t, str))


def _first_choice(data: dict) -> Optional[dict]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def _first_candidate(data: dict) -> Optional[dict]:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def extract_from_json(data: Any) -> ExtractedText:
    """
    Extract text from a decoded JSON body.

    Lookup order:
        choices[0].message.content / choices[0].text  (OpenAI-style)
        candidates[0].content.parts[*].text          (Gemini-style)
        response, text, message                      (Ollama / KoboldCPP / misc)
        the body itself when it is a JSON string
    """
    if isinstance(data, str):
        return ExtractedText(text=data)
    if not isinstance(data, dict):
        return ExtractedText()

    choice = _first_choice(data)
    if choice is not None:
        message = choice.get("message")
        content: Any = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, list):
            content = _join_parts(content)
        if not content:
            content = choice.get("text")
        return ExtractedText(
            text=content if isinstance(content, str) else "",
            finish_reason=choice.get("finish_reason"),
        )

    candidate = _first_candidate(data)
    if candidate is not None:
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        return ExtractedText(text=_join_parts(parts), finish_reason=candidate.get("finishReason"))

    for key in ("response", "text", "message"):
        value = data.get(key)
        if isinstance(value, str) and value:
            finish = data.get("done_reason") or data.get("finish_reason")
            return ExtractedText(text=value, finish_reason=finish)

    return ExtractedText()


def extract_from_event_stream(payload: str) -> ExtractedText:
    """
    Extract text from a server-sent-event body.

    Concatenates ``choices[0].delta.content`` (or ``choices[0].text``) over
    every ``data:`` event; the last non-null finish_reason wins. Events that
    are not JSON (including ``[DONE]``) are skipped.
    """
    pieces: list[str] = []
    events: list[dict] = []
    finish_reason: Optional[str] = None

    for line in payload.splitlines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            continue
        if not isinstance(event, dict):
            continue
        events.append(event)

        choice = _first_choice(event)
        if choice is None:
            chunk = extract_from_json(event)
            pieces.append(chunk.text)
            finish_reason = chunk.finish_reason or finish_reason
            continue

        delta = choice.get("delta")
        text = delta.get("content") if isinstance(delta, dict) else None
        if text is None:
            text = choice.get("text")
        if isinstance(text, str):
            pieces.append(text)
        if choice.get("finish_reason"):
            finish_reason = choice["finish_reason"]

    return ExtractedText(text="".join(pieces), finish_reason=finish_reason, events=tuple(events))
