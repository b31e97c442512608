"""
Payload mutation after a moderation rejection.

Staged by the number of moderation-driven mutations in the current call:

    Stage 1: replace configured terms with neutral synonyms across all
             message texts, and optionally reframe the latest user turn as
             a system instruction to continue the narrative.
    Stage 2+: the stage-1 rewrite did not help; the request is
             unrecoverable and the orchestrator stops.

Only JSON bodies with a ``messages`` list (chat) or a ``prompt`` string
(completion) are rewritten; anything else passes through unchanged.
"""

import json
import re
from typing import Any, Mapping, Optional

import structlog

from fetch_retry.config import DEFAULT_REFRAME_TEMPLATE, RetryConfig
from fetch_retry.exceptions import UnrecoverableFailure

logger = structlog.get_logger(__name__)

MAX_MUTATION_STAGE = 1


class PayloadMutationStrategy:
    """
    Rewrites a request body to route around a content rejection.

    Attributes:
        replacements: Lower-cased term -> neutral synonym
        whole_word: Match terms on word boundaries only
        reframe: Demote the latest user turn to a system instruction
        reframe_template: Instruction text; ``{content}`` receives the
            sanitized user message
    """

    def __init__(
        self,
        replacements: Optional[Mapping[str, str]] = None,
        whole_word: bool = False,
        reframe: bool = True,
        reframe_template: str = DEFAULT_REFRAME_TEMPLATE,
    ):
        self.replacements = {k.lower(): v for k, v in (replacements or {}).items() if k}
        self.whole_word = whole_word
        self.reframe = reframe
        self.reframe_template = reframe_template
        self._pattern = self._compile(self.replacements.keys(), whole_word)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "PayloadMutationStrategy":
        """Build from a RetryConfig snapshot."""
        return cls(
            replacements=config.mutation_replacements,
            whole_word=config.mutation_whole_word,
            reframe=config.mutation_reframe,
            reframe_template=config.reframe_template,
        )

    @staticmethod
    def _compile(terms: Any, whole_word: bool) -> Optional[re.Pattern]:
        # Longest first so "sexual" wins over "sex"
        ordered = sorted(terms, key=len, reverse=True)
        if not ordered:
            return None
        alternation = "|".join(re.escape(term) for term in ordered)
        if whole_word:
            alternation = rf"\b(?:{alternation})\b"
        return re.compile(alternation, re.IGNORECASE)

    def mutate(self, body: bytes, stage: int) -> bytes:
        """
        Produce the body for the next attempt.

        Args:
            body: Current request body
            stage: 1-based count of moderation rejections handled so far

        Returns:
            Rewritten body (or the original when it has no known shape)

        Raises:
            UnrecoverableFailure: stage is past the last useful transform
        """
        if stage < 1:
            raise ValueError("stage must be >= 1")
        if stage > MAX_MUTATION_STAGE:
            logger.warning("Payload mutation exhausted", stage=stage)
            raise UnrecoverableFailure(
                "Request was rejected by moderation again after payload mutation",
                details={"stage": stage},
            )

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.info("Request body is not JSON, leaving it unchanged")
            return body
        if not isinstance(payload, dict):
            return body

        changed = False
        messages = payload.get("messages")
        if isinstance(messages, list):
            new_messages = [self._sanitize_message(m) for m in messages]
            if self.reframe:
                new_messages = self._reframe_last_user_turn(new_messages)
            changed = new_messages != messages
            payload["messages"] = new_messages
        elif isinstance(payload.get("prompt"), str):
            sanitized = self.sanitize_text(payload["prompt"])
            changed = sanitized != payload["prompt"]
            payload["prompt"] = sanitized

        logger.info("Applied payload mutation", stage=stage, changed=changed)
        if not changed:
            return body
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    def sanitize_text(self, text: str) -> str:
        """Replace every configured term, keeping a leading capital."""
        if self._pattern is None:
            return text

        def _replace(match: re.Match) -> str:
            found = match.group(0)
            replacement = self.replacements.get(found.lower(), found)
            if found[:1].isupper():
                replacement = replacement[:1].upper() + replacement[1:]
            return replacement

        return self._pattern.sub(_replace, text)

    def _sanitize_message(self, message: Any) -> Any:
        if not isinstance(message, dict):
            return message
        new_message = dict(message)
        content = new_message.get("content")
        if isinstance(content, str):
            new_message["content"] = self.sanitize_text(content)
        elif isinstance(content, list):
            new_message["content"] = [
                {**part, "text": self.sanitize_text(part["text"])}
                if isinstance(part, dict) and isinstance(part.get("text"), str)
                else part
                for part in content
            ]
        return new_message

    def _reframe_last_user_turn(self, messages: list) -> list:
        for index in range(len(messages) - 1, -1, -1):
            message = messages[index]
            if isinstance(message, dict) and message.get("role") == "user":
                break
        else:
            return messages

        content = message.get("content")
        if isinstance(content, list):
            content = "".join(
                p.get("text", "") for p in content if isinstance(p, dict) and isinstance(p.get("text"), str)
            )
        if not isinstance(content, str):
            return messages

        reframed = {
            "role": "system",
            "content": self.reframe_template.replace("{content}", content),
        }
        return messages[:index] + [reframed] + messages[index + 1:]
