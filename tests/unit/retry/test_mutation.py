"""
Unit tests for PayloadMutationStrategy.
"""

import json

import pytest

from fetch_retry.config import RetryConfig
from fetch_retry.exceptions import UnrecoverableFailure
from fetch_retry.retry.mutation import PayloadMutationStrategy


def create_chat_body(*messages: dict) -> bytes:
    """Helper to serialize a chat completion payload."""
    return json.dumps({"model": "test-model", "messages": list(messages)}).encode()


@pytest.fixture
def strategy() -> PayloadMutationStrategy:
    return PayloadMutationStrategy(
        replacements={"battle": "contest", "battlefield": "arena", "blood": "ink"},
        reframe=False,
    )


# ============================================================================
# Term Replacement
# ============================================================================


class TestSanitizeText:
    def test_replaces_configured_terms(self, strategy):
        assert strategy.sanitize_text("a battle of blood") == "a contest of ink"

    def test_longest_term_wins(self, strategy):
        assert strategy.sanitize_text("the battlefield") == "the arena"

    def test_case_insensitive_keeps_leading_capital(self, strategy):
        assert strategy.sanitize_text("Blood and BATTLE") == "Ink and Contest"

    def test_substring_matching_by_default(self, strategy):
        assert strategy.sanitize_text("bloodline") == "inkline"

    def test_whole_word_mode(self):
        strategy = PayloadMutationStrategy(replacements={"blood": "ink"}, whole_word=True)

        assert strategy.sanitize_text("bloodline and blood") == "bloodline and ink"

    def test_no_replacements_is_identity(self):
        assert PayloadMutationStrategy().sanitize_text("anything at all") == "anything at all"


# ============================================================================
# Body Rewriting
# ============================================================================


class TestMutate:
    def test_rewrites_every_message(self, strategy):
        body = create_chat_body(
            {"role": "system", "content": "Narrate the battle."},
            {"role": "assistant", "content": "There was blood."},
            {"role": "user", "content": "Continue the battle"},
        )

        payload = json.loads(strategy.mutate(body, stage=1))

        assert [m["content"] for m in payload["messages"]] == [
            "Narrate the contest.",
            "There was ink.",
            "Continue the contest",
        ]
        assert payload["model"] == "test-model"

    def test_rewrites_content_parts(self, strategy):
        body = create_chat_body({
            "role": "user",
            "content": [{"type": "text", "text": "The battle"}, {"type": "image_url", "image_url": {"url": "x"}}],
        })

        payload = json.loads(strategy.mutate(body, stage=1))

        parts = payload["messages"][0]["content"]
        assert parts[0] == {"type": "text", "text": "The contest"}
        assert parts[1]["type"] == "image_url"

    def test_rewrites_completion_prompt(self, strategy):
        body = json.dumps({"prompt": "After the battle", "max_tokens": 200}).encode()

        payload = json.loads(strategy.mutate(body, stage=1))

        assert payload == {"prompt": "After the contest", "max_tokens": 200}

    def test_reframes_last_user_turn(self):
        strategy = PayloadMutationStrategy(replacements={"battle": "contest"})
        body = create_chat_body(
            {"role": "user", "content": "First request"},
            {"role": "assistant", "content": "First answer"},
            {"role": "user", "content": "Describe the battle"},
        )

        messages = json.loads(strategy.mutate(body, stage=1))["messages"]

        assert messages[0] == {"role": "user", "content": "First request"}
        assert messages[2]["role"] == "system"
        assert messages[2]["content"].endswith("Describe the contest")
        assert len(messages) == 3

    def test_custom_reframe_template(self):
        strategy = PayloadMutationStrategy(reframe_template="Story direction: {content}")
        body = create_chat_body({"role": "user", "content": "go on"})

        messages = json.loads(strategy.mutate(body, stage=1))["messages"]

        assert messages == [{"role": "system", "content": "Story direction: go on"}]

    def test_unchanged_body_returned_verbatim(self, strategy):
        body = create_chat_body({"role": "user", "content": "A quiet morning"})

        assert strategy.mutate(body, stage=1) is body

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2, 3]", b'{"input": "battle"}'])
    def test_unknown_shapes_pass_through(self, strategy, body):
        assert strategy.mutate(body, stage=1) == body

    def test_second_stage_is_unrecoverable(self, strategy):
        body = create_chat_body({"role": "user", "content": "battle"})

        with pytest.raises(UnrecoverableFailure):
            strategy.mutate(body, stage=2)

    def test_stage_must_be_positive(self, strategy):
        with pytest.raises(ValueError):
            strategy.mutate(b"{}", stage=0)

    def test_from_config(self):
        config = RetryConfig(
            enable_payload_mutation=True,
            mutation_replacements={"Battle": "contest"},
            mutation_whole_word=True,
            mutation_reframe=False,
        )

        strategy = PayloadMutationStrategy.from_config(config)

        assert strategy.replacements == {"battle": "contest"}
        assert strategy.whole_word
        assert not strategy.reframe
