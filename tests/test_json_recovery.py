"""Tests for JSON recovery from completion text and the call_json wrapper."""

import pytest

from storyforge.errors import GenerationError
from storyforge.llm.client import call_json
from storyforge.llm.json_recovery import (
    extract_balanced_candidates,
    extract_fenced_blocks,
    find_balanced_end,
    recover_json,
)


class TestRecoverJson:
    def test_plain_json(self):
        assert recover_json('{"score": 80}') == {"score": 80}

    def test_fenced_block_with_prose(self):
        text = 'Here is the backlog:\n```json\n{"userStories": [1, 2]}\n```\nLet me know.'
        assert recover_json(text) == {"userStories": [1, 2]}

    def test_unlabelled_fence(self):
        assert recover_json("```\n[1, 2, 3]\n```") == [1, 2, 3]

    def test_embedded_mid_sentence(self):
        text = 'The result is {"score": 72, "findings": []} as requested.'
        assert recover_json(text) == {"score": 72, "findings": []}

    def test_brackets_inside_strings_are_ignored(self):
        text = 'Output: {"summary": "use } and { freely", "score": 1} done'
        assert recover_json(text) == {"summary": "use } and { freely", "score": 1}

    def test_escaped_quotes_inside_strings(self):
        text = 'x {"summary": "say \\"hi\\" {", "ok": true} y'
        assert recover_json(text) == {"summary": 'say "hi" {', "ok": True}

    def test_first_parseable_candidate_wins(self):
        text = 'broken {"a": } then {"b": 2}'
        assert recover_json(text) == {"b": 2}

    @pytest.mark.parametrize("text", ["", "   ", None, "no json here", '{"a": 1', "[1, 2"])
    def test_nothing_recoverable(self, text):
        assert recover_json(text) is None


class TestHelpers:
    def test_extract_fenced_blocks_skips_empty(self):
        assert extract_fenced_blocks("```json\n```\n```\n{}\n```") == ["{}"]

    def test_find_balanced_end_unclosed(self):
        assert find_balanced_end("{[}", 0) == 2
        assert find_balanced_end('{"a": 1', 0) == -1

    def test_balanced_candidates_in_start_order(self):
        assert extract_balanced_candidates('a [1] b {"x": [2]}') == ["[1]", '{"x": [2]}', "[2]"]


class TestCallJson:
    def test_returns_parsed_value(self, scripted_client):
        client = scripted_client(['Sure! ```json\n{"ok": true}\n```'])
        assert call_json(client, "system", "user") == {"ok": True}
        assert client.calls == [("system", "user")]

    def test_raises_generation_error_with_raw_content(self, scripted_client):
        client = scripted_client(["I cannot help with that."])
        with pytest.raises(GenerationError) as exc_info:
            call_json(client, "system", "user")
        assert exc_info.value.raw_content == "I cannot help with that."
