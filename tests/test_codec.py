"""Tests for the content block codec."""

import json

from msgbridge.messages.codec import (
    CONTENT_BLOCK_TYPES,
    content_to_blocks,
    convert_message,
    parse_tool_arguments,
    tool_result_to_message,
)


class TestConvertMessage:
    """Tests for Anthropic message -> OpenAI messages."""

    def test_string_content_passes_through(self):
        assert convert_message({"role": "user", "content": "Hi"}) == [{"role": "user", "content": "Hi"}]

    def test_single_text_block_is_simplified_to_string(self):
        result = convert_message({"role": "user", "content": [{"type": "text", "text": "Hello"}]})
        assert result == [{"role": "user", "content": "Hello"}]

    def test_base64_image_becomes_data_uri(self):
        message = {
            "role": "user",
            "content": [
                {"type": "text", "text": "What is this?"},
                {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "AAAA"}},
            ],
        }
        result = convert_message(message)
        assert len(result) == 1
        parts = result[0]["content"]
        assert parts[0] == {"type": "text", "text": "What is this?"}
        assert parts[1] == {
            "type": "image_url",
            "image_url": {"url": "data:image/jpeg;base64,AAAA", "detail": "auto"},
        }

    def test_url_image_is_used_directly(self):
        message = {
            "role": "user",
            "content": [
                {"type": "image", "source": {"type": "url", "url": "https://example.com/cat.png"}},
                {"type": "text", "text": "Describe"},
            ],
        }
        parts = convert_message(message)[0]["content"]
        assert parts[0]["image_url"]["url"] == "https://example.com/cat.png"

    def test_image_with_unknown_source_is_omitted(self):
        message = {
            "role": "user",
            "content": [
                {"type": "text", "text": "Look"},
                {"type": "image", "source": {"type": "file", "file_id": "f1"}},
            ],
        }
        assert convert_message(message) == [{"role": "user", "content": "Look"}]

    def test_document_and_thinking_become_placeholders(self):
        message = {
            "role": "user",
            "content": [
                {"type": "document", "source": {"type": "base64", "media_type": "application/pdf", "data": "x"}},
                {"type": "thinking", "thinking": "hmm"},
            ],
        }
        parts = convert_message(message)[0]["content"]
        assert parts == [
            {"type": "text", "text": "[Document: application/pdf]"},
            {"type": "text", "text": "[Thinking: hmm]"},
        ]

    def test_tool_results_become_tool_messages_first(self):
        message = {
            "role": "user",
            "content": [
                {"type": "text", "text": "Here you go"},
                {"type": "tool_result", "tool_use_id": "toolu_1", "content": "72F"},
                {"type": "tool_result", "tool_use_id": "toolu_2", "content": [{"type": "text", "text": "ok"}]},
            ],
        }
        result = convert_message(message)
        assert result[0] == {"role": "tool", "tool_call_id": "toolu_1", "content": "72F"}
        assert result[1]["role"] == "tool"
        assert json.loads(result[1]["content"]) == [{"type": "text", "text": "ok"}]
        assert result[2] == {"role": "user", "content": "Here you go"}

    def test_only_tool_results_produce_no_user_message(self):
        message = {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "done"}],
        }
        assert convert_message(message) == [{"role": "tool", "tool_call_id": "toolu_1", "content": "done"}]

    def test_assistant_tool_use_becomes_tool_calls(self):
        message = {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Checking."},
                {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"location": "Paris"}},
            ],
        }
        result = convert_message(message)
        assert len(result) == 1
        assert result[0]["content"] == "Checking."
        call = result[0]["tool_calls"][0]
        assert call["id"] == "toolu_1"
        assert call["type"] == "function"
        assert call["function"]["name"] == "get_weather"
        assert json.loads(call["function"]["arguments"]) == {"location": "Paris"}

    def test_assistant_tool_use_without_text_has_empty_content(self):
        message = {
            "role": "assistant",
            "content": [{"type": "tool_use", "id": "toolu_1", "name": "LS", "input": {}}],
        }
        result = convert_message(message)
        assert result[0]["content"] == ""
        assert result[0]["tool_calls"][0]["function"]["arguments"] == "{}"

    def test_unknown_block_type_is_dropped_with_warning(self, caplog):
        message = {
            "role": "user",
            "content": [{"type": "text", "text": "Hi"}, {"type": "hologram", "data": "?"}],
        }
        with caplog.at_level("WARNING", logger="msgbridge"):
            result = convert_message(message)
        assert result == [{"role": "user", "content": "Hi"}]
        assert "hologram" in caplog.text

    def test_server_tool_blocks_are_summarized_as_text(self):
        message = {
            "role": "assistant",
            "content": [
                {"type": "server_tool_use", "id": "srvtoolu_1", "name": "web_search", "input": {"query": "cats"}},
                {
                    "type": "web_search_tool_result",
                    "tool_use_id": "srvtoolu_1",
                    "content": [{"type": "web_search_result", "title": "Cats", "url": "https://cats.example"}],
                },
            ],
        }
        parts = convert_message(message)[0]["content"]
        assert parts[0]["text"] == "[Web search: cats]"
        assert "Cats (https://cats.example)" in parts[1]["text"]

    def test_every_listed_block_type_has_a_handler(self):
        for block_type in CONTENT_BLOCK_TYPES:
            block = {"type": block_type, "text": "t", "source": {"type": "url", "url": "u"}}
            if block_type == "tool_result":
                block["tool_use_id"] = "x"
            role = "assistant" if block_type == "tool_use" else "user"
            assert convert_message({"role": role, "content": [block]}), block_type


class TestToolResultToMessage:
    """Tests for tool_result conversion."""

    def test_error_results_are_prefixed(self):
        result = tool_result_to_message({"tool_use_id": "t1", "content": "boom", "is_error": True})
        assert result["content"] == "[Error] boom"

    def test_missing_content_is_empty_string(self):
        assert tool_result_to_message({"tool_use_id": "t1"})["content"] == ""


class TestReverseDirection:
    """Tests for OpenAI -> Anthropic content."""

    def test_text_and_tool_calls(self):
        blocks = content_to_blocks(
            "Sure",
            [{"id": "call_1", "function": {"name": "Read", "arguments": '{"path": "a.txt"}'}}],
        )
        assert blocks == [
            {"type": "text", "text": "Sure"},
            {"type": "tool_use", "id": "call_1", "name": "Read", "input": {"path": "a.txt"}},
        ]

    def test_empty_text_is_skipped(self):
        assert content_to_blocks("", None) == []

    def test_unparseable_arguments_are_wrapped(self):
        assert parse_tool_arguments("{broken") == {"arguments": "{broken"}

    def test_non_object_arguments_are_wrapped(self):
        assert parse_tool_arguments("[1, 2]") == {"arguments": "[1, 2]"}

    def test_empty_arguments_are_empty_object(self):
        assert parse_tool_arguments("") == {}
        assert parse_tool_arguments(None) == {}
