"""
Tests for model selection and the Anthropic generator.
"""

import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx

from common.errors import ConfigurationError, ConnectionError, GenerationError
from models.config import MODEL_IDENTIFIERS, TASK_MAX_TOKENS
from models.selection import get_model_identifier, get_task_max_tokens, get_task_model
from summarization.base import AnthropicGenerator, GenerationOptions


class TestModelSelection(unittest.TestCase):
    """Test the model selection functions."""

    def test_get_model_identifier(self):
        self.assertEqual(get_model_identifier(None), "claude-sonnet-4-5")
        self.assertIn("haiku", get_model_identifier("haiku"))
        self.assertEqual(get_model_identifier("claude-haiku-4.5"), get_model_identifier("haiku-4.5"))

        # Known full identifier is returned as-is
        self.assertEqual(get_model_identifier("claude-sonnet-4-5"), "claude-sonnet-4-5")

        # Unknown names pass through
        self.assertEqual(get_model_identifier("claude-future-9"), "claude-future-9")

    def test_task_models(self):
        self.assertEqual(get_task_model("classification"), MODEL_IDENTIFIERS["claude-haiku-4.5"])
        self.assertEqual(get_task_model("digest"), MODEL_IDENTIFIERS["claude-sonnet-4.5"])
        self.assertEqual(get_task_model("unknown-task"), MODEL_IDENTIFIERS["claude-sonnet-4.5"])
        self.assertEqual(get_task_model("digest", override="haiku"), MODEL_IDENTIFIERS["claude-haiku-4.5"])

    def test_task_max_tokens_capped_by_model(self):
        self.assertEqual(get_task_max_tokens("digest", "claude-sonnet-4-5"), TASK_MAX_TOKENS["digest"])
        self.assertEqual(get_task_max_tokens("unknown-task"), 1024)


def tool_response(payload):
    return SimpleNamespace(
        content=[SimpleNamespace(type="tool_use", input=payload)],
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


def text_response(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)], usage=None)


class TestAnthropicGenerator(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.generator = AnthropicGenerator(client=self.client)

    def test_requires_key_or_client(self):
        with self.assertRaises(ConfigurationError):
            AnthropicGenerator()

    def test_structured_output_through_forced_tool(self):
        self.client.messages.create.return_value = tool_response({"summary": "ok"})
        result = self.generator.generate_structured("prompt", {"type": "object"},
                                                    GenerationOptions(task="article_summary"))
        self.assertEqual(result, {"summary": "ok"})

        kwargs = self.client.messages.create.call_args.kwargs
        self.assertEqual(kwargs["model"], MODEL_IDENTIFIERS["claude-haiku-4.5"])
        self.assertEqual(kwargs["max_tokens"], TASK_MAX_TOKENS["article_summary"])
        self.assertEqual(kwargs["tool_choice"]["type"], "tool")
        self.assertEqual(self.generator.usage["calls"], 1)
        self.assertEqual(self.generator.usage["input_tokens"], 10)

    def test_model_override_per_task(self):
        generator = AnthropicGenerator(client=self.client, models={"digest": "haiku"})
        self.client.messages.create.return_value = text_response("Hello")
        self.assertEqual(generator.generate("prompt", GenerationOptions(task="digest")), "Hello")
        self.assertEqual(self.client.messages.create.call_args.kwargs["model"],
                         MODEL_IDENTIFIERS["claude-haiku-4.5"])

    def test_fenced_json_text_is_accepted(self):
        self.client.messages.create.return_value = text_response('```json\n{"title": "T"}\n```')
        self.assertEqual(self.generator.generate_structured("p", {}), {"title": "T"})

    def test_unparseable_reply_is_generation_error(self):
        self.client.messages.create.return_value = text_response("no json here")
        with self.assertRaises(GenerationError):
            self.generator.generate_structured("p", {})

    def test_empty_text_is_generation_error(self):
        self.client.messages.create.return_value = text_response("   ")
        with self.assertRaises(GenerationError):
            self.generator.generate("p")

    def test_connection_errors_are_mapped(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        self.client.messages.create.side_effect = anthropic.APIConnectionError(request=request)
        with self.assertRaises(ConnectionError):
            self.generator.generate("p")
        self.assertEqual(self.generator.usage["failures"], 1)


if __name__ == "__main__":
    unittest.main()
