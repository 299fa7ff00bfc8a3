"""
Text-generation service interface and its Anthropic implementation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import anthropic
from anthropic import Anthropic

from common.errors import (
    AuthenticationError, ConfigurationError, ConnectionError, GenerationError, RateLimitError,
)
from common.logging import StructuredLogger
from models.selection import get_task_model, get_task_max_tokens
from summarization.text_processing import parse_json_response

STRUCTURED_TOOL_NAME = "record_output"


@dataclass
class GenerationOptions:
    """Per-call settings; `task` picks the default model and token budget."""
    task: str = "digest"
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: float = 0.3
    system: Optional[str] = None


class Generator(ABC):
    """Capability interface for text generation."""

    @abstractmethod
    def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        """
        Generate free text.

        Raises:
            GenerationError: or one of the APIError subclasses on failure
        """

    @abstractmethod
    def generate_structured(self, prompt: str, schema: Dict[str, Any],
                            options: Optional[GenerationOptions] = None) -> Dict[str, Any]:
        """
        Generate a JSON object matching `schema`.

        Raises:
            GenerationError: when the service fails or returns no usable object
        """


class AnthropicGenerator(Generator):
    """
    Generator backed by the Anthropic Messages API.

    Structured output is requested through a single forced tool whose input
    schema is the caller's JSON schema. Retries are left to the SDK client
    (`max_retries`); the pipeline itself never retries a failed call.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[Anthropic] = None,
                 models: Optional[Dict[str, str]] = None, max_retries: int = 0, timeout: float = 120.0):
        """
        Args:
            api_key: Anthropic API key; required unless `client` is given
            client: Preconfigured client, mainly for tests
            models: Task name -> model name/shorthand overrides
            max_retries: SDK-level retries for transient errors
            timeout: Request timeout in seconds
        """
        if client is None:
            if not api_key:
                raise ConfigurationError("An Anthropic API key is required for text generation")
            client = Anthropic(api_key=api_key, max_retries=max_retries, timeout=timeout)
        self.client = client
        self.models = dict(models or {})
        self.logger = StructuredLogger(__name__)
        self._usage_lock = threading.Lock()
        self.usage = {'calls': 0, 'failures': 0, 'input_tokens': 0, 'output_tokens': 0}

    def _request(self, prompt: str, options: GenerationOptions, **extra) -> Any:
        model_id = get_task_model(options.task, options.model or self.models.get(options.task))
        kwargs = {
            'model': model_id,
            'max_tokens': options.max_tokens or get_task_max_tokens(options.task, model_id),
            'temperature': options.temperature,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        if options.system:
            kwargs['system'] = options.system
        kwargs.update(extra)
        return self.call_api(**kwargs)

    def call_api(self, **kwargs) -> Any:
        """Call messages.create and map SDK exceptions onto the application's errors."""
        task_model = kwargs.get('model')
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            self._record_failure()
            self.logger.warning(f"Rate limit exceeded: {e}", model=task_model)
            raise RateLimitError(f"Rate limit exceeded: {e}") from e
        except anthropic.AuthenticationError as e:
            self._record_failure()
            raise AuthenticationError(f"Authentication failed: {e}") from e
        except anthropic.APIConnectionError as e:
            self._record_failure()
            self.logger.warning(f"Connection error: {e}", model=task_model)
            raise ConnectionError(f"Connection error: {e}") from e
        except anthropic.APIError as e:
            self._record_failure()
            self.logger.error(f"API error: {e}", model=task_model)
            raise GenerationError(f"API error: {e}") from e

        usage = getattr(response, 'usage', None)
        with self._usage_lock:
            self.usage['calls'] += 1
            if usage is not None:
                self.usage['input_tokens'] += getattr(usage, 'input_tokens', 0) or 0
                self.usage['output_tokens'] += getattr(usage, 'output_tokens', 0) or 0
        return response

    def _record_failure(self):
        with self._usage_lock:
            self.usage['failures'] += 1

    def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        response = self._request(prompt, options)
        text = "".join(block.text for block in response.content if getattr(block, 'type', None) == 'text')
        if not text.strip():
            raise GenerationError("Empty response from model")
        return text.strip()

    def generate_structured(self, prompt: str, schema: Dict[str, Any],
                            options: Optional[GenerationOptions] = None) -> Dict[str, Any]:
        options = options or GenerationOptions()
        tool = {
            'name': STRUCTURED_TOOL_NAME,
            'description': "Record the requested output. Always call this tool with the complete result.",
            'input_schema': schema,
        }
        response = self._request(
            prompt, options,
            tools=[tool],
            tool_choice={'type': 'tool', 'name': STRUCTURED_TOOL_NAME},
        )

        for block in response.content:
            if getattr(block, 'type', None) == 'tool_use' and isinstance(block.input, dict):
                return block.input

        # Some models answer in text despite the forced tool
        text = "".join(block.text for block in response.content if getattr(block, 'type', None) == 'text')
        try:
            return parse_json_response(text)
        except ValueError as e:
            raise GenerationError(f"No structured output in response: {e}") from e
