"""
LLM client abstraction supporting OpenAI and Anthropic.
Provides async completion with structured JSON output support.
"""

import json
from typing import Optional, Dict, Any
from enum import Enum

from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

from charla.shared.config import settings
from charla.shared.exceptions import LLMError


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class LLMClient:
    """Unified LLM client supporting multiple providers."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        self.provider = provider or settings.llm.provider
        self.model = model or settings.llm.default_model
        self.temperature = temperature if temperature is not None else settings.llm.temperature
        self.max_tokens = max_tokens or settings.llm.max_tokens
        self.timeout = timeout or settings.llm.timeout_seconds

        if self.provider == LLMProvider.OPENAI:
            api_key = api_key or settings.llm.openai_api_key
            if not api_key:
                raise LLMError("OpenAI API key not configured")
            self.client = AsyncOpenAI(api_key=api_key, timeout=self.timeout)
        elif self.provider == LLMProvider.ANTHROPIC:
            api_key = api_key or settings.llm.anthropic_api_key
            if not api_key:
                raise LLMError("Anthropic API key not configured")
            self.client = AsyncAnthropic(api_key=api_key, timeout=self.timeout)
        else:
            raise LLMError(f"Unsupported provider: {self.provider}")

    async def get_completion(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs
    ) -> str:
        """
        Get text completion from LLM.

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            model: Override default model
            temperature: Override default temperature
            max_tokens: Override default max_tokens
            json_mode: Ask the provider for a single JSON object
            **kwargs: Additional provider-specific parameters

        Returns:
            Completion text
        """
        model = model or self.model
        temperature = temperature if temperature is not None else self.temperature
        max_tokens = max_tokens or self.max_tokens

        try:
            if self.provider == LLMProvider.OPENAI:
                return await self._openai_completion(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode,
                    **kwargs
                )
            return await self._anthropic_completion(
                prompt=prompt,
                system_prompt=system_prompt,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
                **kwargs
            )
        except Exception as e:
            raise LLMError(f"LLM completion failed: {str(e)}") from e

    async def _openai_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
        **kwargs
    ) -> str:
        """OpenAI-specific completion."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        completion_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs
        }

        if json_mode:
            completion_kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**completion_kwargs)
        if not response.choices:
            raise LLMError("OpenAI response has no choices")
        return response.choices[0].message.content or ""

    async def _anthropic_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
        **kwargs
    ) -> str:
        """Anthropic-specific completion."""
        # Anthropic uses system parameter, not system message
        completion_kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            **kwargs
        }

        system = system_prompt or ""
        if json_mode:
            system += "\n\nRespond with a single valid JSON object and nothing else."
        if system:
            completion_kwargs["system"] = system

        completion_kwargs["messages"] = [{"role": "user", "content": prompt}]

        response = await self.client.messages.create(**completion_kwargs)
        return response.content[0].text

    async def get_json_completion(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Get a JSON object completion.

        Returns:
            Parsed JSON response as dict

        Raises:
            LLMError if the call fails or the response is not a JSON object
        """
        response_text = await self.get_completion(
            prompt=prompt,
            system_prompt=system_prompt,
            model=model,
            json_mode=True,
            **kwargs
        )
        return parse_json_object(response_text)


def parse_json_object(response_text: str) -> Dict[str, Any]:
    """Parse a model response as a JSON object, tolerating markdown fences."""
    text = response_text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]

    try:
        parsed = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise LLMError(f"Failed to parse JSON response: {str(e)}\nResponse: {response_text[:200]}") from e

    if not isinstance(parsed, dict):
        raise LLMError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
