from __future__ import annotations

import base64
import logging

from groq import Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)


def _make_client(config: LLMConfig, timeout: float) -> Groq:
    return Groq(api_key=config.api_key, timeout=timeout, max_retries=config.max_retries)


class GroqChatModel:
    """Text completions through the Groq chat API. Errors propagate to the caller."""

    def __init__(self, config: LLMConfig = DEFAULT_LLM_CONFIG) -> None:
        self._config = config
        self._client = _make_client(config, config.timeout)

    def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        json_mode: bool = False,
    ) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self._client.chat.completions.create(
            model=self._config.model,
            messages=messages,
            max_tokens=min(max_tokens, self._config.max_tokens),
            temperature=temperature,
            **kwargs,
        )
        return (response.choices[0].message.content or "").strip()


class GroqVisionModel:
    """
    Reads a menu photo with a multimodal Groq model.

    The image is sent inline as a base64 data URL and the model is asked
    for a JSON object.
    """

    def __init__(self, config: LLMConfig = DEFAULT_LLM_CONFIG) -> None:
        self._config = config
        self._client = _make_client(config, config.vision_timeout)

    def read_menu(
        self,
        image: bytes,
        mime_type: str,
        system_prompt: str,
        user_prompt: str,
    ) -> str:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"
        response = self._client.chat.completions.create(
            model=self._config.vision_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                },
            ],
            max_tokens=self._config.max_tokens,
            temperature=0.1,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or ""
        logger.debug("Vision model returned %d characters", len(content))
        return content
