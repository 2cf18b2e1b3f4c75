from __future__ import annotations

from typing import Protocol


class ChatModel(Protocol):
    def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        json_mode: bool = False,
    ) -> str: ...


class VisionModel(Protocol):
    def read_menu(
        self,
        image: bytes,
        mime_type: str,
        system_prompt: str,
        user_prompt: str,
    ) -> str: ...
