from __future__ import annotations

import asyncio
import json
import random
import re
from typing import Any, Dict, List

import aiohttp


class LLMError(RuntimeError):
    """Raised when the completion endpoint cannot produce a usable answer."""


class GroqClient:
    """Client for Groq's OpenAI-compatible chat completions endpoint."""

    backend_name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: int,
        max_attempts: int = 1,
        base_url: str = "https://api.groq.com/openai/v1",
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_attempts = max(1, int(max_attempts))
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    @staticmethod
    def _map_messages(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        mapped: List[Dict[str, str]] = []
        for message in messages:
            role = str(message.get("role", "")).strip().lower() or "user"
            if role not in {"system", "user", "assistant"}:
                role = "user"
            content = str(message.get("content", "")).strip()
            if not content:
                continue
            mapped.append({"role": role, "content": content})
        return mapped

    async def _request(self, payload: Dict[str, Any], retries: int | None = None) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        attempts = self.max_attempts if retries is None else max(1, int(retries))
        url = self._endpoint()
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                async with self._session.post(url, json=payload) as response:
                    text = await response.text()
                    if response.status == 200:
                        return json.loads(text)

                    retriable = response.status in {408, 409, 429, 500, 502, 503, 504}
                    if not retriable:
                        raise LLMError(f"Groq error {response.status}: {text[:300]}")
                    last_error = LLMError(f"Groq retriable error {response.status}: {text[:300]}")
            except asyncio.CancelledError:
                raise
            except LLMError:
                raise
            except Exception as exc:
                last_error = exc

            if attempt < attempts:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        if last_error is not None:
            raise LLMError(f"Groq request failed after {attempts} attempt(s): {last_error}")
        raise LLMError("Groq request failed without explicit error")

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("Groq returned no choices")
        first = choices[0] or {}
        message = first.get("message") or {}
        content = message.get("content")
        if isinstance(content, str):
            return content.strip()
        raise LLMError(f"Groq response without message content (finish_reason={first.get('finish_reason')})")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        mapped = self._map_messages(messages)
        if not mapped:
            raise LLMError("No messages to send")
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": mapped,
            "temperature": float(temperature),
        }
        if max_tokens is not None and int(max_tokens) > 0:
            payload["max_tokens"] = int(max_tokens)
        data = await self._request(payload)
        return self._extract_text(data)

    @staticmethod
    def _strip_json_fences(text: str) -> str:
        cleaned = (text or "").strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```(?:json)?", "", cleaned, flags=re.IGNORECASE).strip()
            cleaned = re.sub(r"```$", "", cleaned).strip()
        if not cleaned.startswith("{"):
            start = cleaned.find("{")
            end = cleaned.rfind("}")
            if start >= 0 and end > start:
                cleaned = cleaned[start : end + 1].strip()
        return cleaned
