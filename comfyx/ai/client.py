"""Chat clients for the text-generation providers used to draft workflows."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, Field

from comfyx.config import AIConfig
from comfyx.errors import ChatError
from comfyx.workflow.extractor import extract_workflow_json
from comfyx.workflow.validator import validate_workflow

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
CLAUDE_URL = "https://api.anthropic.com/v1/messages"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
ANTHROPIC_VERSION = "2023-06-01"
PROVIDERS = ("openai", "claude", "gemini")


class ChatMessage(BaseModel):
    role: str      # "system" | "user" | "assistant"
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChatClient:
    """Sends a conversation to one provider and returns the reply text."""

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        max_tokens: int = 4096,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider.lower()
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_config(
        cls,
        ai: AIConfig,
        provider: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ChatClient":
        """Client for *provider* (default: the active one) with its configured key and model."""
        name, api_key, model = ai.credentials(provider)
        return cls(name, api_key, model, timeout=ai.request_timeout, transport=transport)

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def send(self, messages: list[ChatMessage]) -> str:
        """Return the assistant reply; raise ChatError on any provider failure."""
        if not self.api_key.strip():
            raise ChatError(self.provider, "API key is not configured")
        if not messages:
            raise ChatError(self.provider, "no messages to send")
        if self.provider not in PROVIDERS:
            raise ChatError(self.provider, f"unknown AI provider {self.provider!r}")

        url, headers, payload = getattr(self, f"_{self.provider}_request")(messages)
        try:
            resp = await self._http.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ChatError(self.provider, "request timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("%s request failed: %s", self.provider, exc)
            raise ChatError(self.provider, str(exc)) from exc

        if resp.is_error:
            logger.error("%s API error %d: %s", self.provider, resp.status_code, resp.text)
            raise ChatError(self.provider, _error_message(resp.text), resp.status_code)

        try:
            body = resp.json()
        except ValueError as exc:
            raise ChatError(self.provider, "response is not JSON") from exc

        reply = getattr(self, f"_{self.provider}_reply")(body)
        if reply is None:
            logger.warning("%s response had an unexpected structure", self.provider)
            raise ChatError(self.provider, "unexpected response format")
        return reply

    # OpenAI

    def _openai_request(self, messages: list[ChatMessage]):
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        return OPENAI_URL, headers, payload

    @staticmethod
    def _openai_reply(body: Any) -> str | None:
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None
        return content if isinstance(content, str) else ""

    # Claude

    def _claude_request(self, messages: list[ChatMessage]):
        # system prompt is a top-level field, not a message
        system = None
        conversation = []
        for m in messages:
            if m.role == "system":
                system = m.content
            else:
                conversation.append({"role": m.role, "content": m.content})

        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": conversation,
        }
        if system:
            payload["system"] = system
        headers = {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}
        return CLAUDE_URL, headers, payload

    @staticmethod
    def _claude_reply(body: Any) -> str | None:
        try:
            text = body["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        return text if isinstance(text, str) else ""

    # Gemini

    def _gemini_request(self, messages: list[ChatMessage]):
        system = None
        contents = []
        for m in messages:
            if m.role == "system":
                system = m.content
            else:
                role = "model" if m.role == "assistant" else "user"
                contents.append({"role": role, "parts": [{"text": m.content}]})

        payload: dict[str, Any] = {"contents": contents}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        url = GEMINI_URL.format(model=self.model) + f"?key={self.api_key}"
        return url, {}, payload

    @staticmethod
    def _gemini_reply(body: Any) -> str | None:
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        return text if isinstance(text, str) else ""


class ChatSession:
    """Conversation with one provider: system prompt, history, one request at a time."""

    def __init__(self, client: ChatClient, system_prompt: str | None = None):
        self.client = client
        self.system_prompt = system_prompt
        self.history: list[ChatMessage] = []
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def send(self, text: str) -> str:
        if self._busy:
            raise ChatError(self.client.provider, "a request is already in progress")
        if not text or not text.strip():
            raise ChatError(self.client.provider, "message cannot be empty")

        self._busy = True
        try:
            user = ChatMessage(role="user", content=text)
            messages = []
            if self.system_prompt and self.system_prompt.strip():
                messages.append(ChatMessage(role="system", content=self.system_prompt))
            messages.extend(self.history)
            messages.append(user)

            logger.debug("Sending %d message(s) to %s (%s)",
                         len(messages), self.client.provider, self.client.model)
            reply = await self.client.send(messages)
            self.history.extend([user, ChatMessage(role="assistant", content=reply)])
            logger.info("AI response received from %s (%d chars)", self.client.provider, len(reply))
            return reply
        finally:
            self._busy = False

    @staticmethod
    def extract_workflow(reply: str) -> dict[str, Any] | None:
        """Execution-form workflow found in *reply*, if it passes validation."""
        text = extract_workflow_json(reply)
        if text is None or not validate_workflow(text):
            return None
        return json.loads(text)


def _error_message(body: str) -> str:
    """Provider ``{"error": {"message": ...}}`` or a truncated raw body."""
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
    return body[:200] + "..." if len(body) > 200 else body
