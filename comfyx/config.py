"""Runtime configuration.

Values come from constructor arguments or ``COMFYX_*`` environment
variables; reading and writing a settings file is left to the host app.
"""

import os
from typing import Literal, Mapping

from pydantic import BaseModel, Field

ProviderName = Literal["openai", "claude", "gemini"]


class ServerConfig(BaseModel):
    mode: Literal["external", "embedded"] = "external"
    external_url: str = "http://127.0.0.1:8188"
    embedded_port: int = 8188

    @property
    def base_url(self) -> str:
        """External mode uses the configured URL; embedded mode talks to localhost."""
        if self.mode == "external":
            return self.external_url.rstrip("/")
        return f"http://127.0.0.1:{self.embedded_port}"


class AIConfig(BaseModel):
    active_provider: ProviderName = "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    claude_api_key: str = ""
    claude_model: str = "claude-sonnet-4-20250514"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    request_timeout: float = 120.0

    def credentials(self, provider: str | None = None) -> tuple[str, str, str]:
        """(provider, api_key, model) for *provider*, defaulting to the active one."""
        name = (provider or self.active_provider).lower()
        if name == "claude":
            return name, self.claude_api_key, self.claude_model
        if name == "gemini":
            return name, self.gemini_api_key, self.gemini_model
        return "openai", self.openai_api_key, self.openai_model


class Settings(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        server: dict = {}
        if "COMFYX_SERVER_URL" in env:
            server["external_url"] = env["COMFYX_SERVER_URL"]
        if "COMFYX_SERVER_MODE" in env:
            server["mode"] = env["COMFYX_SERVER_MODE"].lower()
        if "COMFYX_EMBEDDED_PORT" in env:
            server["embedded_port"] = int(env["COMFYX_EMBEDDED_PORT"])

        ai: dict = {}
        for key, field in [
            ("COMFYX_AI_PROVIDER", "active_provider"),
            ("OPENAI_API_KEY", "openai_api_key"),
            ("COMFYX_OPENAI_MODEL", "openai_model"),
            ("ANTHROPIC_API_KEY", "claude_api_key"),
            ("COMFYX_CLAUDE_MODEL", "claude_model"),
            ("GEMINI_API_KEY", "gemini_api_key"),
            ("COMFYX_GEMINI_MODEL", "gemini_model"),
        ]:
            if key in env:
                ai[field] = env[key]
        if "active_provider" in ai:
            ai["active_provider"] = ai["active_provider"].lower()

        return cls(server=ServerConfig(**server), ai=AIConfig(**ai))
