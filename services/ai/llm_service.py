# services/ai/llm_service.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from schemas.forecast import GroundingSource
from services.ai.forecast.errors import ForecastTransportError

logger = logging.getLogger(__name__)


# ============================================================================
# PUBLIC INTERFACE
# ============================================================================

@dataclass
class ModelResponse:
    text: str
    sources: List[GroundingSource] = field(default_factory=list)


class LLMClient(Protocol):
    async def generate_json(self, *, prompt: str, response_schema: Dict[str, Any]) -> ModelResponse:
        """Return raw text that should be JSON matching `response_schema`."""


@dataclass
class LLMConfig:
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-pro-preview"
    gemini_use_web: bool = True
    temperature: Optional[float] = None

    # None keeps the single request unbounded
    timeout_s: Optional[float] = None

    @staticmethod
    def from_env() -> "LLMConfig":
        temperature = os.getenv("AI_TEMPERATURE")
        timeout = os.getenv("FORECAST_TIMEOUT_S")
        return LLMConfig(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "",
            gemini_model=os.getenv("GEMINI_MODEL") or "gemini-3-pro-preview",
            gemini_use_web=(os.getenv("GEMINI_USE_WEB", "1") == "1"),
            temperature=float(temperature) if temperature else None,
            timeout_s=float(timeout) if timeout else None,
        )


# ============================================================================
# PROVIDER CLIENT
# ============================================================================

def extract_grounding_sources(resp: Any) -> List[GroundingSource]:
    """Collect web citations from the first candidate's grounding metadata."""
    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources: List[GroundingSource] = []
    seen: set[str] = set()
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = (getattr(web, "uri", None) or "").strip()
        if not uri or uri in seen:
            continue
        seen.add(uri)
        sources.append(GroundingSource(title=(getattr(web, "title", None) or "").strip(), uri=uri))
    return sources


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        use_web: bool = True,
        temperature: Optional[float] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.use_web = use_web
        self.temperature = temperature
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            try:
                self._client = genai.Client(api_key=self.api_key)
            except ValueError as e:
                # SDK refuses to build a client without any credential
                logger.warning("gemini_client_init_failed model=%s", self.model)
                raise ForecastTransportError(detail=str(e)) from e
        return self._client

    def build_config(self, response_schema: Dict[str, Any]) -> types.GenerateContentConfig:
        tools = None
        if self.use_web:
            tools = [types.Tool(google_search=types.GoogleSearch())]
        return types.GenerateContentConfig(
            tools=tools,
            response_mime_type="application/json",
            response_schema=response_schema,
            temperature=self.temperature,
        )

    async def generate_json(self, *, prompt: str, response_schema: Dict[str, Any]) -> ModelResponse:
        # google-genai SDK is sync-ish; run in thread.
        return await asyncio.to_thread(self._sync_call, prompt, response_schema)

    def _sync_call(self, prompt: str, response_schema: Dict[str, Any]) -> ModelResponse:
        contents = [
            types.Content(
                role="user",
                parts=[types.Part.from_text(text=prompt)],
            )
        ]
        try:
            resp = self._get_client().models.generate_content(
                model=self.model,
                contents=contents,
                config=self.build_config(response_schema),
            )
        except genai_errors.APIError as e:
            logger.warning("gemini_request_failed model=%s code=%s", self.model, getattr(e, "code", None))
            raise ForecastTransportError(detail=str(e)) from e
        except httpx.HTTPError as e:
            logger.warning("gemini_transport_failed model=%s error=%s", self.model, type(e).__name__)
            raise ForecastTransportError(detail=str(e)) from e

        text = resp.text if getattr(resp, "text", None) else ""
        return ModelResponse(text=text, sources=extract_grounding_sources(resp))


def build_llm_client(cfg: LLMConfig) -> LLMClient:
    if not cfg.gemini_api_key:
        logger.warning("gemini_api_key_missing requests will carry an empty credential")
    return GeminiClient(
        api_key=cfg.gemini_api_key,
        model=cfg.gemini_model,
        use_web=cfg.gemini_use_web,
        temperature=cfg.temperature,
    )


def strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    if t.startswith("```"):
        lines = t.split("\n")
        # drop first fence line
        lines = lines[1:]
        # drop last fence line if present
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        t = "\n".join(lines).strip()
    return t
