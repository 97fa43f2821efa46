from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

from google import genai
from hello_agents import HelloAgentsLLM, ToolAwareSimpleAgent
from loguru import logger
from pydantic import ValidationError

from config import Configuration
from errors import ConfigurationError, EnrichmentFailed, ProviderError
from models import DetailRecord
from utils import strip_thinking_tokens

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

# (system_prompt, prompt) -> raw completion text
LLMCall = Callable[[str, str], str]

SYSTEM_PROMPT = (
    "You are a restaurant expert providing details about restaurants.\n"
    "Provide the address, cuisine type, customer rating, and a recent review for the restaurant the user names. "
    "Make your best judgement as to which real establishment the name refers to.\n"
    "Return a JSON object only, using the keys: address, cuisineType, customerRating, recentReview. "
    "All values are strings.\n"
    "Example: {\"address\":\"123 Pike St, Seattle, WA 98101\",\"cuisineType\":\"Japanese\","
    "\"customerRating\":\"4.5 out of 5 stars\",\"recentReview\":\"Fresh fish and friendly staff.\"}"
)


def _gemini_call(cfg: Configuration) -> LLMCall:
    client = genai.Client(api_key=cfg.llm_api_key)
    model_id = cfg.llm_model_id or DEFAULT_GEMINI_MODEL
    logger.debug("Detail enricher using Gemini model: {}", model_id)

    def _call(system_prompt: str, prompt: str) -> str:
        response = client.models.generate_content(
            model=model_id,
            contents=f"{system_prompt}\n\n{prompt}",
        )
        return response.text or ""

    return _call


def _agent_call(cfg: Configuration) -> LLMCall:
    kw: Dict[str, Any] = {"temperature": 0.2}
    if cfg.llm_model_id or cfg.local_llm:
        kw["model"] = cfg.llm_model_id or cfg.local_llm
    if cfg.llm_provider:
        kw["provider"] = cfg.llm_provider
    if cfg.llm_base_url:
        kw["base_url"] = cfg.llm_base_url
    elif (cfg.llm_provider or "").lower() == "ollama":
        kw["base_url"] = cfg.sanitized_ollama_url()
    if cfg.llm_api_key:
        kw["api_key"] = cfg.llm_api_key
    llm = HelloAgentsLLM(**kw)

    def _call(system_prompt: str, prompt: str) -> str:
        agent = ToolAwareSimpleAgent(
            name="DetailEnricher",
            llm=llm,
            system_prompt=system_prompt,
            enable_tool_calling=False,
        )
        try:
            return agent.run(prompt)
        finally:
            agent.clear_history()

    return _call


def init_llm(cfg: Configuration) -> LLMCall:
    """Gemini when provider=google with a key, otherwise hello_agents."""
    cfg.require_llm()
    provider = (cfg.llm_provider or "").lower()
    if provider == "google" and cfg.llm_api_key:
        return _gemini_call(cfg)
    return _agent_call(cfg)


def parse_detail(raw: str) -> DetailRecord:
    text = strip_thinking_tokens(raw or "")
    s, e = text.find("{"), text.rfind("}")
    if s == -1 or e == -1 or e <= s:
        raise EnrichmentFailed("LLM returned no structured output")
    try:
        data = json.loads(text[s : e + 1])
    except json.JSONDecodeError as exc:
        raise EnrichmentFailed("LLM returned malformed JSON") from exc
    if not isinstance(data, dict):
        raise EnrichmentFailed("LLM returned no structured output")
    # models sometimes answer a number for the rating
    data = {k: (str(v) if isinstance(v, (int, float)) else v) for k, v in data.items()}
    try:
        return DetailRecord(**data)
    except ValidationError as exc:
        raise EnrichmentFailed(f"LLM output missing fields: {exc.error_count()} errors") from exc


class DetailEnricher:
    """Best-effort descriptive details for a picked restaurant.

    The output is plausible text from an LLM, not verified data. Nothing is
    cached; every call hits the model.
    """

    def __init__(self, cfg: Configuration, llm: Optional[LLMCall] = None) -> None:
        self.cfg = cfg
        self._llm = llm

    @property
    def llm(self) -> LLMCall:
        if self._llm is None:
            self._llm = init_llm(self.cfg)
        return self._llm

    def enrich(self, candidate_name: str) -> DetailRecord:
        name = (candidate_name or "").strip()
        if not name:
            raise ValueError("Restaurant name is required.")

        prompt = f"Restaurant Name: {name}\nReturn JSON object only."
        try:
            raw = self.llm(SYSTEM_PROMPT, prompt)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("detail lookup failed for {}: {}", name, exc)
            raise ProviderError(f"LLM call failed: {exc}") from exc

        record = parse_detail(raw)
        logger.info("details resolved name={} cuisine={}", name, record.cuisineType)
        return record
