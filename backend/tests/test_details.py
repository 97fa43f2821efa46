from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from config import Configuration
from errors import ConfigurationError, EnrichmentFailed, ProviderError
from services.details import DetailEnricher, init_llm, parse_detail

GOOD = (
    '<think>matching the name</think>Here you go: {"address": "1 Main St, Springfield", '
    '"cuisineType": "Italian", "customerRating": 4.5, "recentReview": "Great gnocchi."}'
)


def test_enrich_parses_structured_output() -> None:
    llm = MagicMock(return_value=GOOD)
    record = DetailEnricher(Configuration(), llm=llm).enrich("  Luigi's ")

    assert record.address == "1 Main St, Springfield"
    assert record.cuisineType == "Italian"
    assert record.customerRating == "4.5"
    assert record.recentReview == "Great gnocchi."
    system_prompt, prompt = llm.call_args[0]
    assert "Luigi's" in prompt
    assert "cuisineType" in system_prompt


def test_enrich_is_not_cached() -> None:
    llm = MagicMock(return_value=GOOD)
    enricher = DetailEnricher(Configuration(), llm=llm)
    enricher.enrich("A")
    enricher.enrich("A")
    assert llm.call_count == 2


def test_no_structured_output_fails() -> None:
    enricher = DetailEnricher(Configuration(), llm=MagicMock(return_value="I am not sure."))
    with pytest.raises(EnrichmentFailed):
        enricher.enrich("Mystery Diner")


def test_missing_fields_fail() -> None:
    with pytest.raises(EnrichmentFailed):
        parse_detail('{"address": "somewhere"}')
    with pytest.raises(EnrichmentFailed):
        parse_detail("{not json}")


def test_llm_exception_is_provider_error() -> None:
    enricher = DetailEnricher(Configuration(), llm=MagicMock(side_effect=RuntimeError("timeout")))
    with pytest.raises(ProviderError):
        enricher.enrich("Somewhere")


def test_empty_name_rejected() -> None:
    llm = MagicMock(return_value=GOOD)
    with pytest.raises(ValueError):
        DetailEnricher(Configuration(), llm=llm).enrich("   ")
    llm.assert_not_called()


def test_unconfigured_llm_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        DetailEnricher(Configuration()).enrich("Somewhere")


@patch("services.details.genai")
def test_google_provider_uses_gemini(mock_genai) -> None:
    mock_genai.Client.return_value.models.generate_content.return_value.text = GOOD
    cfg = Configuration(llm_provider="google", llm_api_key="g-key", llm_model_id="gemini-test")

    record = DetailEnricher(cfg).enrich("Luigi's")

    assert record.cuisineType == "Italian"
    mock_genai.Client.assert_called_once_with(api_key="g-key")
    _, kwargs = mock_genai.Client.return_value.models.generate_content.call_args
    assert kwargs["model"] == "gemini-test"


@patch("services.details.ToolAwareSimpleAgent")
@patch("services.details.HelloAgentsLLM")
def test_ollama_provider_uses_agent(mock_llm, mock_agent) -> None:
    mock_agent.return_value.run.return_value = GOOD
    cfg = Configuration(llm_provider="ollama", local_llm="llama3.2")

    call = init_llm(cfg)
    assert call("sys", "prompt") == GOOD

    _, llm_kwargs = mock_llm.call_args
    assert llm_kwargs["model"] == "llama3.2"
    assert llm_kwargs["base_url"] == "http://localhost:11434/v1"
    mock_agent.return_value.clear_history.assert_called_once()


@patch("services.details.HelloAgentsLLM", side_effect=RuntimeError("bad base url"))
def test_llm_construction_failure_is_provider_error(mock_llm) -> None:
    cfg = Configuration(llm_provider="ollama", local_llm="llama3.2")
    with pytest.raises(ProviderError):
        DetailEnricher(cfg).enrich("Luigi's")
