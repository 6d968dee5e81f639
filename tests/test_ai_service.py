"""Prompt assembly, response parsing and the vision client wrapper"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import openai
import pytest

from app.exceptions import LabelAnalysisError
from app.models.scan import Category
from app.schemas.analysis import PASS_THRESHOLD
from app.services.ai_service import (
    DEFAULT_PROMPT,
    LabelAnalyzer,
    build_prompt,
    fallback_result,
    parse_analysis,
)

VALID = {
    "compliance": {"score": 99, "riskLevel": "LOW", "passed": False},
    "issues": [{"category": "Info", "severity": "INFO", "description": "All good"}],
    "summary": "Compliant",
    "extractedInfo": {"productName": "Baby Lotion", "ingredients": ["Aqua"]},
}


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestParseAnalysis:

    def test_plain_json(self):
        result = parse_analysis(json.dumps(VALID))
        assert result.compliance.score == 99
        assert result.compliance.passed is True
        assert result.issues[0].recommendation == ""
        assert result.extractedInfo.ingredients == ["Aqua"]

    def test_code_fence(self):
        result = parse_analysis("```json\n" + json.dumps(VALID) + "\n```")
        assert result.summary == "Compliant"

    def test_preamble_and_trailer(self):
        result = parse_analysis("Here is the analysis:\n" + json.dumps(VALID) + "\nLet me know!")
        assert result.summary == "Compliant"

    def test_pass_threshold(self):
        data = dict(VALID, compliance={"score": PASS_THRESHOLD - 1, "riskLevel": "LOW", "passed": True})
        assert parse_analysis(json.dumps(data)).compliance.passed is False

    @pytest.mark.parametrize("content", [
        None,
        "",
        "I could not read the label.",
        "{not json}",
        json.dumps({"summary": "missing compliance"}),
        json.dumps(dict(VALID, compliance={"score": 140, "riskLevel": "LOW"})),
        json.dumps(dict(VALID, issues=[{"category": "X", "severity": "SEVERE", "description": "bad"}])),
    ])
    def test_unusable_responses(self, content):
        with pytest.raises(LabelAnalysisError):
            parse_analysis(content)


class TestBuildPrompt:

    def test_default_prompt_and_context(self):
        prompt = build_prompt(Category.BABY_PRODUCTS, ["US", "DE"])
        assert prompt.startswith(DEFAULT_PROMPT)
        assert "**Product Category:** Baby Products" in prompt
        assert "United States (FDA, CPSC, CPSIA)" in prompt
        assert "Germany/EU (CE marking, EN standards, EU regulations)" in prompt
        assert "- BPA-free labeling" in prompt
        assert '"riskLevel"' in prompt

    def test_common_rules_always_included(self):
        settings_row = SimpleNamespace(
            master_prompt=None, common_rules="Always list the manufacturer",
            us_rules=None, uk_rules="UK only", eu_rules=None,
        )
        prompt = build_prompt(Category.TOYS, ["US"], settings_row)
        assert prompt.startswith(DEFAULT_PROMPT)
        assert "Always list the manufacturer" in prompt
        assert "UK only" not in prompt


class TestFallbackResult:

    def test_shape(self):
        result = fallback_result("boom")
        assert result["compliance"] == {"score": 0, "riskLevel": "HIGH", "passed": False}
        assert result["issues"][0]["severity"] == "CRITICAL"
        assert result["error"] == "boom"
        assert "timestamp" in result


class TestLabelAnalyzer:

    def test_sends_image_as_data_url(self):
        client = MagicMock()
        client.chat.completions.create.return_value = chat_response(json.dumps(VALID))
        result = LabelAnalyzer(client=client).analyze("prompt", image_bytes=b"img", image_type="image/png")

        assert result.summary == "Compliant"
        content = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "prompt"}
        assert content[1]["image_url"]["url"] == "data:image/png;base64,aW1n"

    def test_sends_pdf_text(self):
        client = MagicMock()
        client.chat.completions.create.return_value = chat_response(json.dumps(VALID))
        LabelAnalyzer(client=client).analyze("prompt", document_text="Net wt 100g")
        content = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "Net wt 100g" in content[1]["text"]

    def test_nothing_to_analyze(self):
        with pytest.raises(LabelAnalysisError):
            LabelAnalyzer(client=MagicMock()).analyze("prompt")

    def test_api_error_wrapped(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.OpenAIError("rate limited")
        with pytest.raises(LabelAnalysisError, match="rate limited"):
            LabelAnalyzer(client=client).analyze("prompt", image_bytes=b"img")

    def test_empty_choices(self):
        client = MagicMock()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with pytest.raises(LabelAnalysisError):
            LabelAnalyzer(client=client).analyze("prompt", image_bytes=b"img")

    def test_unconfigured(self, monkeypatch):
        from app.config import settings

        monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "")
        with pytest.raises(LabelAnalysisError):
            LabelAnalyzer().analyze("prompt", image_bytes=b"img")
