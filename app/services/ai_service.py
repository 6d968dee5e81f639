"""
Label compliance analysis with a vision-capable LLM.

Claude is called through its OpenAI-compatible endpoint, so the client is the
regular `openai` SDK pointed at `settings.AI_BASE_URL`.
"""
from __future__ import annotations

import base64
import json
import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional

import openai
from pydantic import ValidationError

from app.config import settings
from app.exceptions import LabelAnalysisError
from app.models.regulatory_rule import RegulatoryRule, SystemSettings, SYSTEM_SETTINGS_ID
from app.models.scan import Category, Marketplace
from app.schemas.analysis import LabelAnalysisResult

logger = logging.getLogger(__name__)

CATEGORY_REQUIREMENTS = {
    Category.TOYS: {
        "name": "Toys",
        "regulations": [
            "ASTM F963 (US toy safety)",
            "EN 71 (EU toy safety)",
            "CPSIA compliance (US)",
            "Age grading requirements",
            "Choking hazard warnings",
            "Small parts warnings",
            "CE marking (EU)",
        ],
    },
    Category.BABY_PRODUCTS: {
        "name": "Baby Products",
        "regulations": [
            "CPSIA compliance (US)",
            "ASTM standards for baby products",
            "BS EN standards (UK)",
            "Phthalate-free certification",
            "BPA-free labeling",
            "Age recommendations",
            "Safety warnings",
        ],
    },
    Category.COSMETICS_PERSONAL_CARE: {
        "name": "Cosmetics/Personal Care",
        "regulations": [
            "FDA requirements (US)",
            "EU Cosmetics Regulation 1223/2009",
            "INCI ingredient listing",
            "Allergen labeling",
            "Net content declaration",
            "Batch code/expiry date",
            "Manufacturer information",
        ],
    },
}

MARKETPLACE_LABELS = {
    Marketplace.US: "United States (FDA, CPSC, CPSIA)",
    Marketplace.UK: "United Kingdom (UK CA, BS EN standards)",
    Marketplace.DE: "Germany/EU (CE marking, EN standards, EU regulations)",
}

DEFAULT_PROMPT = """You are an expert product compliance analyst specializing in label compliance and regulatory requirements.

**Your Task:**
Analyze the product label IMAGE provided and evaluate it for compliance with applicable regulations.

**Analysis Instructions:**
- Carefully examine ALL text visible on the label image
- Check for ALL required markings, symbols, and graphics (CE, UKCA, warning symbols, etc.)
- Extract ALL visible information including product details, ingredients, warnings, certifications, manufacturer info, and regulatory markings
- Verify font sizes, placement, and visibility of critical information
- Check for proper formatting and multilingual requirements

**Compliance Scoring:**
Use a weighted scoring system based on issue severity:
- **Critical failures (High priority)**: 50% weight
- **Medium failures (Med priority)**: 30% weight
- **Low failures (Low priority)**: 20% weight

**Pass/Fail Threshold:**
- **Score >= 99% = PASS**
- **Score < 99% = FAIL**

**Output Requirements:**
Be thorough and identify all compliance issues with specific, actionable recommendations."""

OUTPUT_CONTRACT = """
**Response Format:**
Respond with a single JSON object and nothing else, using exactly this shape:
{
  "compliance": {"score": <integer 0-100>, "riskLevel": "LOW" | "MEDIUM" | "HIGH" | "CRITICAL", "passed": <boolean>},
  "issues": [
    {"category": <string>, "severity": "CRITICAL" | "WARNING" | "MEDIUM" | "LOW" | "INFO",
     "description": <string>, "recommendation": <string>, "regulation": <string or null>}
  ],
  "summary": <string>,
  "extractedInfo": {
    "productName": <string or null>, "ingredients": [<string>], "warnings": [<string>],
    "certifications": [<string>], "weight": <string or null>, "manufacturer": <string or null>,
    "countryOfOrigin": <string or null>
  }
}"""

_RULE_SECTIONS = (
    (Marketplace.US, "us_rules", "United States Specific Rules"),
    (Marketplace.UK, "uk_rules", "United Kingdom Specific Rules"),
    (Marketplace.DE, "eu_rules", "European Union / Germany Specific Rules"),
)

_JSON_FENCE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


def _marketplace_label(mp: str) -> str:
    try:
        return MARKETPLACE_LABELS[Marketplace(mp)]
    except ValueError:
        return mp


def build_prompt(
    category: Category,
    marketplaces: List[str],
    system_settings: Optional[SystemSettings] = None,
    rules: Iterable[RegulatoryRule] = (),
) -> str:
    """Master (or default) prompt followed by the per-scan context"""
    requirements = CATEGORY_REQUIREMENTS[Category(category)]

    rules_section = ""
    if system_settings is not None:
        if system_settings.common_rules:
            rules_section += "\n## Common Compliance Rules (All Regions)\n" + system_settings.common_rules + "\n"
        for marketplace, attr, heading in _RULE_SECTIONS:
            text = getattr(system_settings, attr)
            if marketplace.value in marketplaces and text:
                rules_section += f"\n## {heading}\n" + text + "\n"

    rule_lines = [
        f"- [{rule.marketplace.value}] {rule.requirement} ({rule.criticality.value})"
        + (f" - {rule.regulation}" if rule.regulation else "")
        + f": {rule.description}"
        for rule in rules
    ]
    if rule_lines:
        rules_section += "\n## Regulatory Requirements Database\n" + "\n".join(rule_lines) + "\n"

    dynamic_context = (
        "\n\n---\n\n"
        f"**Product Category:** {requirements['name']}\n\n"
        f"**Target Marketplaces:** {', '.join(_marketplace_label(mp) for mp in marketplaces)}\n\n"
        "**Key Regulations to Check:**\n"
        + "\n".join(f"- {r}" for r in requirements["regulations"])
        + "\n"
        + rules_section
    )

    base_prompt = (system_settings.master_prompt if system_settings is not None else None) or DEFAULT_PROMPT
    return base_prompt + dynamic_context + "\n" + OUTPUT_CONTRACT


def load_prompt_context(db, category: Category, marketplaces: List[str]):
    """System settings row and active rules relevant to a scan"""
    system_settings = db.query(SystemSettings).filter(SystemSettings.id == SYSTEM_SETTINGS_ID).first()
    valid_marketplaces = [Marketplace(mp) for mp in marketplaces if mp in Marketplace.__members__]
    rules = []
    if valid_marketplaces:
        rules = (
            db.query(RegulatoryRule)
            .filter(
                RegulatoryRule.category == Category(category),
                RegulatoryRule.marketplace.in_(valid_marketplaces),
                RegulatoryRule.is_active == True,  # noqa: E712
            )
            .order_by(RegulatoryRule.marketplace, RegulatoryRule.id)
            .all()
        )
    return system_settings, rules


def parse_analysis(content: Optional[str]) -> LabelAnalysisResult:
    """Validate the model's JSON answer, tolerating code fences and preamble"""
    if not content:
        raise LabelAnalysisError("Empty response from analysis model")

    text = content.strip()
    fenced = _JSON_FENCE.search(text)
    if fenced:
        text = fenced.group(1)
    elif not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise LabelAnalysisError("Analysis model did not return JSON")
        text = text[start:end + 1]

    try:
        return LabelAnalysisResult.model_validate(json.loads(text))
    except json.JSONDecodeError as e:
        raise LabelAnalysisError(f"Invalid JSON from analysis model: {e}")
    except ValidationError as e:
        raise LabelAnalysisError("Analysis result did not match the expected schema", details={"errors": e.errors()})


def fallback_result(message: str) -> dict:
    """Report stored when analysis ultimately fails"""
    return {
        "compliance": {"score": 0, "riskLevel": "HIGH", "passed": False},
        "issues": [
            {
                "category": "Analysis Error",
                "severity": "CRITICAL",
                "description": "Failed to analyze label. Please try again or contact support.",
                "recommendation": "Ensure the label image is clear and readable.",
            }
        ],
        "summary": "Analysis failed due to an error. Please try again.",
        "extractedInfo": {},
        "error": message,
        "timestamp": datetime.utcnow().isoformat(),
    }


class LabelAnalyzer:
    """Sends a label image (or PDF text) and the compliance prompt to the model"""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not settings.has_ai:
                raise LabelAnalysisError("AI analysis is not configured (ANTHROPIC_API_KEY missing)")
            self._client = openai.OpenAI(api_key=settings.ANTHROPIC_API_KEY, base_url=settings.AI_BASE_URL)
        return self._client

    def analyze(
        self,
        prompt: str,
        image_bytes: Optional[bytes] = None,
        image_type: str = "image/jpeg",
        document_text: Optional[str] = None,
    ) -> LabelAnalysisResult:
        content = [{"type": "text", "text": prompt}]
        if image_bytes:
            data_url = f"data:{image_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
            content.append({"type": "image_url", "image_url": {"url": data_url}})
        elif document_text:
            content.append({"type": "text", "text": "**Label text (extracted from PDF):**\n" + document_text})
        else:
            raise LabelAnalysisError("Nothing to analyze: no image or label text")

        try:
            response = self.client.chat.completions.create(
                model=settings.AI_MODEL,
                messages=[{"role": "user", "content": content}],
                max_tokens=settings.AI_MAX_TOKENS,
                temperature=settings.AI_TEMPERATURE,
            )
        except openai.OpenAIError as e:
            logger.error(f"Analysis model request failed: {e}")
            raise LabelAnalysisError(f"Analysis model request failed: {e}")

        message_content = response.choices[0].message.content if response.choices else None
        return parse_analysis(message_content)
