"""
analyzer.py — Credibility scoring through an external chat-completion endpoint.

The requester formats the screening prompt, sends one request, and turns the
model's free-text reply into an AnalysisPayload. Malformed replies never fail
the request: they are replaced by a fixed neutral verdict so the pipeline keeps
moving. Transport failures map onto the upstream error classes in errors.py.
"""

import json
import re
from typing import Optional

import requests
from pydantic import ValidationError

from config import (
    AI_GATEWAY_API_KEY,
    AI_GATEWAY_URL,
    AI_MODEL,
    AI_TIMEOUT_SECONDS,
    MIN_TEXT_LENGTH,
    REQUEST_TEXT_LIMIT,
)
from errors import (
    InsufficientContent,
    UpstreamGenericFailure,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
)
from schemas import AnalysisPayload
from utils import logger

SYSTEM_PROMPT = """You are an expert hiring analyst and resume verification specialist. Your task is to analyze resumes for potential red flags, inconsistencies, and signs of fabrication or exaggeration.

Analyze the provided resume critically and look for:
1. Unrealistic skill combinations (e.g., claiming expertise in too many unrelated technologies)
2. Inflated or vague job titles that don't match described responsibilities
3. Inconsistent experience timelines (gaps, overlaps, or unrealistic career progression)
4. Generic or copied job descriptions that lack specificity
5. Mismatches between education, skills, and claimed work experience
6. Buzzword stuffing without substantive details
7. Impossible achievements or metrics (e.g., "increased revenue by 1000%")
8. Grammatical inconsistencies suggesting copied content
9. Missing or vague company information
10. Skills or certifications that don't align with experience level

You MUST respond with valid JSON in exactly this format:
{
  "credibility_score": <number between 0-100>,
  "risk_level": "<low|medium|high>",
  "summary": "<2-3 sentence summary of findings>",
  "flags": [
    {
      "category": "<category name>",
      "severity": "<low|medium|high>",
      "description": "<specific finding>"
    }
  ],
  "detailed_analysis": {
    "experience_consistency": "<assessment>",
    "skills_alignment": "<assessment>",
    "achievements_credibility": "<assessment>",
    "overall_authenticity": "<assessment>"
  }
}

Scoring guidelines:
- 80-100: Low risk - Resume appears genuine with minor or no concerns
- 50-79: Medium risk - Some inconsistencies or red flags worth investigating
- 0-49: High risk - Multiple serious red flags suggesting potential fabrication

Be thorough but fair. Not every unusual element indicates fraud."""

USER_TEMPLATE = "Please analyze this resume and provide your assessment:\n\n{resume}"

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

FALLBACK_RESULT = {
    "credibility_score": 50,
    "risk_level": "medium",
    "summary": (
        "Unable to fully analyze the resume. "
        "The content may be incomplete or in an unusual format."
    ),
    "flags": [
        {
            "category": "Analysis",
            "severity": "low",
            "description": "Resume format made full analysis difficult",
        }
    ],
    "detailed_analysis": {
        "experience_consistency": "Unable to assess",
        "skills_alignment": "Unable to assess",
        "achievements_credibility": "Unable to assess",
        "overall_authenticity": "Requires manual review",
    },
}


def fallback_payload() -> AnalysisPayload:
    return AnalysisPayload.model_validate(FALLBACK_RESULT)


def parse_reply(raw: Optional[str]) -> AnalysisPayload:
    """Pull the JSON object out of the reply (code fences tolerated) or fall back."""
    match = JSON_OBJECT_PATTERN.search(raw or "")
    if not match:
        logger.error("No JSON object found in model reply; using fallback result")
        return fallback_payload()
    try:
        return AnalysisPayload.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError, TypeError, ValueError, OverflowError) as e:
        logger.error("Could not parse model reply (%s); using fallback result", e)
        return fallback_payload()


# ── Transport ─────────────────────────────────────────

class ChatCompletionClient:
    """Thin requests wrapper around an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        url: str = AI_GATEWAY_URL,
        api_key: Optional[str] = AI_GATEWAY_API_KEY,
        model: str = AI_MODEL,
        timeout: float = AI_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            logger.error("AI gateway API key is not configured")
            raise UpstreamGenericFailure()

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }

        try:
            response = self.session.post(
                self.url, headers=headers, json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error("AI gateway request failed: %s", e)
            raise UpstreamGenericFailure() from e

        if response.status_code == 429:
            logger.warning("AI gateway rate limited the request")
            raise UpstreamRateLimited()
        if response.status_code == 402:
            logger.warning("AI gateway credits exhausted")
            raise UpstreamQuotaExhausted()
        if not response.ok:
            logger.error("AI gateway error %d: %s", response.status_code, response.text[:500])
            raise UpstreamGenericFailure()

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("Unexpected AI gateway response shape: %s", e)
            raise UpstreamGenericFailure() from e


# ── Requester ─────────────────────────────────────────

class AnalysisRequester:
    def __init__(self, client: Optional[ChatCompletionClient] = None):
        self.client = client or ChatCompletionClient()

    def analyze(self, text: str, file_name: str) -> AnalysisPayload:
        """Score one resume. Raises InsufficientContent before any outbound call."""
        if len(text.strip()) < MIN_TEXT_LENGTH:
            logger.warning("Resume text too short (<%d chars): %s", MIN_TEXT_LENGTH, file_name)
            raise InsufficientContent()

        resume_text = text[:REQUEST_TEXT_LIMIT]
        logger.info("Analyzing resume: %s (%d chars)", file_name, len(resume_text))

        raw = self.client.complete(SYSTEM_PROMPT, USER_TEMPLATE.format(resume=resume_text))
        logger.debug("Model reply for %s: %s", file_name, raw)

        result = parse_reply(raw)
        logger.info(
            "Analysis for %s — score: %d, risk: %s",
            file_name,
            result.credibility_score,
            result.risk_level,
        )
        return result
