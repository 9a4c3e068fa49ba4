"""Lead triage workflow.

An inbound email is parsed by an llm step, then enriched, scored, written to the CRM
and announced in Slack by tool steps. The CRM and Slack tools are mocks returning
deterministic identifiers.

Steps, in order: ``parseEmail`` (llm), ``enrichCompany``, ``scoreLead``,
``createCRMRecord``, ``notifySlack``.
"""

from __future__ import annotations

import json
import math
import re
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from litestar_stepflow.core.definitions import LlmDefinition, ToolDefinition
from litestar_stepflow.core.models import Completion
from litestar_stepflow.engine.registry import StepRegistry

if TYPE_CHECKING:
    from litestar_stepflow.core.context import ExecutionContext

__all__ = [
    "CrmOutput",
    "Enrichment",
    "LeadInput",
    "ParseEmailLlm",
    "ParseEmailOutput",
    "ScoreOutput",
    "SlackOutput",
    "create_lead_registry",
    "make_parse_email_llm",
]

_BUYING_INTENT = re.compile(r"buy|pricing|quote|trial", re.IGNORECASE)
_EDUCATION = re.compile(r"university|edu|student", re.IGNORECASE)


class LeadInput(BaseModel):
    """Inbound email. ``from`` is a Python keyword, so the field is ``from_``."""

    model_config = ConfigDict(populate_by_name=True)

    subject: str
    body: str
    from_: str = Field(alias="from")


class Contact(BaseModel):
    name: str | None = None
    email: str | None = None


class ParseEmailOutput(BaseModel):
    company: str
    domain: str = ""
    intent: str
    contacts: list[Contact] = Field(default_factory=list)


class Enrichment(BaseModel):
    size: Literal["smb", "mid", "enterprise"]
    industry: str
    tech: list[str]


class EnrichmentOutput(BaseModel):
    enrichment: Enrichment


class ScoreInput(BaseModel):
    intent: str
    enrichment: Enrichment


class ScoreOutput(BaseModel):
    score: int = Field(ge=0, le=100)


class CrmInput(BaseModel):
    company: str
    domain: str | None = None
    intent: str
    score: int


class CrmOutput(BaseModel):
    crm_id: str = Field(alias="crmId")


class SlackInput(BaseModel):
    company: str
    score: int


class SlackOutput(BaseModel):
    slack_message_id: str = Field(alias="slackMessageId")


def _parse_email_prompt(data: LeadInput, context: ExecutionContext) -> str:
    return (
        "Extract JSON with keys company, domain, intent, contacts[] from: "
        f"subj={data.subject} body={data.body} from={data.from_}"
    )


def _enrich_company(parsed: ParseEmailOutput, context: ExecutionContext) -> dict[str, object]:
    domain = (parsed.domain or parsed.company).lower()
    if "inc" in domain or "corp" in domain:
        size = "enterprise"
    elif len(domain) % 2:
        size = "mid"
    else:
        size = "smb"
    industry = "education" if _EDUCATION.search(domain) else "software"
    tech = ["node", "react"] if industry == "software" else ["python"]
    return {"enrichment": {"size": size, "industry": industry, "tech": tech}}


def _score_lead(data: ScoreInput, context: ExecutionContext) -> ScoreOutput:
    score = 30
    if _BUYING_INTENT.search(data.intent):
        score += 40
    if data.enrichment.size == "enterprise":
        score += 20
    elif data.enrichment.size == "mid":
        score += 10
    return ScoreOutput(score=min(100, score))


async def _create_crm_record(data: CrmInput, context: ExecutionContext) -> dict[str, str]:
    return {"crmId": f"crm_{abs(len(data.company) + data.score)}"}


async def _notify_slack(data: SlackInput, context: ExecutionContext) -> dict[str, str]:
    return {"slackMessageId": f"m_{data.company[:5]}_{data.score}"}


def create_lead_registry(llm_name: str = "parseEmail") -> StepRegistry:
    """Create a registry holding every lead triage step.

    Args:
        llm_name: Name under which the email parsing llm step is registered.

    Returns:
        A new StepRegistry.
    """
    registry = StepRegistry()
    registry.register(
        LlmDefinition(
            name=llm_name,
            input_schema=LeadInput,
            output_schema=ParseEmailOutput,
            prompt=_parse_email_prompt,
            description="Extract company, domain, intent and contacts from an email.",
        )
    )
    registry.register(
        ToolDefinition(
            name="enrichCompany",
            input_schema=ParseEmailOutput,
            output_schema=EnrichmentOutput,
            run=_enrich_company,
        )
    )
    registry.register(
        ToolDefinition(name="scoreLead", input_schema=ScoreInput, output_schema=ScoreOutput, run=_score_lead)
    )
    registry.register(
        ToolDefinition(
            name="createCRMRecord",
            input_schema=CrmInput,
            output_schema=CrmOutput,
            run=_create_crm_record,
        )
    )
    registry.register(
        ToolDefinition(name="notifySlack", input_schema=SlackInput, output_schema=SlackOutput, run=_notify_slack)
    )
    return registry


class ParseEmailLlm:
    """Deterministic stand-in for the email parsing model.

    Reads the subject and sender back out of the prompt. The company is the first
    word of the subject, falling back to the sender's domain label and then ``Acme``.
    """

    async def complete(self, prompt: str) -> Completion:
        subject_match = re.search(r"subj=(.*?) body=", prompt)
        sender_match = re.search(r"from=(.*)$", prompt)
        subject = subject_match.group(1) if subject_match else ""
        sender = sender_match.group(1) if sender_match else ""

        sender_domain = sender.split("@", 1)[1] if "@" in sender else ""
        raw_company = subject.split(" ")[0] or sender_domain.split(".")[0] or "Acme"
        company = re.sub(r"[^a-zA-Z0-9]", "", raw_company)
        payload = {
            "company": company,
            "domain": sender_domain or f"{company.lower()}.com",
            "intent": "pricing" if re.search(r"pricing|quote|buy|trial", prompt, re.IGNORECASE) else "info",
            "contacts": [{"email": sender}] if "@" in sender else [],
        }
        return Completion(text=json.dumps(payload), tokens=math.ceil(len(prompt) / 4), cost_usd=0.001)


def make_parse_email_llm() -> ParseEmailLlm:
    """Create the deterministic email parsing client."""
    return ParseEmailLlm()
