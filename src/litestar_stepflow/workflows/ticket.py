"""Support ticket summarizer workflow.

Two llm steps classify and summarize the ticket, then two tool steps pick the next
action and draft a reply.

Steps, in order: ``classifyTicket`` (llm), ``summarizeTicket`` (llm), ``nextAction``,
``saveDraft``.
"""

from __future__ import annotations

import json
import math
import re
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from litestar_stepflow.core.definitions import LlmDefinition, ToolDefinition
from litestar_stepflow.core.models import Completion
from litestar_stepflow.engine.registry import StepRegistry

if TYPE_CHECKING:
    from litestar_stepflow.core.context import ExecutionContext

__all__ = [
    "Classification",
    "Summary",
    "TicketInput",
    "TicketLlm",
    "create_ticket_registry",
    "make_ticket_llm",
]

Category = Literal["billing", "bug", "howto", "feature"]

NEXT_ACTIONS: dict[str, str] = {
    "billing": "Send billing troubleshooting guide and check invoice status.",
    "bug": "Acknowledge bug; collect repro steps; escalate to engineering.",
    "howto": "Link to relevant docs; provide quick instructions.",
    "feature": "Thank and link to roadmap; create feature request ticket.",
}
"""Canned next action per category."""


class Attachment(BaseModel):
    name: str
    type: str


class TicketInput(BaseModel):
    title: str
    description: str
    tags: list[str] = Field(default_factory=list)
    attachments: list[Attachment] | None = None


class Classification(BaseModel):
    category: Category
    confidence: float = Field(ge=0, le=1)
    urgency: int = Field(default=3, ge=1, le=5)


class Summary(BaseModel):
    bullets: list[str] = Field(min_length=3, max_length=3)
    tldr: str


class NextActionOutput(BaseModel):
    next_action: str = Field(alias="nextAction")


class DraftInput(BaseModel):
    tldr: str
    category: str
    next_action: str = Field(alias="nextAction")


class DraftOutput(BaseModel):
    reply_draft: str = Field(alias="replyDraft")


def _classify_prompt(data: TicketInput, context: ExecutionContext) -> str:
    return (
        "Classify support ticket into billing|bug|howto|feature. "
        f"title={data.title} description={data.description} tags={','.join(data.tags)}"
    )


def _summarize_prompt(data: TicketInput, context: ExecutionContext) -> str:
    return f"Summarize in 3 bullets and 1 TL;DR: title={data.title} description={data.description}"


def _next_action(data: Classification, context: ExecutionContext) -> dict[str, str]:
    return {"nextAction": NEXT_ACTIONS.get(data.category, "Escalate to human agent.")}


def _save_draft(data: DraftInput, context: ExecutionContext) -> dict[str, str]:
    return {"replyDraft": f"Hi, Regarding your {data.category} request: {data.tldr} Next: {data.next_action}"}


def create_ticket_registry() -> StepRegistry:
    """Create a registry holding every ticket summarizer step.

    Returns:
        A new StepRegistry.
    """
    return (
        StepRegistry()
        .register(
            LlmDefinition(
                name="classifyTicket",
                input_schema=TicketInput,
                output_schema=Classification,
                prompt=_classify_prompt,
            )
        )
        .register(
            LlmDefinition(
                name="summarizeTicket",
                input_schema=TicketInput,
                output_schema=Summary,
                prompt=_summarize_prompt,
            )
        )
        .register(
            ToolDefinition(
                name="nextAction",
                input_schema=Classification,
                output_schema=NextActionOutput,
                run=_next_action,
            )
        )
        .register(ToolDefinition(name="saveDraft", input_schema=DraftInput, output_schema=DraftOutput, run=_save_draft))
    )


class TicketLlm:
    """Deterministic stand-in for the classification and summary model.

    Keywords in the ticket text pick the category and urgency. Prompts starting with
    ``Classify`` get a classification, anything else gets a three bullet summary.
    """

    async def complete(self, prompt: str) -> Completion:
        # only the ticket text counts; the instruction itself names every category
        _, _, ticket = prompt.partition("title=")

        category: str = "howto"
        if re.search(r"invoice|charge|billing|payment", ticket, re.IGNORECASE):
            category = "billing"
        elif re.search(r"error|exception|stack|crash|fail", ticket, re.IGNORECASE):
            category = "bug"
        elif re.search(r"feature|request|roadmap", ticket, re.IGNORECASE):
            category = "feature"

        if prompt.startswith("Classify"):
            payload: dict[str, object] = {
                "category": category,
                "confidence": 0.6 if category == "howto" else 0.9,
                "urgency": 5 if re.search(r"urgent|immediately|asap|down", ticket, re.IGNORECASE) else 3,
            }
        else:
            payload = {
                "bullets": [
                    "User reports issue/question",
                    "Context parsed from description",
                    f"Category guessed: {category}",
                ],
                "tldr": f"Likely {category}; provide appropriate guidance.",
            }
        return Completion(text=json.dumps(payload), tokens=math.ceil(len(prompt) / 4), cost_usd=0.001)


def make_ticket_llm() -> TicketLlm:
    """Create the deterministic ticket client."""
    return TicketLlm()
