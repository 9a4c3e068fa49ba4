"""Bundled workflows.

Each module exposes a registry factory for its steps and a deterministic llm client,
so the workflows run without network access:
- defaults: ``echo`` tool and ``byFlag`` branch
- lead: lead triage from an inbound email
- ticket: support ticket summarizer
"""

from __future__ import annotations

from litestar_stepflow.workflows.defaults import create_default_registry
from litestar_stepflow.workflows.lead import create_lead_registry, make_parse_email_llm
from litestar_stepflow.workflows.ticket import create_ticket_registry, make_ticket_llm

__all__ = [
    "create_default_registry",
    "create_lead_registry",
    "create_ticket_registry",
    "make_parse_email_llm",
    "make_ticket_llm",
]
