"""Diagnostic analysis and manual-grounded chat on top of the AI providers."""
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from app.core.exceptions import ProviderResponseParseError
from app.services.ai_providers import AIProvider
from app.services.provider_config import build_analysis_prompt
from app.services.vector_search import SearchMatch, VectorSearchService, build_context

logger = logging.getLogger(__name__)


class DiagnosticReport(BaseModel):
    """Structured answer both provider families must produce in analysis mode."""
    possible_causes: List[str] = []
    suggested_solutions: List[str] = []
    parts_to_check: List[str] = []
    checklist: List[str] = []


@dataclass
class ChatAnswer:
    reply: str
    sources: List[SearchMatch] = field(default_factory=list)


def analyze_problem(provider: AIProvider, machine, problem_description: str) -> DiagnosticReport:
    """Run the company's diagnostic prompt for a machine problem."""
    prompt = build_analysis_prompt(
        provider.config, machine.brand, machine.model, problem_description
    )
    data = provider.analyze(prompt)
    try:
        return DiagnosticReport.model_validate(data)
    except ValidationError as e:
        raise ProviderResponseParseError(
            "AI response does not match the diagnostic format",
            raw_text=json.dumps(data, ensure_ascii=False),
        ) from e


def build_system_instruction(machine, context: str = "") -> str:
    instruction = (
        "You are an expert technical assistant.\n"
        f"Machine in focus: {machine.name} ({machine.brand or ''} {machine.model or ''}).\n"
        "Answer technical questions, explain procedures and help with the diagnosis.\n"
        "Be direct, professional and safe. Use Markdown formatting."
    )
    if context:
        instruction += (
            "\n\nUse the following excerpts from the technical manuals when they are "
            "relevant, and cite the manual and page. If they do not cover the "
            "question, say so.\n\n"
            f"Manual excerpts:\n{context}"
        )
    return instruction


def latest_user_message(history: List[dict]) -> Optional[str]:
    for turn in reversed(history):
        if turn.get("role") == "user" and isinstance(turn.get("content"), str):
            return turn["content"]
    return None


def answer_chat(
    provider: AIProvider,
    machine,
    history: List[dict],
    retriever: Optional[VectorSearchService] = None,
) -> ChatAnswer:
    """Reply to the conversation, grounded on manual content when available."""
    matches: List[SearchMatch] = []
    query = latest_user_message(history)
    if retriever is not None and query:
        matches = retriever.search(query)

    instruction = build_system_instruction(machine, build_context(matches))
    reply = provider.chat(history, instruction)
    logger.info(f"Chat reply for machine {machine.id} with {len(matches)} manual matches")
    return ChatAnswer(reply=reply, sources=matches)
