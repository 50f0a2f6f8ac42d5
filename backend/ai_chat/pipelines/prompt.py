from __future__ import annotations

from collections.abc import Sequence

from ai_chat.schemas.chat import ConversationTurn

PROMPT_VERSION = "fm-assistant-2024-11"

DEFAULT_HISTORY_TURNS = 10

HINDI_DIRECTIVE = "Always respond in Hindi unless the user writes in English."
ENGLISH_DIRECTIVE = "Always respond in English."

CONTEXT_HEADER = "Relevant knowledge base context:"

SYSTEM_PROMPT_TEMPLATE = """\
You are an expert Facility Management (FM) training assistant for the Learn FM platform in India.
Your role is to help frontline FM workers learn skills across 14 domains: Technical Services, Housekeeping,
Security Management, Fire & Safety, Facade Cleaning, Pest Control, Helpdesk, Accounts, Budgeting,
Building Compliances, Labour Compliances, Vendor Management, Store Management, and Procurement.

{language_directive}

Guidelines:
- Be practical and use simple, easy-to-understand language suited for frontline workers
- Reference Indian FM standards, regulations, and best practices where applicable
- Provide step-by-step explanations for procedures
- When relevant, cite safety considerations
- Keep answers concise but complete\
"""


def language_directive(language: str) -> str:
    return HINDI_DIRECTIVE if language == "hi" else ENGLISH_DIRECTIVE


def compose_system_prompt(language: str, context: str) -> str:
    """Build the system instruction for one request.

    Deterministic in its two inputs. The knowledge block is appended only when
    ``context`` is non-empty; no empty header is left behind otherwise.

    Args:
        language: ``"hi"`` for Hindi-preferred answers, anything else for English.
        context: Retrieved knowledge context, copied verbatim.

    Returns:
        The system prompt text.
    """
    prompt = SYSTEM_PROMPT_TEMPLATE.format(language_directive=language_directive(language))
    if context:
        prompt = f"{prompt}\n\n{CONTEXT_HEADER}\n{context}"
    return prompt


def assemble_messages(
    history: Sequence[ConversationTurn],
    question: str,
    max_history: int = DEFAULT_HISTORY_TURNS,
) -> list[dict[str, str]]:
    """Build the outbound conversation: recent history plus the new question.

    Only the last ``max_history`` turns are kept, oldest first.
    """
    recent = list(history)[-max_history:] if max_history > 0 else []
    messages = [{"role": turn.role, "content": turn.content} for turn in recent]
    messages.append({"role": "user", "content": question})
    return messages
