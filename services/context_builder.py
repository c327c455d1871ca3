# services/context_builder.py
from typing import Dict, List, Optional, Sequence

from models import FAQEntry, Message

# Trailing history messages sent with every completion request
HISTORY_WINDOW = 10

SYSTEM_PROMPT = """You are a helpful and professional customer support assistant.
- Be friendly, empathetic, and solution-oriented
- Provide clear and concise answers
- If you don't know something, admit it and offer to connect the user with a human agent
- Always maintain a professional tone while being approachable
- Focus on resolving customer issues efficiently"""


def faq_grounding(entry: FAQEntry) -> str:
    return f"Relevant FAQ: Q: {entry.question} A: {entry.answer}"


def build_context(
    system_prompt: str,
    faq_match: Optional[FAQEntry],
    history: Sequence[Message],
) -> List[Dict[str, str]]:
    """
    Build the message list for the completion service.

    Order: system instructions, optional FAQ grounding, then the last
    HISTORY_WINDOW messages of `history`. The current user message is
    expected to already be the last element of `history`.

    Returns:
        List of {"role", "content"} dicts in OpenAI chat format
    """
    messages = [{"role": "system", "content": system_prompt}]
    if faq_match is not None:
        messages.append({"role": "system", "content": faq_grounding(faq_match)})
    messages.extend(msg.to_prompt() for msg in history[-HISTORY_WINDOW:])
    return messages
