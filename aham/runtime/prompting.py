"""
Prompt Engineering - Chat, Answer and Clustering Prompt Composition

WHAT: Prompt templates and composition utilities for the on-device chat model
WHERE: aham/runtime/prompting.py - prompt generation layer
WHO: InferenceSessionManager (chat framing), AnswerOrchestrator, ClusteringEngine
TIME: Prompt assembly <1ms

Uses the Zephyr-style role markers the TinyLlama chat model was tuned on. The
session manager only ever stops generation on these role markers, so a
multi-paragraph answer is never cut at its first blank line.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

SYSTEM_MARKER = "<|system|>"
USER_MARKER = "<|user|>"
ASSISTANT_MARKER = "<|assistant|>"

BULLET = "•"
BULLET_PREFIXES = ("•", "-", "*")

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Use the following context to answer questions."

ANSWER_PROMPT = """You are a helpful assistant that answers questions based on provided context and your general knowledge.

USER QUESTION:
{question}

INSTRUCTIONS:
- Use the information from the sources in the context when relevant
- Also use your general knowledge and common sense
- Provide a clear, concise answer
- If a source contains relevant information, mention it by name

ANSWER:"""

CLUSTER_PROMPT = """You are a helpful assistant that groups similar messages together.

Here are the messages to analyze:

{messages}

Your task:
1. Read and understand each message
2. Group messages that are similar in topic, theme, or content
3. Every message must appear in exactly one group

IMPORTANT: Return the ACTUAL MESSAGE TEXT in each group. Do not refer to messages by number or index.

Return your response as a valid JSON array where each element represents a group and contains a "messages" array with the FULL TEXT of similar messages.

Format your response EXACTLY like this (no additional text):
[
  {{
    "messages": ["full text of message 1", "full text of message 2"]
  }},
  {{
    "messages": ["full text of message 3"]
  }}
]

Return ONLY the JSON array with FULL MESSAGE TEXTS, no other text before or after."""


def compose_chat_prompt(
    prompt: str,
    *,
    context: Optional[str] = None,
    system: str = DEFAULT_SYSTEM_PROMPT,
) -> str:
    """Frame a user prompt with role markers and an assistant continuation."""

    segments = []
    if context:
        segments.append(f"{SYSTEM_MARKER}\n{system}\n\nContext: {context}\n")
    segments.append(f"{USER_MARKER}\n{prompt}\n")
    segments.append(f"{ASSISTANT_MARKER}\n")
    return "".join(segments)


def compose_answer_prompt(question: str) -> str:
    return ANSWER_PROMPT.format(question=question.strip())


def compose_cluster_prompt(texts: Sequence[str]) -> str:
    listing = "\n\n".join(f'- "{text}"' for text in texts)
    return CLUSTER_PROMPT.format(messages=listing)


def bullet_line(text: str) -> str:
    """Prefix a bullet unless the text already starts with one."""

    stripped = text.strip()
    if stripped.startswith(BULLET_PREFIXES):
        return stripped
    return f"{BULLET} {stripped}"


def render_bullets(texts: Iterable[str]) -> str:
    return "\n\n".join(bullet_line(text) for text in texts)


__all__ = [
    "ANSWER_PROMPT",
    "ASSISTANT_MARKER",
    "BULLET",
    "BULLET_PREFIXES",
    "CLUSTER_PROMPT",
    "DEFAULT_SYSTEM_PROMPT",
    "SYSTEM_MARKER",
    "USER_MARKER",
    "bullet_line",
    "compose_answer_prompt",
    "compose_chat_prompt",
    "compose_cluster_prompt",
    "render_bullets",
]
