"""System prompt assembly.

``build_system_prompt`` is a pure function of the context blob, the request
time and a ``PromptPolicy``; it performs no I/O so the exact prompt can be
asserted in tests.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import UTC, datetime

CONTEXT_START = "START OF CONTEXT"
CONTEXT_END = "END OF CONTEXT"
_RULE = "-------"

_START_RE = re.compile(rf"^{CONTEXT_START} \[([0-9a-f]{{16}})\]$", re.MULTILINE)


@dataclass(frozen=True)
class PromptPolicy:
    """Fixed policy text for the assistant."""

    assistant_name: str = "F1GPT"
    domain: str = "Formula 1"
    extraction_targets: tuple[str, ...] = (
        "the next scheduled Grand Prix (official name, circuit, country, full calendar date)",
        "the latest top-level Drivers' and Constructors' championship tables "
        "(names, points, positions)",
        "any breaking news item dated after the most recent Grand Prix",
    )
    sample_questions: tuple[str, ...] = (
        "Where is the next race?",
        "Show me the current standings",
    )
    style_rules: tuple[str, ...] = (
        "Write normal prose paragraphs (no bullet points in the answer unless "
        "the user explicitly asks).",
        "Use markdown where useful (tables are allowed for standings).",
        'State complete calendar dates, e.g. "17 May 2025", not "next Sunday".',
        "Do **not** embed or return images.",
        "Do **not** cite, reference, or hint at the existence of the context section.",
        "Do **not** cite or mention any articles or sources in your answer.",
    )
    unknown_example: str = "The FIA has not published the next race date as of {now}."
    extra_sections: tuple[str, ...] = ()


DEFAULT_POLICY = PromptPolicy()


def format_time_anchor(now: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2025-05-20T12:00:00.000Z``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def context_tag(context_blob: str) -> str:
    """Delimiter tag for *context_blob*.

    Derived from the blob's digest, so text inside the blob cannot produce
    the matching end marker of its own section.
    """
    return hashlib.sha256(context_blob.encode("utf-8")).hexdigest()[:16]


def build_system_prompt(
    context_blob: str,
    now: datetime,
    policy: PromptPolicy = DEFAULT_POLICY,
    extra_instructions: str = "",
) -> str:
    """Build the system instruction for one chat request.

    Args:
        context_blob: Serialized retrieved documents (``"[]"`` when none).
        now: Request time; rendered as the "today" anchor.
        policy: Role, extraction targets and style rules.
        extra_instructions: System messages supplied by the client, appended
            as their own section ahead of the context.
    """
    anchor = format_time_anchor(now)
    tag = context_tag(context_blob)

    targets = "\n".join(f"- {t}" for t in policy.extraction_targets)
    questions = " or ".join(f'"{q}"' for q in policy.sample_questions)
    style = "\n".join(f"• {r}" for r in policy.style_rules)
    unknown = policy.unknown_example.format(now=anchor)

    sections = [
        f"You are {policy.assistant_name}, an AI assistant who specialises exclusively "
        f"in {policy.domain}.",
        "1 — Time-awareness\n"
        f"Today is {anchor}.\n"
        'Treat this value as "now" whenever you reason about dates or decide what is current.',
        "2 — Authoritative data comes first\n"
        "When you answer, always prefer the latest facts that appear in the context "
        "section below.\n"
        "If the needed fact is absent, fall back on your own knowledge, but **never** say "
        "that you did so or mention the context.",
        "3 — Mandatory extraction targets\n"
        "From the context you receive, silently pull out (when present):\n\n"
        f"{targets}\n\n"
        f"Store those pieces in working memory so that direct questions like {questions} "
        "can be answered in a single turn.",
        f"4 — Answer-style rules\n{style}",
        "5 — If information is genuinely unknown\n"
        f'Reply briefly that the data is not available yet (e.g. "{unknown}").\n'
        "Never speculate or hallucinate.",
    ]
    sections.extend(policy.extra_sections)
    if extra_instructions.strip():
        sections.append(f"Additional instructions\n{extra_instructions.strip()}")

    context_section = (
        f"{_RULE}\n"
        f"{CONTEXT_START} [{tag}]\n"
        f"{context_blob}\n"
        f"{CONTEXT_END} [{tag}]\n"
        f"{_RULE}"
    )
    sections.append(context_section)
    return "\n\n".join(sections) + "\n"


def extract_context(prompt: str) -> str:
    """Recover the context blob embedded by :func:`build_system_prompt`.

    Only a section whose content hashes to its own tag is accepted, so
    look-alike markers elsewhere in the prompt are skipped.

    Raises:
        ValueError: if the prompt has no valid context section.
    """
    for match in reversed(list(_START_RE.finditer(prompt))):
        tag = match.group(1)
        body_start = match.end() + 1
        end_marker = f"\n{CONTEXT_END} [{tag}]\n{_RULE}"
        pos = prompt.find(end_marker, body_start)
        while pos != -1:
            blob = prompt[body_start:pos]
            if context_tag(blob) == tag:
                return blob
            pos = prompt.find(end_marker, pos + 1)
    raise ValueError("Prompt has no context section")
