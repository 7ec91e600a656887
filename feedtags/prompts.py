"""
Classification prompts.

One prompt serves every provider. Two modes: open vocabulary (no tags
exist yet, the model proposes some) and closed vocabulary (the model
must pick from the existing tags). Both ask for a JSON array of
{"tag", "reason"} objects so parse_tags() can take its structured path.
"""

from collections.abc import Iterable

from .text import normalize_text
from .types import Item


# Shown in both modes so the model sees the exact shape to return
RESPONSE_FORMAT = """Respond with ONLY valid JSON in this exact format:
[{"tag": "tech", "reason": "Article about a cybersecurity breach"}]

Example for a hacker arrest: [{"tag": "tech", "reason": "Criminal case involving cybercrime and hacking"}]"""

# Rules for categories that overlap; shared by both modes
DISAMBIGUATION_RULES = """- "politics" = government, elections, policy-making, lawmakers, legislation, campaigns, administrations, executive actions, military policy, war powers, congressional actions, Supreme Court decisions
- "tech" = technology, software, hardware, cybersecurity, hacking, the tech industry
- "science" = research papers, scientific studies, methodology, academic research
- Criminal cases involving hackers, cybercrime or tech fraud = "tech" NOT "politics"
- Legal or court cases about technology = "tech" NOT "politics"
- Government policy actions and debates = "politics", even when the policy concerns technology, healthcare or immigration
- Only use "politics" for government officials, elections, policy-making or government actions
- Articles can have several tags: a health study gets "health" and "science", AI research gets "tech" and "science\""""

OPEN_TAXONOMY = """- tech (software, hardware, cybersecurity, programming, AI, startups, tech companies)
- politics (government, elections, policy, legislation, administrations, foreign and domestic policy)
- science (research papers, scientific studies, academic research)
- health, business, sports, entertainment, personal, news, culture, finance, education"""


def _entry_block(item: Item, feed_tags: list[str]) -> str:
    """Render the entry fields section of the prompt."""
    raw = item.content or item.summary
    label = "Content" if item.content else "Summary"
    text = normalize_text(raw)

    lines = [
        "Article Information:",
        f"- Title: {item.title}",
        f"- Feed: {item.feed_title or 'Unknown'}",
    ]
    if feed_tags:
        lines.append(f"- Feed Tags (for context): {', '.join(feed_tags)}")
    if item.author:
        lines.append(f"- Author: {item.author}")
    if text:
        lines.append(f"- {label}: {text}")
    return "\n".join(lines)


def build_prompt(
    item: Item,
    existing_tags: Iterable[str],
    feed_tags: Iterable[str] = (),
) -> str:
    """
    Build the classification prompt for one entry.

    Prefers full content over the summary. Deterministic: tag sets are
    sorted before rendering.

    Args:
        item: The entry to classify
        existing_tags: Current tag vocabulary; empty selects open mode
        feed_tags: Tags of the entry's feed, given as context only

    Returns:
        The complete prompt string
    """
    vocabulary = sorted(set(existing_tags))
    context = sorted(set(feed_tags))
    entry = _entry_block(item, context)

    if not vocabulary:
        return f"""You are helping classify individual articles into categories. Based on the article content, suggest 1-3 relevant tags.

{entry}

No tags exist yet. Suggest 1-3 simple, broad category tags such as:
{OPEN_TAXONOMY}

CATEGORY RULES:
{DISAMBIGUATION_RULES}

{RESPONSE_FORMAT}"""

    return f"""You are helping classify individual articles into categories. Based on the article content, select 0-3 tags from the available tags.

{entry}

AVAILABLE TAGS (you MUST only use these): {', '.join(vocabulary)}

CRITICAL RULES:
- Use ONLY tags from the available list above
- DO NOT create new tags
- If none of the available tags fit, respond with an empty array []
{DISAMBIGUATION_RULES}

{RESPONSE_FORMAT}"""
