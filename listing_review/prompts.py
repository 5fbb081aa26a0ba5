"""Centralized prompts for the listing review tool.

All LLM prompts live here so they can be reviewed, versioned, and tuned in one place.
"""

from typing import Iterable

from .models import PolicySection


# ---------------------------------------------------------------------------
# Augmentation: system prompt carries the policy digest, user message the listing
# ---------------------------------------------------------------------------

def build_augmentation_system_prompt(sections: Iterable[PolicySection] = ()) -> str:
    """Build the system prompt with the policy section digest."""
    lines = [
        f"- {s.title} ({s.risk_level.value} risk): {s.summary}"
        for s in sections if s.summary
    ]
    policy_block = "\n".join(lines) if lines else DEFAULT_POLICY_DIGEST

    return f"""{SYSTEM_IDENTITY}

{POLICY_HEADER}
===
{policy_block}
===

{VIOLATIONS_GUIDE}

{NEVER_FLAG}

{RESPONSE_FORMAT}"""


def build_augmentation_user_message(title: str, description: str) -> str:
    """Build the user message containing the listing under review."""
    return f"""{USER_INSTRUCTION}

LISTING TO ANALYZE:
Title: "{title}"
Description: "{description}"

Return the JSON object now."""


# ---------------------------------------------------------------------------
# Section summarization: one raw policy section per call
# ---------------------------------------------------------------------------

def build_section_summary_prompt(title: str, content: str, category: str) -> str:
    return f"""Analyze this marketplace policy section. Focus on compliance implications for sellers.

Policy Category: {category}
Section Title: {title}
Section Content: {content}

Return ONLY a JSON object with this exact structure:
{{
  "title": "{title}",
  "summary": "2-3 sentence summary of what this means for sellers",
  "category": "one of: account_integrity, intellectual_property, prohibited_items, handmade_reselling, fees_payments, community_conduct",
  "risk_level": "one of: low, medium, high, critical"
}}"""


# ---------------------------------------------------------------------------
# Prompt Components: edit these to tune behavior
# ---------------------------------------------------------------------------

SYSTEM_IDENTITY = """You are a marketplace policy compliance analyzer.
Your job: identify terms in a seller's listing that violate marketplace policies.
Use a binary judgement: a term either violates policy or it does not."""

POLICY_HEADER = "MARKETPLACE POLICY SECTIONS (primary reference):"

DEFAULT_POLICY_DIGEST = """- No trademark or brand names (Nike, Apple, Disney, Coca-Cola, etc.)
- Items must be genuinely handmade, vintage (20+ years), or craft supplies
- No medical claims or health benefits
- No weapons, drugs, or illegal items
- No mass-produced or factory-made items in the handmade category
- No copyrighted characters or intellectual property"""

VIOLATIONS_GUIDE = """VIOLATIONS TO FLAG:
- Protected characters and franchises (Star Wars, Disney, Marvel, DC, Pokemon, Harry Potter, ...)
- Trademarks (fashion, tech, and consumer brands)
- Celebrities and recognizable public figures
- Items or claims explicitly prohibited by the policy sections above"""

NEVER_FLAG = """NEVER FLAG:
- Product categories: posters, canvas, prints, stickers, shirts, mugs
- Descriptive words: vintage, retro, classic, style, alternative
- Common materials: leather, cotton, metal, wood, plastic
- Generic adjectives: big, small, blue, red, professional, luxury"""

RESPONSE_FORMAT = """RESPONSE FORMAT:
Return ONLY a JSON object. No markdown fences, no commentary outside the JSON.
Only flag terms that literally appear in the listing.
{
  "status": "pass|warning|fail",
  "flaggedTerms": ["exact term from the listing"],
  "suggestions": ["short actionable fix"],
  "confidence": 0.0-1.0,
  "reasoning": "1-2 sentences on the policy concern"
}"""

USER_INSTRUCTION = "Analyze this listing against the marketplace policies above."
