"""Term matching, context extraction, and policy section relevance scoring."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import (
    CONTEXT_WORDS, CONTEXT_CHARS, POLICY_MATCH_THRESHOLD, POLICY_FLAG_THRESHOLD,
    MAX_POLICY_KEYWORDS, MIN_KEYWORD_LENGTH, POLICY_STOP_WORDS,
)
from .models import (
    Context, MatchedPolicySection, PolicyIssue, PolicySection, Rule, RuleIssue,
    SEVERE_TIERS,
)

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    return text.lower().strip()


def merge_rules(primary: Iterable[Rule], fallback: Iterable[Rule] = ()) -> list[Rule]:
    """Combine store rules with baseline rules, one rule per normalized term.

    Rules from ``primary`` win over ``fallback`` on the same term.
    """
    merged: list[Rule] = []
    seen: set[str] = set()
    for rule in list(primary) + list(fallback):
        key = normalize_text(rule.term)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(rule)
    return merged


# ---------------------------------------------------------------------------
# Tokenizer + context window
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    text: str
    start: int
    end: int


def tokenize(text: str) -> list[Token]:
    """Split text into whitespace-delimited tokens, keeping character spans."""
    tokens: list[Token] = []
    start = None
    for i, ch in enumerate(text):
        if ch.isspace():
            if start is not None:
                tokens.append(Token(text[start:i], start, i))
                start = None
        elif start is None:
            start = i
    if start is not None:
        tokens.append(Token(text[start:], start, len(text)))
    return tokens


def find_token_span(tokens: list[Token], start: int, end: int) -> Optional[tuple[int, int]]:
    """Indices of the tokens holding the first and last character of a match.

    Returns None when either end of the match sits on whitespace, in which
    case callers fall back to a character window.
    """
    if end <= start:
        return None
    first = last = None
    for i, tok in enumerate(tokens):
        if first is None and tok.start <= start < tok.end:
            first = i
        if tok.start <= end - 1 < tok.end:
            last = i
            break
    if first is None or last is None:
        return None
    return first, last


def _split_sentences(text: str) -> list[tuple[int, int]]:
    """Character spans of sentences, never crossing a blank line."""
    spans: list[tuple[int, int]] = []
    for para in re.finditer(r"\S(?:.|\n(?!\s*\n))*", text):
        offset = para.start()
        seg_start = 0
        body = para.group(0)
        for m in re.finditer(r"[.!?]+", body):
            spans.append((offset + seg_start, offset + m.start()))
            seg_start = m.end()
        spans.append((offset + seg_start, offset + len(body)))
    return spans


def _paragraph_at(text: str, position: int) -> str:
    for para in re.finditer(r"\S(?:.|\n(?!\s*\n))*", text):
        if para.start() <= position < para.end():
            return para.group(0).strip()
    return ""


def _sentence_or_paragraph(text: str, start: int, end: int, term: str) -> str:
    for s, e in _split_sentences(text):
        if s <= start < e:
            sentence = text[s:e].strip()
            if term.lower() in sentence.lower():
                return sentence
            break
    paragraph = _paragraph_at(text, start)
    if term.lower() in paragraph.lower():
        return paragraph
    return ""


def extract_context(
    text: str,
    start: int,
    end: int,
    words: int = CONTEXT_WORDS,
    chars: int = CONTEXT_CHARS,
) -> Context:
    """Build the context around ``text[start:end]``.

    Uses ``words`` tokens either side when the match is word-bounded,
    otherwise a ``chars`` character window.
    """
    term = text[start:end]
    tokens = tokenize(text)
    span = find_token_span(tokens, start, end)

    if span is not None:
        first, last = span
        before_tokens = [t.text for t in tokens[max(0, first - words):first]]
        after_tokens = [t.text for t in tokens[last + 1:last + 1 + words]]
        lead = text[tokens[first].start:start]
        tail = text[end:tokens[last].end]
        before = " ".join(before_tokens + ([lead] if lead else []))
        after = " ".join(([tail] if tail else []) + after_tokens)
        window = text[tokens[max(0, first - words)].start:tokens[min(len(tokens) - 1, last + words)].end]
    else:
        lo = max(0, start - chars)
        hi = min(len(text), end + chars)
        before = text[lo:start]
        after = text[end:hi]
        window = text[lo:hi]

    full = _sentence_or_paragraph(text, start, end, term) or window.strip()
    return Context(
        snippet_before=before,
        term=term,
        snippet_after=after,
        position=start,
        sentence_or_paragraph=full,
    )


def find_matches(text: str, term: str) -> list[tuple[int, int]]:
    """Spans of every non-overlapping, case-insensitive hit in the raw text."""
    if not term:
        return []
    return [m.span() for m in re.finditer(re.escape(term), text, re.IGNORECASE)]


def find_occurrences(text: str, term: str) -> list[int]:
    """Start offsets of every non-overlapping, case-insensitive hit."""
    return [start for start, _ in find_matches(text, term)]


def find_term_context(text: str, term: str) -> Optional[Context]:
    spans = find_matches(text, term.strip())
    if not spans:
        return None
    return extract_context(text, *spans[0])


# ---------------------------------------------------------------------------
# Rule matching
# ---------------------------------------------------------------------------


def match_rules(listing_text: str, rules: Iterable[Rule]) -> list[RuleIssue]:
    """One raw issue per rule hit; repeated hits are grouped later."""
    issues: list[RuleIssue] = []
    for rule in rules:
        for start, end in find_matches(listing_text, rule.term.strip()):
            issues.append(RuleIssue(
                term=rule.term,
                category=rule.category,
                risk_level=rule.risk_level,
                description=rule.reason,
                found_in=extract_context(listing_text, start, end),
                reason=rule.reason,
            ))
    logger.debug("Rule matching produced %d raw issues", len(issues))
    return issues


# ---------------------------------------------------------------------------
# Policy section scoring
# ---------------------------------------------------------------------------


def extract_keywords(text: str) -> list[str]:
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    keywords = [w for w in words if len(w) >= MIN_KEYWORD_LENGTH and w not in POLICY_STOP_WORDS]
    return keywords[:MAX_POLICY_KEYWORDS]


def policy_match_score(normalized_text: str, section: PolicySection) -> float:
    if not section.title or not section.summary:
        return 0.0
    keywords = extract_keywords(f"{section.title} {section.summary}")
    if not keywords:
        return 0.0
    found = sum(1 for kw in keywords if kw in normalized_text)
    return found / len(keywords)


def section_term(title: str) -> str:
    """Short label used as the grouping term of a policy issue."""
    words = [w for w in re.sub(r"[^\w\s]", " ", title).split() if len(w) > 3]
    return ", ".join(words[:3]) or title


def score_policy_sections(
    listing_text: str,
    sections: Iterable[PolicySection],
) -> tuple[list[MatchedPolicySection], list[PolicyIssue]]:
    """Score every section; return (relevant sections, flagged policy issues)."""
    normalized = normalize_text(listing_text)
    matched: list[MatchedPolicySection] = []
    issues: list[PolicyIssue] = []
    for section in sections:
        score = policy_match_score(normalized, section)
        if score <= POLICY_MATCH_THRESHOLD:
            continue
        matched.append(MatchedPolicySection(
            title=section.title,
            category=section.category,
            risk_level=section.risk_level,
            match_score=score,
        ))
        if score > POLICY_FLAG_THRESHOLD and section.risk_level in SEVERE_TIERS:
            issues.append(PolicyIssue(
                term=section_term(section.title),
                category=section.category,
                risk_level=section.risk_level,
                description=section.summary,
                policy_section=section.title,
                match_score=score,
            ))
    matched.sort(key=lambda m: -m.match_score)
    return matched, issues
