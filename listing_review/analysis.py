"""AI augmentation via Claude, bounded by a timeout and never fatal."""

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Any, Iterable, Optional, Protocol, Sequence

from .config import (
    ANTHROPIC_API_KEY, LLM_MODEL, LLM_FALLBACK_MODELS, AI_TIMEOUT_SECONDS, AI_MAX_TOKENS,
    AI_ALLOWED_TERMS,
)
from .matching import find_term_context
from .models import AIIssue, AugmentationResult, ComplianceStatus, PolicySection, Tier
from .prompts import (
    build_augmentation_system_prompt, build_augmentation_user_message,
    build_section_summary_prompt,
)

logger = logging.getLogger(__name__)

GENERIC_AI_TERM = "AI Detected Violation"
_POLL_SECONDS = 0.05

_llm_client = None


def _get_llm_client():
    global _llm_client
    if _llm_client is None:
        import anthropic
        _llm_client = anthropic.Anthropic(
            api_key=ANTHROPIC_API_KEY, timeout=AI_TIMEOUT_SECONDS, max_retries=0,
        )
    return _llm_client


def _recover_truncated_json(text: str) -> list[dict]:
    """Try to recover complete objects from truncated or noisy JSON.

    When the response hits max_tokens or carries prose around the payload,
    this extracts all complete top-level objects.
    """
    results = []
    depth = 0
    obj_start = None

    i = 0
    in_string = False
    escape_next = False

    while i < len(text):
        ch = text[i]

        if escape_next:
            escape_next = False
            i += 1
            continue

        if ch == '\\' and in_string:
            escape_next = True
            i += 1
            continue

        if ch == '"':
            in_string = not in_string
            i += 1
            continue

        if in_string:
            i += 1
            continue

        if ch == '{':
            if depth == 0:
                obj_start = i
            depth += 1
        elif ch == '}' and depth > 0:
            depth -= 1
            if depth == 0 and obj_start is not None:
                try:
                    obj = json.loads(text[obj_start:i + 1])
                    results.append(obj)
                except json.JSONDecodeError:
                    pass
                obj_start = None

        i += 1

    return results


def parse_json_object(text: str) -> dict:
    """Parse a model reply into a JSON object, tolerating fences and noise."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        recovered = _recover_truncated_json(text)
        if not recovered:
            raise ValueError("Model returned no JSON object")
        parsed = recovered[0]
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected JSON object from model, got {type(parsed).__name__}")
    return parsed


def _message_text(resp) -> str:
    return "".join(getattr(block, "text", "") for block in resp.content).strip()


# ---------------------------------------------------------------------------
# Augmenter contract
# ---------------------------------------------------------------------------


class Augmenter(Protocol):
    def augment(self, title: str, description: str, timeout: Optional[float] = None) -> dict:
        ...


class ClaudeAugmenter:
    """Asks Claude for flagged terms, with the policy digest as system prompt.

    Models are tried in order; a failed call (transport error or unusable
    reply) moves on to the next one. All of them share one deadline.
    """

    def __init__(
        self,
        models: Sequence[str] = LLM_FALLBACK_MODELS,
        policy_sections: Iterable[PolicySection] = (),
        client=None,
    ):
        if isinstance(models, str):
            models = (models,)
        self.models = tuple(models)
        if not self.models:
            raise ValueError("ClaudeAugmenter needs at least one model")
        self.policy_sections = tuple(policy_sections)
        self._client = client

    @property
    def model(self) -> str:
        return self.models[0]

    def augment(self, title: str, description: str, timeout: Optional[float] = None) -> dict:
        client = self._client or _get_llm_client()
        deadline = time.monotonic() + (timeout if timeout is not None else AI_TIMEOUT_SECONDS)
        system = build_augmentation_system_prompt(self.policy_sections)
        user = build_augmentation_user_message(title, description)

        last_error: Optional[Exception] = None
        for model in self.models:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                resp = client.messages.create(
                    model=model,
                    max_tokens=AI_MAX_TOKENS,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                    timeout=remaining,
                )
                payload = parse_json_object(_message_text(resp))
            except Exception as e:
                logger.warning("Model %s failed: %s", model, e)
                last_error = e
                continue
            payload["modelUsed"] = model
            return payload

        if last_error is None:
            raise TimeoutError("No time left to try any model")
        raise last_error


def _string_list(value: Any) -> Optional[tuple[str, ...]]:
    if value is None:
        return ()
    if not isinstance(value, list):
        return None
    return tuple(str(v).strip() for v in value if isinstance(v, str) and v.strip())


def normalize_augmentation(payload: Any) -> Optional[AugmentationResult]:
    """Validate a raw augmentation payload; None when it is malformed."""
    if not isinstance(payload, dict):
        return None
    try:
        status = ComplianceStatus(str(payload.get("status", "")).strip().lower())
    except ValueError:
        return None
    terms = _string_list(payload.get("flaggedTerms", payload.get("flagged_terms")))
    suggestions = _string_list(payload.get("suggestions"))
    if terms is None or suggestions is None:
        return None
    try:
        confidence = float(payload.get("confidence") or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0
    return AugmentationResult(
        status=status,
        flagged_terms=terms,
        suggestions=suggestions,
        confidence=max(0.0, min(1.0, confidence)),
        reasoning=str(payload.get("reasoning") or ""),
        model_used=str(payload.get("modelUsed") or payload.get("model_used") or ""),
    )


def request_augmentation(
    augmenter: Augmenter,
    title: str,
    description: str,
    timeout: float = AI_TIMEOUT_SECONDS,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[AugmentationResult]:
    """Run the augmenter on a worker thread.

    Returns None on error, timeout, cancellation, or a malformed reply.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ai-augment")
    future = executor.submit(augmenter.augment, title, description, timeout)
    deadline = time.monotonic() + timeout
    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                logger.info("AI augmentation cancelled by caller")
                return None
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                logger.warning("AI augmentation timed out after %.1fs", timeout)
                return None
            try:
                payload = future.result(timeout=min(remaining, _POLL_SECONDS))
                break
            except FutureTimeout:
                if future.done():
                    raise
                continue
    except Exception as e:
        logger.warning("AI augmentation failed, continuing without it: %s", e)
        return None
    finally:
        executor.shutdown(wait=False)

    result = normalize_augmentation(payload)
    if result is None:
        logger.warning("AI augmentation returned a malformed payload; ignoring it")
    return result


# ---------------------------------------------------------------------------
# Result -> issues
# ---------------------------------------------------------------------------


def split_title_description(listing_text: str) -> tuple[str, str]:
    """Title and description for the model, from labeled lines when present."""
    lines = listing_text.splitlines()
    title_line = next((l for l in lines if l.strip().lower().startswith("title:")), None)
    desc_line = next((l for l in lines if l.strip().lower().startswith("description:")), None)

    if title_line is not None:
        title = title_line.strip()[len("title:"):].strip()
    else:
        title = lines[0].strip() if lines else ""
    if desc_line is not None:
        description = desc_line.strip()[len("description:"):].strip()
    else:
        description = " ".join(l.strip() for l in lines[1:] if l.strip())

    if not title:
        title = listing_text[:100].strip()
    if not description:
        description = listing_text[100:].strip()
    return title, description


def _is_allowed(term: str, allowed_terms: Iterable[str]) -> bool:
    allowed = {a.lower() for a in allowed_terms}
    low = term.lower()
    return low in allowed or all(w in allowed for w in low.split())


def _appears_in(term: str, listing_text: str) -> bool:
    low = listing_text.lower()
    t = term.lower()
    return t in low or any(len(w) > 2 and w in low for w in t.split())


def augmentation_issues(
    result: AugmentationResult,
    listing_text: str,
    allowed_terms: Iterable[str] = AI_ALLOWED_TERMS,
) -> list[AIIssue]:
    allowed_terms = tuple(allowed_terms)
    tier = Tier.HIGH if result.status == ComplianceStatus.FAIL else Tier.MEDIUM
    issues: list[AIIssue] = []

    if result.status == ComplianceStatus.FAIL and not result.flagged_terms:
        issues.append(AIIssue(
            term=GENERIC_AI_TERM,
            category="ai_detected",
            risk_level=Tier.HIGH,
            description=result.reasoning or "AI detected policy violation",
            reasoning=result.reasoning,
            model_used=result.model_used,
        ))

    for term in result.flagged_terms:
        if _is_allowed(term, allowed_terms):
            logger.info("Dropping allow-listed AI term %r", term)
            continue
        if not _appears_in(term, listing_text):
            logger.info("Dropping AI term %r not present in listing", term)
            continue
        issues.append(AIIssue(
            term=term,
            category="ai_detected",
            risk_level=tier,
            description=f"AI detected potential policy violation: {term}",
            found_in=find_term_context(listing_text, term),
            reasoning=result.reasoning,
            model_used=result.model_used,
        ))
    return issues


def reconcile_augmentation(result: AugmentationResult, issues: Iterable[AIIssue]) -> AugmentationResult:
    """Keep only the flagged terms that survived filtering.

    A result whose flagged terms were all filtered out becomes ``pass``.
    A fail without any terms stays a fail, since it carries the generic issue.
    """
    if not result.flagged_terms:
        return result
    surviving = {i.term for i in issues}
    kept = tuple(t for t in result.flagged_terms if t in surviving)
    if kept == result.flagged_terms:
        return result
    if not kept:
        logger.info("All %d AI terms were filtered out; reporting pass", len(result.flagged_terms))
        return replace(result, status=ComplianceStatus.PASS, flagged_terms=())
    return replace(result, flagged_terms=kept)


# ---------------------------------------------------------------------------
# Policy section summarization (job worker unit)
# ---------------------------------------------------------------------------


def summarize_section(
    title: str,
    content: str,
    category: str = "",
    client=None,
    timeout: float = AI_TIMEOUT_SECONDS,
) -> PolicySection:
    """Summarize one raw policy section into a scored PolicySection."""
    client = client or _get_llm_client()
    resp = client.messages.create(
        model=LLM_MODEL,
        max_tokens=AI_MAX_TOKENS,
        messages=[{"role": "user", "content": build_section_summary_prompt(title, content, category)}],
        timeout=timeout,
    )
    payload = parse_json_object(_message_text(resp))
    payload.setdefault("title", title)
    payload.setdefault("category", category)
    section = PolicySection.from_record(payload)
    if section is None or not section.summary:
        raise ValueError(f"Summary for section {title!r} is missing required fields")
    return section
