"""Listing text composition and rule / policy section loading."""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Union

from .config import RULES_PATH, POLICIES_PATH, FALLBACK_RULES_PATH
from .matching import merge_rules
from .models import PolicySection, Rule

logger = logging.getLogger(__name__)


class DataUnavailableError(RuntimeError):
    """The rule or policy section store could not be read."""


# ---------------------------------------------------------------------------
# Compose Listing Text
# ---------------------------------------------------------------------------

def compose_listing_text(
    title: str = "",
    description: str = "",
    tags: Union[str, Iterable[str], None] = "",
    category: str = "",
    price: Any = "",
) -> str:
    """Join structured listing fields into labeled lines, blank fields omitted."""
    if tags is not None and not isinstance(tags, str):
        tags = ", ".join(str(t).strip() for t in tags if str(t).strip())
    parts = []
    for label, value in (
        ("Title", title), ("Description", description), ("Tags", tags),
        ("Category", category), ("Price", price),
    ):
        value = "" if value is None else str(value).strip()
        if value:
            parts.append(f"{label}: {value}")
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Load Records from JSON / XLSX
# ---------------------------------------------------------------------------

_RULE_COLUMNS = {
    "term": ("term", "keyword", "phrase"),
    "risk_level": ("risk",),
    "reason": ("reason", "explanation", "why"),
    "category": ("category", "type"),
}

_SECTION_COLUMNS = {
    "title": ("title", "section"),
    "summary": ("summary",),
    "category": ("category",),
    "risk_level": ("risk",),
}


def _read_json_records(path: Path, key: str) -> list:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of records under '{key}'")
    return data


def _read_xlsx_records(path: Path, columns: dict[str, tuple[str, ...]]) -> list[dict]:
    """
    Read one record per row from every sheet that has a recognizable header.
    Columns are located by keyword, so header wording can vary.
    """
    import openpyxl

    wb = openpyxl.load_workbook(str(path), read_only=True)
    records: list[dict] = []

    for sheet_name in wb.sheetnames:
        ws = wb[sheet_name]
        rows = list(ws.iter_rows(values_only=True))
        if len(rows) < 2:
            continue

        header = [str(c).lower().strip() if c else "" for c in rows[0]]

        def find_col(*keywords):
            for i, h in enumerate(header):
                if any(kw in h for kw in keywords):
                    return i
            return None

        col_idx = {field: find_col(*kws) for field, kws in columns.items()}
        first_field = next(iter(columns))
        if col_idx[first_field] is None:
            logger.warning("Sheet %r in %s has no %s column; skipping", sheet_name, path.name, first_field)
            continue

        for row in rows[1:]:
            def cell(idx):
                if idx is None or idx >= len(row):
                    return ""
                return str(row[idx]).strip() if row[idx] is not None else ""

            record = {field: cell(idx) for field, idx in col_idx.items()}
            if any(record.values()):
                records.append(record)

    wb.close()
    return records


def _load_records(path: Path, key: str, columns: dict[str, tuple[str, ...]]) -> list:
    path = Path(path)
    if path.suffix.lower() in (".xlsx", ".xlsm"):
        return _read_xlsx_records(path, columns)
    return _read_json_records(path, key)


def load_rules(path: Path) -> list[Rule]:
    """Load rules from a JSON or XLSX file, skipping malformed records."""
    rules = []
    for i, record in enumerate(_load_records(path, "rules", _RULE_COLUMNS)):
        rule = Rule.from_record(record)
        if rule is None:
            logger.warning("Skipping malformed rule record #%d in %s", i, Path(path).name)
            continue
        rules.append(rule)
    return rules


def load_policy_sections(path: Path) -> list[PolicySection]:
    """Load policy section summaries from a JSON or XLSX file."""
    sections = []
    for i, record in enumerate(_load_records(path, "policy_sections", _SECTION_COLUMNS)):
        section = PolicySection.from_record(record)
        if section is None:
            logger.warning("Skipping malformed policy section #%d in %s", i, Path(path).name)
            continue
        sections.append(section)
    return sections


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class Store(Protocol):
    def fetch_rules(self) -> list[Rule]:
        ...

    def fetch_policy_sections(self) -> list[PolicySection]:
        ...


class FileStore:
    """Rules and policy sections read from files on every fetch.

    Missing primary files raise; a missing fallback rules file just means
    there is no baseline to merge in.
    """

    def __init__(
        self,
        rules_path: Path = RULES_PATH,
        policies_path: Optional[Path] = POLICIES_PATH,
        fallback_rules_path: Optional[Path] = FALLBACK_RULES_PATH,
    ):
        self.rules_path = Path(rules_path)
        self.policies_path = Path(policies_path) if policies_path else None
        self.fallback_rules_path = Path(fallback_rules_path) if fallback_rules_path else None

    def fetch_rules(self) -> list[Rule]:
        rules = load_rules(self.rules_path)
        fallback: list[Rule] = []
        if self.fallback_rules_path is not None:
            if self.fallback_rules_path.exists():
                fallback = load_rules(self.fallback_rules_path)
            else:
                logger.info("No fallback rules at %s", self.fallback_rules_path)
        return merge_rules(rules, fallback)

    def fetch_policy_sections(self) -> list[PolicySection]:
        if self.policies_path is None:
            return []
        return load_policy_sections(self.policies_path)
