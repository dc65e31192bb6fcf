"""Course categorization: explicit rules, course-code lookup and text heuristics.

Everything here is a pure function over its arguments. Rules are evaluated in
the order the caller passes them (the store hands them out newest first) and
the first match wins.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from studysync.schemas.normalized import MatchType, NormalizedItem

# "CS 201", "MATH101", "BIO 101", "ENG 102A"
_COURSE_CODE_RE = re.compile(r"\b([A-Z]{2,5})\s?(\d{3}[A-Z]?)\b")
# "[BIO 101]", "[CS201]"
_BRACKETED_COURSE_CODE_RE = re.compile(r"\[([A-Z]{2,5}\s?\d{3}[A-Z]?)\]")

_TITLE_BRACKET_RE = re.compile(r"\[([^\[\]]+)\]")
_TITLE_PAREN_RE = re.compile(r"\(([^()]+)\)")

_MIN_CONTAINED_CODE_LENGTH = 4

# Names of the enrichment steps, recorded in sync metadata
STEP_COURSE_CODE = "course_code"
STEP_RULE = "rule"
STEP_HEURISTIC = "heuristic"


class TitleCodeMatch(NamedTuple):
    course_name: str
    title: str


def _match_type(rule: Any) -> str:
    value = rule.match_type
    return value.value if isinstance(value, MatchType) else str(value)


def rule_matches(
    rule: Any,
    title: str,
    source_id: Optional[str] = None,
    context_code: Optional[str] = None,
) -> bool:
    """Test one rule against an item's title / external id.

    Context-code rules only match when the caller supplies the provider context
    code of the item, which only the sync orchestrator knows.
    """
    match_type = _match_type(rule)
    value = rule.match_value or ""

    if match_type == MatchType.TITLE_CONTAINS.value:
        return value.lower() in (title or "").lower()
    if match_type == MatchType.TITLE_PREFIX.value:
        return (title or "").lower().startswith(value.lower())
    if match_type == MatchType.SOURCE_ID_PREFIX.value:
        return bool(source_id) and source_id.startswith(value)
    if match_type == MatchType.CONTEXT_CODE.value:
        return bool(context_code) and context_code == value
    return False


def apply_rules(item: Any, rules: Iterable[Any]) -> Optional[str]:
    """Return the course of the first rule matching ``item``, or None."""
    for rule in rules:
        if rule_matches(rule, item.title, getattr(item, "source_id", None)):
            return rule.course_name
    return None


def _strip_fragment(title: str, fragment: str) -> str:
    cleaned = title.replace(fragment, " ", 1)
    return " ".join(cleaned.split())


def resolve_from_title_codes(item: Any, course_codes: Mapping[str, str]) -> Optional[TitleCodeMatch]:
    """Resolve a course from a provider course code embedded in the title.

    ``[CODE]`` wins over ``(CODE)``; the matched fragment is removed from the
    title. Without a bracketed hit, codes of 4+ characters are looked for as
    plain substrings and the title is left untouched.
    """
    if not course_codes or not item.title:
        return None

    lookup = {code.strip().lower(): name for code, name in course_codes.items() if code and name}
    title = item.title

    for pattern in (_TITLE_BRACKET_RE, _TITLE_PAREN_RE):
        for match in pattern.finditer(title):
            course_name = lookup.get(match.group(1).strip().lower())
            if course_name:
                return TitleCodeMatch(course_name, _strip_fragment(title, match.group(0)))

    lowered = title.lower()
    for code, course_name in lookup.items():
        if len(code) >= _MIN_CONTAINED_CODE_LENGTH and code in lowered:
            return TitleCodeMatch(course_name, title)
    return None


def infer_course_from_text(text: Optional[str]) -> Optional[str]:
    """Conservative guess at a course code such as ``CS 201`` in free text."""
    if not text:
        return None

    match = _COURSE_CODE_RE.search(text)
    if match:
        return f"{match.group(1)} {match.group(2)}"

    bracket = _BRACKETED_COURSE_CODE_RE.search(text)
    if bracket:
        return bracket.group(1)

    return None


def categorize_items(items: Iterable[Any], rules: List[Any]) -> Dict[Any, str]:
    """Suggest courses for unlabeled stored items (rules, then heuristics).

    Returns ``{item.id: suggested course}``; nothing is written.
    """
    suggestions: Dict[Any, str] = {}
    for item in items:
        if item.course_name:
            continue

        suggestion = apply_rules(item, rules) or infer_course_from_text(item.title)
        if suggestion:
            suggestions[item.id] = suggestion
    return suggestions


def enrich_item(
    item: NormalizedItem,
    rules: List[Any],
    course_codes: Optional[Mapping[str, str]] = None,
) -> Tuple[NormalizedItem, Optional[str]]:
    """Fill in a missing course during sync.

    Order is strict: provider course codes, then rules (context-code rules
    included), then the text heuristic. Returns the possibly updated copy and
    the name of the step that assigned the course.
    """
    if item.course_name:
        return item, None

    code_match = resolve_from_title_codes(item, course_codes or {})
    if code_match:
        return item.model_copy(update={"course_name": code_match.course_name, "title": code_match.title}), STEP_COURSE_CODE

    for rule in rules:
        if rule_matches(rule, item.title, item.source_id, item.context_code):
            return item.model_copy(update={"course_name": rule.course_name}), STEP_RULE

    inferred = infer_course_from_text(item.title)
    if inferred:
        return item.model_copy(update={"course_name": inferred}), STEP_HEURISTIC

    return item, None
