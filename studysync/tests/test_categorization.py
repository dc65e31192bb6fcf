"""Categorization engine tests"""

import uuid
from types import SimpleNamespace

from studysync.schemas.normalized import ItemSource, MatchType, NormalizedItem
from studysync.services.categorization import (
    STEP_COURSE_CODE,
    STEP_HEURISTIC,
    STEP_RULE,
    apply_rules,
    categorize_items,
    enrich_item,
    infer_course_from_text,
    resolve_from_title_codes,
    rule_matches,
)


def rule(match_type, match_value, course_name):
    return SimpleNamespace(match_type=match_type, match_value=match_value, course_name=course_name)


def item(title, source_id="x_1", course_name=None, context_code=None):
    return NormalizedItem(
        title=title,
        source=ItemSource.CANVAS,
        source_id=source_id,
        course_name=course_name,
        context_code=context_code,
    )


class TestRuleMatching:
    """Test individual rule predicates"""

    def test_title_contains_is_case_insensitive(self):
        assert rule_matches(rule(MatchType.TITLE_CONTAINS, "lab", "Chem"), "Week 3 LAB report")

    def test_title_prefix(self):
        r = rule(MatchType.TITLE_PREFIX, "hw", "Math")
        assert rule_matches(r, "HW 4: Integrals")
        assert not rule_matches(r, "Read before HW")

    def test_source_id_prefix(self):
        r = rule(MatchType.SOURCE_ID_PREFIX, "12345_", "History")
        assert rule_matches(r, "Essay", source_id="12345_678")
        assert not rule_matches(r, "Essay", source_id="99_678")
        assert not rule_matches(r, "Essay")

    def test_context_code_needs_context(self):
        r = rule("context_code", "course_42", "Biology")
        assert not rule_matches(r, "Lab 1")
        assert rule_matches(r, "Lab 1", context_code="course_42")

    def test_unknown_match_type_never_matches(self):
        assert not rule_matches(rule("regex", ".*", "Any"), "anything")


class TestApplyRules:
    """Test first-match-wins rule evaluation"""

    def test_first_matching_rule_wins(self):
        rules = [
            rule(MatchType.TITLE_CONTAINS, "essay", "English"),
            rule(MatchType.TITLE_CONTAINS, "essay", "History"),
        ]
        assert apply_rules(item("Final essay"), rules) == "English"

    def test_context_code_rules_are_ignored(self):
        rules = [rule(MatchType.CONTEXT_CODE, "course_1", "Biology")]
        assert apply_rules(item("Lab", context_code="course_1"), rules) is None

    def test_no_match_returns_none(self):
        assert apply_rules(item("Anything"), []) is None


class TestTitleCodes:
    """Test provider course-code resolution"""

    codes = {"bio101": "Biology 101", "CHEM": "Chemistry"}

    def test_bracketed_code_is_resolved_and_stripped(self):
        match = resolve_from_title_codes(item("Lab 3 [BIO101] writeup"), self.codes)
        assert match.course_name == "Biology 101"
        assert match.title == "Lab 3 writeup"

    def test_bracket_wins_over_paren(self):
        match = resolve_from_title_codes(item("(chem) Lab [bio101]"), self.codes)
        assert match.course_name == "Biology 101"
        assert match.title == "(chem) Lab"

    def test_parenthesized_code(self):
        match = resolve_from_title_codes(item("Quiz 2 (CHEM)"), self.codes)
        assert match.course_name == "Chemistry"
        assert match.title == "Quiz 2"

    def test_substring_fallback_keeps_title(self):
        match = resolve_from_title_codes(item("Bio101 midterm review"), self.codes)
        assert match.course_name == "Biology 101"
        assert match.title == "Bio101 midterm review"

    def test_short_codes_need_brackets(self):
        assert resolve_from_title_codes(item("Mathematics"), {"mat": "Math"}) is None

    def test_empty_map(self):
        assert resolve_from_title_codes(item("Lab [BIO101]"), {}) is None


class TestHeuristic:
    """Test free-text course code inference"""

    def test_code_with_space(self):
        assert infer_course_from_text("Read chapter 4 for CS 201") == "CS 201"

    def test_code_without_space(self):
        assert infer_course_from_text("MATH101 problem set") == "MATH 101"

    def test_lettered_course_number(self):
        assert infer_course_from_text("ENG 102A essay") == "ENG 102A"

    def test_lowercase_is_not_a_code(self):
        assert infer_course_from_text("cs 201 notes") is None

    def test_none(self):
        assert infer_course_from_text(None) is None
        assert infer_course_from_text("Weekly reflection") is None


class TestCategorizeItems:
    """Test non-destructive suggestions"""

    def test_suggestions_skip_labelled_items(self):
        labelled = SimpleNamespace(id=uuid.uuid4(), title="CS 201 lab", source_id=None, course_name="CS")
        by_rule = SimpleNamespace(id=uuid.uuid4(), title="Reading log", source_id=None, course_name=None)
        by_text = SimpleNamespace(id=uuid.uuid4(), title="PHYS 110 quiz", source_id=None, course_name=None)
        unknown = SimpleNamespace(id=uuid.uuid4(), title="Misc", source_id=None, course_name=None)

        suggestions = categorize_items(
            [labelled, by_rule, by_text, unknown],
            [rule(MatchType.TITLE_PREFIX, "reading", "English")],
        )

        assert suggestions == {by_rule.id: "English", by_text.id: "PHYS 110"}
        assert labelled.course_name == "CS"


class TestEnrichItem:
    """Test the sync-time resolution order"""

    def test_existing_course_is_kept(self):
        original = item("Lab [BIO101]", course_name="Given")
        enriched, step = enrich_item(original, [], {"bio101": "Biology"})
        assert enriched.course_name == "Given"
        assert step is None

    def test_course_codes_before_rules(self):
        rules = [rule(MatchType.TITLE_CONTAINS, "lab", "Rule course")]
        enriched, step = enrich_item(item("Lab [BIO101]"), rules, {"bio101": "Biology"})
        assert enriched.course_name == "Biology"
        assert enriched.title == "Lab"
        assert step == STEP_COURSE_CODE

    def test_context_code_rule(self):
        rules = [rule(MatchType.CONTEXT_CODE, "course_7", "Algebra II")]
        enriched, step = enrich_item(item("Worksheet", context_code="course_7"), rules)
        assert enriched.course_name == "Algebra II"
        assert step == STEP_RULE

    def test_heuristic_last(self):
        enriched, step = enrich_item(item("HIST 210 essay"), [])
        assert enriched.course_name == "HIST 210"
        assert step == STEP_HEURISTIC

    def test_input_is_not_mutated(self):
        original = item("HIST 210 essay")
        enrich_item(original, [])
        assert original.course_name is None
