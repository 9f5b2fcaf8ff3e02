"""Tests for prompt building, JSON extraction, scoring and normalization."""

import json

import pytest

from scanara.analysis import (
    COMPONENT_CHECKLIST, build_codebase_text, build_audit_prompt,
    extract_json_object, overall_score, compliance_status,
    normalize_analysis, legacy_categories,
)
from scanara.errors import ParseError


REPORT = {"scores": {"overall_score": 81.5}, "summary": {"top_3_findings": [{"title": "a {b}"}]}}


class TestExtractJsonObject:

    def test_plain_json(self):
        assert extract_json_object(json.dumps(REPORT)) == REPORT

    @pytest.mark.parametrize("wrapper", [
        "Here is the report:\n{}\nLet me know if you need more.",
        "```json\n{}\n```",
        "Summary first.\n\n{}\n\nExecutive summary: two issues were found.",
        "   {}   ",
    ])
    def test_surrounding_text_is_ignored(self, wrapper):
        text = wrapper.replace("{}", json.dumps(REPORT, indent=2))
        assert extract_json_object(text) == REPORT

    def test_braces_inside_strings(self):
        obj = {"description": "uses } and { in text", "escaped": "quote \" then }"}
        assert extract_json_object("prefix " + json.dumps(obj) + " suffix") == obj

    def test_first_object_wins(self):
        text = '{"first": 1} and then {"second": 2}'
        assert extract_json_object(text) == {"first": 1}

    def test_nested_objects(self):
        obj = {"a": {"b": {"c": [1, {"d": 2}]}}}
        assert extract_json_object("x" + json.dumps(obj) + "y") == obj

    @pytest.mark.parametrize("text", [
        "",
        "no json here",
        "[1, 2, 3]",
        '{"unterminated": 1',
    ])
    def test_no_balanced_object(self, text):
        with pytest.raises(ParseError):
            extract_json_object(text)

    def test_invalid_json_in_braces(self):
        with pytest.raises(ParseError):
            extract_json_object("{not: valid, json}")


class TestScoring:

    @pytest.mark.parametrize("score,label", [
        (100, "Compliant"),
        (80.0, "Compliant"),
        (79.9, "Needs Attention"),
        (60.0, "Needs Attention"),
        (59.9, "Non-Compliant"),
        (0, "Non-Compliant"),
    ])
    def test_status_boundaries(self, score, label):
        assert compliance_status(score) == label

    def test_status_is_monotonic(self):
        order = {"Non-Compliant": 0, "Needs Attention": 1, "Compliant": 2}
        ranks = [order[compliance_status(s / 10)] for s in range(0, 1001)]
        assert ranks == sorted(ranks)

    def test_overall_score_missing(self):
        assert overall_score({}) == 0.0
        assert overall_score({"scores": {}}) == 0.0
        assert overall_score({"scores": None}) == 0.0

    def test_overall_score_rounding_and_coercion(self):
        assert overall_score({"scores": {"overall_score": 72.46}}) == 72.5
        assert overall_score({"scores": {"overall_score": "64.2"}}) == 64.2
        assert overall_score({"scores": {"overall_score": "n/a"}}) == 0.0
        assert overall_score({"scores": {"overall_score": True}}) == 0.0

    def test_overall_score_clamped(self):
        assert overall_score({"scores": {"overall_score": 140}}) == 100.0
        assert overall_score({"scores": {"overall_score": -5}}) == 0.0


class TestNormalize:

    def test_empty_report_gets_every_field(self):
        result = normalize_analysis({}, "demo", scan_date="2026-01-01T00:00:00+00:00")
        for key in ("scores", "summary", "metrics"):
            assert result[key] == {}
        assert result["detailed_findings"] == []
        assert result["remediation_plan"] == []
        assert result["actions_required"] == {"manual_verification": []}
        assert set(result["component_analysis"]) == set(COMPONENT_CHECKLIST)
        assert result["metadata"] == {
            "repo": "demo", "scan_date": "2026-01-01T00:00:00+00:00", "scanned_by": "scanara-ai-v1",
        }

    def test_wrong_types_replaced(self):
        result = normalize_analysis({"scores": [], "detailed_findings": {}, "summary": None})
        assert result["scores"] == {}
        assert result["detailed_findings"] == []
        assert result["summary"] == {}

    def test_model_values_kept(self):
        report = {"metadata": {"repo": "from-model"}, "detailed_findings": [{"id": "F-0001"}],
                  "extra_field": 1}
        result = normalize_analysis(report, "app-name")
        assert result["metadata"]["repo"] == "from-model"
        assert result["detailed_findings"] == [{"id": "F-0001"}]
        assert result["extra_field"] == 1

    def test_input_not_mutated(self):
        report = {"metadata": {}}
        normalize_analysis(report, "demo")
        assert report == {"metadata": {}}

    def test_legacy_categories(self):
        cats = legacy_categories({"technical_safeguards_score": 70.5, "physical_safeguards_score": "x"})
        assert cats["technicalSafeguards"] == {"score": 70.5}
        assert cats["physicalSafeguards"] == {"score": 0}
        assert cats["auditCoverage"] == {"score": 0}


class TestPrompt:

    def test_checklist_sizes(self):
        sizes = {k: len(v) for k, v in COMPONENT_CHECKLIST.items()}
        assert sizes == {"administrative_safeguards": 9, "technical_safeguards": 10,
                         "physical_safeguards": 4, "data_handling": 5}

    def test_codebase_text(self):
        text = build_codebase_text([{"path": "a.py", "content": "print(1)"},
                                    {"path": "b.py", "content": None}])
        assert text == "=== File: a.py ===\nprint(1)\n\n\n=== File: b.py ===\n\n"

    def test_prompt_contains_codebase_and_schema(self):
        prompt = build_audit_prompt("=== File: app.py ===\nSECRET = 1\n", "my-repo",
                                    scan_date="2026-01-01T00:00:00+00:00")
        assert "=== File: app.py ===" in prompt
        assert '"repo": "my-repo"' in prompt
        assert '"scan_date": "2026-01-01T00:00:00+00:00"' in prompt
        for checks in COMPONENT_CHECKLIST.values():
            for name, _ in checks:
                assert name in prompt

    def test_codebase_braces_are_not_templated(self):
        prompt = build_audit_prompt("const x = {a: 1};", "repo")
        assert "const x = {a: 1};" in prompt
