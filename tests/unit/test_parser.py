import json

import pytest

from mood_report.core.exceptions import MalformedResponse
from mood_report.core.parser import (
    NoMatch, ResponseParser, match_schema, parse_direct, parse_embedded_object,
    parse_envelope, parse_response, strip_code_fences
)


class TestStripCodeFences:

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestResponseParser:
    """Test suite for recovering the report from model output."""

    # ========================================================================
    # 1. ACCEPTED SHAPES
    # ========================================================================

    def test_bare_json(self, well_formed_reply, report_sections):
        result = parse_response(well_formed_reply)
        assert result.to_dict() == report_sections

    def test_fenced_json(self, well_formed_reply, report_sections):
        result = parse_response(f"```json\n{well_formed_reply}\n```")
        assert result.to_dict() == report_sections

    def test_fenced_inside_envelope_matches_bare(self, well_formed_reply, make_envelope):
        enveloped = make_envelope(f"```json\n{well_formed_reply}\n```")
        assert parse_response(enveloped) == parse_response(well_formed_reply)

    def test_embedded_in_prose(self, well_formed_reply, report_sections):
        raw = f"Here is your report:\n{well_formed_reply}\nHope it helps!"
        assert parse_response(raw).to_dict() == report_sections

    def test_strategy_order_is_configurable(self, well_formed_reply, make_envelope):
        parser = ResponseParser(strategies=(parse_envelope,))
        assert parser.parse(make_envelope(well_formed_reply)).summary.overall_trend == "improving"

        with pytest.raises(MalformedResponse):
            parser.parse(well_formed_reply)

    # ========================================================================
    # 2. REJECTED SHAPES
    # ========================================================================

    def test_missing_risk_assessment(self, report_sections):
        del report_sections["riskAssessment"]

        with pytest.raises(MalformedResponse) as exc_info:
            parse_response(json.dumps(report_sections))

        assert any("riskAssessment" in reason for reason in exc_info.value.reasons)
        assert exc_info.value.code == "MALFORMED_RESPONSE"

    def test_not_json(self):
        with pytest.raises(MalformedResponse) as exc_info:
            parse_response("I cannot help with that.")
        assert exc_info.value.raw_payload == "I cannot help with that."

    def test_section_not_an_object(self, report_sections):
        report_sections["summary"] = "all good"
        with pytest.raises(MalformedResponse):
            parse_response(json.dumps(report_sections))

    def test_empty_payload(self):
        with pytest.raises(MalformedResponse):
            parse_response("")

    def test_envelope_without_candidates(self):
        with pytest.raises(MalformedResponse):
            parse_response(json.dumps({"promptFeedback": {"blockReason": "SAFETY"}}))

    # ========================================================================
    # 3. PERMISSIVE FIELDS
    # ========================================================================

    def test_optional_fields_default(self):
        data = {"summary": {}, "patterns": {}, "recommendations": {}, "riskAssessment": {}}

        result = match_schema(data, "test")

        assert result.summary.average_score is None
        assert result.summary.key_insights == []
        assert result.patterns.triggers.positive == []
        assert result.recommendations.short_term == []

    def test_non_numeric_score_becomes_none(self, report_sections):
        report_sections["summary"]["averageScore"] = "high"
        assert parse_response(json.dumps(report_sections)).summary.average_score is None

    def test_out_of_range_score_kept(self, report_sections):
        report_sections["summary"]["averageScore"] = 42
        assert parse_response(json.dumps(report_sections)).summary.average_score == 42.0

    def test_number_beyond_float_range_becomes_none(self, report_sections):
        report_sections["patterns"]["triggers"]["positive"][0]["frequency"] = 10 ** 400

        result = parse_response(json.dumps(report_sections))

        assert result.patterns.triggers.positive[0].frequency is None
        assert result.patterns.triggers.positive[0].factor == "exercise"

    def test_huge_integer_literal_never_escapes(self, well_formed_reply):
        raw = well_formed_reply[:-1] + ', "extra": ' + "9" * 5000 + "}"

        # Newer interpreters refuse very long integer literals while decoding
        try:
            result = parse_response(raw)
        except MalformedResponse as e:
            assert e.reasons
        else:
            assert result.summary.overall_trend == "improving"


class TestStrategies:
    """Each strategy reports a NoMatch instead of raising."""

    def test_direct_no_match_on_envelope(self, well_formed_reply, make_envelope):
        outcome = parse_direct(make_envelope(well_formed_reply))
        assert isinstance(outcome, NoMatch)
        assert outcome.strategy == "direct"

    def test_envelope_no_match_on_bare(self, well_formed_reply):
        assert isinstance(parse_envelope(well_formed_reply), NoMatch)

    def test_embedded_requires_surrounding_text(self, well_formed_reply):
        assert isinstance(parse_embedded_object(well_formed_reply), NoMatch)
