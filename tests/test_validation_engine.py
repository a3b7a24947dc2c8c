"""
Tests for the metadata-driven validation engine.

Each test starts from the valid sample bundle, breaks one thing and
checks the structured error that comes back.
"""

import copy
import json

import pytest

from pss_processor.config.constants import EngineState, LogLevel
from pss_processor.config.settings import ProcessorSettings, ValidationOptions
from pss_processor.utils.error_handler import EngineStateError
from pss_processor.utils.logger import create_call_logger
from pss_processor.validation.validation_engine import ValidationEngine


PURE_TONE_DISPLAY = "Pure Tone Screening at 25dBHL (Left)"


def _component(code, display, answer=None):
    component = {
        "code": {"coding": [{
            "system": "https://fhir.synapxe.sg/CodeSystem/screening-questions",
            "code": code,
            "display": display,
        }]}
    }
    if answer is not None:
        component["valueString"] = answer
    return component


def _codes(result):
    return [e.code for e in result.errors]


# ============================================================================
# LIFECYCLE / DOCUMENT LEVEL
# ============================================================================

class TestLifecycle:
    def test_sample_bundle_is_valid(self, engine, bundle):
        result = engine.validate(bundle)

        assert result.is_valid, [e.message for e in result.errors]
        assert result.summary.scopes_evaluated == 6
        assert result.summary.rules_evaluated == 20

    def test_validate_before_metadata(self, settings, bundle):
        engine = ValidationEngine(settings=settings)

        assert engine.state == EngineState.IDLE
        with pytest.raises(EngineStateError):
            engine.validate(bundle)

    def test_completed_engine_validates_again(self, engine, bundle):
        engine.validate(bundle)
        assert engine.state == EngineState.COMPLETED

        assert engine.validate(bundle).is_valid
        assert engine.state == EngineState.COMPLETED

    def test_reload_metadata_after_completion(self, engine, bundle, metadata_json):
        engine.validate(bundle)
        engine.load_metadata(metadata_json)

        assert engine.state == EngineState.METADATA_LOADED

    def test_accepts_json_text(self, engine, bundle_template):
        assert engine.validate(json.dumps(bundle_template)).is_valid

    def test_deterministic(self, engine, bundle):
        bundle["entry"][1]["resource"]["gender"] = "x"
        bundle["entry"][0]["resource"]["status"] = "planned"

        first = engine.validate(bundle)
        second = engine.validate(bundle)

        assert first.model_dump() == second.model_dump()


class TestDocumentErrors:
    def test_invalid_json(self, engine):
        result = engine.validate("{not json")

        assert _codes(result) == ["INVALID_JSON"]
        assert not result.is_valid

    def test_not_a_bundle(self, engine):
        result = engine.validate({"resourceType": "Patient"})
        assert _codes(result) == ["INVALID_RESOURCE_TYPE"]

    def test_json_array(self, engine):
        assert _codes(engine.validate("[]")) == ["INVALID_RESOURCE_TYPE"]

    @pytest.mark.parametrize("document", [
        {"resourceType": "Bundle", "entry": []},
        {"resourceType": "Bundle"},
    ])
    def test_empty_bundle(self, engine, document):
        assert _codes(engine.validate(document)) == ["EMPTY_BUNDLE"]


# ============================================================================
# SCOPES
# ============================================================================

class TestScopes:
    def test_missing_scope_resource(self, engine, bundle):
        bundle["entry"] = [
            e for e in bundle["entry"]
            if e["resource"].get("code", {}).get("coding", [{}])[0].get("code") != "HS"
        ]

        result = engine.validate(bundle)

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.code == "MANDATORY_MISSING"
        assert error.scope == "HS"
        assert error.field_path == "component"
        assert error.resource_pointer.resource_type == "Observation"
        assert error.resource_pointer.entry_index is None
        assert error.path_analysis.mismatch_depth == 0
        assert error.path_analysis.parent_path_exists is False

    def test_missing_scope_without_required_rule(self, engine, bundle):
        bundle["entry"] = [
            e for e in bundle["entry"]
            if e["resource"].get("code", {}).get("coding", [{}])[0].get("code") != "VS"
        ]

        assert engine.validate(bundle).is_valid

    def test_every_matching_observation_is_checked(self, engine, bundle, find_resource):
        extra = copy.deepcopy(find_resource(bundle, "Observation", "VS"))
        extra["id"] = "99999999-9999-9999-9999-999999999999"
        extra["component"][0]["valueString"] = "6/60"
        bundle["entry"].append({"fullUrl": "urn:uuid:" + extra["id"], "resource": extra})

        result = engine.validate(bundle)

        assert _codes(result) == ["INVALID_ANSWER_VALUE"]
        assert result.errors[0].resource_pointer.entry_index == len(bundle["entry"]) - 1

    def test_match_condition_scope(self, engine, bundle, find_resource):
        observation = find_resource(bundle, "Observation", "OS")
        observation["component"][0]["valueString"] = "Sometimes"

        result = engine.validate(bundle)

        assert _codes(result) == ["INVALID_ANSWER_VALUE"]
        assert result.errors[0].scope == "OS"
        assert result.errors[0].context.screening_type == "OS"


# ============================================================================
# RULE KINDS
# ============================================================================

class TestRequired:
    def test_missing_field(self, engine, bundle, find_resource):
        find_resource(bundle, "Patient")["name"][0].pop("text")

        result = engine.validate(bundle)

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.code == "MANDATORY_MISSING"
        assert error.scope == "Participant"
        assert error.rule_type == "Required"
        assert error.field_path == "name[0].text"
        assert error.rule.error_code == "PARTICIPANT_NAME_MISSING"
        assert error.resource_pointer.entry_index == 1
        assert error.resource_pointer.resource_id == "22222222-2222-2222-2222-222222222222"
        assert error.path_analysis.path_mismatch_segment == "text"
        assert error.path_analysis.mismatch_depth == 1
        assert error.path_analysis.parent_path_exists is True

    def test_blank_string_counts_as_missing(self, engine, bundle, find_resource):
        find_resource(bundle, "Patient")["name"][0]["text"] = "   "
        assert _codes(engine.validate(bundle)) == ["MANDATORY_MISSING"]


class TestFixedValues:
    def test_fixed_value_mismatch(self, engine, bundle, find_resource):
        find_resource(bundle, "Encounter")["status"] = "planned"

        result = engine.validate(bundle)

        assert _codes(result) == ["FIXED_VALUE_MISMATCH"]
        assert result.errors[0].rule.expected_value == "completed"

    def test_fixed_coding_mismatch(self, engine, bundle, find_resource):
        observation = find_resource(bundle, "Observation", "HS")
        observation["code"]["coding"][0]["system"] = "https://example.org/other"

        result = engine.validate(bundle)

        assert _codes(result) == ["FIXED_CODING_MISMATCH"]
        assert result.errors[0].scope == "HS"

    def test_allowed_values(self, engine, bundle, find_resource):
        find_resource(bundle, "Patient")["gender"] = "unknown"

        result = engine.validate(bundle)

        assert _codes(result) == ["INVALID_CODE"]
        assert result.errors[0].context.allowed_answers == ["male", "female"]


class TestCodesMaster:
    def test_answer_not_allowed(self, engine, bundle, find_resource):
        find_resource(bundle, "Observation", "HS")["component"][0]["valueString"] = "Maybe"

        result = engine.validate(bundle)

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.code == "INVALID_ANSWER_VALUE"
        assert error.field_path == "component[0].valueString"
        assert error.context.question_code == "SQ-L2H9-00000001"
        assert error.context.screening_type == "HS"
        assert error.context.resource_type == "Observation"
        assert len(error.context.allowed_answers) == 2

    def test_missing_answer(self, engine, bundle, find_resource):
        find_resource(bundle, "Observation", "HS")["component"][0].pop("valueString")
        assert _codes(engine.validate(bundle)) == ["INVALID_ANSWER_VALUE"]

    def test_unknown_question(self, engine, bundle, find_resource):
        component = find_resource(bundle, "Observation", "HS")["component"][0]
        component["code"]["coding"][0]["code"] = "SQ-XXXX-99999999"

        result = engine.validate(bundle)

        assert _codes(result) == ["UNKNOWN_QUESTION_CODE"]
        assert result.errors[0].field_path == "component[0].code.coding[0].code"

    def test_question_from_other_screening(self, engine, bundle, find_resource):
        find_resource(bundle, "Observation", "HS")["component"][0] = _component(
            "SQ-OS-00000001", "Does the participant have any dental pain?", "No"
        )

        assert _codes(engine.validate(bundle)) == ["INVALID_SCREENING_TYPE_FOR_QUESTION"]

    def test_display_mismatch_strict(self, engine, bundle, find_resource):
        component = find_resource(bundle, "Observation", "HS")["component"][0]
        component["code"]["coding"][0]["display"] = "Hearing aid?"

        assert _codes(engine.validate(bundle)) == ["INVALID_QUESTION_DISPLAY"]

    def test_display_mismatch_lenient(self, engine, bundle, find_resource):
        component = find_resource(bundle, "Observation", "HS")["component"][0]
        component["code"]["coding"][0]["display"] = "Hearing aid?"
        call_logger = create_call_logger(LogLevel.WARN)

        result = engine.validate(bundle, ValidationOptions(strict_display_match=False), call_logger)

        assert result.is_valid
        assert any("Question display mismatch ignored" in line for line in call_logger.get_logs())

    def test_display_compared_normalized(self, engine, bundle, find_resource):
        component = find_resource(bundle, "Observation", "HS")["component"][0]
        component["code"]["coding"][0]["display"] = "  is the participant currently WEARING   hearing aid(s)? "

        assert engine.validate(bundle).is_valid

    @pytest.mark.parametrize("display", [None, ""])
    def test_missing_display_is_not_checked(self, engine, bundle, find_resource, display):
        coding = find_resource(bundle, "Observation", "HS")["component"][0]["code"]["coding"][0]
        if display is None:
            coding.pop("display")
        else:
            coding["display"] = display

        result = engine.validate(bundle)

        assert result.is_valid, _codes(result)

    def test_empty_allowed_answers_accepts_any_answer(self, settings, bundle, metadata_dict, find_resource):
        for question in metadata_dict["codesMaster"]["questions"]:
            if question["questionCode"] == "SQ-OS-00000001":
                question["allowedAnswers"] = []
        engine = ValidationEngine(settings=settings)
        engine.load_metadata(json.dumps(metadata_dict))
        find_resource(bundle, "Observation", "OS")["component"][0]["valueString"] = "Occasional sensitivity"

        assert engine.validate(bundle).is_valid

    def test_empty_allowed_answers_still_needs_an_answer(self, settings, bundle, metadata_dict, find_resource):
        for question in metadata_dict["codesMaster"]["questions"]:
            if question["questionCode"] == "SQ-OS-00000001":
                question["allowedAnswers"] = []
        engine = ValidationEngine(settings=settings)
        engine.load_metadata(json.dumps(metadata_dict))
        find_resource(bundle, "Observation", "OS")["component"][0]["valueString"] = "  "

        assert _codes(engine.validate(bundle)) == ["INVALID_ANSWER_VALUE"]

    def test_multi_value_answer(self, engine, bundle, find_resource):
        observation = find_resource(bundle, "Observation", "HS")
        observation["component"].append(
            _component("SQ-F7B7-00000007", PURE_TONE_DISPLAY, "500Hz – R|1000Hz – NR")
        )

        assert engine.validate(bundle).is_valid

    def test_multi_value_with_one_bad_part(self, engine, bundle, find_resource):
        observation = find_resource(bundle, "Observation", "HS")
        observation["component"].append(
            _component("SQ-F7B7-00000007", PURE_TONE_DISPLAY, "500Hz – R|2000Hz – R")
        )

        result = engine.validate(bundle)

        assert _codes(result) == ["INVALID_ANSWER_VALUE"]
        assert result.errors[0].field_path == "component[1].valueString"
        assert "2000Hz – R" in result.errors[0].message

    def test_single_value_question_is_not_split(self, engine, bundle, find_resource):
        component = find_resource(bundle, "Observation", "HS")["component"][0]
        component["valueString"] = "Yes (Proceed to next question)|No (To continue with hearing screening)"

        assert _codes(engine.validate(bundle)) == ["INVALID_ANSWER_VALUE"]


class TestTypeAndRegex:
    def test_type_mismatch(self, engine, bundle, find_resource):
        find_resource(bundle, "Patient")["birthDate"] = "01/05/1950"

        result = engine.validate(bundle)

        assert _codes(result) == ["TYPE_MISMATCH"]
        assert result.errors[0].rule.expected_type == "date"

    def test_regex_default_code(self, engine, bundle, find_resource):
        find_resource(bundle, "Patient")["identifier"][0]["value"] = "X123"

        result = engine.validate(bundle)

        assert _codes(result) == ["REGEX_MISMATCH"]
        assert result.errors[0].field_path == "identifier[0].value"

    def test_regex_author_code(self, engine, bundle, find_resource):
        find_resource(bundle, "Encounter")["identifier"][0]["value"] = "EV-1"
        assert _codes(engine.validate(bundle)) == ["INVALID_EVENT_ID"]

    def test_regex_configured_default(self, bundle, metadata_json, find_resource):
        engine = ValidationEngine(settings=ProcessorSettings(regex_error_code="POSTAL_CODE_FORMAT"))
        engine.load_metadata(metadata_json)
        find_resource(bundle, "Location")["address"]["postalCode"] = "12345"

        assert _codes(engine.validate(bundle)) == ["POSTAL_CODE_FORMAT"]

    def test_regex_skips_missing_value(self, engine, bundle, find_resource):
        find_resource(bundle, "Encounter").pop("identifier")
        assert engine.validate(bundle).is_valid


class TestReference:
    @pytest.mark.parametrize("reference, expected", [
        ("urn:uuid:99999999-9999-9999-9999-999999999999", ["REFERENCE_NOT_FOUND"]),
        ("Location/123", ["INVALID_REFERENCE_TYPE"]),
        ("urn:uuid:33333333-3333-3333-3333-333333333333", ["INVALID_REFERENCE_TYPE"]),
        ("not a reference", ["INVALID_REFERENCE_FORMAT"]),
        ("Patient/abc", []),
        ("URN:UUID:22222222-2222-2222-2222-222222222222", []),
    ])
    def test_subject_reference(self, engine, bundle, find_resource, reference, expected):
        find_resource(bundle, "Encounter")["subject"]["reference"] = reference

        result = engine.validate(bundle)

        assert _codes(result) == expected
        if expected:
            assert result.errors[0].field_path == "subject.reference"


class TestCodeSystem:
    def test_unknown_code(self, engine, bundle, find_resource):
        extension = find_resource(bundle, "Patient")["extension"][1]
        extension["valueCodeableConcept"]["coding"][0]["code"] = "ZZ"

        result = engine.validate(bundle)

        assert _codes(result) == ["INVALID_CODE"]
        error = result.errors[0]
        assert error.field_path == "extension[1].valueCodeableConcept.coding[0].code"
        assert [c.code for c in error.context.code_system_concepts] == ["CN", "MY", "IN", "XX"]


class TestFullUrlIdMatch:
    def test_mismatch(self, engine, bundle, find_resource):
        find_resource(bundle, "Encounter")["id"] = "abc"

        result = engine.validate(bundle)

        assert _codes(result) == ["ID_FULLURL_MISMATCH"]
        assert result.errors[0].field_path == "id"

    def test_case_insensitive(self, engine, bundle, find_resource):
        encounter = find_resource(bundle, "Encounter")
        encounter["id"] = encounter["id"].upper()

        assert engine.validate(bundle).is_valid


# ============================================================================
# RESULT SHAPE / REPORT
# ============================================================================

class TestResult:
    def test_errors_accumulate_across_scopes(self, engine, bundle, find_resource):
        find_resource(bundle, "Encounter")["status"] = "planned"
        find_resource(bundle, "Patient")["gender"] = "unknown"
        find_resource(bundle, "Observation", "VS")["component"][0]["valueString"] = "blurry"

        result = engine.validate(bundle)

        assert sorted(_codes(result)) == ["FIXED_VALUE_MISMATCH", "INVALID_ANSWER_VALUE", "INVALID_CODE"]
        assert result.summary.errors_by_scope == {"Event": 1, "Participant": 1, "VS": 1}
        assert [e.code for e in result.errors_for_scope("VS")] == ["INVALID_ANSWER_VALUE"]

    def test_camel_case_serialization(self, engine, bundle, find_resource):
        find_resource(bundle, "Patient")["gender"] = "unknown"

        data = engine.validate(bundle).to_json_dict()

        assert data["isValid"] is False
        assert data["errors"][0]["fieldPath"] == "gender"
        assert data["errors"][0]["resourcePointer"]["resourceType"] == "Patient"
        assert data["summary"]["totalErrors"] == 1

    def test_report(self, engine, bundle, find_resource):
        find_resource(bundle, "Observation", "HS")["component"][0]["valueString"] = "Maybe"

        report = engine.generate_validation_report(engine.validate(bundle))

        assert "SCREENING BUNDLE VALIDATION REPORT" in report
        assert "Status: INVALID" in report
        assert "[INVALID_ANSWER_VALUE]" in report
        assert "Yes (Proceed to next question)" in report

    def test_report_for_valid_bundle(self, engine, bundle):
        report = engine.generate_validation_report(engine.validate(bundle), group_by_scope=False)

        assert "Status: VALID" in report
        assert "ERROR DETAILS" not in report
