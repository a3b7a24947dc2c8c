"""
Tests for the ScreeningProcessor entry point.
"""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from pss_processor import ScreeningProcessor, get_processor
from pss_processor.utils.error_handler import EngineStateError, ErrorCode


class TestProcess:
    def test_valid_bundle(self, processor, bundle_template, metadata_json):
        result = processor.process(json.dumps(bundle_template), metadata_json)

        assert result.validation.is_valid
        assert result.flatten.event.event_id == "EVT-001"
        assert result.flatten.participant.name == "Tan Ah Kow"
        assert "[INFO] Processing started" in result.logs
        assert any("STEP 4" in line for line in result.logs)

    def test_invalid_metadata(self, processor, bundle_template):
        result = processor.process(json.dumps(bundle_template), "{")

        assert [e.code for e in result.validation.errors] == ["METADATA_PARSE_ERROR"]
        assert result.flatten is None
        assert any(line.startswith("[ERROR]") for line in result.logs)

    def test_invalid_document(self, processor, metadata_json):
        result = processor.process("not json", metadata_json)

        assert [e.code for e in result.validation.errors] == ["INVALID_JSON"]
        assert result.flatten is None

    def test_extraction_runs_when_validation_fails(self, processor, bundle, metadata_json):
        bundle["entry"][1]["resource"]["gender"] = "unknown"

        result = processor.process(json.dumps(bundle), metadata_json)

        assert not result.validation.is_valid
        assert result.flatten.participant.gender == "unknown"

    def test_non_bundle_still_extracts(self, processor, metadata_json):
        result = processor.process(json.dumps({"resourceType": "Patient"}), metadata_json)

        assert [e.code for e in result.validation.errors] == ["INVALID_RESOURCE_TYPE"]
        assert result.flatten is not None
        assert result.flatten.event is None

    def test_options_as_camel_case_dict(self, processor, bundle, metadata_json):
        coding = bundle["entry"][5]["resource"]["component"][0]["code"]["coding"][0]
        coding["display"] = "Hearing aid?"

        result = processor.process(
            json.dumps(bundle),
            metadata_json,
            {"strictDisplayMatch": False, "logLevel": "ERROR"}
        )

        assert result.validation.is_valid
        assert result.logs == []

    def test_verbose_trail(self, processor, bundle_template, metadata_json):
        result = processor.process(json.dumps(bundle_template), metadata_json, {"logLevel": "verbose"})

        assert any(line.startswith("[VERBOSE] Rule passed") for line in result.logs)
        assert any(line.startswith("[DEBUG]") for line in result.logs)

    def test_camel_case_output(self, processor, bundle_template, metadata_json):
        data = processor.process(json.dumps(bundle_template), metadata_json).to_json_dict()

        assert data["validation"]["isValid"] is True
        assert data["flatten"]["event"]["providerName"] == "Active Ageing Provider"
        assert isinstance(data["logs"], list)


class TestValidateAndExtract:
    def test_validate_requires_metadata(self, processor, bundle):
        with pytest.raises(EngineStateError) as exc_info:
            processor.validate(bundle)
        assert exc_info.value.code == ErrorCode.INVALID_ENGINE_STATE

    def test_load_metadata_result(self, processor, metadata_json):
        failed = processor.load_metadata("[]")
        assert not failed
        assert failed.error.code == ErrorCode.METADATA_SCHEMA_ERROR

        loaded = processor.load_metadata(metadata_json)
        assert loaded
        assert loaded.unwrap().version == "1.0"

    def test_validate_after_load(self, processor, bundle, metadata_json):
        processor.load_metadata(metadata_json)
        bundle["entry"][0]["resource"]["status"] = "planned"

        result = processor.validate(json.dumps(bundle))

        assert [e.code for e in result.errors] == ["FIXED_VALUE_MISMATCH"]

    def test_process_keeps_loaded_metadata(self, processor, bundle, metadata_dict, metadata_json):
        processor.load_metadata(metadata_json)
        metadata_dict["ruleSets"] = [{
            "scope": "Participant",
            "resourceType": "Patient",
            "rules": [{"ruleType": "FixedValue", "path": "gender", "expectedValue": "female"}],
        }]

        processed = processor.process(json.dumps(bundle), json.dumps(metadata_dict))
        validated = processor.validate(bundle)

        assert [e.code for e in processed.validation.errors] == ["FIXED_VALUE_MISMATCH"]
        assert validated.is_valid

    def test_concurrent_validate_shares_loaded_metadata(self, processor, bundle_template, metadata_json):
        processor.load_metadata(metadata_json)
        document = json.dumps(bundle_template)

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(lambda _: processor.validate(document), range(120)))

        assert all(result.is_valid for result in results)
        assert all(result.summary.rules_evaluated == 20 for result in results)

    def test_concurrent_validate_and_process(self, processor, bundle_template, metadata_json):
        processor.load_metadata(metadata_json)
        document = json.dumps(bundle_template)

        def run(i):
            if i % 2:
                return processor.process(document, metadata_json).validation
            return processor.validate(document)

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(run, range(60)))

        assert all(result.is_valid for result in results)

    def test_extract(self, processor, bundle):
        flatten = processor.extract(json.dumps(bundle))
        assert flatten.get_oral("SQ-OS-00000001").values == ["No"]

    def test_report(self, processor, bundle, metadata_json):
        processor.load_metadata(metadata_json)
        bundle["entry"][1]["resource"]["gender"] = "unknown"

        report = processor.generate_validation_report(processor.validate(bundle), include_context=False)

        assert "[INVALID_CODE]" in report
        assert "PARTICIPANT" in report


def test_get_processor_singleton():
    first = get_processor()

    assert isinstance(first, ScreeningProcessor)
    assert get_processor() is first
