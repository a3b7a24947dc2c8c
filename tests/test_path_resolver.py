"""
Tests for the CPS path parser and resolver.
"""

import copy

import pytest

from pss_processor.path.parser import (
    IndexFilter,
    KeyValueFilter,
    PathSegment,
    WildcardFilter,
    parse_path,
    split_top_level,
    strip_resource_prefix,
)
from pss_processor.path.resolver import (
    all_values_as_strings,
    analyze_path,
    discriminator_code,
    first_value_as_string,
    has_typed_entry,
    path_exists,
    resolve,
    resolve_filters_to_indices,
)


EXTENSIONS = {
    "extension": [
        {"url": "A", "v": 1},
        {"url": "B", "v": 2},
    ]
}


class TestParser:
    def test_plain_segments(self):
        assert parse_path("actualPeriod.start") == [
            PathSegment("actualPeriod"),
            PathSegment("start"),
        ]

    def test_index_and_key_value_filters(self):
        segments = parse_path("entry[resource.resourceType:Patient].resource.name[0].text")

        assert len(segments) == 4
        assert segments[0] == PathSegment("entry", KeyValueFilter("resource.resourceType", "Patient"))
        assert segments[2] == PathSegment("name", IndexFilter(0))

    def test_question_code_alias(self):
        segment = parse_path("component[QuestionCode:SQ-L2H9-00000001].valueString")[0]
        assert segment.filter == KeyValueFilter("code.coding[0].code", "SQ-L2H9-00000001")

    def test_bare_resource_type_selector(self):
        segment = parse_path("entry[Patient]")[0]
        assert segment.filter == KeyValueFilter("resource.resourceType", "Patient")

    @pytest.mark.parametrize("path", ["telecom[*]", "telecom[]"])
    def test_wildcards(self, path):
        assert parse_path(path)[0].filter == WildcardFilter()

    def test_filter_value_keeps_colons_and_dots(self):
        segment = parse_path("extension[url:https://fhir.example.org/ext.grc].valueString")[0]
        assert segment.filter == KeyValueFilter("url", "https://fhir.example.org/ext.grc")

    def test_unclosed_bracket_is_literal(self):
        assert parse_path("name[0.text") == [PathSegment("name[0.text")]

    def test_empty_path(self):
        assert parse_path("") == []
        assert parse_path(None) == []

    def test_split_top_level_ignores_bracketed_dots(self):
        assert split_top_level("a[b.c:d].e", ".") == ["a[b.c:d]", "e"]

    def test_strip_resource_prefix(self):
        assert strip_resource_prefix("Patient.identifier[0].value", "Patient") == "identifier[0].value"
        assert strip_resource_prefix("Observation.component", "Observation:HS") == "component"
        assert strip_resource_prefix("component", "Observation:HS") == "component"
        assert strip_resource_prefix("Patient", "Patient") == ""


class TestResolve:
    def test_key_value_filter(self):
        assert resolve(EXTENSIONS, "extension[url:B].v") == [2]

    def test_index_out_of_range(self):
        assert resolve({"a": {"b": [1, 2, 3]}}, "a.b[5]") == []

    def test_missing_property(self):
        assert resolve({"a": 1}, "b.c") == []
        assert not path_exists({"a": 1}, "b")

    def test_null_is_present(self):
        assert resolve({"a": None}, "a") == [None]
        assert first_value_as_string({"a": None}, "a") is None

    def test_traverses_intermediate_arrays(self):
        node = {"name": [{"given": ["Ah"]}, {"given": ["Kow"]}]}

        assert resolve(node, "name.given") == [["Ah"], ["Kow"]]
        assert all_values_as_strings(node, "name.given") == ["Ah", "Kow"]

    def test_wildcard(self):
        node = {"telecom": [{"value": "9123"}, {"value": "6123"}]}
        assert resolve(node, "telecom[*].value") == ["9123", "6123"]

    def test_filter_on_single_object(self):
        node = {"address": {"use": "home", "city": "SG"}}
        assert resolve(node, "address[use:home].city") == ["SG"]

    def test_entry_selectors_on_bundle(self, bundle):
        assert resolve(bundle, "entry[Patient].resource.gender") == ["male"]
        assert resolve(bundle, "entry[resource.resourceType:Location].resource.address.postalCode") == ["123456"]

    def test_question_code_filter(self, bundle, find_resource):
        observation = find_resource(bundle, "Observation", "HS")
        assert resolve(observation, "component[QuestionCode:SQ-L2H9-00000001].valueString") == [
            "Yes (Proceed to next question)"
        ]

    def test_scalar_rendering(self):
        node = {"flag": True, "count": 42, "items": [1, None, "x"]}

        assert first_value_as_string(node, "flag") == "true"
        assert first_value_as_string(node, "count") == "42"
        assert all_values_as_strings(node, "items") == ["1", "x"]

    @pytest.mark.parametrize("path", [
        "status",
        "actualPeriod.start",
        "subject.reference",
        "actualPeriod",
        "actualPeriod.missing",
        "nothing.here.at.all",
    ])
    def test_filterless_path_returns_at_most_one_node(self, bundle, find_resource, path):
        encounter = find_resource(bundle, "Encounter")

        first = resolve(encounter, path)
        second = resolve(encounter, path)

        assert len(first) <= 1
        assert first == second

    def test_filterless_path_on_nested_objects(self):
        document = {"a": {"b": {"c": "leaf"}}, "x": None}

        assert resolve(document, "a.b.c") == ["leaf"]
        assert resolve(document, "a.b") == [{"c": "leaf"}]
        assert resolve(document, "x") == [None]
        assert resolve(document, "a.c") == []
        assert resolve(document, "a.b.c") == resolve(document, "a.b.c")

    def test_resolution_does_not_mutate(self, bundle):
        before = copy.deepcopy(bundle)

        resolve(bundle, "entry[*].resource.extension[url:missing].valueString")
        resolve_filters_to_indices(bundle, "entry[Patient].resource.identifier[system:nric].value")
        analyze_path(bundle, "entry[0].resource.nothing.here")

        assert bundle == before


class TestAuxiliaryWalks:
    def test_filters_to_indices(self):
        assert resolve_filters_to_indices(EXTENSIONS, "extension[url:B].v") == "extension[1].v"

    def test_unmatched_filter_kept_as_written(self):
        assert resolve_filters_to_indices(EXTENSIONS, "extension[url:Z].v") == "extension[url:Z].v"

    def test_filters_to_indices_on_bundle(self, bundle):
        path = "entry[Patient].resource.identifier[system:https://fhir.synapxe.sg/identifier/nric].value"
        assert resolve_filters_to_indices(bundle, path) == "entry[1].resource.identifier[0].value"

    def test_analyze_last_segment_missing(self, bundle, find_resource):
        patient = find_resource(bundle, "Patient")
        analysis = analyze_path(patient, "name[0].family")

        assert analysis.parent_path_exists is True
        assert analysis.path_mismatch_segment == "family"
        assert analysis.mismatch_depth == 1

    def test_analyze_intermediate_segment_missing(self, bundle, find_resource):
        patient = find_resource(bundle, "Patient")
        analysis = analyze_path(patient, "contact[0].missing.deeper")

        assert analysis.parent_path_exists is False
        assert analysis.path_mismatch_segment == "missing"
        assert analysis.mismatch_depth == 1

    def test_analyze_resolving_path(self, bundle, find_resource):
        patient = find_resource(bundle, "Patient")
        assert analyze_path(patient, "name[0].text") is None

    def test_discriminator_codes(self, bundle, find_resource):
        assert discriminator_code(find_resource(bundle, "Observation", "VS")) == "VS"
        assert discriminator_code(find_resource(bundle, "Organization")) == "prov"
        assert discriminator_code(find_resource(bundle, "Patient")) is None

    def test_has_typed_entry(self, bundle):
        assert has_typed_entry(bundle, "Encounter")
        assert has_typed_entry(bundle, "Observation", "OS")
        assert not has_typed_entry(bundle, "Observation", "XX")
        assert not has_typed_entry({"entry": "nope"}, "Patient")
