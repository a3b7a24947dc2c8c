"""
Shared pytest fixtures for the screening bundle processor tests.

The sample bundle and rule metadata live in tests/data. Fixtures hand out
fresh copies so a test can mutate its bundle without affecting others.
"""

import copy
import json
import logging
from pathlib import Path

import pytest
import yaml

from pss_processor.config.settings import ProcessorSettings
from pss_processor.processor import ScreeningProcessor
from pss_processor.validation.validation_engine import ValidationEngine

logging.basicConfig(level=logging.INFO)

DATA_DIR = Path(__file__).parent / "data"


@pytest.fixture(scope="session")
def test_data_dir():
    """Directory holding the sample bundle and metadata."""
    return DATA_DIR


@pytest.fixture(scope="session")
def bundle_template(test_data_dir):
    """Parsed sample bundle (do not mutate; use `bundle`)."""
    with open(test_data_dir / "bundle.json", "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture(scope="session")
def metadata_template(test_data_dir):
    """Parsed sample metadata (do not mutate; use `metadata_dict`)."""
    with open(test_data_dir / "metadata.yaml", "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def bundle(bundle_template):
    return copy.deepcopy(bundle_template)


@pytest.fixture
def metadata_dict(metadata_template):
    return copy.deepcopy(metadata_template)


@pytest.fixture
def metadata_json(metadata_template):
    return json.dumps(metadata_template, ensure_ascii=False)


@pytest.fixture
def settings():
    """Default settings, independent of PSS_* environment variables."""
    return ProcessorSettings()


@pytest.fixture
def engine(settings, metadata_json):
    """Validation engine with the sample metadata loaded."""
    validation_engine = ValidationEngine(settings=settings)
    validation_engine.load_metadata(metadata_json)
    return validation_engine


@pytest.fixture
def processor(settings):
    return ScreeningProcessor(settings)


@pytest.fixture
def find_resource():
    """
    Return a lookup for the first resource of a type in a bundle.

    find_resource(bundle, "Observation", "HS") matches on
    code.coding[0].code as well.
    """
    def _find(bundle, resource_type, code=None):
        for entry in bundle["entry"]:
            resource = entry["resource"]
            if resource["resourceType"] != resource_type:
                continue
            if code is None or resource["code"]["coding"][0]["code"] == code:
                return resource
        raise KeyError(f"{resource_type} {code or ''} not in bundle")

    return _find
