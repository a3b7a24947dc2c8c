"""
Screening Processor

Entry point used by callers (HTTP layer, CLI, tests). Wraps the
validation and extraction engines behind four operations:

- load_metadata(metadata_json) -> ErrorResult
- validate(document_json, options) -> ValidationResult
- extract(document_json) -> FlattenResult
- process(document_json, metadata_json, options) -> ProcessResult

process() always returns a well-formed ProcessResult: malformed metadata
or document text becomes a single structured error, rule violations are
listed in the validation result, and extraction runs regardless of
whether validation passed.
"""

import time
from typing import Any, Dict, Optional, Union

from .config.constants import ValidationErrorCode
from .config.settings import ProcessorSettings, ValidationOptions, get_settings
from .extraction.extraction_engine import ExtractionEngine
from .models.flatten_result import FlattenResult, ProcessResult
from .models.metadata import ValidationMetadata
from .models.validation_result import ValidationResult
from .utils.error_handler import (
    DocumentParseError,
    EngineStateError,
    ErrorHandler,
    ErrorResult,
    MetadataParseError,
)
from .utils.json_utils import parse_document
from .utils.logger import ProcessingLogger, create_call_logger, get_logger
from .validation.rule_evaluator import get_rule_evaluator
from .validation.rule_loader import RuleLoader
from .validation.validation_engine import ValidationEngine, document_error


OptionsLike = Union[ValidationOptions, Dict[str, Any], None]

logger = get_logger(__name__)


class ScreeningProcessor:
    """
    Validates and flattens screening bundles.

    Metadata loaded with load_metadata() is kept for validate(). Each
    validate() or process() call runs on its own ValidationEngine, so
    concurrent calls share the loaded metadata read-only. process() takes
    its own metadata text and looks it up in the content-hash cache, so it
    does not disturb the metadata held for validate().
    """

    def __init__(self, settings: Optional[ProcessorSettings] = None):
        """
        Initialize the processor.

        Args:
            settings: Processor settings (uses global settings if None)
        """
        self.settings = settings or get_settings()
        self.rule_loader = RuleLoader(self.settings)
        self.rule_evaluator = get_rule_evaluator()
        self.validation_engine = ValidationEngine(self.rule_loader, self.rule_evaluator, self.settings)
        self.extraction_engine = ExtractionEngine()
        self.error_handler = ErrorHandler(logger)

    def _engine_for(self, metadata: ValidationMetadata) -> ValidationEngine:
        engine = ValidationEngine(self.rule_loader, self.rule_evaluator, self.settings)
        engine.use_metadata(metadata)
        return engine

    def _options(self, options: OptionsLike) -> ValidationOptions:
        if options is None:
            return self.settings.default_options()
        if isinstance(options, ValidationOptions):
            return options
        return ValidationOptions.model_validate(options)

    # ------------------------------------------------------------------
    # Individual operations
    # ------------------------------------------------------------------

    def load_metadata(self, metadata_json: Union[str, bytes]) -> ErrorResult:
        """
        Load rule metadata for subsequent validate() calls.

        Args:
            metadata_json: Metadata JSON text

        Returns:
            ErrorResult.ok(ValidationMetadata) or ErrorResult.fail(MetadataParseError)
        """
        try:
            return ErrorResult.ok(self.validation_engine.load_metadata(metadata_json))
        except MetadataParseError as e:
            self.error_handler.handle(e)
            return ErrorResult.fail(e)

    def validate(
        self,
        document_json: Union[str, bytes, Dict[str, Any]],
        options: OptionsLike = None,
        call_logger: Optional[ProcessingLogger] = None
    ) -> ValidationResult:
        """
        Validate a bundle against the metadata from load_metadata().

        Args:
            document_json: Bundle JSON text
            options: ValidationOptions or a dict of them
            call_logger: Logger collecting the trail (a fresh one if None)

        Returns:
            ValidationResult

        Raises:
            EngineStateError: If load_metadata() has not succeeded
        """
        metadata = self.validation_engine.metadata
        if metadata is None:
            raise EngineStateError("validate() requires metadata; call load_metadata() first")

        options = self._options(options)
        call_logger = call_logger or create_call_logger(options.log_level)
        return self._engine_for(metadata).validate(document_json, options, call_logger)

    def extract(
        self,
        document_json: Union[str, bytes, Dict[str, Any]],
        call_logger: Optional[ProcessingLogger] = None
    ) -> FlattenResult:
        """
        Flatten a bundle. Never raises.

        Args:
            document_json: Bundle JSON text

        Returns:
            FlattenResult
        """
        return self.extraction_engine.extract(document_json, call_logger or create_call_logger())

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def process(
        self,
        document_json: Union[str, bytes],
        metadata_json: Union[str, bytes],
        options: OptionsLike = None
    ) -> ProcessResult:
        """
        Validate and flatten a bundle in one call.

        Args:
            document_json: Bundle JSON text
            metadata_json: Metadata JSON text
            options: ValidationOptions or a dict of them

        Returns:
            ProcessResult with validation, flatten and the log trail
        """
        options = self._options(options)
        call_logger = create_call_logger(options.log_level)
        start_time = time.time()

        call_logger.info("Processing started")

        # STEP 1: Metadata
        call_logger.info("STEP 1: Loading validation metadata")
        try:
            metadata = self.rule_loader.load_from_text(metadata_json)
        except MetadataParseError as e:
            call_logger.error("Metadata could not be loaded", reason=e.message)
            validation = document_error(ValidationErrorCode.METADATA_PARSE_ERROR, e.message)
            return ProcessResult(validation=validation, flatten=None, logs=call_logger.get_logs())
        call_logger.debug(
            "Metadata ready",
            version=metadata.version,
            rule_sets=len(metadata.rule_sets)
        )

        # STEP 2: Parse document
        call_logger.info("STEP 2: Parsing document")
        try:
            bundle = parse_document(document_json)
        except DocumentParseError as e:
            call_logger.error("Document is not valid JSON", reason=e.details.get("original_error"))
            validation = document_error(ValidationErrorCode.INVALID_JSON, e.message)
            return ProcessResult(validation=validation, flatten=None, logs=call_logger.get_logs())

        # STEP 3: Validate
        call_logger.info("STEP 3: Validating")
        validation = self._engine_for(metadata).validate(bundle, options, call_logger)

        # STEP 4: Extract
        call_logger.info("STEP 4: Extracting")
        flatten = self.extraction_engine.extract(bundle, call_logger)

        call_logger.info(
            "Processing completed",
            is_valid=validation.is_valid,
            errors=len(validation.errors)
        )
        call_logger.log_performance("process", time.time() - start_time)

        return ProcessResult(validation=validation, flatten=flatten, logs=call_logger.get_logs())

    def generate_validation_report(self, validation_result: ValidationResult, **kwargs) -> str:
        return self.validation_engine.generate_validation_report(validation_result, **kwargs)


_processor_instance = None


def get_processor() -> ScreeningProcessor:
    """
    Get singleton instance of ScreeningProcessor.

    Returns:
        ScreeningProcessor instance
    """
    global _processor_instance
    if _processor_instance is None:
        _processor_instance = ScreeningProcessor()
    return _processor_instance
