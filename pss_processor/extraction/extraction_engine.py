"""
Extraction Engine

Projects a screening bundle into flat records: EventData (encounter,
location, organizations), ParticipantData (patient) and one
ScreeningSet per screening type (HS, OS, VS).

Extraction never raises. Each step runs under ErrorHandler.wrap_operation;
a step that fails leaves its field unset and adds an error line to the
log trail, and the remaining steps still run.
"""

from typing import Any, Dict, List, Optional, Union

from ..config.constants import (
    CLUSTER_TYPE_CODES,
    CONSENT_EXTENSION_KEY,
    CONSTITUENCY_EXTENSION_KEY,
    ETHNICITY_EXTENSION_KEY,
    EVENT_ID_SYSTEM_KEY,
    GRC_EXTENSION_KEY,
    NRIC_SYSTEM_KEY,
    PROVIDER_TYPE_CODES,
    RESIDENTIAL_STATUS_EXTENSION_KEY,
    SUBSIDY_EXTENSION_KEY,
    ScreeningType,
)
from ..models.flatten_result import (
    CodeDisplay,
    EventData,
    FlattenResult,
    ObservationItem,
    ParticipantData,
    ScreeningSet,
)
from ..utils.error_handler import DocumentParseError, ErrorHandler
from ..utils.json_utils import get_in, parse_document, split_multi_value
from ..utils.logger import ProcessingLogger, get_logger
from .resource_index import ResourceIndex


# ============================================================================
# LOOKUP HELPERS
# ============================================================================

def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def find_by_url(extensions: Any, fragment: str) -> Optional[Dict[str, Any]]:
    """First extension whose url contains fragment."""
    for extension in _as_list(extensions):
        if isinstance(extension, dict) and fragment in str(extension.get("url") or ""):
            return extension
    return None


def find_by_system(identifiers: Any, fragment: str) -> Optional[Dict[str, Any]]:
    """First identifier whose system contains fragment."""
    for identifier in _as_list(identifiers):
        if isinstance(identifier, dict) and fragment in str(identifier.get("system") or ""):
            return identifier
    return None


def find_telecom(telecoms: Any, use: str) -> Optional[str]:
    """Value of the first phone telecom with the given use."""
    for telecom in _as_list(telecoms):
        if not isinstance(telecom, dict):
            continue
        system = str(telecom.get("system") or "").lower()
        telecom_use = str(telecom.get("use") or "").lower()
        if system == "phone" and telecom_use == use:
            return _text(telecom.get("value"))
    return None


def extension_string_or_code(extension: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Value of a string-or-coded extension.

    Prefers valueString, then valueCodeableConcept.coding[0].code, then
    its display.
    """
    if extension is None:
        return None
    value = _text(extension.get("valueString"))
    if value:
        return value
    coding = get_in(extension, "valueCodeableConcept", "coding", 0)
    if isinstance(coding, dict):
        return _text(coding.get("code")) or _text(coding.get("display"))
    return None


def extension_code(extension: Optional[Dict[str, Any]]) -> Optional[str]:
    if extension is None:
        return None
    return _text(get_in(extension, "valueCodeableConcept", "coding", 0, "code"))


def organization_type_code(organization: Dict[str, Any]) -> Optional[str]:
    code = _text(get_in(organization, "type", 0, "coding", 0, "code"))
    return code.lower() if code else None


def compose_address(address: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Join address lines with ", " and append the postal code.

    {"line": ["Blk 123", "Main St"], "postalCode": "123456"}
        -> "Blk 123, Main St 123456"
    """
    if not isinstance(address, dict):
        return None
    lines = [str(line).strip() for line in _as_list(address.get("line")) if line is not None and str(line).strip()]
    text = ", ".join(lines)
    postal_code = _text(address.get("postalCode"))
    if postal_code:
        text = f"{text} {postal_code}" if text else postal_code
    return text or None


# ============================================================================
# ENGINE
# ============================================================================

class ExtractionEngine:
    """
    Flattens screening bundles.

    Extraction workflow:
    1. Index resources by type (and Observation:<code>)
    2. Build EventData from Encounter, Location and Organizations
    3. Build ParticipantData from Patient
    4. Build a ScreeningSet for each of HS, OS and VS
    """

    def __init__(self, logger: Optional[ProcessingLogger] = None):
        """
        Initialize the ExtractionEngine.

        Args:
            logger: Default logger when extract() is not given one
        """
        self.logger = logger or get_logger(__name__)

    def extract(
        self,
        document: Union[str, bytes, Dict[str, Any]],
        logger: Optional[ProcessingLogger] = None
    ) -> FlattenResult:
        """
        Flatten a bundle.

        Args:
            document: Bundle JSON text or an already parsed bundle
            logger: Logger receiving the call's trail

        Returns:
            FlattenResult; an empty one when the document is unreadable
        """
        logger = logger or self.logger
        handler = ErrorHandler(logger)
        logger.info("Extraction started")

        try:
            bundle = parse_document(document)
        except DocumentParseError as e:
            logger.error("Cannot extract from invalid JSON", reason=e.details.get("original_error"))
            return FlattenResult()

        if not isinstance(bundle, dict) or not isinstance(bundle.get("entry"), list):
            logger.error("Cannot extract from a document without entries")
            return FlattenResult()

        index = ResourceIndex(bundle)
        logger.debug("Resources indexed", entries=index.entry_count, keys=index.keys())

        result = FlattenResult()

        logger.info("Extracting event data")
        result.event = handler.wrap_operation(self.extract_event, index).unwrap_or(None)
        logger.debug("Event extracted", ok=result.event is not None)

        logger.info("Extracting participant data")
        result.participant = handler.wrap_operation(self.extract_participant, index).unwrap_or(None)
        logger.debug("Participant extracted", ok=result.participant is not None)

        logger.info("Extracting screening data")
        result.hearing_raw = handler.wrap_operation(
            self.extract_screening, index, ScreeningType.HEARING.value
        ).unwrap_or(None)
        result.oral_raw = handler.wrap_operation(
            self.extract_screening, index, ScreeningType.ORAL.value
        ).unwrap_or(None)
        result.vision_raw = handler.wrap_operation(
            self.extract_screening, index, ScreeningType.VISION.value
        ).unwrap_or(None)

        for screening in (result.hearing_raw, result.oral_raw, result.vision_raw):
            if screening is not None:
                logger.debug("Screening extracted", screening_type=screening.screening_type,
                              items=len(screening.items))

        logger.info("Extraction completed")
        return result

    # ------------------------------------------------------------------
    # Event
    # ------------------------------------------------------------------

    def extract_event(self, index: ResourceIndex) -> EventData:
        event = EventData()

        encounter = index.first("Encounter")
        if encounter is not None:
            identifier = find_by_system(encounter.get("identifier"), EVENT_ID_SYSTEM_KEY)
            if identifier is not None:
                event.event_id = _text(identifier.get("value"))

            period = encounter.get("actualPeriod")
            if not isinstance(period, dict):
                period = encounter.get("period")
            if isinstance(period, dict):
                event.start = _text(period.get("start"))
                event.end = _text(period.get("end"))

        location = index.first("Location")
        if location is not None:
            address = location.get("address") if isinstance(location.get("address"), dict) else {}
            first_line = next(iter(_as_list(address.get("line"))), None)
            event.venue_name = _text(location.get("name")) or _text(first_line)
            event.postal_code = _text(address.get("postalCode"))

            extensions = location.get("extension")
            event.grc = extension_string_or_code(find_by_url(extensions, GRC_EXTENSION_KEY))
            event.constituency = extension_string_or_code(
                find_by_url(extensions, CONSTITUENCY_EXTENSION_KEY)
            )

        self._assign_organizations(event, index.all("Organization"))
        return event

    @staticmethod
    def _assign_organizations(event: EventData, organizations: List[Dict[str, Any]]):
        """
        Fill provider and cluster names in one pass, in document order.

        The first organization typed prov/provider or cluster takes its
        slot, replacing a name put there by the fallback. Any other
        organization (untyped, or with an unrecognised type) fills the first
        empty slot, provider before cluster, so without type codes the
        result depends on the order organizations appear in the bundle.
        """
        typed = set()
        for organization in organizations:
            type_code = organization_type_code(organization)
            name = _text(organization.get("name"))
            if type_code in PROVIDER_TYPE_CODES:
                if "provider" not in typed:
                    event.provider_name = name
                    typed.add("provider")
            elif type_code in CLUSTER_TYPE_CODES:
                if "cluster" not in typed:
                    event.cluster_name = name
                    typed.add("cluster")
            elif event.provider_name is None:
                event.provider_name = name
            elif event.cluster_name is None:
                event.cluster_name = name

    # ------------------------------------------------------------------
    # Participant
    # ------------------------------------------------------------------

    def extract_participant(self, index: ResourceIndex) -> ParticipantData:
        participant = ParticipantData()

        patient = index.first("Patient")
        if patient is None:
            return participant

        nric = find_by_system(patient.get("identifier"), NRIC_SYSTEM_KEY)
        if nric is not None:
            participant.nric = _text(nric.get("value"))

        name = get_in(patient, "name", 0)
        if isinstance(name, dict):
            participant.name = _text(name.get("text"))
            if participant.name is None:
                parts = [str(g) for g in _as_list(name.get("given"))]
                if name.get("family"):
                    parts.append(str(name["family"]))
                participant.name = " ".join(parts) or None

        participant.gender = _text(patient.get("gender"))
        participant.birth_date = _text(patient.get("birthDate"))

        extensions = patient.get("extension")
        participant.citizenship = extension_code(find_by_url(extensions, RESIDENTIAL_STATUS_EXTENSION_KEY))
        participant.ethnicity = extension_code(find_by_url(extensions, ETHNICITY_EXTENSION_KEY))
        participant.subsidy = extension_code(find_by_url(extensions, SUBSIDY_EXTENSION_KEY))
        consent = find_by_url(extensions, CONSENT_EXTENSION_KEY)
        if consent is not None and isinstance(consent.get("valueBoolean"), bool):
            participant.consent_for_sharing_data = consent["valueBoolean"]

        address = get_in(patient, "address", 0)
        if isinstance(address, dict):
            participant.address = compose_address(address)
            lines = _as_list(address.get("line"))
            slots = ("address_block_number", "address_street", "address_floor", "address_unit_number")
            for slot, line in zip(slots, lines):
                setattr(participant, slot, _text(line))
            participant.address_postal_code = _text(address.get("postalCode"))

        participant.mobile_number = find_telecom(patient.get("telecom"), "mobile")
        participant.home_office_number = find_telecom(patient.get("telecom"), "home")

        for communication in _as_list(patient.get("communication")):
            if isinstance(communication, dict) and communication.get("preferred") is True:
                participant.preferred_language = _text(
                    get_in(communication, "language", "coding", 0, "code")
                )
                break

        caregiver = get_in(patient, "contact", 0)
        if isinstance(caregiver, dict):
            participant.caregiver_name = _text(get_in(caregiver, "name", "text"))
            participant.caregiver_relationship = _text(
                get_in(caregiver, "relationship", 0, "coding", 0, "display")
            )
            participant.caregiver_contact_home = find_telecom(caregiver.get("telecom"), "home")
            participant.caregiver_contact_mobile = find_telecom(caregiver.get("telecom"), "mobile")

        return participant

    # ------------------------------------------------------------------
    # Screenings
    # ------------------------------------------------------------------

    def extract_screening(self, index: ResourceIndex, screening_type: str) -> ScreeningSet:
        screening = ScreeningSet(screening_type=screening_type)

        observation = index.first(f"Observation:{screening_type}")
        if observation is None:
            return screening

        for component in _as_list(observation.get("component")):
            if isinstance(component, dict):
                screening.items.append(self.extract_observation_item(component))
        return screening

    @staticmethod
    def extract_observation_item(component: Dict[str, Any]) -> ObservationItem:
        """
        One component as question + values.

        "500Hz – R|1000Hz – NR" -> ["500Hz – R", "1000Hz – NR"]; an answer
        without '|' is kept as a single value.
        """
        coding = get_in(component, "code", "coding", 0)
        question = CodeDisplay()
        if isinstance(coding, dict):
            question.code = _text(coding.get("code"))
            question.display = _text(coding.get("display"))

        answer = _text(component.get("valueString"))
        if not answer:
            values = []
        elif "|" in answer:
            values = split_multi_value(answer)
        else:
            values = [answer]

        return ObservationItem(question=question, values=values)


_extraction_engine_instance = None


def get_extraction_engine() -> ExtractionEngine:
    """
    Get singleton instance of ExtractionEngine.

    Returns:
        ExtractionEngine instance
    """
    global _extraction_engine_instance
    if _extraction_engine_instance is None:
        _extraction_engine_instance = ExtractionEngine()
    return _extraction_engine_instance
