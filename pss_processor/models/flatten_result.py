"""
Flatten Result Data Models

Flat, typed records projected from a screening bundle for downstream
consumption: the event (encounter, location and organizations), the
participant, and one screening set per screening type.
"""

from typing import List, Optional

from pydantic import ConfigDict, Field

from .base import CamelModel
from .validation_result import ValidationResult


class EventData(CamelModel):
    """Encounter, location and organization composite"""

    event_id: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    venue_name: Optional[str] = None
    postal_code: Optional[str] = None
    grc: Optional[str] = None
    constituency: Optional[str] = None
    provider_name: Optional[str] = None
    cluster_name: Optional[str] = None


class ParticipantData(CamelModel):
    """Demographic fields of the participant"""

    nric: Optional[str] = None
    name: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[str] = None
    address: Optional[str] = Field(None, description="Address lines joined, postal code appended")

    # Structured address (line[0..3] of the first address)
    address_block_number: Optional[str] = None
    address_street: Optional[str] = None
    address_floor: Optional[str] = None
    address_unit_number: Optional[str] = None
    address_postal_code: Optional[str] = None

    citizenship: Optional[str] = None
    ethnicity: Optional[str] = None
    subsidy: Optional[str] = None
    consent_for_sharing_data: Optional[bool] = None
    mobile_number: Optional[str] = None
    home_office_number: Optional[str] = None
    preferred_language: Optional[str] = None

    caregiver_name: Optional[str] = None
    caregiver_relationship: Optional[str] = None
    caregiver_contact_home: Optional[str] = None
    caregiver_contact_mobile: Optional[str] = None


class CodeDisplay(CamelModel):
    code: Optional[str] = None
    display: Optional[str] = None


class ObservationItem(CamelModel):
    """One answered question; values split on '|'"""

    question: CodeDisplay = Field(default_factory=CodeDisplay)
    values: List[str] = Field(default_factory=list)


class ScreeningSet(CamelModel):
    screening_type: str
    items: List[ObservationItem] = Field(default_factory=list)

    def find(self, question_code: str) -> Optional[ObservationItem]:
        for item in self.items:
            if item.question.code == question_code:
                return item
        return None


class FlattenResult(CamelModel):
    """Flattened bundle"""

    event: Optional[EventData] = None
    participant: Optional[ParticipantData] = None
    hearing_raw: Optional[ScreeningSet] = None
    oral_raw: Optional[ScreeningSet] = None
    vision_raw: Optional[ScreeningSet] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "event": {
                    "start": "2025-01-10T09:00:00+08:00",
                    "end": "2025-01-10T09:20:00+08:00",
                    "venueName": "Community Centre",
                    "postalCode": "123456",
                    "providerName": "Provider A",
                    "clusterName": "Cluster B"
                },
                "participant": {"name": "Tan Ah Kow", "gender": "male"},
                "hearingRaw": {
                    "screeningType": "HS",
                    "items": [
                        {"question": {"code": "SQ-F7B7-00000007",
                                      "display": "Pure Tone Screening at 25dBHL (Left)"},
                         "values": ["500Hz – R", "1000Hz – NR"]}
                    ]
                }
            }
        }
    )

    def get_hearing(self, question_code: str) -> Optional[ObservationItem]:
        return self.hearing_raw.find(question_code) if self.hearing_raw else None

    def get_oral(self, question_code: str) -> Optional[ObservationItem]:
        return self.oral_raw.find(question_code) if self.oral_raw else None

    def get_vision(self, question_code: str) -> Optional[ObservationItem]:
        return self.vision_raw.find(question_code) if self.vision_raw else None


class ProcessResult(CamelModel):
    """Combined output of validate + extract"""

    validation: ValidationResult
    flatten: Optional[FlattenResult] = None
    logs: List[str] = Field(default_factory=list)

