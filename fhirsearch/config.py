import os
from enum import Enum
from functools import lru_cache
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

FHIR_API_URL = os.getenv("FHIR_API_URL", "http://localhost/openmrs/ws/fhir2/R4")
FHIR_DEFAULT_PAGE_SIZE = os.getenv("FHIR_DEFAULT_PAGE_SIZE", "10")
FHIR_MAX_PAGE_SIZE = os.getenv("FHIR_MAX_PAGE_SIZE", "100")
FHIR_NAME_MATCHING = os.getenv("FHIR_NAME_MATCHING", "literal")

SEVERITY_ENV_VARS = {
    "mild": "FHIR_SEVERITY_MILD_UUID",
    "moderate": "FHIR_SEVERITY_MODERATE_UUID",
    "severe": "FHIR_SEVERITY_SEVERE_UUID",
    "other": "FHIR_SEVERITY_OTHER_UUID",
}


class NameMatching(str, Enum):
    LITERAL = "literal"
    FUZZY = "fuzzy"


class SearchSettings(BaseModel):
    """
    Process-wide search settings. Instances are frozen: the composer and the result
    providers share them by reference.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = FHIR_API_URL
    default_page_size: int = Field(10, gt=0)
    max_page_size: int = Field(100, gt=0)
    name_matching: NameMatching = NameMatching.LITERAL
    # allergy severity code -> concept uuid
    severity_concepts: Dict[str, str] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value):
        return value.rstrip("/")

    @classmethod
    def from_env(cls) -> "SearchSettings":
        severity_concepts = {
            code: os.environ[var] for code, var in SEVERITY_ENV_VARS.items() if os.getenv(var)
        }
        return cls(
            base_url=FHIR_API_URL,
            default_page_size=int(FHIR_DEFAULT_PAGE_SIZE),
            max_page_size=int(FHIR_MAX_PAGE_SIZE),
            name_matching=FHIR_NAME_MATCHING,
            severity_concepts=severity_concepts,
        )


@lru_cache(maxsize=None)
def get_settings() -> SearchSettings:
    return SearchSettings.from_env()
