from types import MappingProxyType

from sqlalchemy import select

from fhirsearch.dao.base import (
    LOCATION_CHAINS,
    PATIENT_CHAINS,
    PRACTITIONER_CHAINS,
    BaseFhirDao,
    IncludeRelation,
    column_sort,
)
from fhirsearch.model import Encounter, EncounterProvider
from fhirsearch.search.bindings import (
    ColumnRef,
    ColumnTokenBinding,
    DateRangeBinding,
    ReferenceBinding,
)
from fhirsearch.search.parameters import HandlerKey


def participants(ids):
    return select(EncounterProvider.provider_id).where(
        EncounterProvider.encounter_id.in_(ids), EncounterProvider.voided.is_(False)
    )


class EncounterDao(BaseFhirDao):
    resource_type = "Encounter"
    model = Encounter
    id_property = "encounter_id"

    bindings = MappingProxyType(
        {
            (HandlerKey.PATIENT_REFERENCE, None): ReferenceBinding(
                ("patient",), pk_column="patient_id", chains=PATIENT_CHAINS
            ),
            (HandlerKey.LOCATION_REFERENCE, None): ReferenceBinding(
                ("location",), pk_column="location_id", chains=LOCATION_CHAINS
            ),
            (HandlerKey.PARTICIPANT_REFERENCE, None): ReferenceBinding(
                ("encounter_providers", "provider"),
                pk_column="provider_id",
                chains=PRACTITIONER_CHAINS,
            ),
            (HandlerKey.ENCOUNTER_TYPE, None): ColumnTokenBinding(
                ColumnRef("uuid", ("encounter_type",))
            ),
            (HandlerKey.DATE_RANGE, "date"): DateRangeBinding((ColumnRef("encounter_datetime"),)),
        }
    )
    sorts = MappingProxyType({"date": column_sort("encounter_datetime")})
    include_relations = MappingProxyType(
        {
            "patient": IncludeRelation.column("Patient", Encounter, "encounter_id", "patient_id"),
            "subject": IncludeRelation.column("Patient", Encounter, "encounter_id", "patient_id"),
            "location": IncludeRelation.column(
                "Location", Encounter, "encounter_id", "location_id"
            ),
            "participant": IncludeRelation("Practitioner", participants),
        }
    )
    reference_params = MappingProxyType(
        {
            "patient": HandlerKey.PATIENT_REFERENCE,
            "subject": HandlerKey.PATIENT_REFERENCE,
            "location": HandlerKey.LOCATION_REFERENCE,
            "participant": HandlerKey.PARTICIPANT_REFERENCE,
        }
    )
