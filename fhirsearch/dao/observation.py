from types import MappingProxyType

from sqlalchemy import select

from fhirsearch.dao.base import (
    ENCOUNTER_CHAINS,
    PATIENT_CHAINS,
    BaseFhirDao,
    IncludeRelation,
    column_sort,
)
from fhirsearch.model import Obs
from fhirsearch.search.bindings import (
    ColumnRef,
    ColumnTokenBinding,
    ConceptChainTarget,
    ConceptTokenBinding,
    DateRangeBinding,
    QuantityBinding,
    ReferenceBinding,
    StringBinding,
)
from fhirsearch.search.parameters import Chain, HandlerKey

# observation category -> concept class
CATEGORIES = MappingProxyType({"laboratory": "Test", "exam": "Finding", "procedure": "Procedure"})


def group_members(ids):
    return select(Obs.obs_id).where(Obs.obs_group_id.in_(ids), Obs.voided.is_(False))


class ObservationDao(BaseFhirDao):
    resource_type = "Observation"
    model = Obs
    id_property = "obs_id"
    immutable = True

    bindings = MappingProxyType(
        {
            (HandlerKey.PATIENT_REFERENCE, None): ReferenceBinding(
                ("patient",), pk_column="patient_id", chains=PATIENT_CHAINS
            ),
            (HandlerKey.ENCOUNTER_REFERENCE, None): ReferenceBinding(
                ("encounter",), pk_column="encounter_id", chains=ENCOUNTER_CHAINS
            ),
            (HandlerKey.HAS_MEMBER_REFERENCE, None): ReferenceBinding(
                ("group_members",),
                pk_column="obs_id",
                chains={Chain.CODE: ConceptChainTarget(("concept",))},
            ),
            (HandlerKey.CODED, None): ConceptTokenBinding(("concept",)),
            (HandlerKey.VALUE_CODED, None): ConceptTokenBinding(("value_coded",)),
            (HandlerKey.CATEGORY, None): ColumnTokenBinding(
                ColumnRef("name", ("concept", "concept_class")), value_map=CATEGORIES
            ),
            (HandlerKey.DATE_RANGE, "date"): DateRangeBinding((ColumnRef("obs_datetime"),)),
            (HandlerKey.QUANTITY, "valueQuantity"): QuantityBinding(ColumnRef("value_numeric")),
            (HandlerKey.VALUE_STRING, "valueString"): StringBinding((ColumnRef("value_text"),)),
        }
    )
    sorts = MappingProxyType(
        {"date": column_sort("obs_datetime"), "value-quantity": column_sort("value_numeric")}
    )
    include_relations = MappingProxyType(
        {
            "patient": IncludeRelation.column("Patient", Obs, "obs_id", "person_id"),
            "subject": IncludeRelation.column("Patient", Obs, "obs_id", "person_id"),
            "encounter": IncludeRelation.column("Encounter", Obs, "obs_id", "encounter_id"),
            "has-member": IncludeRelation("Observation", group_members),
        }
    )
    reference_params = MappingProxyType(
        {
            "patient": HandlerKey.PATIENT_REFERENCE,
            "subject": HandlerKey.PATIENT_REFERENCE,
            "encounter": HandlerKey.ENCOUNTER_REFERENCE,
        }
    )
