from types import MappingProxyType

from fhirsearch.dao.base import PATIENT_CHAINS, BaseFhirDao, IncludeRelation, column_sort
from fhirsearch.model import Condition
from fhirsearch.search.bindings import (
    ColumnRef,
    ColumnTokenBinding,
    ConceptTokenBinding,
    DateRangeBinding,
    ReferenceBinding,
)
from fhirsearch.search.parameters import HandlerKey

CLINICAL_STATUSES = MappingProxyType(
    {"active": "ACTIVE", "inactive": "INACTIVE", "history-of": "HISTORY_OF"}
)


class ConditionDao(BaseFhirDao):
    resource_type = "Condition"
    model = Condition
    id_property = "condition_id"

    bindings = MappingProxyType(
        {
            (HandlerKey.PATIENT_REFERENCE, None): ReferenceBinding(
                ("patient",), pk_column="patient_id", chains=PATIENT_CHAINS
            ),
            (HandlerKey.CODED, None): ConceptTokenBinding(
                ("condition_coded",), fallback=ColumnRef("condition_non_coded")
            ),
            (HandlerKey.CLINICAL_STATUS, None): ColumnTokenBinding(
                ColumnRef("clinical_status"), value_map=CLINICAL_STATUSES
            ),
            (HandlerKey.DATE_RANGE, "onsetDate"): DateRangeBinding((ColumnRef("onset_date"),)),
            (HandlerKey.DATE_RANGE, "recordedDate"): DateRangeBinding(
                (ColumnRef("date_created"),)
            ),
        }
    )
    sorts = MappingProxyType(
        {"onset-date": column_sort("onset_date"), "recorded-date": column_sort("date_created")}
    )
    include_relations = MappingProxyType(
        {
            "patient": IncludeRelation.column("Patient", Condition, "condition_id", "patient_id"),
            "subject": IncludeRelation.column("Patient", Condition, "condition_id", "patient_id"),
        }
    )
    reference_params = MappingProxyType(
        {"patient": HandlerKey.PATIENT_REFERENCE, "subject": HandlerKey.PATIENT_REFERENCE}
    )
