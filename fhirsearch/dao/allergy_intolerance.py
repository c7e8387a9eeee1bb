from types import MappingProxyType

from fhirsearch.dao.base import PATIENT_CHAINS, BaseFhirDao, IncludeRelation
from fhirsearch.model import Allergy
from fhirsearch.search.bindings import (
    ColumnRef,
    ColumnTokenBinding,
    ConceptTokenBinding,
    ReferenceBinding,
)
from fhirsearch.search.parameters import HandlerKey

CATEGORIES = MappingProxyType(
    {"food": "FOOD", "medication": "DRUG", "environment": "ENVIRONMENT"}
)


class AllergyIntoleranceDao(BaseFhirDao):
    resource_type = "AllergyIntolerance"
    model = Allergy
    id_property = "allergy_id"

    bindings = MappingProxyType(
        {
            (HandlerKey.PATIENT_REFERENCE, None): ReferenceBinding(
                ("patient",), pk_column="patient_id", chains=PATIENT_CHAINS
            ),
            (HandlerKey.ALLERGEN, None): ConceptTokenBinding(
                ("coded_allergen",), fallback=ColumnRef("non_coded_allergen")
            ),
            (HandlerKey.CATEGORY, None): ColumnTokenBinding(
                ColumnRef("allergen_type"), value_map=CATEGORIES
            ),
            (HandlerKey.SEVERITY, None): ColumnTokenBinding(
                ColumnRef("uuid", ("severity",)),
                value_map=lambda settings: settings.severity_concepts,
            ),
            # manifestation
            (HandlerKey.CODED, None): ConceptTokenBinding(("reactions", "reaction")),
        }
    )
    include_relations = MappingProxyType(
        {
            "patient": IncludeRelation.column("Patient", Allergy, "allergy_id", "patient_id"),
        }
    )
    reference_params = MappingProxyType({"patient": HandlerKey.PATIENT_REFERENCE})
