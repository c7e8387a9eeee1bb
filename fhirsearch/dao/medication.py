from types import MappingProxyType

from fhirsearch.dao.base import BaseFhirDao, column_sort
from fhirsearch.model import Drug
from fhirsearch.search.bindings import ColumnRef, ConceptTokenBinding, StringBinding
from fhirsearch.search.parameters import HandlerKey


class MedicationDao(BaseFhirDao):
    resource_type = "Medication"
    model = Drug
    id_property = "drug_id"

    bindings = MappingProxyType(
        {
            (HandlerKey.CODED, None): ConceptTokenBinding(("concept",)),
            (HandlerKey.NAME, "name"): StringBinding((ColumnRef("name"),)),
        }
    )
    sorts = MappingProxyType({"name": column_sort("name")})
