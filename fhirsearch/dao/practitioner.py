from types import MappingProxyType

from fhirsearch.dao.base import BaseFhirDao, column_sort, preferred_name
from fhirsearch.model import Provider
from fhirsearch.search.bindings import ColumnRef, ColumnTokenBinding, StringBinding
from fhirsearch.search.parameters import HandlerKey

NAMES = ("person", "names")


class PractitionerDao(BaseFhirDao):
    resource_type = "Practitioner"
    model = Provider
    id_property = "provider_id"

    bindings = MappingProxyType(
        {
            (HandlerKey.IDENTIFIER, None): ColumnTokenBinding(ColumnRef("identifier")),
            (HandlerKey.NAME, "name"): StringBinding(
                (
                    ColumnRef("given_name", NAMES),
                    ColumnRef("middle_name", NAMES),
                    ColumnRef("family_name", NAMES),
                    ColumnRef("name"),
                ),
                split=True,
                name_field=True,
            ),
            (HandlerKey.NAME, "given"): StringBinding(
                (ColumnRef("given_name", NAMES),), name_field=True
            ),
            (HandlerKey.NAME, "family"): StringBinding(
                (ColumnRef("family_name", NAMES),), name_field=True
            ),
        }
    )
    sorts = MappingProxyType(
        {
            "identifier": column_sort("identifier"),
            "given": preferred_name("given_name"),
            "family": preferred_name("family_name"),
        }
    )
