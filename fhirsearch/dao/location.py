from types import MappingProxyType

from fhirsearch.dao.base import LOCATION_CHAINS, BaseFhirDao, IncludeRelation, column_sort
from fhirsearch.model import Location
from fhirsearch.search.bindings import ColumnRef, ReferenceBinding, StringBinding
from fhirsearch.search.parameters import HandlerKey


class LocationDao(BaseFhirDao):
    resource_type = "Location"
    model = Location
    id_property = "location_id"

    bindings = MappingProxyType(
        {
            (HandlerKey.NAME, "name"): StringBinding((ColumnRef("name"),)),
            (HandlerKey.ADDRESS, "city"): StringBinding((ColumnRef("city_village"),)),
            (HandlerKey.ADDRESS, "state"): StringBinding((ColumnRef("state_province"),)),
            (HandlerKey.ADDRESS, "postalCode"): StringBinding((ColumnRef("postal_code"),)),
            (HandlerKey.ADDRESS, "country"): StringBinding((ColumnRef("country"),)),
            (HandlerKey.LOCATION_REFERENCE, None): ReferenceBinding(
                ("parent",), pk_column="location_id", chains=LOCATION_CHAINS
            ),
        }
    )
    sorts = MappingProxyType(
        {
            "name": column_sort("name"),
            "address-city": column_sort("city_village"),
            "address-state": column_sort("state_province"),
            "address-postalcode": column_sort("postal_code"),
            "address-country": column_sort("country"),
        }
    )
    include_relations = MappingProxyType(
        {
            "partof": IncludeRelation.column(
                "Location", Location, "location_id", "parent_location_id"
            ),
        }
    )
    reference_params = MappingProxyType({"partof": HandlerKey.LOCATION_REFERENCE})
