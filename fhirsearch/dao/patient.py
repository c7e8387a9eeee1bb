from types import MappingProxyType

from fhirsearch.dao.base import BaseFhirDao, column_sort, preferred_name
from fhirsearch.model import Patient
from fhirsearch.search.bindings import (
    ColumnRef,
    ColumnTokenBinding,
    DateRangeBinding,
    FlagBinding,
    Path,
    StringBinding,
)
from fhirsearch.search.parameters import HandlerKey

GENDERS = MappingProxyType({"male": "M", "female": "F", "other": None, "unknown": None})


def person_bindings(person: Path = ()):
    """Bindings shared by every resource backed by a person, reached through person."""
    names = person + ("names",)
    addresses = person + ("addresses",)
    return {
        (HandlerKey.NAME, "name"): StringBinding(
            (
                ColumnRef("given_name", names),
                ColumnRef("middle_name", names),
                ColumnRef("family_name", names),
            ),
            split=True,
            name_field=True,
        ),
        (HandlerKey.NAME, "given"): StringBinding(
            (ColumnRef("given_name", names),), name_field=True
        ),
        (HandlerKey.NAME, "family"): StringBinding(
            (ColumnRef("family_name", names),), name_field=True
        ),
        (HandlerKey.GENDER, None): ColumnTokenBinding(
            ColumnRef("gender", person), value_map=GENDERS
        ),
        (HandlerKey.DATE_RANGE, "birthdate"): DateRangeBinding(
            (ColumnRef("birthdate", person),)
        ),
        (HandlerKey.ADDRESS, "city"): StringBinding((ColumnRef("city_village", addresses),)),
        (HandlerKey.ADDRESS, "state"): StringBinding((ColumnRef("state_province", addresses),)),
        (HandlerKey.ADDRESS, "postalCode"): StringBinding(
            (ColumnRef("postal_code", addresses),)
        ),
        (HandlerKey.ADDRESS, "country"): StringBinding((ColumnRef("country", addresses),)),
    }


DEATH_BINDINGS = {
    (HandlerKey.DATE_RANGE, "deathDate"): DateRangeBinding((ColumnRef("death_date"),)),
    (HandlerKey.BOOLEAN, "deceased"): FlagBinding(
        {"true": lambda p: p.dead.is_(True), "false": lambda p: p.dead.is_(False)}
    ),
}


PERSON_SORTS = {
    "name": lambda model: preferred_name("family_name")(model) + preferred_name("given_name")(model),
    "given": preferred_name("given_name"),
    "family": preferred_name("family_name"),
    "birthdate": column_sort("birthdate"),
    "gender": column_sort("gender"),
}


class PatientDao(BaseFhirDao):
    resource_type = "Patient"
    model = Patient
    id_property = "patient_id"

    bindings = MappingProxyType(
        {
            **person_bindings(),
            **DEATH_BINDINGS,
            (HandlerKey.IDENTIFIER, None): ColumnTokenBinding(
                ColumnRef("identifier", ("identifiers",)),
                system=ColumnRef("name", ("identifiers", "identifier_type")),
            ),
        }
    )
    sorts = MappingProxyType(PERSON_SORTS)
