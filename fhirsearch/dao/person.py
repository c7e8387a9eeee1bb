from types import MappingProxyType

from fhirsearch.dao.base import BaseFhirDao
from fhirsearch.dao.patient import DEATH_BINDINGS, PERSON_SORTS, person_bindings
from fhirsearch.model import Person


class PersonDao(BaseFhirDao):
    resource_type = "Person"
    model = Person
    id_property = "person_id"

    bindings = MappingProxyType({**person_bindings(), **DEATH_BINDINGS})
    sorts = MappingProxyType(PERSON_SORTS)
