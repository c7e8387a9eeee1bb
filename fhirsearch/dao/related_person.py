from types import MappingProxyType

from sqlalchemy import select
from sqlalchemy.orm import aliased

from fhirsearch.dao.base import PATIENT_CHAINS, BaseFhirDao, IncludeRelation, preferred_name
from fhirsearch.dao.patient import person_bindings
from fhirsearch.model import Person, Relationship
from fhirsearch.search.bindings import ReferenceBinding
from fhirsearch.search.parameters import HandlerKey


def related_person_column(column: str):
    def build(model):
        person = aliased(Person)
        return [
            select(getattr(person, column))
            .where(person.person_id == model.person_a_id)
            .scalar_subquery()
        ]

    return build


class RelatedPersonDao(BaseFhirDao):
    """
    RelatedPerson is a relationship seen from its person_a: names, gender, birthdate and
    addresses are those of person_a, the patient is person_b.
    """

    resource_type = "RelatedPerson"
    model = Relationship
    id_property = "relationship_id"

    bindings = MappingProxyType(
        {
            **person_bindings(("person_a",)),
            (HandlerKey.PATIENT_REFERENCE, None): ReferenceBinding(
                ("patient",), pk_column="patient_id", chains=PATIENT_CHAINS
            ),
        }
    )
    sorts = MappingProxyType(
        {
            "name": lambda model: preferred_name("family_name", "person_a_id")(model)
            + preferred_name("given_name", "person_a_id")(model),
            "given": preferred_name("given_name", "person_a_id"),
            "family": preferred_name("family_name", "person_a_id"),
            "birthdate": related_person_column("birthdate"),
            "gender": related_person_column("gender"),
        }
    )
    include_relations = MappingProxyType(
        {
            "patient": IncludeRelation.column(
                "Patient", Relationship, "relationship_id", "person_b_id"
            ),
        }
    )
    reference_params = MappingProxyType({"patient": HandlerKey.PATIENT_REFERENCE})
