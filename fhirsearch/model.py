"""
Relational layout the search engine binds against.

This is the subset of an OpenMRS-style clinical record schema that the entity access
objects in fhirsearch.dao search. Soft-deleted rows carry voided = true (clinical data)
or retired = true (metadata).
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Person(Base):
    __tablename__ = "person"

    person_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    gender: Mapped[Optional[str]] = mapped_column(String(50))
    birthdate: Mapped[Optional[date]] = mapped_column(Date)
    dead: Mapped[bool] = mapped_column(Boolean, default=False)
    death_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    names: Mapped[List["PersonName"]] = relationship(
        back_populates="person", order_by="PersonName.person_name_id"
    )
    addresses: Mapped[List["PersonAddress"]] = relationship(
        back_populates="person", order_by="PersonAddress.person_address_id"
    )


class PersonName(Base):
    __tablename__ = "person_name"

    person_name_id: Mapped[int] = mapped_column(primary_key=True)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.person_id"))
    preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    given_name: Mapped[Optional[str]] = mapped_column(String(50))
    middle_name: Mapped[Optional[str]] = mapped_column(String(50))
    family_name: Mapped[Optional[str]] = mapped_column(String(50))
    voided: Mapped[bool] = mapped_column(Boolean, default=False)

    person: Mapped[Person] = relationship(back_populates="names")


class PersonAddress(Base):
    __tablename__ = "person_address"

    person_address_id: Mapped[int] = mapped_column(primary_key=True)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.person_id"))
    preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    address1: Mapped[Optional[str]] = mapped_column(String(255))
    city_village: Mapped[Optional[str]] = mapped_column(String(255))
    state_province: Mapped[Optional[str]] = mapped_column(String(255))
    postal_code: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    voided: Mapped[bool] = mapped_column(Boolean, default=False)

    person: Mapped[Person] = relationship(back_populates="addresses")


class Patient(Person):
    __tablename__ = "patient"

    patient_id: Mapped[int] = mapped_column(ForeignKey("person.person_id"), primary_key=True)

    identifiers: Mapped[List["PatientIdentifier"]] = relationship(
        back_populates="patient", order_by="PatientIdentifier.patient_identifier_id"
    )


class PatientIdentifierType(Base):
    __tablename__ = "patient_identifier_type"

    patient_identifier_type_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    name: Mapped[str] = mapped_column(String(50))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)


class PatientIdentifier(Base):
    __tablename__ = "patient_identifier"

    patient_identifier_id: Mapped[int] = mapped_column(primary_key=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patient.patient_id"))
    identifier_type_id: Mapped[int] = mapped_column(
        ForeignKey("patient_identifier_type.patient_identifier_type_id")
    )
    identifier: Mapped[str] = mapped_column(String(50))
    preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)

    patient: Mapped[Patient] = relationship(back_populates="identifiers")
    identifier_type: Mapped[PatientIdentifierType] = relationship()


class RelationshipType(Base):
    __tablename__ = "relationship_type"

    relationship_type_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    a_is_to_b: Mapped[str] = mapped_column(String(50))
    b_is_to_a: Mapped[str] = mapped_column(String(50))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)


class Relationship(Base):
    """person_a is the a_is_to_b of person_b; backs RelatedPerson."""

    __tablename__ = "relationship"

    relationship_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    person_a_id: Mapped[int] = mapped_column(ForeignKey("person.person_id"))
    person_b_id: Mapped[int] = mapped_column(ForeignKey("person.person_id"))
    relationship_type_id: Mapped[int] = mapped_column(
        ForeignKey("relationship_type.relationship_type_id")
    )
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    person_a: Mapped[Person] = relationship(foreign_keys=[person_a_id])
    # person_b seen as a patient, None when person_b is not one
    patient: Mapped[Optional[Patient]] = relationship(
        primaryjoin="Relationship.person_b_id == Patient.patient_id",
        foreign_keys=[person_b_id],
        viewonly=True,
    )
    relationship_type: Mapped[RelationshipType] = relationship()


class Provider(Base):
    __tablename__ = "provider"

    provider_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    person_id: Mapped[Optional[int]] = mapped_column(ForeignKey("person.person_id"))
    name: Mapped[Optional[str]] = mapped_column(String(255))
    identifier: Mapped[Optional[str]] = mapped_column(String(255))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    person: Mapped[Optional[Person]] = relationship()


class Location(Base):
    __tablename__ = "location"

    location_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(String(255))
    city_village: Mapped[Optional[str]] = mapped_column(String(255))
    state_province: Mapped[Optional[str]] = mapped_column(String(255))
    postal_code: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    parent_location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("location.location_id"))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    parent: Mapped[Optional["Location"]] = relationship(remote_side=[location_id])


class EncounterType(Base):
    __tablename__ = "encounter_type"

    encounter_type_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    name: Mapped[str] = mapped_column(String(50))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)


class Encounter(Base):
    __tablename__ = "encounter"

    encounter_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patient.patient_id"))
    encounter_type_id: Mapped[int] = mapped_column(ForeignKey("encounter_type.encounter_type_id"))
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("location.location_id"))
    encounter_datetime: Mapped[datetime] = mapped_column(DateTime)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    patient: Mapped[Patient] = relationship()
    encounter_type: Mapped[EncounterType] = relationship()
    location: Mapped[Optional[Location]] = relationship()
    encounter_providers: Mapped[List["EncounterProvider"]] = relationship(
        back_populates="encounter", order_by="EncounterProvider.encounter_provider_id"
    )


class EncounterProvider(Base):
    __tablename__ = "encounter_provider"

    encounter_provider_id: Mapped[int] = mapped_column(primary_key=True)
    encounter_id: Mapped[int] = mapped_column(ForeignKey("encounter.encounter_id"))
    provider_id: Mapped[int] = mapped_column(ForeignKey("provider.provider_id"))
    voided: Mapped[bool] = mapped_column(Boolean, default=False)

    encounter: Mapped[Encounter] = relationship(back_populates="encounter_providers")
    provider: Mapped[Provider] = relationship()


class ConceptClass(Base):
    __tablename__ = "concept_class"

    concept_class_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    name: Mapped[str] = mapped_column(String(255))


class ConceptReferenceSource(Base):
    __tablename__ = "concept_reference_source"

    concept_source_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    name: Mapped[str] = mapped_column(String(50))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)

    fhir_sources: Mapped[List["FhirConceptSource"]] = relationship(back_populates="concept_source")


class FhirConceptSource(Base):
    """Binds a coding system URL to a concept reference source."""

    __tablename__ = "fhir_concept_source"

    fhir_concept_source_id: Mapped[int] = mapped_column(primary_key=True)
    url: Mapped[str] = mapped_column(String(255), unique=True)
    concept_source_id: Mapped[int] = mapped_column(
        ForeignKey("concept_reference_source.concept_source_id")
    )
    retired: Mapped[bool] = mapped_column(Boolean, default=False)

    concept_source: Mapped[ConceptReferenceSource] = relationship(back_populates="fhir_sources")


class ConceptReferenceTerm(Base):
    __tablename__ = "concept_reference_term"

    concept_reference_term_id: Mapped[int] = mapped_column(primary_key=True)
    concept_source_id: Mapped[int] = mapped_column(
        ForeignKey("concept_reference_source.concept_source_id")
    )
    code: Mapped[str] = mapped_column(String(255))
    name: Mapped[Optional[str]] = mapped_column(String(255))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)

    concept_source: Mapped[ConceptReferenceSource] = relationship()


class Concept(Base):
    __tablename__ = "concept"

    concept_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    concept_class_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("concept_class.concept_class_id")
    )
    retired: Mapped[bool] = mapped_column(Boolean, default=False)

    concept_class: Mapped[Optional[ConceptClass]] = relationship()
    names: Mapped[List["ConceptName"]] = relationship(
        back_populates="concept", order_by="ConceptName.concept_name_id"
    )
    mappings: Mapped[List["ConceptReferenceMap"]] = relationship(
        back_populates="concept", order_by="ConceptReferenceMap.concept_map_id"
    )

    @property
    def display(self) -> Optional[str]:
        names = [n for n in self.names if not n.voided]
        preferred = [n for n in names if n.locale_preferred]
        return (preferred or names)[0].name if names else None


class ConceptName(Base):
    __tablename__ = "concept_name"

    concept_name_id: Mapped[int] = mapped_column(primary_key=True)
    concept_id: Mapped[int] = mapped_column(ForeignKey("concept.concept_id"))
    name: Mapped[str] = mapped_column(String(255))
    locale: Mapped[str] = mapped_column(String(50), default="en")
    locale_preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)

    concept: Mapped[Concept] = relationship(back_populates="names")


class ConceptReferenceMap(Base):
    __tablename__ = "concept_reference_map"

    concept_map_id: Mapped[int] = mapped_column(primary_key=True)
    concept_id: Mapped[int] = mapped_column(ForeignKey("concept.concept_id"))
    concept_reference_term_id: Mapped[int] = mapped_column(
        ForeignKey("concept_reference_term.concept_reference_term_id")
    )

    concept: Mapped[Concept] = relationship(back_populates="mappings")
    term: Mapped[ConceptReferenceTerm] = relationship()


class Obs(Base):
    __tablename__ = "obs"

    obs_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    person_id: Mapped[int] = mapped_column(ForeignKey("patient.patient_id"))
    encounter_id: Mapped[Optional[int]] = mapped_column(ForeignKey("encounter.encounter_id"))
    concept_id: Mapped[int] = mapped_column(ForeignKey("concept.concept_id"))
    obs_datetime: Mapped[datetime] = mapped_column(DateTime)
    obs_group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("obs.obs_id"))
    value_coded_id: Mapped[Optional[int]] = mapped_column(ForeignKey("concept.concept_id"))
    value_numeric: Mapped[Optional[float]] = mapped_column(Float)
    value_text: Mapped[Optional[str]] = mapped_column(Text)
    units: Mapped[Optional[str]] = mapped_column(String(50))
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)

    patient: Mapped[Patient] = relationship()
    encounter: Mapped[Optional[Encounter]] = relationship()
    concept: Mapped[Concept] = relationship(foreign_keys=[concept_id])
    value_coded: Mapped[Optional[Concept]] = relationship(foreign_keys=[value_coded_id])
    group: Mapped[Optional["Obs"]] = relationship(
        back_populates="group_members", remote_side=[obs_id]
    )
    group_members: Mapped[List["Obs"]] = relationship(
        back_populates="group", order_by="Obs.obs_id"
    )


class Condition(Base):
    __tablename__ = "conditions"

    condition_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patient.patient_id"))
    condition_coded_id: Mapped[Optional[int]] = mapped_column(ForeignKey("concept.concept_id"))
    condition_non_coded: Mapped[Optional[str]] = mapped_column(String(255))
    clinical_status: Mapped[str] = mapped_column(String(50))
    onset_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    patient: Mapped[Patient] = relationship()
    condition_coded: Mapped[Optional[Concept]] = relationship()


class Allergy(Base):
    __tablename__ = "allergy"

    allergy_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patient.patient_id"))
    allergen_type: Mapped[str] = mapped_column(String(50))
    coded_allergen_id: Mapped[Optional[int]] = mapped_column(ForeignKey("concept.concept_id"))
    non_coded_allergen: Mapped[Optional[str]] = mapped_column(String(255))
    severity_id: Mapped[Optional[int]] = mapped_column(ForeignKey("concept.concept_id"))
    comments: Mapped[Optional[str]] = mapped_column(String(1024))
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    patient: Mapped[Patient] = relationship()
    coded_allergen: Mapped[Optional[Concept]] = relationship(foreign_keys=[coded_allergen_id])
    severity: Mapped[Optional[Concept]] = relationship(foreign_keys=[severity_id])
    reactions: Mapped[List["AllergyReaction"]] = relationship(
        back_populates="allergy", order_by="AllergyReaction.allergy_reaction_id"
    )


class AllergyReaction(Base):
    __tablename__ = "allergy_reaction"

    allergy_reaction_id: Mapped[int] = mapped_column(primary_key=True)
    allergy_id: Mapped[int] = mapped_column(ForeignKey("allergy.allergy_id"))
    reaction_id: Mapped[int] = mapped_column(ForeignKey("concept.concept_id"))

    allergy: Mapped[Allergy] = relationship(back_populates="reactions")
    reaction: Mapped[Concept] = relationship()


class Drug(Base):
    __tablename__ = "drug"

    drug_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    concept_id: Mapped[int] = mapped_column(ForeignKey("concept.concept_id"))
    strength: Mapped[Optional[str]] = mapped_column(String(255))
    retired: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)
    date_changed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    concept: Mapped[Concept] = relationship()


class Order(Base):
    """Drug orders back MedicationRequest, test orders back ServiceRequest."""

    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(String(38), unique=True)
    order_type: Mapped[str] = mapped_column(String(20))
    patient_id: Mapped[int] = mapped_column(ForeignKey("patient.patient_id"))
    encounter_id: Mapped[Optional[int]] = mapped_column(ForeignKey("encounter.encounter_id"))
    orderer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("provider.provider_id"))
    concept_id: Mapped[int] = mapped_column(ForeignKey("concept.concept_id"))
    drug_id: Mapped[Optional[int]] = mapped_column(ForeignKey("drug.drug_id"))
    date_activated: Mapped[Optional[datetime]] = mapped_column(DateTime)
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    date_stopped: Mapped[Optional[datetime]] = mapped_column(DateTime)
    auto_expire_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    voided: Mapped[bool] = mapped_column(Boolean, default=False)
    date_created: Mapped[datetime] = mapped_column(DateTime)

    patient: Mapped[Patient] = relationship()
    encounter: Mapped[Optional[Encounter]] = relationship()
    orderer: Mapped[Optional[Provider]] = relationship()
    concept: Mapped[Concept] = relationship()
    drug: Mapped[Optional[Drug]] = relationship()
