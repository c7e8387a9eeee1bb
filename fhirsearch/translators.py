"""
Reference translators from stored records to FHIR R4B resources.

Each translator takes one record and returns one resource; any failure (including
pydantic validation errors) propagates to the caller.
"""
from types import MappingProxyType
from typing import Dict, List, Optional

from fhir.resources.R4B import construct_fhir_element

from fhirsearch.utils import as_utc, utcnow

GENDERS = {"M": "male", "F": "female"}
CONDITION_CLINICAL_STATUS_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CLINICAL_STATUSES = {"ACTIVE": "active", "INACTIVE": "inactive", "HISTORY_OF": "resolved"}
ALLERGY_CATEGORIES = {"FOOD": "food", "DRUG": "medication", "ENVIRONMENT": "environment"}
ENCOUNTER_CLASS = {
    "system": "http://terminology.hl7.org/CodeSystem/v3-ActCode",
    "code": "AMB",
    "display": "ambulatory",
}


def reference(resource_type: str, record, display: Optional[str] = None) -> Optional[Dict]:
    if record is None:
        return None
    ref = {"reference": f"{resource_type}/{record.uuid}", "type": resource_type}
    if display:
        ref["display"] = display
    return ref


def meta(record) -> Dict:
    last_updated = getattr(record, "date_changed", None) or record.date_created
    return {"lastUpdated": as_utc(last_updated)}


def codeable_concept(concept) -> Optional[Dict]:
    if concept is None:
        return None
    display = concept.display
    codings = [{"code": concept.uuid, "display": display} if display else {"code": concept.uuid}]
    for mapping in concept.mappings:
        term = mapping.term
        for source in term.concept_source.fhir_sources:
            if not source.retired:
                codings.append({"system": source.url, "code": term.code})
    result = {"coding": codings}
    if display:
        result["text"] = display
    return result


def human_names(person) -> List[Dict]:
    names = []
    for name in person.names:
        if name.voided:
            continue
        given = [n for n in (name.given_name, name.middle_name) if n]
        human_name = {"use": "official" if name.preferred else "usual"}
        if given:
            human_name["given"] = given
        if name.family_name:
            human_name["family"] = name.family_name
        names.append(human_name)
    return names


def display_name(person) -> Optional[str]:
    if person is None:
        return None
    names = [n for n in person.names if not n.voided]
    names.sort(key=lambda n: not n.preferred)
    if not names:
        return None
    return " ".join(p for p in (names[0].given_name, names[0].family_name) if p)


def addresses(person) -> List[Dict]:
    found = [_address(a) for a in person.addresses if not a.voided]
    return [a for a in found if a]


def _address(record) -> Dict:
    address = {
        "line": [record.address1] if getattr(record, "address1", None) else None,
        "city": record.city_village,
        "state": record.state_province,
        "postalCode": record.postal_code,
        "country": record.country,
    }
    return {k: v for k, v in address.items() if v}


def _clean(data: Dict) -> Dict:
    return {k: v for k, v in data.items() if v is not None and v != []}


def _person_fields(person) -> Dict:
    data = {
        "id": person.uuid,
        "meta": meta(person),
        "name": human_names(person),
        "gender": GENDERS.get(person.gender, "unknown") if person.gender else None,
        "birthDate": person.birthdate,
        "address": addresses(person),
    }
    return data


def patient_translator(patient):
    data = _person_fields(patient)
    data["active"] = not patient.voided
    data["identifier"] = [
        {
            "value": identifier.identifier,
            "use": "official" if identifier.preferred else "usual",
            "type": {"text": identifier.identifier_type.name},
        }
        for identifier in patient.identifiers
        if not identifier.voided
    ]
    if patient.dead and patient.death_date:
        data["deceasedDateTime"] = as_utc(patient.death_date)
    elif patient.dead:
        data["deceasedBoolean"] = True
    return construct_fhir_element("Patient", _clean(data))


def person_translator(person):
    data = _person_fields(person)
    data["active"] = not person.voided
    return construct_fhir_element("Person", _clean(data))


def related_person_translator(relationship):
    person = relationship.person_a
    now = utcnow()
    active = (relationship.start_date is None or relationship.start_date <= now) and (
        relationship.end_date is None or relationship.end_date > now
    )
    data = _person_fields(person)
    data.update(
        {
            "id": relationship.uuid,
            "meta": meta(relationship),
            "identifier": [{"value": f"Person/{person.uuid}"}],
            "active": active,
            "patient": reference(
                "Patient", relationship.patient, display_name(relationship.patient)
            ),
            "relationship": [{"text": relationship.relationship_type.a_is_to_b}],
            "period": _clean(
                {
                    "start": as_utc(relationship.start_date),
                    "end": as_utc(relationship.end_date),
                }
            )
            or None,
        }
    )
    return construct_fhir_element("RelatedPerson", _clean(data))


def practitioner_translator(provider):
    data = {
        "id": provider.uuid,
        "meta": meta(provider),
        "active": not provider.retired,
        "identifier": [{"value": provider.identifier}] if provider.identifier else None,
    }
    if provider.person is not None:
        data["name"] = human_names(provider.person)
        data["gender"] = GENDERS.get(provider.person.gender) if provider.person.gender else None
    elif provider.name:
        data["name"] = [{"text": provider.name}]
    return construct_fhir_element("Practitioner", _clean(data))


def location_translator(location):
    data = {
        "id": location.uuid,
        "meta": meta(location),
        "status": "inactive" if location.retired else "active",
        "name": location.name,
        "description": location.description,
        "address": _address(location) or None,
        "partOf": reference("Location", location.parent, location.parent.name)
        if location.parent
        else None,
    }
    return construct_fhir_element("Location", _clean(data))


def encounter_translator(encounter):
    data = {
        "id": encounter.uuid,
        "meta": meta(encounter),
        "status": "finished",
        "class": ENCOUNTER_CLASS,
        "type": [
            {
                "coding": [
                    {"code": encounter.encounter_type.uuid, "display": encounter.encounter_type.name}
                ],
                "text": encounter.encounter_type.name,
            }
        ],
        "subject": reference("Patient", encounter.patient, display_name(encounter.patient)),
        "period": {"start": as_utc(encounter.encounter_datetime)},
        "location": [{"location": reference("Location", encounter.location, encounter.location.name)}]
        if encounter.location
        else None,
        "participant": [
            {"individual": reference("Practitioner", ep.provider, display_name(ep.provider.person))}
            for ep in encounter.encounter_providers
            if not ep.voided
        ],
    }
    return construct_fhir_element("Encounter", _clean(data))


def observation_translator(obs):
    data = {
        "id": obs.uuid,
        "meta": meta(obs),
        "status": "final",
        "code": codeable_concept(obs.concept),
        "subject": reference("Patient", obs.patient, display_name(obs.patient)),
        "encounter": reference("Encounter", obs.encounter),
        "effectiveDateTime": as_utc(obs.obs_datetime),
        "hasMember": [reference("Observation", m) for m in obs.group_members if not m.voided],
    }
    if obs.concept.concept_class is not None:
        data["category"] = [{"text": obs.concept.concept_class.name}]
    if obs.value_coded is not None:
        data["valueCodeableConcept"] = codeable_concept(obs.value_coded)
    elif obs.value_numeric is not None:
        quantity = {"value": obs.value_numeric}
        if obs.units:
            quantity["unit"] = obs.units
        data["valueQuantity"] = quantity
    elif obs.value_text is not None:
        data["valueString"] = obs.value_text
    return construct_fhir_element("Observation", _clean(data))


def condition_translator(condition):
    code = codeable_concept(condition.condition_coded)
    if code is None and condition.condition_non_coded:
        code = {"text": condition.condition_non_coded}
    status = CLINICAL_STATUSES.get(condition.clinical_status)
    data = {
        "id": condition.uuid,
        "meta": meta(condition),
        "code": code,
        "clinicalStatus": {
            "coding": [{"system": CONDITION_CLINICAL_STATUS_SYSTEM, "code": status}]
        }
        if status
        else None,
        "subject": reference("Patient", condition.patient, display_name(condition.patient)),
        "onsetDateTime": as_utc(condition.onset_date),
        "abatementDateTime": as_utc(condition.end_date),
        "recordedDate": as_utc(condition.date_created),
    }
    return construct_fhir_element("Condition", _clean(data))


def allergy_intolerance_translator(allergy):
    code = codeable_concept(allergy.coded_allergen)
    if allergy.non_coded_allergen:
        code = {**(code or {}), "text": allergy.non_coded_allergen}
    category = ALLERGY_CATEGORIES.get(allergy.allergen_type)
    data = {
        "id": allergy.uuid,
        "meta": meta(allergy),
        "patient": reference("Patient", allergy.patient, display_name(allergy.patient)),
        "code": code,
        "category": [category] if category else None,
        "note": [{"text": allergy.comments}] if allergy.comments else None,
        "reaction": [
            {"manifestation": [codeable_concept(r.reaction) for r in allergy.reactions]}
        ]
        if allergy.reactions
        else None,
    }
    return construct_fhir_element("AllergyIntolerance", _clean(data))


def medication_translator(drug):
    data = {
        "id": drug.uuid,
        "meta": meta(drug),
        "code": codeable_concept(drug.concept),
        "status": "inactive" if drug.retired else "active",
    }
    return construct_fhir_element("Medication", _clean(data))


def order_status(order) -> str:
    now = utcnow()
    if order.date_stopped is not None and order.date_stopped <= now:
        return "stopped"
    if order.auto_expire_date is not None and order.auto_expire_date <= now:
        return "completed"
    if order.date_activated is not None and order.date_activated <= now:
        return "active"
    return "draft"


def _order_fields(order) -> Dict:
    return {
        "id": order.uuid,
        "meta": meta(order),
        "status": order_status(order),
        "intent": "order",
        "subject": reference("Patient", order.patient, display_name(order.patient)),
        "encounter": reference("Encounter", order.encounter),
        "requester": reference(
            "Practitioner", order.orderer, display_name(order.orderer.person) if order.orderer else None
        ),
        "authoredOn": as_utc(order.date_activated),
    }


def medication_request_translator(order):
    data = _order_fields(order)
    if order.drug is not None:
        data["medicationReference"] = reference("Medication", order.drug, order.drug.name)
    else:
        data["medicationCodeableConcept"] = codeable_concept(order.concept)
    return construct_fhir_element("MedicationRequest", _clean(data))


def service_request_translator(order):
    data = _order_fields(order)
    if data["status"] == "stopped":
        data["status"] = "revoked"
    data["code"] = codeable_concept(order.concept)
    data["occurrenceDateTime"] = as_utc(order.scheduled_date or order.date_activated)
    return construct_fhir_element("ServiceRequest", _clean(data))


TRANSLATORS = MappingProxyType(
    {
        "AllergyIntolerance": allergy_intolerance_translator,
        "Condition": condition_translator,
        "Encounter": encounter_translator,
        "Location": location_translator,
        "Medication": medication_translator,
        "MedicationRequest": medication_request_translator,
        "Observation": observation_translator,
        "Patient": patient_translator,
        "Person": person_translator,
        "Practitioner": practitioner_translator,
        "RelatedPerson": related_person_translator,
        "ServiceRequest": service_request_translator,
    }
)
