from sqlalchemy import event

from fhirsearch.search import (
    AndListParam,
    Chain,
    HandlerKey,
    Include,
    ReferenceParam,
    SearchParameterMap,
    StringParam,
)

BASE_URL = "http://localhost/fhir"


def matches(bundle):
    return [e["resource"].id for e in bundle.entries if e["search"]["mode"] == "match"]


def included(bundle):
    return [
        e["fullUrl"][len(BASE_URL) + 1:] for e in bundle.entries if e["search"]["mode"] == "include"
    ]


def john_encounters():
    return SearchParameterMap().add_parameter(
        HandlerKey.PATIENT_REFERENCE, AndListParam.of(ReferenceParam("101-6", Chain.IDENTIFIER))
    )


def test_include_patient(store):
    """the shared patient is included once, after the untouched primary page"""
    params = john_encounters().add_parameter(HandlerKey.INCLUDE, "Encounter:patient")
    bundle = store.search("Encounter", params)

    assert matches(bundle) == ["encounter-1", "encounter-2"]
    assert included(bundle) == ["Patient/patient-john-doe"]
    assert bundle.total == 2


def test_include_several_directives(store):
    params = john_encounters().add_parameter(
        HandlerKey.INCLUDE, ["Encounter:location", "Encounter:participant"]
    )
    bundle = store.search("Encounter", params)

    assert matches(bundle) == ["encounter-1", "encounter-2"]
    assert sorted(included(bundle)) == [
        "Location/location-kampala-hospital",
        "Location/location-nairobi-clinic",
        "Practitioner/provider-anna",
        "Practitioner/provider-bob",
    ]


def test_include_repeated_directive(store):
    params = (
        john_encounters()
        .add_parameter(HandlerKey.INCLUDE, "Encounter:patient")
        .add_parameter(HandlerKey.INCLUDE, Include("patient", "Encounter"))
    )
    assert included(store.search("Encounter", params)) == ["Patient/patient-john-doe"]


def test_include_ignored_directives(store):
    for directive in ["Patient:general-practitioner", "Encounter:shoe", "Encounter:patient:Practitioner"]:
        params = john_encounters().add_parameter(HandlerKey.INCLUDE, directive)
        bundle = store.search("Encounter", params)
        assert matches(bundle) == ["encounter-1", "encounter-2"]
        assert included(bundle) == []


def test_include_skips_primary_records(store):
    params = SearchParameterMap().add_parameter(HandlerKey.INCLUDE, "Location:partof")
    bundle = store.search("Location", params)
    assert matches(bundle) == [
        "location-kampala-hospital",
        "location-nairobi-clinic",
        "location-central-region",
    ]
    assert included(bundle) == []

    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.NAME, AndListParam.of(StringParam("Kampala")), "name")
        .add_parameter(HandlerKey.INCLUDE, "Location:partof")
    )
    bundle = store.search("Location", params)
    assert matches(bundle) == ["location-kampala-hospital"]
    assert included(bundle) == ["Location/location-central-region"]


def test_include_has_member(store):
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.COMMON, AndListParam.of("obs-vitals"), "_id")
        .add_parameter(HandlerKey.INCLUDE, "Observation:has-member")
    )
    bundle = store.search("Observation", params)
    assert matches(bundle) == ["obs-vitals"]
    assert included(bundle) == ["Observation/obs-weight-1"]


def test_revinclude(store):
    """reverse includes ignore the primary filter"""
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.COMMON, AndListParam.of("patient-john-doe"), "_id")
        .add_parameter(HandlerKey.REVERSE_INCLUDE, "Encounter:patient")
    )
    bundle = store.search("Patient", params)

    assert matches(bundle) == ["patient-john-doe"]
    assert included(bundle) == ["Encounter/encounter-1", "Encounter/encounter-2"]
    assert bundle.total == 1


def test_related_persons_include(store):
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.COMMON, AndListParam.of("patient-john-doe"), "_id")
        .add_parameter(HandlerKey.REVERSE_INCLUDE, "RelatedPerson:patient")
    )
    bundle = store.search("Patient", params)
    assert included(bundle) == ["RelatedPerson/related-anna-john", "RelatedPerson/related-johnny-john"]

    params = SearchParameterMap().add_parameter(HandlerKey.INCLUDE, "RelatedPerson:patient")
    bundle = store.search("RelatedPerson", params)
    assert matches(bundle) == ["related-anna-john", "related-bob-jane", "related-johnny-john"]
    assert sorted(included(bundle)) == ["Patient/patient-jane-smith", "Patient/patient-john-doe"]


def test_revinclude_observations(store):
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.NAME, AndListParam.of(StringParam("Jane")), "given")
        .add_parameter(HandlerKey.REVERSE_INCLUDE, "Observation:patient")
    )
    bundle = store.search("Patient", params)
    assert matches(bundle) == ["patient-jane-smith"]
    assert included(bundle) == [
        "Observation/obs-systolic",
        "Observation/obs-fever",
        "Observation/obs-note",
    ]


def test_revinclude_medication_requests(store):
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.COMMON, AndListParam.of("drug-aspirin"), "_id")
        .add_parameter(HandlerKey.REVERSE_INCLUDE, "MedicationRequest:medication")
    )
    bundle = store.search("Medication", params)
    assert included(bundle) == ["MedicationRequest/order-aspirin", "MedicationRequest/order-expired"]


def test_revinclude_same_type(store):
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.COMMON, AndListParam.of("location-central-region"), "_id")
        .add_parameter(HandlerKey.REVERSE_INCLUDE, "Location:partof")
    )
    bundle = store.search("Location", params)
    assert matches(bundle) == ["location-central-region"]
    assert included(bundle) == ["Location/location-kampala-hospital"]


def test_revinclude_wrong_target(store):
    params = (
        SearchParameterMap()
        .add_parameter(HandlerKey.COMMON, AndListParam.of("patient-john-doe"), "_id")
        .add_parameter(HandlerKey.REVERSE_INCLUDE, "Encounter:location")
    )
    assert included(store.search("Patient", params)) == []


def test_include_is_batched(store, db_engine):
    """one directive costs the same number of queries whatever the page size"""
    binding = store.resources["Encounter"]
    records = binding.dao.search_results(store.engine.composer.compose(binding.dao))
    assert len(records) == 4

    statements = []

    def count(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(db_engine, "before_cursor_execute", count)
    try:
        resource_type, related = store.include.forward(
            records, binding.dao, Include.parse("Encounter:patient")
        )
    finally:
        event.remove(db_engine, "before_cursor_execute", count)

    assert resource_type == "Patient"
    assert sorted(p.uuid for p in related) == [
        "patient-jane-smith",
        "patient-john-doe",
        "patient-johnny-walker",
    ]
    assert len(statements) == 2
