import pytest
from fhir.resources.R4B.operationoutcome import OperationOutcome

from fhirsearch import FHIRSearch, InvalidParameterError, NotSupportedError
from fhirsearch.search.bundle import Bundle
from fhirsearch.search.provider import SearchQueryBundleProvider


class TestFHIRSearch:
    "FHIRSearch"

    def test_supported_resources(self, store: FHIRSearch):
        assert store.supported_resources == [
            "AllergyIntolerance",
            "Condition",
            "Encounter",
            "Location",
            "Medication",
            "MedicationRequest",
            "Observation",
            "Patient",
            "Person",
            "Practitioner",
            "RelatedPerson",
            "ServiceRequest",
        ]

    def test_search_bad_resource_type(self, store: FHIRSearch):
        """search() returns an OperationOutcome if resource type is unknown"""
        res = store.search("Appointment")
        assert isinstance(res, OperationOutcome)
        assert len(res.issue) == 1
        assert res.issue[0].code == "not-supported"
        assert res.issue[0].diagnostics == 'unsupported FHIR resource: "Appointment"'

    def test_provider_bad_resource_type(self, store: FHIRSearch):
        """provider() raises if resource type is unknown"""
        with pytest.raises(NotSupportedError):
            store.provider("Appointment")

    def test_search(self, store: FHIRSearch):
        assert isinstance(store.provider("Patient"), SearchQueryBundleProvider)
        bundle = store.search("Patient")
        assert isinstance(bundle, Bundle)
        assert bundle.total == 3

    def test_invalid_window(self, store: FHIRSearch):
        with pytest.raises(InvalidParameterError):
            store.search("Patient", offset=-1)


def test_error_format():
    outcome = InvalidParameterError("invalid date value: 'x'").format()
    assert outcome.issue[0].severity == "error"
    assert outcome.issue[0].code == "invalid"
    assert outcome.issue[0].diagnostics == "invalid date value: 'x'"
