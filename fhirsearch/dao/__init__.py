from types import MappingProxyType

from .base import BaseFhirDao, IncludeRelation  # noqa
from .allergy_intolerance import AllergyIntoleranceDao
from .condition import ConditionDao
from .encounter import EncounterDao
from .location import LocationDao
from .medication import MedicationDao
from .observation import ObservationDao
from .order import MedicationRequestDao, ServiceRequestDao
from .patient import PatientDao
from .person import PersonDao
from .practitioner import PractitionerDao
from .related_person import RelatedPersonDao

DAOS = MappingProxyType(
    {
        dao.resource_type: dao
        for dao in (
            AllergyIntoleranceDao,
            ConditionDao,
            EncounterDao,
            LocationDao,
            MedicationDao,
            MedicationRequestDao,
            ObservationDao,
            PatientDao,
            PersonDao,
            PractitionerDao,
            RelatedPersonDao,
            ServiceRequestDao,
        )
    }
)
