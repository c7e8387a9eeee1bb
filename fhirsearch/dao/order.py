"""
Drug and test orders share one table; MedicationRequest and ServiceRequest each see the
orders of their own type.
"""
from types import MappingProxyType

from sqlalchemy import and_, or_

from fhirsearch.dao.base import (
    ENCOUNTER_CHAINS,
    PATIENT_CHAINS,
    PRACTITIONER_CHAINS,
    BaseFhirDao,
    IncludeRelation,
    column_sort,
)
from fhirsearch.model import Order
from fhirsearch.search.bindings import (
    ColumnRef,
    ConceptTokenBinding,
    DateRangeBinding,
    FlagBinding,
    ReferenceBinding,
)
from fhirsearch.search.parameters import HandlerKey
from fhirsearch.utils import utcnow


def active_orders(order):
    now = utcnow()
    return and_(
        order.date_activated.is_not(None),
        order.date_activated <= now,
        or_(order.date_stopped.is_(None), order.date_stopped > now),
        or_(order.auto_expire_date.is_(None), order.auto_expire_date > now),
    )


def stopped_orders(order):
    return and_(order.date_stopped.is_not(None), order.date_stopped <= utcnow())


def completed_orders(order):
    return and_(order.date_stopped.is_(None), order.auto_expire_date <= utcnow())


ORDER_STATUSES = MappingProxyType(
    {
        "active": active_orders,
        "stopped": stopped_orders,
        "cancelled": stopped_orders,
        "completed": completed_orders,
    }
)


def order_bindings():
    return {
        (HandlerKey.PATIENT_REFERENCE, None): ReferenceBinding(
            ("patient",), pk_column="patient_id", chains=PATIENT_CHAINS
        ),
        (HandlerKey.ENCOUNTER_REFERENCE, None): ReferenceBinding(
            ("encounter",), pk_column="encounter_id", chains=ENCOUNTER_CHAINS
        ),
        (HandlerKey.PARTICIPANT_REFERENCE, None): ReferenceBinding(
            ("orderer",), pk_column="provider_id", chains=PRACTITIONER_CHAINS
        ),
        (HandlerKey.CODED, None): ConceptTokenBinding(("concept",)),
        (HandlerKey.STATUS, None): FlagBinding(ORDER_STATUSES),
    }


def order_includes():
    return {
        "patient": IncludeRelation.column("Patient", Order, "order_id", "patient_id"),
        "subject": IncludeRelation.column("Patient", Order, "order_id", "patient_id"),
        "encounter": IncludeRelation.column("Encounter", Order, "order_id", "encounter_id"),
        "requester": IncludeRelation.column("Practitioner", Order, "order_id", "orderer_id"),
    }


ORDER_REFERENCE_PARAMS = {
    "patient": HandlerKey.PATIENT_REFERENCE,
    "subject": HandlerKey.PATIENT_REFERENCE,
    "encounter": HandlerKey.ENCOUNTER_REFERENCE,
    "requester": HandlerKey.PARTICIPANT_REFERENCE,
}


class OrderDao(BaseFhirDao):
    model = Order
    id_property = "order_id"
    immutable = True
    order_type: str = None

    def base_predicates(self, entity):
        return super().base_predicates(entity) + [entity.order_type == self.order_type]


class MedicationRequestDao(OrderDao):
    resource_type = "MedicationRequest"
    order_type = "drug"

    bindings = MappingProxyType(
        {
            **order_bindings(),
            (HandlerKey.MEDICATION_REFERENCE, None): ReferenceBinding(("drug",), pk_column="drug_id"),
            (HandlerKey.DATE_RANGE, "authoredOn"): DateRangeBinding(
                (ColumnRef("date_activated"),)
            ),
        }
    )
    sorts = MappingProxyType({"authoredon": column_sort("date_activated")})
    include_relations = MappingProxyType(
        {
            **order_includes(),
            "medication": IncludeRelation.column("Medication", Order, "order_id", "drug_id"),
        }
    )
    reference_params = MappingProxyType(
        {**ORDER_REFERENCE_PARAMS, "medication": HandlerKey.MEDICATION_REFERENCE}
    )


class ServiceRequestDao(OrderDao):
    resource_type = "ServiceRequest"
    order_type = "test"

    bindings = MappingProxyType(
        {
            **order_bindings(),
            # activated or scheduled within the range
            (HandlerKey.DATE_RANGE, "occurrence"): DateRangeBinding(
                (ColumnRef("date_activated"), ColumnRef("scheduled_date"))
            ),
        }
    )
    sorts = MappingProxyType({"occurrence": column_sort("date_activated", "scheduled_date")})
    include_relations = MappingProxyType(order_includes())
    reference_params = MappingProxyType(ORDER_REFERENCE_PARAMS)
