import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from fhirsearch.model import PersonName
from fhirsearch.search.bindings import ChainTarget, CommonBinding
from fhirsearch.search.parameters import Chain, HandlerKey

PATIENT_CHAINS = MappingProxyType(
    {
        Chain.IDENTIFIER: ChainTarget(("identifier",), ("identifiers",)),
        Chain.GIVEN: ChainTarget(("given_name",), ("names",)),
        Chain.FAMILY: ChainTarget(("family_name",), ("names",)),
        Chain.NAME: ChainTarget(
            ("given_name", "middle_name", "family_name"), ("names",), prefix=True, split=True
        ),
    }
)

PRACTITIONER_CHAINS = MappingProxyType(
    {
        Chain.IDENTIFIER: ChainTarget(("identifier",)),
        Chain.GIVEN: ChainTarget(("given_name",), ("person", "names")),
        Chain.FAMILY: ChainTarget(("family_name",), ("person", "names")),
        Chain.NAME: ChainTarget(
            ("given_name", "middle_name", "family_name"),
            ("person", "names"),
            prefix=True,
            split=True,
        ),
    }
)

LOCATION_CHAINS = MappingProxyType(
    {
        Chain.NAME: ChainTarget(("name",), prefix=True),
        Chain.ADDRESS_CITY: ChainTarget(("city_village",), prefix=True),
        Chain.ADDRESS_STATE: ChainTarget(("state_province",), prefix=True),
        Chain.ADDRESS_POSTALCODE: ChainTarget(("postal_code",), prefix=True),
        Chain.ADDRESS_COUNTRY: ChainTarget(("country",), prefix=True),
    }
)

ENCOUNTER_CHAINS = MappingProxyType(
    {Chain.TYPE: ChainTarget(("uuid",), ("encounter_type",))}
)


def preferred_name(column: str, person_column: str = "person_id") -> Callable:
    """Sort on one field of the preferred, non-voided name of the person behind model."""

    def build(model):
        name = aliased(PersonName)
        return [
            select(getattr(name, column))
            .where(name.person_id == getattr(model, person_column), name.voided.is_(False))
            .order_by(name.preferred.desc(), name.person_name_id)
            .limit(1)
            .scalar_subquery()
        ]

    return build


def column_sort(*columns: str) -> Callable:
    return lambda model: [getattr(model, column) for column in columns]


@dataclass(frozen=True)
class IncludeRelation:
    """Forward include: source primary keys -> select of the referenced primary keys."""

    target_type: str
    link: Callable[[Sequence[int]], object]

    @classmethod
    def column(cls, target_type: str, model, id_property: str, foreign_key: str):
        def link(ids):
            target = getattr(model, foreign_key)
            return select(target).where(getattr(model, id_property).in_(ids), target.is_not(None))

        return cls(target_type, link)


class BaseFhirDao:
    """
    Entity access object: binds one resource type to its model.

    Subclasses describe how each search field reaches its column (bindings), which
    fields can be sorted on (sorts) and which references can be included.
    """

    resource_type: str = None
    model = None
    id_property: str = None
    # immutable records are never changed once written, _lastUpdated is date_created
    immutable = False

    bindings: Mapping = MappingProxyType({})
    sorts: Mapping[str, Callable] = MappingProxyType({})
    include_relations: Mapping[str, IncludeRelation] = MappingProxyType({})
    # reverse include parameter name -> reference key pointing at the included type
    reference_params: Mapping[str, HandlerKey] = MappingProxyType({})

    def __init__(self, session: Session):
        self.session = session

    @property
    def id_column(self):
        return getattr(self.model, self.id_property)

    @property
    def common_binding(self) -> CommonBinding:
        return CommonBinding(changed_column=None if self.immutable else "date_changed")

    def get_binding(self, key, property_name: Optional[str] = None):
        if key == HandlerKey.COMMON:
            return self.common_binding
        binding = self.bindings.get((key, property_name))
        if binding is None and property_name is not None:
            binding = self.bindings.get((key, None))
        return binding

    def get_sort(self, param: str) -> Optional[Callable]:
        """Sort builder for param; _id and _lastUpdated are sortable on every resource."""
        if param in self.sorts:
            return self.sorts[param]
        if param == "_id":
            return column_sort("uuid")
        if param == "_lastUpdated":
            if self.immutable:
                return column_sort("date_created")
            return lambda model: [func.coalesce(model.date_changed, model.date_created)]
        return None

    def base_predicates(self, entity) -> List:
        predicates = []
        if hasattr(self.model, "voided"):
            predicates.append(entity.voided.is_(False))
        if hasattr(self.model, "retired"):
            predicates.append(entity.retired.is_(False))
        return predicates

    def search_results(self, composed, offset: int = 0, count: Optional[int] = None) -> List:
        query = composed.ordered(composed.id_column).offset(offset)
        if count is not None:
            query = query.limit(count)
        ids = list(self.session.scalars(query))
        logging.debug(f"{self.resource_type} page [{offset}, {count}]: {len(ids)} results")
        return self.get_by_ids(ids)

    def search_result_uuids(self, composed) -> List[str]:
        return list(self.session.scalars(composed.ordered(self.model.uuid)))

    def search_results_count(self, composed) -> int:
        return self.session.scalar(composed.count())

    def get_by_ids(self, ids: Sequence[int]) -> List:
        """Loads records by primary key, in the order of ids."""
        if not ids:
            return []
        query = select(self.model).where(self.id_column.in_(ids), *self.base_predicates(self.model))
        records = {getattr(r, self.id_property): r for r in self.session.scalars(query)}
        return [records[i] for i in ids if i in records]

    def get_many(self, uuids: Sequence[str]) -> List:
        if not uuids:
            return []
        query = (
            select(self.model)
            .where(self.model.uuid.in_(uuids), *self.base_predicates(self.model))
            .order_by(self.id_column)
        )
        return list(self.session.scalars(query))

    def get(self, uuid: str):
        records = self.get_many([uuid])
        return records[0] if records else None
