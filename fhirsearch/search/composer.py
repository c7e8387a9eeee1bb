import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from sqlalchemy import case, func, select

from fhirsearch.config import SearchSettings, get_settings
from fhirsearch.search.context import CriteriaContext
from fhirsearch.search.handlers import DEFAULT_REGISTRY, HandlerRegistry
from fhirsearch.search.parameters import HandlerKey, HandlerKind, SearchParameterMap, SortOrder


@dataclass(frozen=True, eq=False)
class ComposedQuery:
    """
    A composed search, ready to run any number of times.

    filter_ids selects the matching primary keys (possibly repeated when filters cross
    to-many relations); every result query goes through `id_column IN (filter_ids)` so
    that each entity appears once.
    """

    resource_type: str
    model: Any
    id_column: Any
    filter_ids: Any
    orders: Tuple

    def ordered(self, *columns):
        return (
            select(*columns)
            .where(self.id_column.in_(self.filter_ids))
            .order_by(*self.orders)
        )

    def count(self):
        return select(func.count()).select_from(self.filter_ids.distinct().subquery())


class CriteriaComposer:
    def __init__(
        self,
        registry: Optional[HandlerRegistry] = None,
        settings: Optional[SearchSettings] = None,
    ):
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        self.settings = settings if settings is not None else get_settings()

    def compose(self, dao, params: Optional[SearchParameterMap] = None) -> ComposedQuery:
        """
        Turns a parameter map into a query over the entity bound by the dao.

        Args:
            - dao: entity access object supplying the model, its bindings and sorts
            - params: the criteria; keys without handler or binding are ignored
        """
        params = params if params is not None else SearchParameterMap()
        context = CriteriaContext(dao.model, self.settings)
        for predicate in dao.base_predicates(context.root):
            context.add_predicate(predicate)

        for key, entries in params.items():
            if isinstance(key, HandlerKey) and key.kind == HandlerKind.INCLUDE:
                continue
            handler = self.registry.get(key)
            if handler is None:
                logging.debug(f"no search handler for {key!r}, ignoring")
                continue
            for entry in entries:
                binding = dao.get_binding(key, entry.property_name)
                if binding is None:
                    logging.debug(
                        f"{dao.resource_type} has no binding for {key.name}"
                        f"{':' + entry.property_name if entry.property_name else ''}, ignoring"
                    )
                    continue
                context.add_predicate(
                    handler.handle(context, binding, entry.param, entry.property_name)
                )

        id_column = getattr(dao.model, dao.id_property)
        return ComposedQuery(
            resource_type=dao.resource_type,
            model=dao.model,
            id_column=id_column,
            filter_ids=context.id_query(dao.id_property),
            orders=tuple(self.sort_orders(dao, params.sort)) + (id_column.asc(),),
        )

    def sort_orders(self, dao, sort) -> List:
        """Order clauses for the sort specification, nulls last in both directions."""
        orders = []
        if sort is None:
            return orders
        for spec in sort:
            build = dao.get_sort(spec.param)
            if build is None:
                logging.warning(
                    f"{dao.resource_type} cannot be sorted by {spec.param!r}, "
                    "sort parameter ignored"
                )
                continue
            for expression in build(dao.model):
                orders.append(case((expression.is_(None), 1), else_=0))
                orders.append(
                    expression.desc() if spec.order == SortOrder.DESC else expression.asc()
                )
        return orders
