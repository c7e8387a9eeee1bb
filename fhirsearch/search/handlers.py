import logging
import re
from collections.abc import Mapping
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import Date, DateTime, and_, false, not_, or_, select
from sqlalchemy.orm import aliased

from fhirsearch.config import NameMatching
from fhirsearch.errors import HandlerRegistrationError
from fhirsearch.model import ConceptReferenceMap, ConceptReferenceTerm, FhirConceptSource
from fhirsearch.search.bindings import (
    ChainTarget,
    ColumnTokenBinding,
    CommonBinding,
    ConceptChainTarget,
    ConceptTokenBinding,
    DateRangeBinding,
    FlagBinding,
    QuantityBinding,
    ReferenceBinding,
    StringBinding,
)
from fhirsearch.search.parameters import (
    DateParam,
    DateRangeParam,
    HandlerKey,
    HandlerKind,
    ParamPrefix,
    QuantityParam,
    StringParam,
    TokenParam,
)

TOKEN_SEPARATORS = re.compile(r"[\s,]+")


def handle_and_list(and_list, handle: Callable):
    """AND across OR-groups. A criterion without any group adds no constraint."""
    if and_list is None:
        return None
    predicates = [handle_or_list(or_list, handle) for or_list in and_list]
    predicates = [p for p in predicates if p is not None]
    if not predicates:
        return None
    return predicates[0] if len(predicates) == 1 else and_(*predicates)


def handle_or_list(or_list, handle: Callable):
    """OR within a group. An empty group cannot be satisfied."""
    values = list(or_list)
    if not values:
        return false()
    predicates = [handle(value) for value in values]
    predicates = [p for p in predicates if p is not None]
    if not predicates:
        return None
    return predicates[0] if len(predicates) == 1 else or_(*predicates)


def property_like(column, param: StringParam, fuzzy=False):
    value = param.value
    if value is None:
        return None
    if param.exact:
        return column == value
    if not value.strip():
        return None
    # wildcards in the value are matched literally
    if fuzzy:
        return column.icontains(value, autoescape=True)
    if param.contains:
        return column.contains(value, autoescape=True)
    return column.startswith(value, autoescape=True)


def _is_date_only(column) -> bool:
    column_type = column.expression.type
    return isinstance(column_type, Date) and not isinstance(column_type, DateTime)


def handle_date(column, param: DateParam):
    start, end = param.start, param.end
    if _is_date_only(column):
        start, end = start.date(), end.date()

    prefix = param.prefix
    if prefix in (ParamPrefix.EQUAL, ParamPrefix.APPROXIMATE):
        return and_(column >= start, column < end)
    if prefix == ParamPrefix.NOT_EQUAL:
        return not_(and_(column >= start, column < end))
    if prefix == ParamPrefix.LESSTHAN:
        return column < start
    if prefix == ParamPrefix.LESSTHAN_OR_EQUALS:
        return column < end
    if prefix == ParamPrefix.GREATERTHAN:
        return column >= end
    if prefix == ParamPrefix.GREATERTHAN_OR_EQUALS:
        return column >= start
    if prefix == ParamPrefix.STARTS_AFTER:
        return column >= end
    if prefix == ParamPrefix.ENDS_BEFORE:
        return column < start
    return None


def handle_date_range(column, date_range: DateRangeParam):
    """Both bounds on one column. NULL never matches."""
    predicates = [handle_date(column, bound) for bound in date_range.bounds]
    predicates = [p for p in predicates if p is not None]
    if not predicates:
        return None
    return and_(column.is_not(None), *predicates)


def handle_quantity(column, param: QuantityParam):
    value = param.value
    prefix = param.prefix
    if prefix is None or prefix == ParamPrefix.APPROXIMATE:
        exponent = value.as_tuple().exponent
        if exponent >= 0:
            margin = abs(value) * Decimal("0.1")
        else:
            margin = Decimal(5).scaleb(exponent - 1)
        return and_(column >= float(value - margin), column <= float(value + margin))

    value = float(value)
    if prefix == ParamPrefix.EQUAL:
        return column == value
    if prefix == ParamPrefix.NOT_EQUAL:
        return column != value
    if prefix in (ParamPrefix.GREATERTHAN, ParamPrefix.STARTS_AFTER):
        return column > value
    if prefix == ParamPrefix.GREATERTHAN_OR_EQUALS:
        return column >= value
    if prefix in (ParamPrefix.LESSTHAN, ParamPrefix.ENDS_BEFORE):
        return column < value
    if prefix == ParamPrefix.LESSTHAN_OR_EQUALS:
        return column <= value
    return None


def mapped_code_exists(concept, codes: List[str], system: Optional[str] = None):
    """EXISTS a reference term mapped to the concept with one of the codes.

    With a system, only terms whose source is bound to that coding system URL count.
    """
    mapping = aliased(ConceptReferenceMap)
    term = aliased(ConceptReferenceTerm)
    query = (
        select(mapping.concept_map_id)
        .join(term, mapping.concept_reference_term_id == term.concept_reference_term_id)
        .where(mapping.concept_id == concept.concept_id, term.code.in_(codes))
    )
    if system is not None:
        source = aliased(FhirConceptSource)
        query = query.join(source, source.concept_source_id == term.concept_source_id).where(
            source.url == system, source.retired.is_(False)
        )
    return query.exists()


def group_by_system(tokens: Iterable[TokenParam]) -> Dict[Optional[str], List[str]]:
    systems: Dict[Optional[str], List[str]] = {}
    for token in tokens:
        if token.value is None or not token.value.strip():
            continue
        system = token.system.strip() if token.system and token.system.strip() else None
        systems.setdefault(system, []).append(token.value.strip())
    return systems


def handle_codeable_concept(concept, tokens: Iterable[TokenParam], fallback=None):
    predicates = []
    for system, codes in group_by_system(tokens).items():
        if system is None:
            matches = [concept.uuid.in_(codes), mapped_code_exists(concept, codes)]
            concept_ids = [int(code) for code in codes if code.isdigit()]
            if concept_ids:
                matches.append(concept.concept_id.in_(concept_ids))
        else:
            matches = [mapped_code_exists(concept, codes, system)]
        if fallback is not None:
            matches.append(fallback.in_(codes))
        predicates.append(or_(*matches))

    if not predicates:
        return None
    return predicates[0] if len(predicates) == 1 else or_(*predicates)


class SearchHandler:
    kind: HandlerKind = None

    def handle(self, context, binding, criterion, property_name=None):
        raise NotImplementedError


class ReferenceHandler(SearchHandler):
    kind = HandlerKind.REFERENCE

    def handle(self, context, binding: ReferenceBinding, criterion, property_name=None):
        return handle_and_list(criterion, lambda param: self.handle_reference(context, binding, param))

    def handle_reference(self, context, binding: ReferenceBinding, param):
        if param.chain is None:
            id_part = param.id_part
            if not id_part:
                return None
            entity = context.join(binding.path)
            predicate = getattr(entity, binding.id_column) == id_part
            if binding.pk_column and id_part.isdigit():
                predicate = or_(predicate, getattr(entity, binding.pk_column) == int(id_part))
            return predicate

        target = binding.chains.get(param.chain)
        if target is None:
            logging.debug(f"reference chain {param.chain.value} is not supported here, ignoring")
            return None

        entity = context.join(binding.path + target.path)
        if isinstance(target, ConceptChainTarget):
            return handle_codeable_concept(entity, [TokenParam.parse(param.value)])
        return self.handle_chain(context, entity, target, param.value)

    @staticmethod
    def handle_chain(context, entity, target: ChainTarget, value):
        if value is None or not value.strip():
            return None
        values = TOKEN_SEPARATORS.split(value.strip()) if target.split else [value]
        predicates = []
        for token in values:
            for column in target.columns:
                column = getattr(entity, column)
                predicates.append(
                    column.startswith(token, autoescape=True) if target.prefix else column == token
                )
        return predicates[0] if len(predicates) == 1 else or_(*predicates)


class TokenHandler(SearchHandler):
    kind = HandlerKind.TOKEN

    def handle(self, context, binding, criterion, property_name=None):
        if isinstance(binding, ConceptTokenBinding):
            concept = context.join(binding.path, outer=binding.fallback is not None)
            fallback = binding.fallback.resolve(context) if binding.fallback else None
            return self._and(
                criterion, lambda tokens: handle_codeable_concept(concept, tokens, fallback)
            )
        if isinstance(binding, ColumnTokenBinding):
            return handle_and_list(
                criterion, lambda token: self.handle_column_token(context, binding, token)
            )
        return None

    @staticmethod
    def _and(criterion, handle_group):
        """Tokens of a group are matched together so they can be grouped by system."""
        if criterion is None:
            return None
        predicates = []
        for or_list in criterion:
            tokens = list(or_list)
            predicate = handle_group(tokens) if tokens else false()
            if predicate is not None:
                predicates.append(predicate)
        if not predicates:
            return None
        return predicates[0] if len(predicates) == 1 else and_(*predicates)

    @staticmethod
    def handle_column_token(context, binding: ColumnTokenBinding, token: TokenParam):
        if token.value is None or not token.value.strip():
            return None
        value_map = binding.value_map
        if callable(value_map):
            value_map = value_map(context.settings)
        value = token.value.strip()
        if value_map is not None and value.lower() in value_map:
            value = value_map[value.lower()]

        column = binding.column.resolve(context)
        predicate = column.is_(None) if value is None else column == value
        if token.system and binding.system is not None:
            predicate = and_(predicate, binding.system.resolve(context) == token.system)
        return predicate


class StringHandler(SearchHandler):
    kind = HandlerKind.STRING

    def handle(self, context, binding: StringBinding, criterion, property_name=None):
        fuzzy = binding.name_field and context.settings.name_matching == NameMatching.FUZZY
        columns = [ref.resolve(context) for ref in binding.columns]

        def handle_string(param):
            if isinstance(param, str):
                param = StringParam(param)
            if binding.split and param.value and not param.exact:
                values = [v for v in TOKEN_SEPARATORS.split(param.value.strip()) if v]
            else:
                values = [param.value]
            predicates = [
                property_like(column, StringParam(value, param.exact, param.contains), fuzzy)
                for value in values
                for column in columns
            ]
            predicates = [p for p in predicates if p is not None]
            if not predicates:
                return None
            return predicates[0] if len(predicates) == 1 else or_(*predicates)

        return handle_and_list(criterion, handle_string)


class DateRangeHandler(SearchHandler):
    kind = HandlerKind.DATE_RANGE

    def handle(self, context, binding: DateRangeBinding, criterion, property_name=None):
        if criterion is None or not criterion.bounds:
            return None
        predicates = [
            handle_date_range(ref.resolve(context), criterion) for ref in binding.columns
        ]
        predicates = [p for p in predicates if p is not None]
        if not predicates:
            return None
        # any candidate column in range is enough
        return predicates[0] if len(predicates) == 1 else or_(*predicates)


class FlagHandler(SearchHandler):
    kind = HandlerKind.FLAG

    def handle(self, context, binding: FlagBinding, criterion, property_name=None):
        def handle_flag(param):
            value = param.value if isinstance(param, TokenParam) else param
            if value is None:
                return None
            build = binding.flags.get(str(value).strip().lower())
            if build is None:
                logging.debug(f"unsupported status value {value!r}, ignoring")
                return None
            return build(context.join(binding.path))

        return handle_and_list(criterion, handle_flag)


class QuantityHandler(SearchHandler):
    kind = HandlerKind.QUANTITY

    def handle(self, context, binding: QuantityBinding, criterion, property_name=None):
        column = binding.column.resolve(context)
        return handle_and_list(criterion, lambda param: handle_quantity(column, param))


class CommonHandler(SearchHandler):
    """_id and _lastUpdated, shared by every resource type."""

    kind = HandlerKind.COMMON

    def handle(self, context, binding: CommonBinding, criterion, property_name=None):
        if property_name == "_id":
            id_column = getattr(context.root, binding.id_column)

            def handle_id(param):
                value = param.value if isinstance(param, TokenParam) else param
                if value is None or not str(value).strip():
                    return None
                return id_column == str(value).strip()

            return handle_and_list(criterion, handle_id)

        if property_name == "_lastUpdated":
            if criterion is None or not criterion.bounds:
                return None
            created = getattr(context.root, binding.created_column)
            if binding.changed_column is None:
                return handle_date_range(created, criterion)
            changed = getattr(context.root, binding.changed_column)
            return or_(
                handle_date_range(changed, criterion),
                and_(changed.is_(None), handle_date_range(created, criterion)),
            )

        logging.debug(f"unsupported common search parameter {property_name!r}, ignoring")
        return None


class HandlerRegistry(Mapping):
    """
    Immutable mapping of handler keys to handlers.

    Building the registry with a key outside HandlerKey, or with a handler that does not
    serve the kind of its key, fails. Looking up a key nothing is registered for returns
    None.
    """

    def __init__(self, handlers: Dict[HandlerKey, SearchHandler]):
        registered = {}
        for key, handler in handlers.items():
            if not isinstance(key, HandlerKey):
                raise HandlerRegistrationError(f"unknown search handler key: {key!r}")
            if key.kind == HandlerKind.INCLUDE:
                raise HandlerRegistrationError(f"{key.name} is resolved after the search, not composed")
            if not isinstance(handler, SearchHandler) or handler.kind != key.kind:
                raise HandlerRegistrationError(
                    f"{type(handler).__name__} cannot serve {key.name} ({key.kind.value})"
                )
            registered[key] = handler
        self._handlers = MappingProxyType(registered)

    def __getitem__(self, key):
        return self._handlers[key]

    def __iter__(self):
        return iter(self._handlers)

    def __len__(self):
        return len(self._handlers)

    def get(self, key, default=None):
        if not isinstance(key, HandlerKey):
            return default
        return self._handlers.get(key, default)

    @classmethod
    def default(cls) -> "HandlerRegistry":
        handlers = {
            handler.kind: handler
            for handler in (
                ReferenceHandler(),
                TokenHandler(),
                StringHandler(),
                DateRangeHandler(),
                FlagHandler(),
                QuantityHandler(),
                CommonHandler(),
            )
        }
        return cls({key: handlers[key.kind] for key in HandlerKey if key.kind in handlers})


DEFAULT_REGISTRY = HandlerRegistry.default()
