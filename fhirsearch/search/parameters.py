import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from fhirsearch.errors import InvalidParameterError
from fhirsearch.utils import check_prefix, get_id_part, parse_fhir_date


class HandlerKind(Enum):
    REFERENCE = "reference"
    TOKEN = "token"
    STRING = "string"
    DATE_RANGE = "date-range"
    FLAG = "flag"
    QUANTITY = "quantity"
    COMMON = "common"
    INCLUDE = "include"


class HandlerKey(Enum):
    """Closed set of search handler keys, each tied to the kind of handler serving it."""

    PATIENT_REFERENCE = ("patient.reference.search.handler", HandlerKind.REFERENCE)
    ENCOUNTER_REFERENCE = ("encounter.reference.search.handler", HandlerKind.REFERENCE)
    LOCATION_REFERENCE = ("location.reference.search.handler", HandlerKind.REFERENCE)
    PARTICIPANT_REFERENCE = ("participant.reference.search.handler", HandlerKind.REFERENCE)
    MEDICATION_REFERENCE = ("medication.reference.search.handler", HandlerKind.REFERENCE)
    HAS_MEMBER_REFERENCE = ("hasmember.reference.search.handler", HandlerKind.REFERENCE)

    CODED = ("codeable.concept.search.handler", HandlerKind.TOKEN)
    VALUE_CODED = ("value.coded.search.handler", HandlerKind.TOKEN)
    CATEGORY = ("category.search.handler", HandlerKind.TOKEN)
    IDENTIFIER = ("identifier.search.handler", HandlerKind.TOKEN)
    GENDER = ("gender.search.handler", HandlerKind.TOKEN)
    ENCOUNTER_TYPE = ("encounter.type.search.handler", HandlerKind.TOKEN)
    ALLERGEN = ("allergen.search.handler", HandlerKind.TOKEN)
    SEVERITY = ("severity.search.handler", HandlerKind.TOKEN)
    CLINICAL_STATUS = ("clinical.status.search.handler", HandlerKind.TOKEN)

    NAME = ("name.search.handler", HandlerKind.STRING)
    ADDRESS = ("address.search.handler", HandlerKind.STRING)
    VALUE_STRING = ("value.string.search.handler", HandlerKind.STRING)

    DATE_RANGE = ("date.range.search.handler", HandlerKind.DATE_RANGE)

    BOOLEAN = ("boolean.search.handler", HandlerKind.FLAG)
    STATUS = ("status.search.handler", HandlerKind.FLAG)

    QUANTITY = ("quantity.search.handler", HandlerKind.QUANTITY)

    COMMON = ("common.search.handler", HandlerKind.COMMON)

    INCLUDE = ("include.search.handler", HandlerKind.INCLUDE)
    REVERSE_INCLUDE = ("revinclude.search.handler", HandlerKind.INCLUDE)

    def __init__(self, handler_name, kind):
        self.handler_name = handler_name
        self.kind = kind

    @classmethod
    def lookup(cls, name: str) -> Optional["HandlerKey"]:
        for key in cls:
            if name in (key.handler_name, key.name):
                return key
        return None


class Chain(Enum):
    GIVEN = "given"
    FAMILY = "family"
    NAME = "name"
    IDENTIFIER = "identifier"
    ADDRESS_CITY = "address-city"
    ADDRESS_STATE = "address-state"
    ADDRESS_POSTALCODE = "address-postalcode"
    ADDRESS_COUNTRY = "address-country"
    TYPE = "type"
    CODE = "code"

    @classmethod
    def parse(cls, value: str) -> "Chain":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"unsupported reference chain: {value!r}") from None


class OrListParam(tuple):
    """Values of one search parameter occurrence, matched as a union."""

    def __new__(cls, values: Iterable = ()):
        return super().__new__(cls, values)


class AndListParam(tuple):
    """OR-groups that must all match."""

    def __new__(cls, groups: Iterable = ()):
        return super().__new__(cls, (OrListParam(g) for g in groups))

    @classmethod
    def of(cls, *groups) -> "AndListParam":
        """Builds an AND-list; each group is either a single value or an iterable of values."""
        return cls(g if isinstance(g, (list, tuple, set)) else [g] for g in groups)


@dataclass(frozen=True)
class ReferenceParam:
    value: str
    chain: Optional[Chain] = None
    resource_type: Optional[str] = None

    @property
    def id_part(self) -> Optional[str]:
        return get_id_part(self.value)


@dataclass(frozen=True)
class TokenParam:
    value: str
    system: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "TokenParam":
        """Reads the system|code notation."""
        if "|" in value:
            system, code = value.split("|", 1)
            return cls(code, system or None)
        return cls(value)


@dataclass(frozen=True)
class StringParam:
    value: str
    exact: bool = False
    contains: bool = False


class ParamPrefix(Enum):
    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATERTHAN = "gt"
    LESSTHAN = "lt"
    GREATERTHAN_OR_EQUALS = "ge"
    LESSTHAN_OR_EQUALS = "le"
    STARTS_AFTER = "sa"
    ENDS_BEFORE = "eb"
    APPROXIMATE = "ap"


@dataclass(frozen=True)
class DateParam:
    value: Any
    prefix: ParamPrefix = ParamPrefix.EQUAL
    start: Any = field(init=False, repr=False, compare=False)
    end: Any = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        start, end = parse_fhir_date(self.value)
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def parse(cls, value: str) -> "DateParam":
        """Reads a prefixed date such as "ge2021-01-01"."""
        prefix, value = check_prefix(value)
        return cls(value, ParamPrefix(prefix) if prefix else ParamPrefix.EQUAL)


@dataclass(frozen=True)
class DateRangeParam:
    lower: Optional[DateParam] = None
    upper: Optional[DateParam] = None

    @classmethod
    def between(cls, lower=None, upper=None) -> "DateRangeParam":
        """Inclusive range built from two bare date values."""
        return cls(
            DateParam(lower, ParamPrefix.GREATERTHAN_OR_EQUALS) if lower is not None else None,
            DateParam(upper, ParamPrefix.LESSTHAN_OR_EQUALS) if upper is not None else None,
        )

    @property
    def bounds(self) -> List[DateParam]:
        return [b for b in (self.lower, self.upper) if b is not None]


@dataclass(frozen=True)
class QuantityParam:
    value: Decimal
    prefix: Optional[ParamPrefix] = None
    system: Optional[str] = None
    units: Optional[str] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "value", Decimal(str(self.value)))
        except InvalidOperation:
            raise InvalidParameterError(f"invalid quantity value: {self.value!r}")

    @classmethod
    def parse(cls, value: str) -> "QuantityParam":
        """Reads [prefix]number[|system|code]."""
        number, system, units = (value.split("|") + [None, None])[:3]
        prefix, number = check_prefix(number)
        return cls(number, ParamPrefix(prefix) if prefix else None, system or None, units or None)


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    param: str
    order: SortOrder = SortOrder.ASC
    chain: Optional["SortSpec"] = None

    @classmethod
    def parse(cls, value: Union[str, List[str]]) -> Optional["SortSpec"]:
        """Reads a _sort value: comma separated fields, "-" prefix for descending."""
        fields = value.split(",") if isinstance(value, str) else list(value)
        spec = None
        for argument in reversed([f.strip() for f in fields if f.strip()]):
            has_minus = argument.startswith("-")
            spec = cls(
                argument[1:] if has_minus else argument,
                SortOrder.DESC if has_minus else SortOrder.ASC,
                spec,
            )
        return spec

    def __iter__(self):
        spec = self
        while spec is not None:
            yield spec
            spec = spec.chain


@dataclass(frozen=True)
class Include:
    param_name: str
    source_type: str
    target_type: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "Include":
        """Reads "Source:param" or "Source:param:Target"."""
        match = re.search(r"^([A-Za-z]+):([A-Za-z\-]+)(?::([A-Za-z]+))?$", value.strip())
        if not match:
            raise InvalidParameterError(f"invalid include directive: {value!r}")
        return cls(match.group(2), match.group(1), match.group(3))


@dataclass(frozen=True)
class PropParam:
    property_name: Optional[str]
    param: Any


Key = Union[HandlerKey, str]


class SearchParameterMap:
    """Ordered multimap of search criteria.

    Every add_parameter call appends an entry; entries under the same key are
    combined with AND. Keys are not validated here: a string key that names no
    HandlerKey is kept and ignored when the query is composed.
    """

    def __init__(self):
        self._params: Dict[Key, List[PropParam]] = {}
        self.sort: Optional[SortSpec] = None

    def add_parameter(self, key: Key, param, property_name: Optional[str] = None):
        if isinstance(key, str):
            key = HandlerKey.lookup(key) or key
        self._params.setdefault(key, []).append(PropParam(property_name, param))
        return self

    def set_sort(self, sort: Optional[SortSpec]):
        self.sort = sort
        return self

    def get_parameters(self, key: Key) -> List[PropParam]:
        if isinstance(key, str):
            key = HandlerKey.lookup(key) or key
        return list(self._params.get(key, []))

    def items(self) -> List[Tuple[Key, List[PropParam]]]:
        return [(key, list(entries)) for key, entries in self._params.items()]

    def keys(self) -> List[Key]:
        return list(self._params)

    @property
    def includes(self) -> List[Include]:
        return self._directives(HandlerKey.INCLUDE)

    @property
    def rev_includes(self) -> List[Include]:
        return self._directives(HandlerKey.REVERSE_INCLUDE)

    def _directives(self, key: HandlerKey) -> List[Include]:
        directives = []
        for entry in self._params.get(key, []):
            values = entry.param if isinstance(entry.param, (list, tuple, set)) else [entry.param]
            for value in values:
                include = Include.parse(value) if isinstance(value, str) else value
                if include not in directives:
                    directives.append(include)
        return directives

    def __len__(self):
        return sum(len(entries) for entries in self._params.values())

    def __bool__(self):
        # a map holding only a sort is still a search
        return True

    def __repr__(self):
        return f"SearchParameterMap({self._params!r}, sort={self.sort!r})"
