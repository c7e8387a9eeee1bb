"""
Entity bindings: how a logical search field of a resource type reaches its column.

Paths are tuples of relationship attribute names followed from the root entity of the
query; every binding is immutable and shared between compositions.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from fhirsearch.search.parameters import Chain

Path = Tuple[str, ...]


@dataclass(frozen=True)
class ColumnRef:
    column: str
    path: Path = ()

    def resolve(self, context, base: Path = ()):
        return getattr(context.join(base + self.path), self.column)


@dataclass(frozen=True)
class ChainTarget:
    """String columns matched by a chained reference (patient.given, location.name...)."""

    columns: Tuple[str, ...]
    path: Path = ()
    # prefix match instead of literal match
    prefix: bool = False
    # split the value into tokens matched against any column
    split: bool = False


@dataclass(frozen=True)
class ConceptChainTarget:
    """Coded concept matched by a chained reference (hasMember.code)."""

    path: Path


@dataclass(frozen=True)
class ReferenceBinding:
    path: Path
    id_column: str = "uuid"
    pk_column: Optional[str] = None
    chains: Mapping[Chain, Union[ChainTarget, ConceptChainTarget]] = field(default_factory=dict)


@dataclass(frozen=True)
class ConceptTokenBinding:
    path: Path
    # literal code column matched whatever the concept mapping outcome
    fallback: Optional[ColumnRef] = None


@dataclass(frozen=True)
class ColumnTokenBinding:
    column: ColumnRef
    system: Optional[ColumnRef] = None
    # code -> stored value (None matches NULL); a callable receives the settings
    value_map: Union[None, Mapping[str, Any], Callable[[Any], Mapping[str, Any]]] = None


@dataclass(frozen=True)
class StringBinding:
    columns: Tuple[ColumnRef, ...]
    split: bool = False
    # honours the name_matching setting
    name_field: bool = False


@dataclass(frozen=True)
class DateRangeBinding:
    columns: Tuple[ColumnRef, ...]


@dataclass(frozen=True)
class FlagBinding:
    """Status literal -> predicate builder taking the aliased entity at path."""

    flags: Mapping[str, Callable[[Any], Any]]
    path: Path = ()


@dataclass(frozen=True)
class QuantityBinding:
    column: ColumnRef


@dataclass(frozen=True)
class CommonBinding:
    id_column: str = "uuid"
    created_column: str = "date_created"
    # None for entities that are never changed once written
    changed_column: Optional[str] = "date_changed"
