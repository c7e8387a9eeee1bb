import logging
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import aliased

from fhirsearch.search.bindings import Path


class CriteriaContext:
    """
    State of one query composition: the aliased root entity, the joins made so far and
    the predicates collected.

    Joins are registered by relationship path, so every filter reaching the same related
    entity through the same path shares one joined row. Joins to voidable entities only
    reach non-voided rows.
    """

    def __init__(self, model, settings):
        self.model = model
        self.settings = settings
        self.root = aliased(model, flat=True)
        self.predicates: List = []
        self._aliases: Dict[Path, object] = {(): self.root}
        self._joins: Dict[Path, dict] = {}

    def join(self, path: Path, outer: bool = False):
        path = tuple(path)
        if path in self._aliases:
            if outer and path in self._joins:
                self._mark_outer(path)
            return self._aliases[path]

        parent = self.join(path[:-1], outer=outer)
        attribute = getattr(parent, path[-1])
        target = attribute.property.mapper.class_
        alias = aliased(target, flat=True)
        onclause = attribute.of_type(alias)
        if hasattr(target, "voided"):
            onclause = onclause.and_(alias.voided.is_(False))

        logging.debug(f"joining {'.'.join(path)} from {self.model.__name__}")
        self._aliases[path] = alias
        self._joins[path] = {"onclause": onclause, "outer": outer}
        return alias

    def _mark_outer(self, path: Path):
        while path:
            self._joins[path]["outer"] = True
            path = path[:-1]

    @property
    def joined_paths(self) -> List[Path]:
        return list(self._joins)

    def add_predicate(self, predicate):
        if predicate is not None:
            self.predicates.append(predicate)

    def id_query(self, id_property: str):
        """Select of the (possibly repeated) primary keys matching every predicate."""
        query = select(getattr(self.root, id_property))
        for join in self._joins.values():
            query = query.join(join["onclause"], isouter=join["outer"])
        return query.where(*self.predicates)
