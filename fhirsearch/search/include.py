import logging
from collections import namedtuple
from typing import List, Mapping, Tuple

from fhirsearch.search.parameters import AndListParam, ReferenceParam, SearchParameterMap

ResourceBinding = namedtuple("ResourceBinding", ["dao", "translator"])


class SearchQueryInclude:
    """
    Resolves _include and _revinclude directives for a page of primary records.

    Each directive costs one batched lookup whatever the page size. The primary filter
    is never applied to the included resources.
    """

    def __init__(self, resources: Mapping[str, ResourceBinding], composer):
        self.resources = resources
        self.composer = composer

    def get_included_resources(self, records, dao, params: SearchParameterMap) -> List[Tuple]:
        """
        Returns the translated (resource_type, resource) pairs related to records.

        Every related entity appears once, and never when it is one of the primary
        records themselves.
        """
        seen = {(dao.resource_type, record.uuid) for record in records}
        included = []

        def add(resource_type, translator, related):
            for record in related:
                if (resource_type, record.uuid) in seen:
                    continue
                seen.add((resource_type, record.uuid))
                included.append((resource_type, translator(record)))

        for directive in params.includes:
            resource_type, related = self.forward(records, dao, directive)
            if related:
                add(resource_type, self.resources[resource_type].translator, related)

        for directive in params.rev_includes:
            related = self.reverse(records, dao, directive)
            if related:
                add(directive.source_type, self.resources[directive.source_type].translator, related)

        return included

    def forward(self, records, dao, directive):
        if directive.source_type != dao.resource_type:
            logging.debug(f"_include {directive} does not apply to {dao.resource_type}, ignoring")
            return None, []
        relation = dao.include_relations.get(directive.param_name)
        if relation is None or relation.target_type not in self.resources:
            logging.debug(f"unsupported _include {directive}, ignoring")
            return None, []
        if directive.target_type and directive.target_type != relation.target_type:
            return None, []

        ids = [getattr(record, dao.id_property) for record in records]
        target_ids = list(dict.fromkeys(dao.session.scalars(relation.link(ids))))
        target = self.resources[relation.target_type]
        return relation.target_type, target.dao.get_by_ids(target_ids)

    def reverse(self, records, dao, directive):
        source = self.resources.get(directive.source_type)
        if source is None:
            logging.debug(f"unsupported _revinclude {directive}, ignoring")
            return []
        key = source.dao.reference_params.get(directive.param_name)
        relation = source.dao.include_relations.get(directive.param_name)
        if key is None or (relation is not None and relation.target_type != dao.resource_type):
            logging.debug(f"_revinclude {directive} does not reference {dao.resource_type}, ignoring")
            return []
        if directive.target_type and directive.target_type != dao.resource_type:
            return []

        references = [ReferenceParam(record.uuid, resource_type=dao.resource_type) for record in records]
        params = SearchParameterMap().add_parameter(key, AndListParam.of(references))
        composed = self.composer.compose(source.dao, params)
        return source.dao.search_results(composed)
