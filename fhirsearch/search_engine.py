import logging
from typing import Callable, Optional

from fhirsearch.config import SearchSettings, get_settings
from fhirsearch.search.composer import CriteriaComposer
from fhirsearch.search.handlers import HandlerRegistry
from fhirsearch.search.parameters import SearchParameterMap
from fhirsearch.search.provider import SearchQueryBundleProvider


class SearchEngine:
    """Composes a search for one resource type and hands back a lazy result provider."""

    def __init__(
        self,
        registry: Optional[HandlerRegistry] = None,
        settings: Optional[SearchSettings] = None,
    ):
        self.settings = settings if settings is not None else get_settings()
        self.composer = CriteriaComposer(registry, self.settings)

    def search(
        self,
        params: Optional[SearchParameterMap],
        dao,
        translator: Callable,
        include=None,
    ) -> SearchQueryBundleProvider:
        """
        Args:
            - params: search criteria, sort and include directives
            - dao: entity access object of the searched resource type
            - translator: one-argument function turning a record into a FHIR resource
            - include: optional include resolver for the _include/_revinclude directives

        Returns: a provider that runs the composed query on demand.
        """
        params = params if params is not None else SearchParameterMap()
        composed = self.composer.compose(dao, params)
        logging.debug(f"composed {dao.resource_type} search over {len(params)} parameters")
        return SearchQueryBundleProvider(
            composed, dao, translator, include=include, params=params, settings=self.settings
        )
