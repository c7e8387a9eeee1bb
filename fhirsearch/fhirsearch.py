from types import MappingProxyType
from typing import Optional, Union

from fhir.resources.R4B.operationoutcome import OperationOutcome
from sqlalchemy.orm import Session

from fhirsearch.config import SearchSettings, get_settings
from fhirsearch.dao import DAOS
from fhirsearch.errors import NotSupportedError
from fhirsearch.search.bundle import Bundle
from fhirsearch.search.handlers import HandlerRegistry
from fhirsearch.search.include import ResourceBinding, SearchQueryInclude
from fhirsearch.search.parameters import SearchParameterMap
from fhirsearch.search.provider import SearchQueryBundleProvider
from fhirsearch.search_engine import SearchEngine
from fhirsearch.translators import TRANSLATORS


class FHIRSearch:
    """
    Search front for every supported resource type, bound to one database session.

    Store and translation failures are not caught here: they reach the caller as raised.
    """

    def __init__(
        self,
        session: Session,
        settings: Optional[SearchSettings] = None,
        registry: Optional[HandlerRegistry] = None,
    ):
        self.session = session
        self.settings = settings if settings is not None else get_settings()
        self.resources = MappingProxyType(
            {
                resource_type: ResourceBinding(dao(session), TRANSLATORS[resource_type])
                for resource_type, dao in DAOS.items()
            }
        )
        self.engine = SearchEngine(registry, self.settings)
        self.include = SearchQueryInclude(self.resources, self.engine.composer)

    @property
    def supported_resources(self):
        return sorted(self.resources)

    def provider(
        self, resource_type: str, params: Optional[SearchParameterMap] = None
    ) -> SearchQueryBundleProvider:
        if resource_type not in self.resources:
            raise NotSupportedError(f'unsupported FHIR resource: "{resource_type}"')
        binding = self.resources[resource_type]
        return self.engine.search(params, binding.dao, binding.translator, self.include)

    def search(
        self,
        resource_type: str,
        params: Optional[SearchParameterMap] = None,
        offset: int = 0,
        count: Optional[int] = None,
    ) -> Union[Bundle, OperationOutcome]:
        """
        Searches resources of one type.

        Args:
            - resource_type: FHIR resource (eg: 'Patient')
            - params: criteria, sort and include directives
            - offset: index of the first match to return
            - count: page size, defaults to the configured page size

        Returns: a searchset Bundle, or an OperationOutcome when the resource type is
        not supported.
        """
        try:
            provider = self.provider(resource_type, params)
        except NotSupportedError as e:
            return e.format()
        return provider.bundle(offset, count)
