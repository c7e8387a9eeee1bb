import logging
from typing import Callable, List, Optional, Tuple

from fhirsearch.config import SearchSettings, get_settings
from fhirsearch.errors import InvalidParameterError
from fhirsearch.search.bundle import Bundle
from fhirsearch.search.composer import ComposedQuery
from fhirsearch.search.parameters import SearchParameterMap


class SearchQueryBundleProvider:
    """
    Lazily runs a composed search.

    Only the composed query is kept: every call goes back to the store, so calls can be
    repeated and interleaved in any order.
    """

    def __init__(
        self,
        composed: ComposedQuery,
        dao,
        translator: Callable,
        include=None,
        params: Optional[SearchParameterMap] = None,
        settings: Optional[SearchSettings] = None,
    ):
        self.composed = composed
        self.dao = dao
        self.translator = translator
        self.include = include
        self.params = params if params is not None else SearchParameterMap()
        self.settings = settings if settings is not None else get_settings()

    @property
    def resource_type(self) -> str:
        return self.composed.resource_type

    def preferred_page_size(self) -> int:
        return self.settings.default_page_size

    def fetch_page(self, offset: int = 0, count: Optional[int] = None) -> List:
        """Records at [offset, offset + count) of the sorted, de-duplicated results."""
        if offset < 0 or (count is not None and count < 0):
            raise InvalidParameterError(f"invalid page window: offset={offset}, count={count}")
        if count == 0:
            return []
        return self.dao.search_results(self.composed, offset, count)

    def total_count(self) -> int:
        return self.dao.search_results_count(self.composed)

    def distinct_identifiers(self) -> List[str]:
        return self.dao.search_result_uuids(self.composed)

    def get_resources(self, offset: int = 0, count: Optional[int] = None) -> Tuple[List, List]:
        """Translated page and translated included resources."""
        records = self.fetch_page(offset, count)
        resources = [self.translator(record) for record in records]
        included = []
        if self.include is not None and records:
            included = self.include.get_included_resources(records, self.dao, self.params)
        return resources, included

    def bundle(self, offset: int = 0, count: Optional[int] = None) -> Bundle:
        count = self.preferred_page_size() if count is None else min(count, self.settings.max_page_size)
        resources, included = self.get_resources(offset, count)
        total = self.total_count()
        logging.debug(
            f"{self.resource_type} search: {len(resources)} of {total} results, "
            f"{len(included)} included"
        )

        bundle = Bundle(self.resource_type, self.settings.base_url)
        bundle.fill(resources, total)
        bundle.append(included)
        bundle.paginate(offset, count)
        return bundle
