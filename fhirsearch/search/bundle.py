from typing import Iterable, Optional, Tuple

from yarl import URL


class Bundle:
    """Searchset bundle: matched resources first, included resources after them."""

    def __init__(self, resource_type: str, base_url: Optional[str] = None):
        self.resource_type = resource_type
        self.base_url = base_url
        self.content = {"resourceType": "Bundle", "type": "searchset", "total": 0, "entry": []}

    def full_url(self, resource_type: str, resource_id: str) -> Optional[str]:
        if not self.base_url:
            return None
        return str(URL(self.base_url) / resource_type / resource_id)

    def _entry(self, resource_type, resource, mode):
        entry = {"resource": resource, "search": {"mode": mode}}
        full_url = self.full_url(resource_type, resource.id)
        if full_url:
            entry["fullUrl"] = full_url
        return entry

    def fill(self, resources: Iterable, total: int):
        for resource in resources:
            self.content["entry"].append(self._entry(self.resource_type, resource, "match"))
        self.content["total"] = total

    def append(self, included: Iterable[Tuple[str, object]]):
        for resource_type, resource in included:
            self.content["entry"].append(self._entry(resource_type, resource, "include"))

    def paginate(self, offset: int, count: int):
        if not self.base_url:
            return
        url = URL(self.base_url) / self.resource_type
        links = [{"relation": "self", "url": str(url.with_query(_offset=offset, _count=count))}]
        if count > 0 and offset + count < self.content["total"]:
            links.append(
                {"relation": "next", "url": str(url.with_query(_offset=offset + count, _count=count))}
            )
        if count > 0 and offset > 0:
            links.append(
                {
                    "relation": "previous",
                    "url": str(url.with_query(_offset=max(offset - count, 0), _count=count)),
                }
            )
        self.content["link"] = links

    @property
    def entries(self):
        return self.content["entry"]

    @property
    def total(self) -> int:
        return self.content["total"]
