"""
sources/rest_json.py — Generic REST-JSON source adapter.

Most providers answer one GET with a JSON document holding a list of daily
observations somewhere inside it. RestJsonSource is configured with:

  url / params   request; "{dimension}" in the url is filled per call
  rows_path      keys (or list indices) leading to the list of items
  date_field     where the day lives in each item (None for snapshots)
  fields         metric field → dotted path in the item, or a callable
  paginator      optional BackwardCursor for APIs capped per request

Provider modules subclass it to add payload-level error checks.

Usage:
    source = RestJsonSource(
        http,
        name="defillama",
        url="https://api.llama.fi/v2/historicalChainTvl/{dimension}",
        date_field="date",
        fields={"tvl": "tvl"},
    )
    df = await source.fetch(l2_tvl, window, dimension="Arbitrum")
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any
from urllib.parse import quote

from ethval_pipeline.errors import SchemaMismatch
from ethval_pipeline.sources.base import BaseSource, RawRow
from ethval_pipeline.sources.http import HttpFetcher
from ethval_shared.time_utils import HistoryWindow, parse_chain_date

FieldGetter = str | Callable[[Any], Any]

SECONDS_PER_DAY = 86_400


def lookup(item: Any, path: str | int | Sequence[str | int]) -> Any:
    """
    Walk a dotted path ("a.b.0.c") or key sequence through dicts and lists.

    Missing keys yield None; a path that runs into a scalar yields None.
    """
    if isinstance(path, (str, int)):
        parts: Sequence[str | int] = str(path).split(".") if path != "" else []
    else:
        parts = path
    node = item
    for part in parts:
        if isinstance(node, Mapping):
            node = node.get(part) if part in node else node.get(str(part))
        elif isinstance(node, list):
            try:
                node = node[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            return None
        if node is None:
            return None
    return node


@dataclass(frozen=True)
class BackwardCursor:
    """
    Walk a history backwards, one page per request.

    Each request sends `param` = cursor; the next cursor is the oldest item
    time on the page minus step_seconds. Stops on an empty page, once enough
    rows cover the window, or after max_pages.
    """

    param: str
    time_field: str = "time"
    step_seconds: int = SECONDS_PER_DAY
    max_pages: int = 10


class RestJsonSource(BaseSource):
    """Configurable adapter for JSON endpoints returning daily observations."""

    def __init__(
        self,
        http: HttpFetcher,
        *,
        name: str,
        url: str,
        fields: Mapping[str, FieldGetter],
        params: Mapping[str, Any] | None = None,
        rows_path: Sequence[str | int] = (),
        date_field: FieldGetter | None = "date",
        dimension_keys: Mapping[str, str] | None = None,
        paginator: BackwardCursor | None = None,
        description: str = "",
    ) -> None:
        super().__init__(name)
        self._http = http
        self._url = url
        self._params = dict(params or {})
        self._rows_path = list(rows_path)
        self._date_field = date_field
        self._fields = dict(fields)
        self._dimension_keys = dict(dimension_keys or {})
        self._paginator = paginator
        self.description = description or url

    # ------------------------------------------------------------------
    # Hooks for provider subclasses
    # ------------------------------------------------------------------

    def check_payload(self, payload: Any) -> None:
        """Raise a FetchError when the payload reports an API-level error."""

    def keep_item(self, item: Any) -> bool:
        """Filter individual items before mapping (e.g. zero-price days)."""
        return True

    def params_for(self, window: HistoryWindow) -> dict[str, Any]:
        """Query parameters for a window; override for date-ranged APIs."""
        return dict(self._params)

    # ------------------------------------------------------------------

    def url_for(self, dimension: str | None) -> str:
        if "{dimension}" not in self._url:
            return self._url
        if dimension is None:
            raise SchemaMismatch(f"{self.name}: url needs a dimension", source=self.name)
        token = self._dimension_keys.get(dimension, dimension)
        return self._url.replace("{dimension}", quote(token, safe=""))

    def items_from(self, payload: Any) -> list[Any]:
        items = lookup(payload, self._rows_path) if self._rows_path else payload
        if items is None:
            raise SchemaMismatch(
                f"{self.name}: response has no {'.'.join(map(str, self._rows_path))}",
                source=self.name,
            )
        if self._date_field is None and isinstance(items, Mapping):
            return [items]
        if not isinstance(items, list):
            raise SchemaMismatch(
                f"{self.name}: expected a list of rows, got {type(items).__name__}",
                source=self.name,
            )
        return items

    def map_item(self, item: Any, window: HistoryWindow) -> RawRow:
        row: RawRow = {}
        if self._date_field is None:
            row["date"] = window.end
        else:
            row["date"] = _get(item, self._date_field)
        for name, getter in self._fields.items():
            row[name] = _get(item, getter)
        return row

    async def _fetch_page(self, url: str, params: dict[str, Any]) -> list[Any]:
        payload = await self._http.get_json(url, params=params or None)
        self.check_payload(payload)
        return [item for item in self.items_from(payload) if self.keep_item(item)]

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        url = self.url_for(dimension)
        if self._paginator is None:
            items = await self._fetch_page(url, self.params_for(window))
            return [self.map_item(item, window) for item in items]
        return await self._extract_paged(url, window, self._paginator)

    async def _extract_paged(
        self, url: str, window: HistoryWindow, paginator: BackwardCursor
    ) -> list[RawRow]:
        cursor = int(
            datetime.combine(window.end, time.max, tzinfo=timezone.utc).timestamp()
        )
        seen: dict[Any, RawRow] = {}
        for page in range(paginator.max_pages):
            params = {**self.params_for(window), paginator.param: cursor}
            items = await self._fetch_page(url, params)
            if not items:
                break
            times = [
                int(t) for t in (lookup(i, paginator.time_field) for i in items) if t is not None
            ]
            for item in items:
                row = self.map_item(item, window)
                seen.setdefault(parse_chain_date(row.get("date")), row)
            if not times:
                break
            oldest = min(times)
            self._log.debug("page_fetched", page=page + 1, items=len(items), oldest=oldest)
            oldest_day = parse_chain_date(oldest)
            if len(seen) >= window.days or (oldest_day is not None and oldest_day <= window.start):
                break
            cursor = oldest - paginator.step_seconds
        return list(seen.values())


def _get(item: Any, getter: FieldGetter) -> Any:
    if callable(getter):
        return getter(item)
    return lookup(item, getter)
