import asyncio
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from shopwatch.core.config import Settings, settings as default_settings

ASIN_RE = re.compile(r"^[A-Z0-9]{10}$")
USER_AGENT = "shopwatch/0.1"


class ProviderError(Exception):
    """Base class for anything that goes wrong talking to a search provider."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class ProviderConfigError(ProviderError):
    """Provider disabled, missing credentials, or an invalid request."""


class ProviderTimeoutError(ProviderError):
    pass


class ProviderHTTPError(ProviderError):
    """Non-2xx response or a transport-level failure."""


class ProviderPayloadError(ProviderError):
    """Response was not JSON, or was a JSON error payload."""


def _redact_key(s: str) -> str:
    """
    Redact 'api_key=...' in URLs so we never leak API keys in logs/metrics.
    """
    if not s:
        return s
    return re.sub(r"(api_key=)([^&\s]+)", r"\1REDACTED", s)


def normalize_whitespace(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip()


def _clamp_int(value: Any, fallback: int, lo: int, hi: int) -> int:
    try:
        n = round(float(value))
    except (TypeError, ValueError):
        return fallback
    return max(lo, min(hi, n))


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResponseCache:
    """
    Short-TTL response cache, bounded in size.

    Insert order is eviction order: past `max_entries` the oldest insert goes.
    Expired entries are dropped when read.
    """

    def __init__(self, ttl_seconds: float = 300.0, max_entries: int = 500, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, Dict[str, Any]]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, payload = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return payload

    def set(self, key: str, payload: Dict[str, Any]) -> None:
        if not key or payload is None:
            return
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), payload)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


@dataclass
class ProviderMetrics:
    provider: str = "serpapi"
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    last_attempt_at: Optional[str] = None
    last_success_at: Optional[str] = None
    last_failure_at: Optional[str] = None
    last_error: Optional[str] = None
    last_status_code: Optional[int] = None
    last_url: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


# ---------------------------------------------------------------------------
# Result shapes
#
# SerpApi returns different arrays depending on the engine. Each known array
# has its own mapper into SerpResult; missing fields map to defaults.
# ---------------------------------------------------------------------------

@dataclass
class SerpResult:
    kind: str
    title: str = ""
    link: str = ""
    snippet: str = ""
    price: Any = None
    extracted_price: Optional[float] = None
    delivery: str = ""


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _text(value: Any) -> str:
    """Some engines send text fields as lists of lines."""
    if isinstance(value, list):
        return normalize_whitespace(" ".join(str(v) for v in value if v))
    if isinstance(value, dict):
        return ""
    return normalize_whitespace(value)


def _map_organic(r: Dict[str, Any]) -> SerpResult:
    snippet = r.get("snippet") or r.get("snippet_highlighted_words")
    return SerpResult(
        kind="organic",
        title=normalize_whitespace(r.get("title") or r.get("name")),
        link=normalize_whitespace(r.get("link") or r.get("url")),
        snippet=_text(snippet),
        price=r.get("price") or r.get("extracted_price") or r.get("price_raw"),
        extracted_price=_numeric(r.get("extracted_price")),
        delivery=_text(r.get("delivery") or r.get("shipping")),
    )


def _map_shopping(r: Dict[str, Any]) -> SerpResult:
    return SerpResult(
        kind="shopping",
        title=normalize_whitespace(r.get("title") or r.get("name")),
        link=normalize_whitespace(r.get("link") or r.get("product_link") or r.get("url")),
        snippet=_text(r.get("snippet")),
        price=r.get("price") or r.get("extracted_price"),
        extracted_price=_numeric(r.get("extracted_price")),
        delivery=_text(r.get("delivery") or r.get("shipping")),
    )


def _map_inline_shopping(r: Dict[str, Any]) -> SerpResult:
    return SerpResult(
        kind="inline_shopping",
        title=normalize_whitespace(r.get("title")),
        link=normalize_whitespace(r.get("link") or r.get("url")),
        snippet="",
        price=r.get("price") or r.get("extracted_price"),
        extracted_price=_numeric(r.get("extracted_price")),
        delivery=_text(r.get("delivery") or r.get("shipping")),
    )


RESULT_SHAPES: Dict[str, Callable[[Dict[str, Any]], SerpResult]] = {
    "organic_results": _map_organic,
    "shopping_results": _map_shopping,
    "inline_shopping_results": _map_inline_shopping,
}


def parse_serp_results(payload: Any, host_filter: str = "", limit: int = 12) -> List[SerpResult]:
    """
    Flatten every known result array into SerpResults.
    Skips non-http links, duplicate links and (when given) other hosts.
    """
    if not isinstance(payload, dict):
        return []

    wanted_host = re.sub(r"^www\.", "", host_filter or "", flags=re.IGNORECASE).lower()
    out: List[SerpResult] = []
    seen: set[str] = set()

    for shape, mapper in RESULT_SHAPES.items():
        items = payload.get(shape)
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            result = mapper(item)
            if not result.link.startswith("http"):
                continue
            if wanted_host:
                try:
                    host = (httpx.URL(result.link).host or "").lower()
                except (httpx.InvalidURL, ValueError):
                    continue
                if wanted_host not in host:
                    continue
            if result.link in seen:
                continue
            seen.add(result.link)
            out.append(result)
            if len(out) >= limit:
                return out
    return out


def parse_price_value(value: Any) -> Optional[float]:
    """
    Converts 499.99, "$599.99", "From $499.99", "$1,402.58" to float.
    Returns None if not parseable or not positive.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    m = re.search(r"(\d+(?:\.\d+)?)", str(value).replace(",", ""))
    if not m:
        return None
    num = float(m.group(1))
    return num if num > 0 else None


@dataclass
class AmazonProductDetail:
    asin: str
    title: str = ""
    link: str = ""
    price_text: str = ""
    extracted_price: Optional[float] = None
    delivery: str = ""
    source: str = "Amazon"


def _dig(obj: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(obj, list) or len(obj) <= key:
                return None
            obj = obj[key]
        else:
            if not isinstance(obj, dict):
                return None
            obj = obj.get(key)
    return obj


def parse_amazon_product(asin: str, payload: Dict[str, Any]) -> AmazonProductDetail:
    """Map an amazon_product payload; every field is optional."""
    text_candidates = [
        _dig(payload, "buybox_winner", "price"),
        _dig(payload, "buybox_winner", "raw"),
        _dig(payload, "product_results", "price"),
        _dig(payload, "product_results", "prices", 0, "raw"),
        _dig(payload, "offers", "primary", "price"),
        _dig(payload, "offers", 0, "price"),
    ]
    numeric_candidates = [
        _dig(payload, "buybox_winner", "price"),
        _dig(payload, "buybox_winner", "price", "value"),
        _dig(payload, "buybox_winner", "price", "raw"),
        _dig(payload, "buybox_winner", "raw"),
        _dig(payload, "product_results", "price"),
        _dig(payload, "product_results", "prices", 0, "value"),
        _dig(payload, "product_results", "prices", 0, "raw"),
        _dig(payload, "offers", "primary", "price"),
        _dig(payload, "offers", 0, "price"),
    ]

    price_text = next(
        (normalize_whitespace(v) for v in text_candidates if isinstance(v, (str, int, float)) and normalize_whitespace(v)),
        "",
    )
    extracted = next(
        (p for p in (parse_price_value(v) for v in numeric_candidates if not isinstance(v, dict)) if p),
        None,
    )

    raw_link = (
        _dig(payload, "product_results", "link")
        or _dig(payload, "product_results", "url")
        or _dig(payload, "buybox_winner", "link")
        or ""
    )
    if ASIN_RE.match(asin):
        link = f"https://www.amazon.com/dp/{asin}"
    else:
        link = raw_link if str(raw_link).startswith("http") else ""

    return AmazonProductDetail(
        asin=asin,
        title=normalize_whitespace(
            _dig(payload, "product_results", "title")
            or _dig(payload, "product_results", "name")
            or _dig(payload, "search_information", "query_displayed")
        ),
        link=link,
        price_text=price_text,
        extracted_price=extracted,
        delivery=normalize_whitespace(
            _dig(payload, "buybox_winner", "delivery")
            or _dig(payload, "buybox_winner", "shipping")
            or _dig(payload, "buybox_winner", "ships_from")
        ),
    )


@dataclass
class SerpApiClient:
    """
    Process-scoped SerpApi client.

    Owns the response cache and call metrics so they live exactly as long as
    the app (or test) that created the client.
    """
    config: Settings = field(default_factory=lambda: default_settings)
    transport: Optional[httpx.AsyncBaseTransport] = None
    cache: ResponseCache = None  # type: ignore[assignment]
    metrics: ProviderMetrics = field(default_factory=ProviderMetrics)

    def __post_init__(self):
        if self.cache is None:
            self.cache = ResponseCache(
                ttl_seconds=self.config.SERPAPI_CACHE_TTL_SECONDS,
                max_entries=self.config.SERPAPI_CACHE_MAX_ENTRIES,
            )

    @property
    def enabled(self) -> bool:
        return bool(self.config.ENABLE_SERPAPI and self.config.SERPAPI_API_KEY.strip())

    def get_metrics(self) -> Dict[str, Any]:
        return {**self.metrics.as_dict(), "cache_size": len(self.cache)}

    def _build_params(self, engine: str, query: str, host: str, limit: int, asin: str) -> Optional[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "api_key": self.config.SERPAPI_API_KEY.strip(),
            "gl": self.config.SERPAPI_COUNTRY or "us",
            "hl": self.config.SERPAPI_LANGUAGE or "en",
        }

        if engine == "amazon_product":
            if not ASIN_RE.match(asin):
                raise ProviderConfigError("SerpApi amazon_product requires a valid ASIN")
            params.update(engine="amazon_product", asin=asin, amazon_domain=host or "amazon.com")
        elif engine == "amazon":
            scoped = normalize_whitespace(query)
            if not scoped:
                return None
            params.update(engine="amazon", k=scoped, amazon_domain=host or "amazon.com", page=1)
        else:
            scoped = normalize_whitespace(f"site:{host} {query}" if host else query)
            if not scoped:
                return None
            params.update(engine=engine or "google", q=scoped, num=limit)
        return params

    async def query(
        self,
        query: str = "",
        *,
        host: str = "",
        engine: Optional[str] = None,
        limit: int = 12,
        asin: str = "",
        timeout: Optional[float] = None,
        no_cache: bool = False,
    ) -> Dict[str, Any]:
        """
        One GET to /search.json. Returns the raw JSON payload.

        Raises a ProviderError subclass on anything but a clean 2xx JSON reply.
        """
        if not self.enabled:
            raise ProviderConfigError("SerpApi is not configured")

        engine = str(engine or self.config.SERPAPI_ENGINE or "google").lower()
        limit = _clamp_int(limit, 12, 1, 25)
        asin = str(asin or "").strip().upper()
        host = re.sub(r"^www\.", "", host or "", flags=re.IGNORECASE)

        params = self._build_params(engine, query, host, limit, asin)
        if params is None:
            return {"search_metadata": {"id": None}}
        if no_cache:
            params["no_cache"] = "true"

        cache_key = ""
        if not no_cache:
            cache_key = f"engine={engine}|host={host}|limit={limit}|query={normalize_whitespace(query)}|asin={asin}"
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        base = self.config.SERPAPI_BASE_URL.rstrip("/")
        url = f"{base}/search.json"
        timeout = max(2.0, float(timeout or self.config.SERPAPI_REQUEST_TIMEOUT_SECONDS or 12.0))

        self.metrics.attempts += 1
        self.metrics.last_attempt_at = _utcnow_iso()
        self.metrics.last_error = None
        self.metrics.last_status_code = None
        self.metrics.last_url = _redact_key(str(httpx.URL(url, params=params)))

        try:
            payload = await asyncio.wait_for(self._get_json(url, params, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            self._record_failure(f"SerpApi request timed out after {timeout:.1f}s")
            raise ProviderTimeoutError(f"SerpApi request timed out after {timeout:.1f}s")
        except ProviderError as e:
            self._record_failure(e.message)
            raise

        self.metrics.successes += 1
        self.metrics.last_success_at = _utcnow_iso()
        if cache_key:
            self.cache.set(cache_key, payload)
        return payload

    async def _get_json(self, url: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            try:
                r = await client.get(url, params=params, headers={"User-Agent": USER_AGENT})
            except httpx.TimeoutException as e:
                raise ProviderTimeoutError(f"SerpApi request timed out: {e}")
            except httpx.HTTPError as e:
                raise ProviderHTTPError(f"SerpApi request failed: {_redact_key(str(e))}")

        self.metrics.last_status_code = r.status_code
        try:
            data = r.json()
        except ValueError:
            data = None

        if r.status_code >= 400:
            raise ProviderHTTPError(f"SerpApi HTTP {r.status_code}", status_code=r.status_code, body=data)
        if not isinstance(data, dict):
            raise ProviderPayloadError("SerpApi returned a non-JSON body", status_code=r.status_code)
        # Normalize: if the engine returns an error payload, surface it clearly
        if data.get("error"):
            raise ProviderPayloadError(f"SerpApi error: {data.get('error')}", status_code=r.status_code, body=data)
        return data

    def _record_failure(self, message: str) -> None:
        self.metrics.failures += 1
        self.metrics.last_failure_at = _utcnow_iso()
        self.metrics.last_error = message

    async def search_offers(
        self,
        query: str,
        *,
        host: str = "",
        engine: Optional[str] = None,
        limit: int = 12,
        timeout: Optional[float] = None,
        no_cache: bool = False,
    ) -> List[SerpResult]:
        q = normalize_whitespace(query)
        if not q:
            return []
        payload = await self.query(q, host=host, engine=engine, limit=limit, timeout=timeout, no_cache=no_cache)
        return parse_serp_results(payload, host, limit)

    async def fetch_amazon_product(
        self,
        asin: str,
        *,
        timeout: Optional[float] = None,
        no_cache: bool = False,
    ) -> Optional[AmazonProductDetail]:
        asin = str(asin or "").strip().upper()
        if not ASIN_RE.match(asin):
            return None
        payload = await self.query(
            "",
            host="amazon.com",
            engine="amazon_product",
            asin=asin,
            timeout=max(3.5, float(timeout or 8.0)),
            no_cache=no_cache,
        )
        return parse_amazon_product(asin, payload)
