"""
Hugging Face registry client.

Queries the model search and model-details endpoints, validates and extracts
every returned record, and memoises results in a :class:`~modelscout.cache.TTLCache`
keyed by the normalised query. Non-2xx responses surface as
:class:`~modelscout.errors.RegistryError`; nothing is retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .cache import TTLCache, get_default_cache, make_cache_key
from .config import ScoutConfig, get_config
from .errors import err_registry
from .extractor import (
    MODEL_TYPES,
    Candidate,
    DiffusionCandidate,
    extract_candidates,
    extract_diffusion_candidates,
    parse_raw_record,
    to_candidate,
)
from .quant_utils import canonical_min_quant, min_quant_level, quant_level

logger = logging.getLogger(__name__)

MAX_LIMIT = 100
DEFAULT_LIMIT = 20
SORT_KEYS: Tuple[str, ...] = ("downloads", "likes", "lastModified")
PRIMARY_LIBRARY = "gguf"

# Capability tag sent as the single ``filter`` for each image-model type.
DIFFUSION_HF_TAGS: Dict[str, Tuple[str, ...]] = {
    "checkpoint": ("text-to-image", "image-to-image"),
    "lora": ("lora", "text-to-image"),
    "vae": ("vae",),
    "controlnet": ("controlnet",),
    "upscaler": ("image-to-image", "upscaler"),
}


def _clamp_paging(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    lim = DEFAULT_LIMIT if limit is None else int(limit)
    off = 0 if offset is None else int(offset)
    return max(1, min(lim, MAX_LIMIT)), max(off, 0)


def _check_sort(sort: Optional[str]) -> str:
    value = sort or "downloads"
    if value not in SORT_KEYS:
        raise ValueError(f"Unsupported sort key '{value}' (expected one of {SORT_KEYS})")
    return value


@dataclass(frozen=True)
class SearchQuery:
    """Primary (GGUF) catalog query. Call :meth:`normalized` before keying."""

    query: Optional[str] = None
    author: Optional[str] = None
    tags: Tuple[str, ...] = ()
    min_quant: str = "Q4"
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    sort: str = "downloads"

    def normalized(self) -> "SearchQuery":
        limit, offset = _clamp_paging(self.limit, self.offset)
        tags = tuple(sorted({t.strip() for t in self.tags if t and t.strip()}))
        return replace(
            self,
            query=(self.query or "").strip() or None,
            author=(self.author or "").strip() or None,
            tags=tags,
            min_quant=canonical_min_quant(self.min_quant),
            limit=limit,
            offset=offset,
            sort=_check_sort(self.sort),
        )


@dataclass(frozen=True)
class DiffusionSearchQuery:
    """Image-generation catalog query."""

    query: Optional[str] = None
    model_type: Optional[str] = None
    author: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    sort: str = "downloads"

    def normalized(self) -> "DiffusionSearchQuery":
        if self.model_type is not None and self.model_type not in MODEL_TYPES:
            raise ValueError(f"Unknown model type '{self.model_type}'")
        limit, offset = _clamp_paging(self.limit, self.offset)
        return replace(
            self,
            query=(self.query or "").strip() or None,
            author=(self.author or "").strip() or None,
            limit=limit,
            offset=offset,
            sort=_check_sort(self.sort),
        )


@dataclass
class SearchResult:
    models: List[Candidate] = field(default_factory=list)
    total: int = 0


@dataclass
class DiffusionSearchResult:
    models: List[DiffusionCandidate] = field(default_factory=list)
    total: int = 0


def auth_headers(config: ScoutConfig, *, accept_json: bool = True) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if accept_json:
        headers["Accept"] = "application/json"
    if config.hf_token:
        headers["Authorization"] = f"Bearer {config.hf_token}"
    return headers


def build_resolve_url(
    config: ScoutConfig, repo_id: str, filename: str, revision: str = "main"
) -> str:
    """URL of the registry's resolve-by-path endpoint for one file."""
    base = config.hub_base_url.rstrip("/")
    return f"{base}/{repo_id}/resolve/{revision}/{quote(filename)}"


def _common_params(query: Any) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = [
        ("limit", str(query.limit)),
        ("skip", str(query.offset)),
        ("sort", query.sort),
        ("direction", "-1"),
        ("full", "true"),
    ]
    if query.query:
        params.append(("search", query.query))
    if query.author:
        params.append(("author", query.author))
    return params


class HubClient:
    """Async client for the registry search and model-details endpoints."""

    def __init__(
        self,
        config: Optional[ScoutConfig] = None,
        cache: Optional[TTLCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self.cache = cache if cache is not None else get_default_cache()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self.config.request_timeout_s
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "HubClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _get_json(self, url: str, params: Any = None) -> Any:
        response = await self._http.get(
            url, params=params, headers=auth_headers(self.config)
        )
        if response.status_code >= 400:
            logger.error(
                "Hub API error for %s: HTTP %s %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise err_registry(response.status_code, response.text)
        return response.json()

    async def search_models(self, query: SearchQuery) -> SearchResult:
        """Search the primary catalog, keeping candidates above the quality floor."""
        query = query.normalized()
        cache_key = make_cache_key("hf:search", query)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for HF search %s", cache_key)
            return cached

        params = [("library", PRIMARY_LIBRARY)] + _common_params(query)
        params.extend(("filter", tag) for tag in query.tags)
        url = f"{self.config.hub_api_base}/models"
        logger.info("Fetching HF models: %s %s", url, params)

        payload = await self._get_json(url, params)
        floor = min_quant_level(query.min_quant)
        models = [
            candidate
            for candidate in extract_candidates(_as_list(payload))
            if any(quant_level(q.label) >= floor for q in candidate.quantizations)
        ]

        result = SearchResult(models=models, total=len(models))
        self.cache.set(cache_key, result, self.config.cache_ttl_seconds)
        logger.info("HF search completed with %d models", len(models))
        return result

    async def get_model_details(self, model_id: str) -> Optional[Candidate]:
        """Fetch one model; ``None`` when it does not exist or is malformed."""
        cache_key = f"hf:model:{model_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        url = f"{self.config.hub_api_base}/models/{model_id}"
        response = await self._http.get(url, headers=auth_headers(self.config))
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise err_registry(response.status_code, response.text)

        raw = parse_raw_record(response.json())
        if raw is None:
            return None
        candidate = to_candidate(raw)
        self.cache.set(cache_key, candidate, self.config.cache_ttl_seconds)
        return candidate

    async def search_diffusion_models(
        self, query: DiffusionSearchQuery
    ) -> DiffusionSearchResult:
        """Search the image-generation catalog for downloadable weight files."""
        query = query.normalized()
        cache_key = make_cache_key("comfyui:search", query)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for diffusion search %s", cache_key)
            return cached

        params = _common_params(query)
        capability_tags = DIFFUSION_HF_TAGS[query.model_type or "checkpoint"]
        if capability_tags:
            params.append(("filter", capability_tags[0]))
        url = f"{self.config.hub_api_base}/models"
        logger.info("Fetching diffusion models: %s %s", url, params)

        payload = await self._get_json(url, params)
        models = extract_diffusion_candidates(_as_list(payload), query.model_type)

        result = DiffusionSearchResult(models=models, total=len(models))
        self.cache.set(cache_key, result, self.config.cache_ttl_seconds)
        logger.info("Diffusion search completed with %d models", len(models))
        return result


def _as_list(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    logger.warning("Expected a list of models, got %s", type(payload).__name__)
    return []


__all__ = [
    "HubClient",
    "SearchQuery",
    "DiffusionSearchQuery",
    "SearchResult",
    "DiffusionSearchResult",
    "DIFFUSION_HF_TAGS",
    "SORT_KEYS",
    "auth_headers",
    "build_resolve_url",
]
