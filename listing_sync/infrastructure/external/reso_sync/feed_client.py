"""
Cliente mínimo del feed RESO (OData) sobre httpx.

Requisitos cubiertos:
- paginación por $top/$skip con orden y filtro fijos
- conteo ($count) y lectura de un registro por clave
- rate-limit/backoff (429, 5xx) respetando Retry-After
- tokens por tipo de feed (idx / vow)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from listing_sync.shared.constants.sync_constants import FeedType
from listing_sync.shared.exceptions.sync import TransportError
from listing_sync.shared.utils.datetime_utils import DateTimeUtils

from .types import RawRecord, SyncCursor


@dataclass(frozen=True)
class FeedCredentials:
    access_token: str = ""
    idx_token: str = ""
    vow_token: str = ""

    def token_for(self, feed_type: FeedType) -> str:
        if feed_type == FeedType.VOW and self.vow_token:
            return self.vow_token
        if feed_type == FeedType.IDX and self.idx_token:
            return self.idx_token
        return self.access_token


def quote_odata_literal(value: Any) -> str:
    """Literal string OData: comillas simples duplicadas."""
    return "'" + str(value).replace("'", "''") + "'"


def build_cursor_filter(timestamp_field: str, key_field: str, cursor: SyncCursor) -> str:
    """
    Filtro incremental estrictamente posterior al cursor:

        ts gt T or (ts eq T and key gt 'K')

    Con (ts, key) como orden total, ningún registro ya procesado vuelve a
    entrar y ninguno con el mismo timestamp queda afuera.
    """
    ts = DateTimeUtils.to_odata_string(cursor.last_timestamp)
    return (
        f"{timestamp_field} gt {ts} or "
        f"({timestamp_field} eq {ts} and {key_field} gt {quote_odata_literal(cursor.last_key)})"
    )


def combine_filters(*filters: Optional[str]) -> Optional[str]:
    parts = [f for f in filters if f]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return " and ".join(f"({p})" for p in parts)


_QUERY_SAFE_CHARS = "'(),:"


def _encode_query(params: list[tuple[str, Any]]) -> str:
    # OData espera %20 para espacios (no '+')
    return "&".join(f"{name}={quote(str(value), safe=_QUERY_SAFE_CHARS)}" for name, value in params)


class ResoFeedClient:
    """
    Cliente HTTP asíncrono del feed.

    Importante:
    - No transforma campos: eso lo decide el FieldMapper.
    - Los errores de red o HTTP no recuperables se elevan como TransportError.
    """

    def __init__(
        self,
        credentials: FeedCredentials,
        *,
        base_url: str = "https://query.ampre.ca/odata",
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 60.0,
        max_retries: int = 5,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def fetch_page(
        self,
        entity: str,
        *,
        top: int,
        skip: int = 0,
        order_by: Optional[str] = None,
        filter: Optional[str] = None,
        feed_type: FeedType = FeedType.IDX,
    ) -> list[RawRecord]:
        params: list[tuple[str, Any]] = [("$top", top)]
        if skip:
            params.append(("$skip", skip))
        if filter:
            params.append(("$filter", filter))
        if order_by:
            params.append(("$orderby", order_by))

        payload = await self._request_json(f"/{entity}", params, feed_type)
        records = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise TransportError(f"Respuesta de {entity} sin 'value'")
        return records

    async def count(
        self,
        entity: str,
        *,
        filter: Optional[str] = None,
        feed_type: FeedType = FeedType.IDX,
    ) -> int:
        params: list[tuple[str, Any]] = [("$top", 0), ("$count", "true")]
        if filter:
            params.append(("$filter", filter))
        payload = await self._request_json(f"/{entity}", params, feed_type)
        if not isinstance(payload, dict) or payload.get("@odata.count") is None:
            raise TransportError(f"Respuesta de {entity} sin '@odata.count'")
        try:
            return int(payload["@odata.count"])
        except (TypeError, ValueError) as e:
            raise TransportError(f"Respuesta de {entity} con '@odata.count' invalido") from e

    async def fetch_one(
        self,
        entity: str,
        key: str,
        *,
        feed_type: FeedType = FeedType.IDX,
    ) -> Optional[RawRecord]:
        literal = quote(quote_odata_literal(key), safe=_QUERY_SAFE_CHARS)
        path = f"/{entity}({literal})"
        payload = await self._request_json(path, [], feed_type, allow_not_found=True)
        if payload is not None and not isinstance(payload, dict):
            raise TransportError(f"Respuesta de {entity}({key}) no es un registro")
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request_json(
        self,
        path: str,
        params: list[tuple[str, Any]],
        feed_type: FeedType,
        *,
        allow_not_found: bool = False,
    ) -> Optional[dict[str, Any]]:
        """
        GET con backoff para 429/5xx y errores de red.

        Estrategia:
        - 429: respeta Retry-After si existe, si no exponencial con jitter simple.
        - 5xx / red: exponencial con jitter.
        - 4xx (no 429): error inmediato (config/auth mal). 404 opcionalmente -> None.
        """
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{_encode_query(params)}"
        headers = {
            "Authorization": f"Bearer {self._creds.token_for(feed_type)}",
            "Accept": "application/json",
        }

        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.get(url, headers=headers)
            except httpx.HTTPError as e:
                if attempt >= self._max_retries:
                    raise TransportError(f"Feed inaccesible tras {attempt} reintentos: {e}") from e
                await self._backoff(attempt, None, f"error de red: {e}")
                continue

            if 200 <= resp.status_code < 300:
                try:
                    return resp.json()
                except ValueError as e:
                    raise TransportError(f"Respuesta no JSON de {path}", status=resp.status_code) from e

            if resp.status_code == 404 and allow_not_found:
                return None

            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise TransportError(
                        f"Feed error {resp.status_code} tras {attempt} reintentos: {resp.text[:500]}",
                        status=resp.status_code,
                    )
                await self._backoff(attempt, resp.headers.get("Retry-After"), f"HTTP {resp.status_code}")
                continue

            raise TransportError(
                f"Feed request fallo {resp.status_code}: {resp.text[:500]}",
                status=resp.status_code,
            )
        raise TransportError(f"Feed request agoto reintentos: {path}")

    async def _backoff(self, attempt: int, retry_after: Optional[str], reason: str) -> None:
        sleep_s: Optional[float] = None
        if retry_after:
            try:
                sleep_s = float(retry_after)
            except ValueError:
                sleep_s = self._min_backoff_s
        if sleep_s is None:
            base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
            sleep_s = base + (0.15 * base)
        logger.warning(f"Feed {reason}; reintento {attempt + 1}/{self._max_retries} en {sleep_s:.1f}s")
        await self._sleep(sleep_s)
