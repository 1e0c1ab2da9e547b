"""Shared HTTP plumbing for provider adapters: JSON GET and offset pagination."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import requests

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Raw rows from one provider for one date, plus any errors."""

    rows: list[Any] = field(default_factory=list)  # as received; normalize rejects non-dicts
    errors: list[str] = field(default_factory=list)
    pages: int = 0


class HttpClient:
    """Thin wrapper around a ``requests.Session`` that never raises.

    Every call has a bounded timeout. Failures are logged and reported as
    ``"<provider>:<label>:<reason>"`` strings instead of exceptions, so one
    bad page or date never aborts the rest of a cycle.
    """

    def __init__(
        self,
        provider: str,
        timeout: float = 20,
        use_cache: bool = True,
        session: requests.Session | None = None,
    ):
        self.provider = provider
        self.timeout = timeout
        self.use_cache = use_cache
        self.session = session or requests.Session()

    def error(self, label: str, reason: str) -> str:
        return f"{self.provider}:{label}:{reason}"

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        label: str = "",
    ) -> tuple[Any | None, str | None]:
        """GET ``url`` and decode JSON. Returns ``(data, None)`` or ``(None, error)``."""
        headers = dict(headers or {})
        if not self.use_cache:
            headers["Cache-Control"] = "no-cache"

        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json(), None
        except requests.Timeout:
            reason = "timeout"
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "?"
            reason = f"http_{status}"
        except requests.JSONDecodeError:
            reason = "malformed_json"
        except requests.RequestException as exc:
            reason = type(exc).__name__

        err = self.error(label, reason)
        logger.warning("Fetch failed %s (%s)", err, url)
        return None, err


def fetch_pages(
    client: HttpClient,
    url: str,
    params: dict[str, Any],
    *,
    page_size: int,
    max_pages: int,
    delay_s: float = 0.0,
    label: str = "",
    headers: dict[str, str] | None = None,
    rows_key: str = "data",
    sleep: Callable[[float], None] = time.sleep,
) -> FetchResult:
    """Fetch ``limit``/``offset`` pages until a short page or ``max_pages``.

    The next offset comes from the response's ``pagination`` block when the
    provider supplies one, otherwise from the size of the page just read.
    A failed page stops pagination for this date; rows already read are kept.
    Entries are passed through as received so every one of them is counted.
    """
    result = FetchResult()
    offset = 0

    while result.pages < max_pages:
        if result.pages:
            sleep(delay_s)
        data, err = client.get_json(
            url, params={**params, "limit": page_size, "offset": offset},
            headers=headers, label=label,
        )
        result.pages += 1
        if err:
            result.errors.append(err)
            break

        if isinstance(data, dict) and data.get("error"):
            detail = data["error"]
            code = detail.get("code", "error") if isinstance(detail, dict) else detail
            result.errors.append(client.error(label, f"api_{code}"))
            logger.warning("Provider error %s: %s", client.provider, detail)
            break

        page = data.get(rows_key) if isinstance(data, dict) else data
        if not isinstance(page, list):
            result.errors.append(client.error(label, "malformed_page"))
            logger.warning("Unexpected page shape from %s (%s)", client.provider, label)
            break

        result.rows.extend(page)
        if len(page) < page_size:
            break

        pagination = data.get("pagination") if isinstance(data, dict) else None
        if isinstance(pagination, dict) and "offset" in pagination:
            offset = int(pagination.get("offset") or 0) + int(pagination.get("count") or len(page))
            total = pagination.get("total")
            if total is not None and offset >= int(total):
                break
        else:
            offset += len(page)
    else:
        logger.warning(
            "Stopped %s (%s) at page ceiling %d; results may be incomplete",
            client.provider, label, max_pages,
        )

    return result
