import logging
from typing import Any

import httpx

from clinic_api.core.errors import UpstreamError

logger = logging.getLogger(__name__)


def _body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text[:500]


async def send(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    service: str,
    error_message: str,
    **kwargs: Any,
) -> Any:
    """Perform one upstream call and return the decoded JSON body.

    Non-2xx answers raise UpstreamError carrying the upstream status and body.
    Timeouts map to 504 and connection failures to 502.
    """
    try:
        resp = await http.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning("%s timeout: %s %s", service, method, url)
        raise UpstreamError(error_message, status_code=504, details=f"{service} timed out") from e
    except httpx.RequestError as e:
        logger.warning("%s unreachable: %s %s: %s", service, method, url, e)
        raise UpstreamError(error_message, status_code=502, details=f"{service} unreachable") from e
    if resp.is_error:
        logger.warning(
            "%s error: %s %s status=%s body=%s",
            service,
            method,
            url,
            resp.status_code,
            resp.text[:500],
        )
        raise UpstreamError(error_message, status_code=resp.status_code, details=_body(resp))
    return _body(resp)
