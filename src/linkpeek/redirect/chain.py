from __future__ import annotations
import logging
import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0


def inspect_redirect_chain(url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS, session: requests.Session | None = None) -> list[str]:
    """Follow redirects with a HEAD request. Returns ``[url]`` or ``[url, final_url]``.

    Soft failure: any error, timeouts included, yields the single-entry chain.
    """
    chain = [url]
    try:
        http = session or requests
        resp = http.head(url, allow_redirects=True, timeout=timeout)
        if resp.url and resp.url != url:
            chain.append(resp.url)
    except requests.RequestException as e:
        logger.info("redirect chain inspection failed for %s: %s", url, e)
    except Exception as e:  # malformed url and similar
        logger.info("redirect chain inspection skipped for %s: %s", url, e)
    return chain
