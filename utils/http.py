import httpx
from loguru import logger
from typing import Optional

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
DOWNLOAD_TIMEOUT = 30.0

async def download_bytes(url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
    """
    Perform an HTTP GET for a remote image and return the raw body.
    Uses a desktop browser user-agent and a 30s total timeout.
    Raises httpx.HTTPStatusError / httpx.RequestError to the caller.
    """
    headers = {"User-Agent": BROWSER_USER_AGENT}
    if client is not None:
        response = await client.get(url, headers=headers, timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
    else:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as own_client:
            response = await own_client.get(url, headers=headers)

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP {e.response.status_code} while downloading {url}")
        raise
    return response.content
