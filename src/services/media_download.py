"""Streaming download of generated media into the batch workspace."""

import logging
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 256


async def download_to_file(
    client: httpx.AsyncClient,
    url: str,
    dest: Path,
    error_cls: type[Exception] = RuntimeError,
) -> Path:
    """Stream ``url`` into ``dest``.

    Args:
        client: Shared HTTP client
        url: Remote asset URL
        dest: Local destination path
        error_cls: Exception type raised on failure

    Returns:
        ``dest`` once at least one byte has been written

    Raises:
        error_cls: On HTTP errors, timeouts or an empty body
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    try:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            written = 0
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
    except httpx.TimeoutException:
        raise error_cls(f"Download timed out: {url}")
    except httpx.HTTPStatusError as e:
        raise error_cls(f"Download failed with HTTP {e.response.status_code}: {url}")
    except httpx.HTTPError as e:
        raise error_cls(f"Download failed: {e}")

    if written == 0:
        raise error_cls(f"Downloaded file is empty: {url}")

    logger.debug(f"Downloaded {written} bytes to {dest.name}")
    return dest
