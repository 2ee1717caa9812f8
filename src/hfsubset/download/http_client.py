"""
HTTP download client for hydrofabric files.

Streams partition GeoPackages and the network index from the hydrofabric
distribution (an S3 bucket served over HTTPS) to local files, with progress
reporting and retries.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

import httpx
from tqdm import tqdm

logger = logging.getLogger(__name__)

# Download configuration
CHUNK_SIZE = 1024 * 1024  # 1MB chunks
MAX_RETRIES = 3
RETRY_DELAY = 2.0  # seconds
TIMEOUT = 3600.0  # 1 hour for large partitions


def download_file(
    url: str,
    dest_path: Path,
    client: httpx.Client | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
) -> Path:
    """
    Download a file, retrying on HTTP errors.

    Args:
        url: URL to download from
        dest_path: Path to save the file (parent directories are created)
        client: HTTP client to use; a new one is created per attempt if None
        progress_callback: Optional callback(bytes_downloaded, total_bytes)

    Returns:
        Path to downloaded file

    Raises:
        httpx.HTTPError: Download failed after all retries
    """
    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Downloading {url}")

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            _stream_to_file(url, dest_path, client, progress_callback)
            logger.info(f"Successfully downloaded {dest_path.name}")
            return dest_path
        except httpx.HTTPError as e:
            # Clean up partial download
            if dest_path.exists():
                dest_path.unlink()

            if attempt < MAX_RETRIES:
                logger.warning(f"Download attempt {attempt} failed: {e}. Retrying in {RETRY_DELAY}s...")
                time.sleep(RETRY_DELAY)
            else:
                logger.error(f"Download failed after {MAX_RETRIES} attempts: {e}")
                raise


def _stream_to_file(
    url: str,
    dest_path: Path,
    client: httpx.Client | None,
    progress_callback: Callable[[int, int], None] | None,
) -> None:
    if client is None:
        with httpx.Client(timeout=TIMEOUT, follow_redirects=True) as own_client:
            _stream_to_file(url, dest_path, own_client, progress_callback)
        return

    with client.stream("GET", url) as response:
        response.raise_for_status()

        total_size = int(response.headers.get("content-length", 0))

        # Use tqdm if no callback provided
        if progress_callback is None and total_size > 0:
            progress_bar = tqdm(total=total_size, unit="B", unit_scale=True, desc=dest_path.name)
        else:
            progress_bar = None

        bytes_downloaded = 0

        try:
            with open(dest_path, "wb") as f:
                for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
                    bytes_downloaded += len(chunk)

                    if progress_callback:
                        progress_callback(bytes_downloaded, total_size)
                    elif progress_bar:
                        progress_bar.update(len(chunk))
        finally:
            if progress_bar:
                progress_bar.close()
