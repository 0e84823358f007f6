"""
Download the assets of finished jobs.

Provider asset URLs are usually public CDN links; OpenAI video content
needs the API key, so requests to the OpenAI base URL carry a bearer token.
"""

import base64
import mimetypes
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import DownloadError, ValidationError
from .logger import get_library_logger
from .models import Asset, Job, JobState

CHUNK_SIZE = 8192


def _extension(asset: Asset) -> str:
    if asset.url.startswith("data:"):
        suffix = ""
    else:
        suffix = Path(urlparse(asset.url).path).suffix
    if suffix:
        return suffix
    if asset.content_type:
        return mimetypes.guess_extension(asset.content_type) or ".bin"
    return ".bin"


class AssetDownloader:
    """Streams result assets to a local directory."""

    def __init__(
        self,
        output_dir: str = "downloads",
        openai_api_key: Optional[str] = None,
        openai_base_url: str = "https://api.openai.com/v1",
        client: Optional[httpx.Client] = None,
        timeout: float = 300,
    ):
        """
        Initialize the downloader.

        Args:
            output_dir: Directory the files are written to
            openai_api_key: Key sent with OpenAI content URLs
            openai_base_url: URLs under this prefix get the OpenAI key
            client: Pre-built ``httpx.Client`` (tests pass one with a mock transport)
            timeout: Per-request timeout in seconds for large video downloads
        """
        self.output_dir = Path(output_dir)
        self.openai_api_key = openai_api_key
        self.openai_base_url = openai_base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.logger = get_library_logger()

    def _headers_for(self, url: str) -> Dict[str, str]:
        if self.openai_api_key and url.startswith(self.openai_base_url + "/"):
            return {"Authorization": f"Bearer {self.openai_api_key}"}
        return {}

    def download_asset(self, asset: Asset, output_path: Path) -> Path:
        """
        Save one asset to ``output_path``.

        Raises:
            DownloadError: If the asset can't be fetched
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if asset.url.startswith("data:"):
            try:
                _, encoded = asset.url.split(",", 1)
                output_path.write_bytes(base64.b64decode(encoded))
            except ValueError as e:
                raise DownloadError(f"Invalid data URI asset: {e}") from e
            return output_path

        self.logger.info(f"Downloading {asset.url}")
        try:
            with self.client.stream("GET", asset.url, headers=self._headers_for(asset.url)) as response:
                response.raise_for_status()
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
        except httpx.HTTPError as e:
            self.logger.error(f"Failed to download {asset.url}: {e}")
            if output_path.exists():
                output_path.unlink()
            raise DownloadError(f"Failed to download {asset.url}: {e}") from e

        self.logger.debug(f"Wrote {output_path} ({output_path.stat().st_size} bytes)")
        return output_path

    def download_job(self, job: Job) -> List[Path]:
        """
        Save every asset of a succeeded job.

        Files are named ``<job_id>_<n><ext>``.

        Raises:
            ValidationError: If the job has not succeeded
            DownloadError: If an asset can't be fetched
        """
        if job.state != JobState.SUCCEEDED or job.result is None:
            raise ValidationError(f"Job {job.job_id} has no result to download (state: {job.state.value})")

        paths = []
        for index, asset in enumerate(job.result.assets, start=1):
            target = self.output_dir / f"{job.job_id}_{index}{_extension(asset)}"
            paths.append(self.download_asset(asset, target))
        self.logger.info(f"Downloaded {len(paths)} asset(s) for job {job.job_id} to {self.output_dir}")
        return paths

    def close(self) -> None:
        self.client.close()
