"""
RunwayML task API client.

Creates generation tasks, reads their status and cancels them. Local image
paths are turned into base64 data URIs, recompressed with Pillow when they
are too large for the API.
"""

import base64
import mimetypes
from io import BytesIO
from pathlib import Path
from typing import Any, Dict

import requests
from PIL import Image

from ...exceptions import AdapterSubmissionError, ConfigurationError, ValidationError
from ...logger import get_library_logger
from ..http_support import raise_for_submission_status, send_with_retry
from .config import PLACEHOLDER_KEYS, RunwayConfig

PROVIDER = "runway"

_REMOTE_PREFIXES = ("http://", "https://", "data:")


class RunwayClient:
    """RunwayML API client for task creation, status and cancellation."""

    def __init__(self, config: RunwayConfig):
        """
        Initialize the RunwayML API client.

        Args:
            config: Configuration containing API credentials and settings
        """
        self.config = config
        self.logger = get_library_logger()
        self.api_key = config.api_key
        self.base_url = config.base_url

        if not self.api_key:
            raise ConfigurationError(
                "RUNWAY_API_KEY not set. Get your API key from:\n"
                "https://app.runwayml.com/settings/api-keys\n"
                "and set it in your .env file: RUNWAY_API_KEY=your_actual_key"
            )
        if self.api_key in PLACEHOLDER_KEYS:
            raise ConfigurationError(
                f"RUNWAY_API_KEY appears to be a placeholder: '{self.api_key}'\n"
                "Replace it with your actual API key from:\n"
                "https://app.runwayml.com/settings/api-keys"
            )

        self.logger.debug("RunwayClient initialized")

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Runway-Version": self.config.api_version,
        }

    # ------------------------------------------------------------------
    # Image inputs
    # ------------------------------------------------------------------

    def prepare_image(self, source: str) -> str:
        """
        Return an image reference the API accepts.

        URLs and data URIs pass through; local paths are encoded.
        """
        if source.startswith(_REMOTE_PREFIXES):
            return source
        return self.encode_image(source)

    def encode_image(self, image_path: str) -> str:
        """
        Encode an image file to a base64 data URI.

        Images over ``config.max_image_kb`` are recompressed (and resized as a
        last resort) to avoid 413 responses.

        Raises:
            ValidationError: If the file does not exist
        """
        path = Path(image_path)
        if not path.is_file():
            raise ValidationError(f"Image file not found: {image_path}")

        size_kb = path.stat().st_size / 1024
        max_kb = self.config.max_image_kb
        if size_kb <= max_kb:
            mime_type, _ = mimetypes.guess_type(str(path))
            if not mime_type or not mime_type.startswith("image/"):
                mime_type = "image/jpeg"
            encoded = base64.b64encode(path.read_bytes()).decode("utf-8")
            return f"data:{mime_type};base64,{encoded}"

        self.logger.debug(f"Compressing {path.name} ({size_kb:.0f}KB) to under {max_kb}KB")
        with Image.open(path) as img:
            rgb = self._convert_to_rgb(img)
            for quality in (85, 75, 65, 55, 45):
                data = self._jpeg_bytes(rgb, quality)
                if len(data) / 1024 <= max_kb:
                    self.logger.info(
                        f"Compressed {path.name}: {size_kb:.0f}KB → {len(data) / 1024:.0f}KB (quality={quality})"
                    )
                    return self._jpeg_data_uri(data)

            self.logger.warning(f"Resizing {path.name} to reduce size further")
            rgb.thumbnail((1920, 1080), Image.Resampling.LANCZOS)
            data = self._jpeg_bytes(rgb, 85)
            self.logger.info(f"Resized and compressed {path.name}: {size_kb:.0f}KB → {len(data) / 1024:.0f}KB")
            return self._jpeg_data_uri(data)

    @staticmethod
    def _convert_to_rgb(img: Image.Image) -> Image.Image:
        """Flatten transparency onto white; JPEG has no alpha channel."""
        if img.mode == "P":
            img = img.convert("RGBA")
        if img.mode in ("RGBA", "LA"):
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        return img.convert("RGB")

    @staticmethod
    def _jpeg_bytes(img: Image.Image, quality: int) -> bytes:
        buffer = BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        return buffer.getvalue()

    @staticmethod
    def _jpeg_data_uri(data: bytes) -> str:
        return f"data:image/jpeg;base64,{base64.b64encode(data).decode('utf-8')}"

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a generation task.

        Args:
            endpoint: Task endpoint, e.g. ``image_to_video``
            payload: Request body

        Returns:
            Task response with task ID

        Raises:
            AdapterSubmissionError: If the API rejected the request
        """
        self.logger.info(f"Creating RunwayML task: {endpoint}, model={payload.get('model')}")
        prompt = payload.get("promptText")
        if prompt:
            self.logger.debug(f"Prompt: {prompt[:100]}...")

        response = send_with_retry(
            lambda: requests.post(
                f"{self.base_url}/{endpoint}",
                headers=self._get_headers(),
                json=payload,
                timeout=self.config.request_timeout,
            ),
            self.config,
            self.logger,
            PROVIDER,
        )
        raise_for_submission_status(response, self.logger, PROVIDER, "RUNWAY_API_KEY")

        task = self._parse_task(response)
        if not task.get("id"):
            raise AdapterSubmissionError("No task ID in RunwayML response", provider=PROVIDER)
        self.logger.info(f"RunwayML task created: {task['id']}")
        return task

    def get_task(self, task_id: str) -> Dict[str, Any]:
        """Fetch a task; ``requests`` errors propagate to the caller."""
        response = requests.get(
            f"{self.base_url}/tasks/{task_id}",
            headers=self._get_headers(),
            timeout=10,
        )
        response.raise_for_status()
        return self._parse_task(response)

    def cancel_task(self, task_id: str) -> None:
        """Cancel a running task, or delete a finished one."""
        response = requests.delete(
            f"{self.base_url}/tasks/{task_id}",
            headers=self._get_headers(),
            timeout=10,
        )
        if response.status_code >= 400 and response.status_code != 404:
            response.raise_for_status()

    def _parse_task(self, response: requests.Response) -> Dict[str, Any]:
        try:
            task_data = response.json()
        except ValueError as e:
            self.logger.error(f"Failed to parse JSON response: {response.text[:500]}")
            raise AdapterSubmissionError(f"Invalid JSON response from RunwayML: {e}", provider=PROVIDER) from e

        if not isinstance(task_data, dict):
            self.logger.error(f"Expected dict, got {type(task_data)}: {task_data}")
            raise AdapterSubmissionError(
                f"Unexpected response format from RunwayML: {type(task_data).__name__}",
                provider=PROVIDER,
            )
        return task_data
