"""
Job CLI handlers.

This module handles the CLI operations for submitting, polling, cancelling,
listing and downloading generation jobs. Handlers return a process exit
code instead of exiting themselves.
"""

import json
import os
import time
from typing import Any, Callable, Dict, List, Optional

from ..api import parse_submit
from ..downloads import AssetDownloader
from ..exceptions import GenerationError, QuotaExceededError, ValidationError
from ..models import Job, JobState
from ..orchestrator import Orchestrator

STATE_ICONS = {
    "pending": "⏳",
    "submitted": "📨",
    "in_progress": "🔄",
    "succeeded": "✅",
    "failed": "❌",
    "cancelled": "🚫",
    "timed_out": "⌛",
}


def _parse_value(raw: str) -> Any:
    """Numbers, booleans and JSON literals keep their type; anything else is a string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def build_input(prompt: Optional[str], input_json: Optional[str], params: List[str]) -> Dict[str, Any]:
    """
    Combine ``--input``, ``--param key=value`` and ``--prompt`` into one input.

    Later sources win: params override the JSON object, the prompt overrides both.

    Raises:
        ValidationError: If the JSON is not an object or a param has no ``=``
    """
    data: Dict[str, Any] = {}
    if input_json:
        try:
            loaded = json.loads(input_json)
        except ValueError as e:
            raise ValidationError(f"--input is not valid JSON: {e}") from e
        if not isinstance(loaded, dict):
            raise ValidationError("--input must be a JSON object")
        data.update(loaded)
    for param in params or []:
        key, sep, value = param.partition("=")
        if not sep or not key:
            raise ValidationError(f"--param expects key=value, got '{param}'")
        data[key] = _parse_value(value)
    if prompt is not None:
        data["prompt"] = prompt
    return data


def print_job(job: Job) -> None:
    """Print a job summary, including its result or error once terminal."""
    view = job.to_view()
    icon = STATE_ICONS.get(view["state"], "•")
    print(f"{icon} Job {job.job_id}: {view['state']}")
    print(f"   Model: {job.model_id}")
    print(f"   Submitted: {view['submitted_at'][:19].replace('T', ' ')}")

    progress = view.get("progress") or {}
    if progress.get("queue_position") is not None:
        print(f"   Queue position: {progress['queue_position']}")
    if progress.get("progress") is not None:
        print(f"   Progress: {progress['progress']}%")

    if job.result is not None:
        print(f"   Result ({job.result.kind.value}):")
        for asset in job.result.assets:
            print(f"     • {asset.url[:100]}")
    if job.error is not None:
        print(f"   Error [{job.error.kind}]: {job.error.message}")


class JobCLIHandler:
    """Handles CLI commands for generation jobs."""

    def __init__(self, orchestrator: Orchestrator, poll_interval: float = 5, sleep: Callable[[float], None] = time.sleep):
        self.orchestrator = orchestrator
        self.poll_interval = poll_interval
        self._sleep = sleep

    def handle_submit(self, model_id: str, client_id: str, data: Dict[str, Any], wait: bool = False) -> int:
        try:
            request = parse_submit({"model_id": model_id, "client_id": client_id, "input": data})
            job = self.orchestrator.submit_generation(request)
        except QuotaExceededError as e:
            print(f"❌ {e}")
            print("   Free generations are used up for this client.")
            return 2
        except GenerationError as e:
            print(f"❌ Submission failed [{e.error_kind}]: {e}")
            return 1

        print_job(job)
        if wait and not job.is_terminal:
            return self.handle_wait(job.job_id)
        if not job.is_terminal:
            print(f"\n💡 Check progress with: genjob.py poll {job.job_id}")
        return 0

    def handle_poll(self, job_id: str) -> int:
        job = self.orchestrator.poll_generation(job_id)
        print_job(job)
        return 0

    def handle_wait(self, job_id: str) -> int:
        """Poll at the configured cadence until the job is terminal."""
        last_state = None
        try:
            while True:
                job = self.orchestrator.poll_generation(job_id)
                if job.state != last_state:
                    print(f"{STATE_ICONS.get(job.state.value, '•')} {job.state.value}")
                    last_state = job.state
                if job.is_terminal:
                    break
                self._sleep(self.poll_interval)
        except KeyboardInterrupt:
            print(f"\n👋 Stopped waiting; job {job_id} keeps running. Poll it later.")
            return 130

        print("=" * 50)
        print_job(job)
        return 0 if job.state == JobState.SUCCEEDED else 1

    def handle_cancel(self, job_id: str) -> int:
        job = self.orchestrator.cancel_generation(job_id)
        print_job(job)
        return 0

    def handle_list(self, client_id: str) -> int:
        jobs = self.orchestrator.list_jobs(client_id)
        if not jobs:
            print("No jobs found.")
            return 0

        print("\n" + "=" * 100)
        print(f"📦 Jobs for client {client_id}")
        print("=" * 100)
        print(f"{'Job ID':<34} {'Model':<40} {'State':<12} {'Submitted':<20}")
        print("-" * 100)
        for job in jobs:
            submitted = job.submitted_at.isoformat()[:19].replace("T", " ")
            print(f"{job.job_id:<34} {job.model_id[:40]:<40} {job.state.value:<12} {submitted:<20}")
        print("=" * 100)
        print(f"Total: {len(jobs)} jobs")
        return 0

    def handle_quota(self, client_id: str) -> int:
        state = self.orchestrator.quota.peek(client_id)
        print(f"📊 Quota for client {client_id}")
        print(f"   Used: {state.used_count}/{state.limit}")
        print(f"   Remaining: {state.remaining}")
        if state.reserved:
            print(f"   In flight: {state.reserved}")
        print(f"   Reset policy: {state.reset_policy.value}")
        return 0

    def handle_download(self, job_id: str, output_dir: str) -> int:
        job = self.orchestrator.get_job(job_id)
        downloader = AssetDownloader(
            output_dir=output_dir,
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        )
        try:
            paths = downloader.download_job(job)
        except GenerationError as e:
            print(f"❌ Download error: {e}")
            return 1
        finally:
            downloader.close()

        for path in paths:
            print(f"✅ Downloaded: {path}")
        return 0
