"""
CLI components for genjob.py:
- job_handler: submit, poll, wait, cancel, list, quota and download commands
- provider_handler: provider and model listings
"""

from .job_handler import JobCLIHandler
from .provider_handler import ProviderHandler

__all__ = [
    'JobCLIHandler',
    'ProviderHandler',
]
