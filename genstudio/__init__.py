"""
Multi-Provider Generation Job Package

Submit image, video, audio and LoRA-training jobs to several AI backends
through one interface, poll them to completion and get back a normalized
result:
- fal.ai (queue, subscribe and one-shot endpoints)
- RunwayML (Gen-4, Veo and Gen-4 Image tasks)
- OpenAI Sora-2

Architecture:
- Provider adapters are plain values with submit / poll / cancel callables
- All provider code isolated in providers/*_provider/ directories
- A job registry guards every state change with a per-job compare-and-swap
- Quota is charged only for generations that succeed

Core Modules:
- orchestrator: submit_generation, poll_generation, cancel_generation
- registry: job records and guarded state transitions
- quota: per-client free generation limit
- routing: model id to adapter resolution
- normalizer: provider payloads to normalized results
- catalog: known models, their providers, protocols and output kinds
- api: framework-free request handlers with error envelopes
- bootstrap: builds an orchestrator from environment configuration
- downloads: saves result assets locally
- config: configuration and environment setup
- logger: centralized logging infrastructure
"""

__version__ = "1.0.0"

from .bootstrap import create_orchestrator
from .config import OrchestratorConfig, get_available_providers
from .logger import init_library_logger, get_library_logger
from .models import GenerationRequest, Job, JobState, NormalizedResult, ResultKind
from .orchestrator import Orchestrator

__all__ = [
    'create_orchestrator',
    'Orchestrator',
    'OrchestratorConfig',
    'get_available_providers',
    'GenerationRequest',
    'Job',
    'JobState',
    'NormalizedResult',
    'ResultKind',
    'init_library_logger',
    'get_library_logger',
]
