import os
import tempfile
import unittest
from unittest.mock import patch

from genstudio.bootstrap import build_adapters, build_default_router, create_orchestrator
from genstudio.config import OrchestratorConfig, create_config_for_provider, get_available_providers
from genstudio.exceptions import ConfigurationError
from genstudio.models import ResetPolicy
from genstudio.providers.fal_provider import FalConfig
from genstudio.routing import AdapterRouter

CLEAN_ENV = {"FAL_KEY": "", "RUNWAY_API_KEY": "", "OPENAI_API_KEY": ""}


class TestOrchestratorConfig(unittest.TestCase):
    @patch.dict(os.environ, {
        "GENSTUDIO_MAX_JOB_AGE_SECONDS": "120",
        "GENSTUDIO_FREE_GENERATION_LIMIT": "3",
        "GENSTUDIO_QUOTA_RESET_POLICY": "DAILY",
    })
    def test_from_environment(self):
        config = OrchestratorConfig.from_environment()
        self.assertEqual(config.max_job_age_seconds, 120)
        self.assertEqual(config.free_generation_limit, 3)
        self.assertEqual(config.quota_reset_policy, ResetPolicy.DAILY)

    @patch.dict(os.environ, {"GENSTUDIO_FREE_GENERATION_LIMIT": "ten"})
    def test_unparsable_value(self):
        with self.assertRaises(ConfigurationError):
            OrchestratorConfig.from_environment()

    def test_validate(self):
        with self.assertRaises(ConfigurationError):
            OrchestratorConfig(retention_seconds=100, undelivered_retention_seconds=10).validate()
        with self.assertRaises(ConfigurationError):
            OrchestratorConfig(max_job_age_seconds=0).validate()
        OrchestratorConfig().validate()


class TestProviderConfig(unittest.TestCase):
    @patch.dict(os.environ, {**CLEAN_ENV, "FAL_KEY": "fal_real", "OPENAI_API_KEY": "sk-real"})
    def test_available_providers(self):
        self.assertEqual(get_available_providers(), ["fal", "openai"])

    @patch.dict(os.environ, {**CLEAN_ENV, "FAL_KEY": "your_fal_key_here"})
    def test_placeholder_key(self):
        with self.assertRaises(ConfigurationError):
            create_config_for_provider("fal")

    def test_unknown_provider(self):
        with self.assertRaises(ConfigurationError):
            create_config_for_provider("azure")
        with self.assertRaises(ConfigurationError):
            build_adapters("azure", None)


class TestBootstrap(unittest.TestCase):
    def test_fal_adapters_cover_three_protocols(self):
        adapters = build_adapters("fal", FalConfig(api_key="fal_real"))
        self.assertEqual([a.name for a in adapters], ["fal-subscribe", "fal-queue", "fal-run"])

        router = AdapterRouter(adapters)
        self.assertEqual(router.resolve("fal-ai/recraft-20b").name, "fal-subscribe")
        self.assertEqual(router.resolve("fal-ai/veo3/fast").name, "fal-queue")
        self.assertEqual(router.resolve("fal-ai/flux/schnell").name, "fal-run")
        self.assertFalse(router.supports("fal-ai/unknown-model"))

    @patch.dict(os.environ, {**CLEAN_ENV, "FAL_KEY": "your_fal_key_here", "RUNWAY_API_KEY": "rk_real"})
    def test_default_router_skips_misconfigured_providers(self):
        router = build_default_router()
        self.assertEqual([a.name for a in router.adapters], ["runway"])

        with self.assertRaises(ConfigurationError):
            build_default_router(["fal"])

    def test_create_orchestrator_with_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = OrchestratorConfig(
                quota_file=os.path.join(tmp, "quota.json"),
                jobs_file=os.path.join(tmp, "jobs.json"),
                free_generation_limit=2,
            )
            orchestrator = create_orchestrator(config, router=AdapterRouter())

            self.assertEqual(orchestrator.quota.limit, 2)
            self.assertEqual(orchestrator.max_job_age_seconds, 900)
            job = orchestrator.registry.create("fal-ai/veo3", "c1")

            reopened = create_orchestrator(config, router=AdapterRouter())
            self.assertEqual(reopened.get_job(job.job_id).client_id, "c1")


if __name__ == "__main__":
    unittest.main()
