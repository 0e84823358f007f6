"""
Provider and model listing for the CLI.
"""

from typing import Optional

from ..catalog import SUPPORTED_PROVIDERS, print_available_models
from ..config import print_available_providers


class ProviderHandler:
    """Handles provider-specific CLI operations."""

    def handle_list_providers(self) -> int:
        print_available_providers()
        return 0

    def handle_list_models(self, provider: Optional[str] = None) -> int:
        """Print the model catalog, optionally for one provider."""
        if provider is not None and provider not in SUPPORTED_PROVIDERS:
            supported_list = ", ".join(SUPPORTED_PROVIDERS)
            print(f"❌ Unsupported provider '{provider}'. Supported: {supported_list}")
            return 1
        print_available_models(provider)
        return 0
