"""
Factory for creating storage provider instances.
"""

from shared.models import StorageProvider, DashboardConfig
from .storage_provider import S3StorageProvider, StorageError
from .local_provider import LocalStorageProvider
from .cloudflare_r2 import CloudflareR2Provider


class StorageProviderFactory:
    """Factory for creating storage provider instances."""

    @staticmethod
    def create(provider_type: StorageProvider) -> S3StorageProvider:
        """
        Create a storage provider instance.

        Raises:
            ValueError: If provider type is not supported
        """
        if provider_type == StorageProvider.LOCAL:
            return LocalStorageProvider()

        elif provider_type == StorageProvider.CLOUDFLARE_R2:
            return CloudflareR2Provider()

        else:
            raise ValueError(f"Unknown provider type: {provider_type}")

    @staticmethod
    def from_config(config: DashboardConfig) -> S3StorageProvider:
        """Create and authenticate the provider described by a config."""
        provider = StorageProviderFactory.create(config.provider)
        if not provider.authenticate(config.credentials()):
            raise StorageError(
                f"Failed to authenticate {StorageProviderFactory.get_provider_name(config.provider)} storage",
                status=401
            )
        provider.bucket_name = config.bucket
        return provider

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.LOCAL: "Local filesystem",
            StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
        }
        return names.get(provider_type, "Unknown")
