"""
Cloud provider clients used by the sweeper and the duplicate image check.
"""
from typing import List, Optional, Sequence

from ..models import RunConfig
from .aws import AWSProvider
from .azure import AzureProvider
from .base import ProviderClient
from .gcp import GCPProvider

PROVIDER_CLASSES = {
    'aws': AWSProvider,
    'gcp': GCPProvider,
    'azure': AzureProvider,
}


def get_providers(run_config: RunConfig, names: Optional[Sequence[str]] = None) -> List[ProviderClient]:
    """Instantiate clients for the selected providers, in AWS, GCP, Azure order."""
    selected = names or run_config.providers
    return [
        cls(run_config)
        for name, cls in PROVIDER_CLASSES.items()
        if name in selected
    ]


__all__ = [
    'AWSProvider',
    'AzureProvider',
    'GCPProvider',
    'PROVIDER_CLASSES',
    'ProviderClient',
    'get_providers',
]
