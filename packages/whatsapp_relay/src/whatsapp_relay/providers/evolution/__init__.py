"""Evolution API session client."""

from whatsapp_relay.providers.evolution.client import EvolutionSessionClient
from whatsapp_relay.providers.evolution.webhook import extract_instance_name, validate_api_key

__all__ = [
    "EvolutionSessionClient",
    "extract_instance_name",
    "validate_api_key",
]
