"""deepseek-kit provider layer.

All chat model calls go through DeepSeekProvider via the ChatProvider
interface. Account endpoints are served by AccountAPI.
"""

from deepseek_kit.providers.account import AccountAPI
from deepseek_kit.providers.base import ChatProvider
from deepseek_kit.providers.litellm_provider import DeepSeekProvider
from deepseek_kit.providers.registry import load_client_config, load_models

__all__ = [
    "AccountAPI",
    "ChatProvider",
    "DeepSeekProvider",
    "load_client_config",
    "load_models",
]
