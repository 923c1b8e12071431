"""
Shared clients for outbound source traffic.
"""

from .http_client import create_source_client, USER_AGENT_BOT, USER_AGENT_BROWSER
from .token_cache import TokenCache

__all__ = ["create_source_client", "USER_AGENT_BOT", "USER_AGENT_BROWSER", "TokenCache"]
