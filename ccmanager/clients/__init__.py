"""CCManager remote service clients."""

from ccmanager.clients.assistant import AssistantClient, AssistantContext, AssistantReply, CommandStream
from ccmanager.clients.repos import RepositoryCatalog

__all__ = [
    "AssistantClient",
    "AssistantContext",
    "AssistantReply",
    "CommandStream",
    "RepositoryCatalog",
]
