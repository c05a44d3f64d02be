"""Init file for DB advisor services."""

from .advisor import DbAdvisor
from .client import MistralClient
from .recovery import recover_document
from .restructure import restructure


__all__ = [
    "DbAdvisor",
    "MistralClient",
    "recover_document",
    "restructure",
]
