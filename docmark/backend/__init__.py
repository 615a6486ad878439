from docmark.backend.base import BaseFileTransport, BaseJobBackend, BasePolicyStore
from docmark.backend.factory import BackendBundle, BackendFactory

__all__ = [
    "BackendBundle",
    "BackendFactory",
    "BaseFileTransport",
    "BaseJobBackend",
    "BasePolicyStore",
]
