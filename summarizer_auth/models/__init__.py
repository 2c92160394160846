from summarizer_auth.models.base import Base
from summarizer_auth.models.client_state import ClientStateEntry

__all__ = [
    "Base",
    "ClientStateEntry",
]
