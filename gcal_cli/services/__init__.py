from .authorization import run_authorization_flow
from .token_cipher import TokenCipherService
from .token_store import TokenStore

__all__ = [
    "TokenCipherService",
    "TokenStore",
    "run_authorization_flow",
]
