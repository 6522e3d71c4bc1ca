from .oauth import OAuthTokenResponse, StoredToken

__all__ = ["OAuthTokenResponse", "StoredToken"]
