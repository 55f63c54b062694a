from docuai.auth.token import TokenPayload, get_current_user, JWTDecoder, build_authenticator
from docuai.auth.dependencies import CurrentUser, Documents, Catalog, AIClient, Storage, Pipeline, Supervisor

__all__ = [
    "TokenPayload", "get_current_user", "JWTDecoder", "build_authenticator",
    "CurrentUser", "Documents", "Catalog", "AIClient", "Storage", "Pipeline", "Supervisor",
]
