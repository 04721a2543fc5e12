from fastapi.security import HTTPBearer

# Bearer token issued by the identity provider
bearer_scheme = HTTPBearer(auto_error=False)
