import time
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError

from relay_server.exception.UnauthorizedError import UnauthorizedError

_MALFORMED = "Malformed or missing token. Please provide a valid JWT token in the Authorization header."
_EXPIRED = "Token expired. Please login again or refresh your session."


class AuthSecurity:
    secret_key = None
    algorithm = 'HS256'
    # Access tokens are valid for 7 days by default
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7 * 24 * 60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        """Sign ``data`` (expects ``user_id``, ``role`` and optionally ``name``)."""
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        if not token or not isinstance(token, str) or token.count('.') != 2:
            raise UnauthorizedError(_MALFORMED)
        if not cls.secret_key:
            raise UnauthorizedError("Authentication is not configured on this server.")
        try:
            payload = jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except JWTError as e:
            msg = str(e)
            if 'Signature has expired' in msg:
                raise UnauthorizedError(_EXPIRED)
            elif 'Not enough segments' in msg or 'Invalid header string' in msg:
                raise UnauthorizedError(_MALFORMED)
            elif 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again.")
            raise UnauthorizedError(f"Invalid token: {msg}")

        exp = payload.get('exp')
        if exp is not None and int(float(exp)) < int(time.time()):
            raise UnauthorizedError(_EXPIRED)
        if not payload.get('user_id'):
            raise UnauthorizedError("Token does not identify a user.")
        return payload


def get_auth_payload(request):
    """
    Extracts and decodes the Bearer token from the Authorization header in the request.
    Raises UnauthorizedError if missing or invalid.
    Returns the decoded payload.
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        raise UnauthorizedError('Missing or invalid token')
    token = auth_header.split(' ', 1)[1]
    return AuthSecurity.decode_token(token)
