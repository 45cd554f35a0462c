import time
from datetime import timedelta, datetime

from jose import jwt, JWTError

from docconnect_server.exception.UnauthorizedError import UnauthorizedError
from docconnect_server.utils.time_utils import utc_now


class AuthSecurity:
    secret_key = None
    algorithm = 'HS256'
    # Default: access token valid for 7 days
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7 * 24 * 60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        to_encode = data.copy()
        expire = utc_now() + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        # Well-formed JWT has exactly 2 dots
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token.")
        try:
            payload = jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except JWTError as e:
            msg = str(e)
            if 'expired' in msg.lower():
                raise UnauthorizedError("Token expired. Please login again or refresh your session.")
            if 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again.")
            raise UnauthorizedError(f"Invalid token: {msg}.")
        exp = payload.get('exp')
        if exp is not None:
            if isinstance(exp, datetime):
                exp = exp.timestamp()
            if int(float(exp)) < int(time.time()):
                raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        if not payload.get('user_key'):
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


def extract_socket_token(auth, request) -> str:
    """Find the bearer token of a socket handshake.

    Looks at the connect payload (``{"token": ...}``) first, then the
    Authorization header, then the ``token`` query argument.
    """
    token = None
    if auth and isinstance(auth, dict):
        token = auth.get('token')
    if not token:
        token = request.headers.get('Authorization', '').replace('Bearer ', '')
    if not token:
        token = request.args.get('token', '')
    return token
