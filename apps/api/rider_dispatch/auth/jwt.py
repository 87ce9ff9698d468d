import base64
import hashlib
import hmac
import json
import time
from typing import Any

from fastapi import HTTPException, status


class JwtError(Exception):
    pass


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _sign(signing_input: bytes, secret: str) -> str:
    return _b64url_encode(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def _encode_segment(value: dict[str, Any]) -> str:
    return _b64url_encode(json.dumps(value, separators=(",", ":")).encode())


def issue_jwt(payload: dict[str, Any], secret: str, expires_in_s: int = 3600) -> str:
    now = int(time.time())
    header = _encode_segment({"alg": "HS256", "typ": "JWT"})
    claims = _encode_segment({**payload, "iat": now, "exp": now + expires_in_s})
    signature = _sign(f"{header}.{claims}".encode(), secret)
    return f"{header}.{claims}.{signature}"


def issue_user_token(user_id: str, role: str, secret: str, expires_in_s: int = 3600) -> str:
    return issue_jwt({"sub": user_id, "role": role}, secret, expires_in_s=expires_in_s)


def decode_jwt(token: str, secret: str) -> dict[str, Any]:
    parts = token.split(".")
    if len(parts) != 3:
        raise JwtError("Malformed JWT")
    header_segment, payload_segment, signature = parts

    expected = _sign(f"{header_segment}.{payload_segment}".encode(), secret)
    if not hmac.compare_digest(expected, signature):
        raise JwtError("Invalid JWT signature")

    try:
        header = json.loads(_b64url_decode(header_segment))
        payload = json.loads(_b64url_decode(payload_segment))
    except ValueError as exc:
        raise JwtError("Malformed JWT") from exc

    if header.get("alg") != "HS256":
        raise JwtError("Unsupported JWT algorithm")
    exp = payload.get("exp")
    if not isinstance(exp, int) or exp < int(time.time()):
        raise JwtError("Expired JWT")
    return payload


def jwt_http_exception(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )
