
import hashlib, secrets
from typing import Optional
from datetime import datetime, timezone
from itsdangerous import URLSafeSerializer
from .config import SECRET_KEY


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()

def new_invitation_token() -> str:
    # 256 bits, hex encoded
    return secrets.token_hex(32)

def make_token(payload: dict) -> str:
    s = URLSafeSerializer(SECRET_KEY, salt="identity")
    return s.dumps(payload)

def read_token(token: str) -> dict:
    s = URLSafeSerializer(SECRET_KEY, salt="identity")
    return s.loads(token)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC; naive input is taken to already be UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
