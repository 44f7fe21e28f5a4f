from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="owner-session")


def issue_owner_token(owner_id: str) -> str:
    return _serializer().dumps({"o": owner_id})


def owner_id_from_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    settings = get_settings()
    try:
        data = _serializer().loads(token, max_age=settings.session_max_age_secs)
    except BadSignature:
        return None

    owner_id = data.get("o") if isinstance(data, dict) else None
    if not isinstance(owner_id, str) or not owner_id:
        return None
    return owner_id


def owner_id_from_authorization(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return owner_id_from_token(token.strip())
