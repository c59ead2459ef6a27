from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="bearer-token")


def issue_token(owner: str) -> str:
    """Sign a bearer token for ``owner``.

    Tokens are normally minted by the login service; this exists for local
    development and tests.
    """
    if not owner:
        raise ValueError("Owner is required")
    return _serializer().dumps({"sub": owner})


def verify_token(token: str, max_age_hours: Optional[int] = None) -> Optional[str]:
    """Return the owner id carried by ``token``, or ``None`` when it is invalid."""
    if not token:
        return None
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return None

    if not isinstance(data, dict):
        return None
    owner = data.get("sub")
    if not isinstance(owner, str) or not owner:
        return None
    return owner
