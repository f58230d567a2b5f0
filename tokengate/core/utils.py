"""
Utility helpers shared across routers/services.
"""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normaliza datetimes para UTC. SQLite devolve valores sem tzinfo, que sao
    sempre gravados em UTC por este servico.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def absolute_url(path: str, base: str, params: Optional[dict] = None) -> str:
    """
    Converte caminhos relativos em URLs absolutas usando a base publica.
    """
    base_url = (base or "").rstrip("/")
    if not path:
        url = base_url + "/"
    elif path.startswith("http://") or path.startswith("https://"):
        url = path
    else:
        if not path.startswith("/"):
            path = "/" + path
        url = base_url + path
    if params:
        url = f"{url}?{urlencode(params)}"
    return url
