from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def normalize_database_url(url: str) -> str:
    """Coerce any Postgres DSN to the asyncpg driver.

    asyncpg understands ``ssl=`` rather than libpq's ``sslmode=``, so the
    latter is translated when present.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}:
        scheme = "postgresql+asyncpg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    sslmode_key = next((key for key in query if key.lower() == "sslmode"), None)
    if sslmode_key is not None:
        mode = query.pop(sslmode_key).lower().strip()
        if "ssl" not in query:
            if mode in {"disable", "allow"}:
                query["ssl"] = "disable"
            elif mode in {"prefer", "require", "verify-ca", "verify-full"}:
                query["ssl"] = mode
            else:
                query["ssl"] = "require"

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))
