import re

EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
EMAIL_EXACT_RE = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,24}$")


def extraer_emails(s: str | None) -> list[str]:
    """Lower-cased, de-duplicated emails found in a free-text cell."""
    if not s:
        return []
    seen: list[str] = []
    for m in EMAIL_RE.findall(str(s)):
        v = m.lower().strip()
        if v not in seen:
            seen.append(v)
    return seen


def es_email_valido(email) -> bool:
    if not isinstance(email, str):
        return False
    return bool(EMAIL_EXACT_RE.match(email.strip().lower()))
