# sheetpilot_agent/security.py

from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")


def mask_email(email: str) -> str:
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        return f"{local[:1]}*@{domain}"
    return f"{local[:2]}{'*'*(len(local)-2)}@{domain}"


def mask_secret(value: str) -> str:
    return "***" if value else ""


def redact_emails(text: str) -> str:
    """Mask every email address found in free text (log lines, error messages)."""
    if not text:
        return text
    return _EMAIL_RE.sub(lambda m: mask_email(m.group(0)), text)
