"""
Session ID helpers

Message rows are keyed by a WhatsApp-style session id. Two shapes occur in
the channel tables:

    "5511999999999-Maria Silva"       (phone, dash, contact name)
    "5511999999999@s.whatsapp.net"    (Evolution API remoteJid)
"""
import re

PHONE_PATTERN = re.compile(r"^\d{10,15}$")
PHONE_SEARCH_PATTERN = re.compile(r"\d{10,15}")
NORMALIZED_PATTERN = re.compile(r"^\d{10,15}-")

DEFAULT_CONTACT_NAME = "Cliente"


def extract_phone_from_session_id(session_id: str) -> str:
    """
    Extract the phone number from a session id.

    Returns the first dash-separated part when it is a 10-15 digit number,
    otherwise the first 10-15 digit run anywhere in the id, otherwise the id
    unchanged.
    """
    if not session_id:
        return ""

    first_part = session_id.split("-")[0]
    if PHONE_PATTERN.match(first_part):
        return first_part

    match = PHONE_SEARCH_PATTERN.search(session_id)
    if match:
        return match.group(0)

    return session_id


def extract_name_from_session_id(session_id: str) -> str:
    """Contact name embedded after the first dash, or "Cliente"."""
    if not session_id:
        return DEFAULT_CONTACT_NAME

    parts = session_id.split("-")
    if len(parts) > 1:
        name = "-".join(parts[1:]).strip()
        return name or DEFAULT_CONTACT_NAME

    return DEFAULT_CONTACT_NAME


def normalize_session_id(session_id: str) -> str:
    """Return a "PHONE-NAME" session id, rebuilding it when needed."""
    if NORMALIZED_PATTERN.match(session_id or ""):
        return session_id

    phone = extract_phone_from_session_id(session_id)
    name = extract_name_from_session_id(session_id)
    return f"{phone}-{name}"


def last_digits(phone: str, count: int = 4) -> str:
    digits = re.sub(r"\D", "", phone or "")
    return digits[-count:] if digits else (phone or "")[-count:]


def fallback_contact_name(phone: str) -> str:
    """Display name used when nothing better is known: "Cliente 1234"."""
    suffix = last_digits(phone)
    return f"{DEFAULT_CONTACT_NAME} {suffix}" if suffix else DEFAULT_CONTACT_NAME
