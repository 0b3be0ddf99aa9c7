"""
Media Detection Utilities

Heuristics for inline base64 media stored in message rows: recognising
base64 payloads, guessing MIME types from magic-byte prefixes and mapping
MIME types to file extensions and placeholder captions.
"""
import base64
import binascii
import re
from typing import Optional, Tuple

MEDIA_TYPES = ("image", "audio", "video", "document")

DEFAULT_MIME_TYPE = "application/octet-stream"

BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
DATA_URL_PATTERN = re.compile(r"^data:([^;,]+)?(?:;[^,]*)?,", re.IGNORECASE)
RAW_BASE64_PATTERN = re.compile(r"^\s*[A-Za-z0-9+/]{100,}={0,2}\s*$")
WHITESPACE_PATTERN = re.compile(r"\s")

# Signatures searched for in the first 20 characters of a base64 payload
MEDIA_SIGNATURES = {
    "image": ("/9j/", "iVBOR", "R0lGO", "UklGR"),
    "document": ("JVBERi",),
    "audio": ("SUQz", "//uQ", "//sw", "T2dn"),
    "video": ("AAAAGG", "AAAAFG", "AAAAHG", "ftypmp4"),
}

# Prefix -> MIME type, checked in order
MIME_SIGNATURES = (
    ("/9j/", "image/jpeg"),
    ("iVBORw", "image/png"),
    ("R0lGO", "image/gif"),
    ("UklGR", "image/webp"),
    ("JVBERi", "application/pdf"),
    ("SUQz", "audio/mpeg"),
    ("//uQ", "audio/mpeg"),
    ("//sw", "audio/mpeg"),
    ("T2dn", "audio/ogg"),
    ("AAAAGG", "video/mp4"),
    ("AAAAFG", "video/mp4"),
    ("AAAAHG", "video/mp4"),
)

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/ogg": ".ogg",
    "video/mp4": ".mp4",
    "application/pdf": ".pdf",
}

# Message type (as sent by the WhatsApp gateway) -> MIME type
MESSAGE_TYPE_MIME = {
    "audio": "audio/mpeg",
    "mensagem_de_audio": "audio/mpeg",
    "voice": "audio/mpeg",
    "ptt": "audio/mpeg",
    "image": "image/jpeg",
    "mensagem_de_imagem": "image/jpeg",
    "photo": "image/jpeg",
    "video": "video/mp4",
    "mensagem_de_video": "video/mp4",
    "document": "application/pdf",
    "file": "application/pdf",
    "text": "text/plain",
}

AUDIO_MESSAGE_TYPES = {"audio", "mensagem_de_audio", "voice", "ptt"}

PLACEHOLDER_TEXTS = (
    "[Conteúdo vazio]",
    "[Base64 inválido]",
    "[Data URL inválido]",
    "[Erro:",
    "[Mídia não suportada]",
    "[Carregando...]",
)

MEDIA_PLACEHOLDERS = {
    "image": "[Imagem]",
    "audio": "[Áudio]",
    "video": "[Vídeo]",
    "document": "[Documento]",
}
GENERIC_MEDIA_PLACEHOLDER = "[Mídia]"


def is_media_type(message_type: Optional[str]) -> bool:
    return (message_type or "").lower() in MEDIA_TYPES


def is_data_url(content: Optional[str]) -> bool:
    return bool(content) and bool(DATA_URL_PATTERN.match(content.strip()))


def looks_like_base64(content: Optional[str]) -> bool:
    """Long enough, base64 alphabet only, length a multiple of 4 (whitespace ignored)."""
    if not content or len(content) < 100:
        return False
    clean = WHITESPACE_PATTERN.sub("", content)
    return bool(BASE64_PATTERN.match(clean)) and len(clean) % 4 == 0


def looks_like_raw_base64(content: Optional[str]) -> bool:
    """Raw (non data URL) base64 blob of at least 100 characters."""
    return bool(content) and bool(RAW_BASE64_PATTERN.match(content))


def is_valid_base64(content: Optional[str]) -> bool:
    """
    Check a data URL or raw base64 string for a plausible base64 body.

    Padding may only appear at the end and never exceeds two characters.
    """
    if not content:
        return False

    payload = strip_data_url(content) if is_data_url(content) else content
    payload = WHITESPACE_PATTERN.sub("", payload)

    if len(payload) < 4:
        return False
    if not BASE64_PATTERN.match(payload):
        return False

    padding = len(payload) - len(payload.rstrip("="))
    return padding <= 2


def strip_data_url(content: str) -> str:
    """Return the base64 body of a data URL (or the input when it has no header)."""
    content = content.strip()
    if content.lower().startswith("data:") and "," in content:
        return content.split(",", 1)[1]
    return content


def data_url_mime_type(content: str) -> Optional[str]:
    match = DATA_URL_PATTERN.match(content.strip()) if content else None
    if match and match.group(1):
        return match.group(1).lower()
    return None


def to_data_url(payload: str, mime_type: str) -> str:
    return f"data:{mime_type};base64,{WHITESPACE_PATTERN.sub('', payload)}"


def detect_media_type_from_base64(content: Optional[str]) -> str:
    """Classify a base64 payload as image/audio/video/document, or "unknown"."""
    if not content:
        return "unknown"

    header = strip_data_url(content)[:20]
    for media_type, signatures in MEDIA_SIGNATURES.items():
        if any(signature in header for signature in signatures):
            return media_type
    return "unknown"


def detect_mime_type(content: Optional[str]) -> str:
    """
    Guess the MIME type of a data URL or raw base64 payload.

    A data URL header wins; otherwise the payload prefix is matched against
    known magic-byte signatures.
    """
    if not content:
        return DEFAULT_MIME_TYPE

    header_mime = data_url_mime_type(content)
    if header_mime:
        return header_mime

    payload = strip_data_url(content).lstrip()
    for prefix, mime_type in MIME_SIGNATURES:
        if payload.startswith(prefix):
            return mime_type
    return DEFAULT_MIME_TYPE


def media_type_for_mime(mime_type: str) -> str:
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type == "application/pdf":
        return "document"
    return "unknown"


def extension_for_mime(mime_type: str) -> str:
    return MIME_EXTENSIONS.get((mime_type or "").lower(), ".bin")


def placeholder_for_mime(mime_type: str) -> str:
    """Message text written in place of migrated media."""
    mime_type = (mime_type or "").lower()
    if mime_type == "application/pdf":
        return "[Documento PDF]"
    media_type = media_type_for_mime(mime_type)
    return MEDIA_PLACEHOLDERS.get(media_type, GENERIC_MEDIA_PLACEHOLDER)


def placeholder_for_media_type(media_type: Optional[str]) -> str:
    return MEDIA_PLACEHOLDERS.get((media_type or "").lower(), GENERIC_MEDIA_PLACEHOLDER)


def is_placeholder_text(text: Optional[str]) -> bool:
    if not text:
        return False
    return any(placeholder in text for placeholder in PLACEHOLDER_TEXTS)


def infer_mime_type(message_type: Optional[str]) -> str:
    return MESSAGE_TYPE_MIME.get((message_type or "").lower(), DEFAULT_MIME_TYPE)


def fix_mime_type(data_url: str, message_type: Optional[str]) -> str:
    """Relabel octet-stream data URLs of audio messages as audio/mpeg."""
    if not data_url or not is_data_url(data_url):
        return data_url
    if (message_type or "").lower() in AUDIO_MESSAGE_TYPES and data_url_mime_type(data_url) == DEFAULT_MIME_TYPE:
        return "data:audio/mpeg" + data_url[len(f"data:{DEFAULT_MIME_TYPE}"):]
    return data_url


def decode_base64_payload(content: str) -> Tuple[bytes, str]:
    """
    Decode a data URL or raw base64 string.

    Returns:
        (raw bytes, detected MIME type)

    Raises:
        ValueError: if the payload is not valid base64
    """
    mime_type = detect_mime_type(content)
    payload = WHITESPACE_PATTERN.sub("", strip_data_url(content))
    missing_padding = len(payload) % 4
    if missing_padding:
        payload += "=" * (4 - missing_padding)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}")
    if not data:
        raise ValueError("Empty base64 payload")
    return data, mime_type
