"""User-facing error messages, keyed by language.

Hindi is the site's primary language; the English table mirrors it for
logs and tooling.
"""

from __future__ import annotations

from core.domain.language import Language

NETWORK = "network"
RATE_LIMITED = "rate_limited"
GENERIC = "generic"
UNKNOWN = "unknown"

_MESSAGES: dict[Language, dict[str | int, str]] = {
    Language.HINDI: {
        NETWORK: "इंटरनेट कनेक्शन में समस्या है",
        RATE_LIMITED: "बहुत अधिक अनुरोध, कृपया कुछ देर प्रतीक्षा करें",
        400: "अमान्य अनुरोध",
        401: "प्रमाणीकरण आवश्यक है",
        403: "पहुँच निषेध",
        404: "सामग्री नहीं मिली",
        408: "अनुरोध समय समाप्त",
        500: "सर्वर में त्रुटि हुई",
        502: "सेवा अस्थायी रूप से अनुपलब्ध है",
        503: "सेवा अस्थायी रूप से अनुपलब्ध है",
        504: "सेवा अस्थायी रूप से अनुपलब्ध है",
        GENERIC: "कुछ गलत हो गया",
        UNKNOWN: "अज्ञात त्रुटि",
    },
    Language.ENGLISH: {
        NETWORK: "There is a problem with the internet connection",
        RATE_LIMITED: "Too many requests, please wait a moment",
        400: "Invalid request",
        401: "Authentication required",
        403: "Access denied",
        404: "Content not found",
        408: "Request timed out",
        500: "A server error occurred",
        502: "Service temporarily unavailable",
        503: "Service temporarily unavailable",
        504: "Service temporarily unavailable",
        GENERIC: "Something went wrong",
        UNKNOWN: "Unknown error",
    },
}


def message_for(key: str | int, language: Language = Language.HINDI) -> str:
    table = _MESSAGES[language]
    return table.get(key, table[GENERIC])
