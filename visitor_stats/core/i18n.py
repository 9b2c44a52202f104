# Localized response messages

from typing import Callable
from fastapi import Request
from visitor_stats.core.config import settings

SUPPORTED_LOCALES = ("en", "ar")
FALLBACK_LOCALE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "session_id_required": "Session ID is required",
        "visit_tracked": "Visit tracked successfully",
        "failed_to_track": "Failed to track visit",
        "failed_to_get_stats": "Failed to get statistics",
        "failed_to_generate_session": "Failed to generate session ID",
        "counter_reset": "Counter reset successfully",
        "failed_to_reset": "Failed to reset counter",
        "authentication_required": "Authentication required",
        "admin_access_required": "Admin access required",
        "invalid_request": "Invalid request",
        "rate_limit_exceeded": "Rate limit exceeded. Please try again later.",
    },
    "ar": {
        "session_id_required": "معرف الجلسة مطلوب",
        "visit_tracked": "تم تسجيل الزيارة بنجاح",
        "failed_to_track": "فشل تسجيل الزيارة",
        "failed_to_get_stats": "فشل الحصول على الإحصائيات",
        "failed_to_generate_session": "فشل إنشاء معرف الجلسة",
        "counter_reset": "تمت إعادة تعيين العداد بنجاح",
        "failed_to_reset": "فشل إعادة تعيين العداد",
        "authentication_required": "المصادقة مطلوبة",
        "admin_access_required": "مطلوب صلاحية المسؤول",
        "invalid_request": "طلب غير صالح",
        "rate_limit_exceeded": "تم تجاوز حد الطلبات. يرجى المحاولة لاحقاً.",
    },
}


def _default_locale() -> str:
    locale = settings.default_locale.lower()
    return locale if locale in SUPPORTED_LOCALES else FALLBACK_LOCALE


def parse_accept_language(header: str) -> list[str]:
    """Language codes from an Accept-Language header, best quality first"""
    languages = []
    for part in header.split(","):
        code, _, params = part.strip().partition(";")
        code = code.strip()
        if not code:
            continue

        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0

        languages.append((code.split("-")[0].lower(), quality))

    languages.sort(key=lambda item: item[1], reverse=True)
    return [code for code, quality in languages if quality > 0]


def get_locale(request: Request) -> str:
    """Locale from ?lang=, then Accept-Language, then the configured default"""
    query_locale = request.query_params.get("lang", "").lower()
    if query_locale in SUPPORTED_LOCALES:
        return query_locale

    accept_language = request.headers.get("accept-language")
    if accept_language:
        for code in parse_accept_language(accept_language):
            if code in SUPPORTED_LOCALES:
                return code

    return _default_locale()


def translate(key: str, locale: str) -> str:
    catalog = MESSAGES.get(locale, MESSAGES[FALLBACK_LOCALE])
    return catalog.get(key) or MESSAGES[FALLBACK_LOCALE].get(key, key)


def get_t(request: Request) -> Callable[[str], str]:
    """Translation function bound to the request's locale"""
    locale = get_locale(request)
    return lambda key: translate(key, locale)
