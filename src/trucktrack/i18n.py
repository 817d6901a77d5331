"""English / Arabic strings for reports, exports and API messages."""

from __future__ import annotations

from datetime import datetime

LANGUAGES = ("en", "ar")

_MONTHS = {
    "en": [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
    "ar": [
        "يناير", "فبراير", "مارس", "أبريل", "مايو", "يونيو",
        "يوليو", "أغسطس", "سبتمبر", "أكتوبر", "نوفمبر", "ديسمبر",
    ],
}

_ARABIC_DIGITS = str.maketrans("0123456789", "٠١٢٣٤٥٦٧٨٩")

TRANSLATIONS = {
    "en": {
        "date": "Date",
        "driver": "Driver",
        "customer": "Customer",
        "truck": "Truck",
        "route": "Route",
        "revenue": "Revenue",
        "fuel": "Fuel",
        "petty": "Petty Cash",
        "fines": "Fines",
        "deductions": "Deductions",
        "unauthorized": "Unauthorized: Access Key is incorrect.",
        "passwordTooShort": "Key must be at least 5 characters",
        "noData": "No trip data available for analysis.",
        "saudiCities": [
            "Riyadh", "Jeddah", "Dammam", "Makkah", "Medina", "Khobar",
            "Jubail", "Abha", "Tabuk", "Buraidah", "Taif", "Hail",
            "Najran", "Jazan", "Yanbu",
        ],
    },
    "ar": {
        "date": "التاريخ",
        "driver": "السائق",
        "customer": "العميل",
        "truck": "الشاحنة",
        "route": "المسار",
        "revenue": "الإيرادات",
        "fuel": "الوقود",
        "petty": "النثريات",
        "fines": "المخالفات",
        "deductions": "الخصومات",
        "unauthorized": "غير مصرح: مفتاح الدخول غير صحيح.",
        "passwordTooShort": "يجب أن يتكون المفتاح من 5 أحرف على الأقل",
        "noData": "لا توجد بيانات رحلات متاحة للتحليل.",
        "saudiCities": [
            "الرياض", "جدة", "الدمام", "مكة المكرمة", "المدينة المنورة", "الخبر",
            "الجبيل", "أبها", "تبوك", "بريدة", "الطائف", "حائل",
            "نجران", "جازان", "ينبع",
        ],
    },
}


def normalize_language(language: str | None) -> str:
    """Anything other than "ar" renders in English."""
    return "ar" if language == "ar" else "en"


def t(language: str | None, key: str):
    return TRANSLATIONS[normalize_language(language)][key]


def month_label(moment: datetime, language: str | None = "en") -> str:
    """Long month name plus four-digit year, e.g. "March 2024" / "مارس ٢٠٢٤"."""
    lang = normalize_language(language)
    name = _MONTHS[lang][moment.month - 1]
    year = f"{moment.year:04d}"
    if lang == "ar":
        year = year.translate(_ARABIC_DIGITS)
    return f"{name} {year}"


def text_direction(language: str | None) -> str:
    return "rtl" if normalize_language(language) == "ar" else "ltr"
