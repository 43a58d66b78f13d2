"""
Bilingual in-app notification templates
Titles and messages for every contract lifecycle notification, in English and Arabic
"""

NOTIFICATION_TEMPLATES = {
    "contract_executed": {
        "en": (
            "Contract Executed",
            "Both parties have signed the contract. The booking is now active.",
        ),
        "ar": (
            "تم تفعيل العقد",
            "تم توقيع العقد من قبل الطرفين وأصبح الحجز نشطاً",
        ),
    },
    "contract_withdrawn": {
        "en": (
            "Signature Withdrawn",
            "The other party withdrew their signature from the contract",
        ),
        "ar": (
            "تم سحب التوقيع",
            "سحب الطرف الآخر توقيعه من العقد",
        ),
    },
    "contract_rejected": {
        "en": (
            "Contract Rejected",
            "The other party rejected the contract.",
        ),
        "ar": (
            "تم رفض العقد",
            "قام الطرف الآخر برفض العقد.",
        ),
    },
    "contract_updated": {
        "en": (
            "Contract Updated",
            "The contract terms were changed. Please review and sign the new version.",
        ),
        "ar": (
            "تم تحديث العقد",
            "تم تغيير شروط العقد. يرجى مراجعة النسخة الجديدة وتوقيعها.",
        ),
    },
}


def render_notification(notification_type: str, language: str = "en") -> tuple[str, str]:
    """Return (title, message) for a notification type, falling back to English"""
    template = NOTIFICATION_TEMPLATES[notification_type]
    return template.get(language) or template["en"]
