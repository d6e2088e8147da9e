"""Fixed lookup tables shared by the tracker, the journey sink and the funnel."""

from __future__ import annotations

from enum import Enum


class Platform(str, Enum):
    """Advertising platform a touch came from."""

    META = "meta"
    GOOGLE = "google"
    GENERIC = "generic"
    DIRECT = "direct"


class JourneyStage(str, Enum):
    """Ordered customer journey stages (awareness first, advocacy last)."""

    AWARENESS = "awareness"
    INTEREST = "interest"
    CONSIDERATION = "consideration"
    INTENT = "intent"
    CONVERSION = "conversion"
    RETENTION = "retention"
    ADVOCACY = "advocacy"

    @property
    def rank(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER: tuple[JourneyStage, ...] = tuple(JourneyStage)


class JourneyEventType(str, Enum):
    FORM_SUBMIT = "form_submit"
    FEEDBACK = "feedback"
    PURCHASE = "purchase"
    PAGE_VIEW = "page_view"
    SOCIAL_ENGAGE = "social_engage"
    LEAD_CAPTURE = "lead_capture"
    EMAIL_OPEN = "email_open"
    EMAIL_CLICK = "email_click"
    AD_CLICK = "ad_click"
    SUPPORT_TICKET = "support_ticket"
    CUSTOM = "custom"


class ConversionType(str, Enum):
    LEAD_FORM_SUBMISSION = "lead_form_submission"
    ADD_TO_CART = "add_to_cart"
    BEGIN_CHECKOUT = "begin_checkout"
    PURCHASE = "purchase"
    PAGE_ENGAGEMENT = "page_engagement"
    SCROLL_DEPTH = "scroll_depth"
    TIME_ON_SITE = "time_on_site"
    CUSTOM = "custom"


EVENT_TYPE_STAGES: dict[JourneyEventType, JourneyStage] = {
    JourneyEventType.PAGE_VIEW: JourneyStage.AWARENESS,
    JourneyEventType.AD_CLICK: JourneyStage.AWARENESS,
    JourneyEventType.SOCIAL_ENGAGE: JourneyStage.INTEREST,
    JourneyEventType.EMAIL_OPEN: JourneyStage.INTEREST,
    JourneyEventType.EMAIL_CLICK: JourneyStage.INTEREST,
    JourneyEventType.FORM_SUBMIT: JourneyStage.CONSIDERATION,
    JourneyEventType.LEAD_CAPTURE: JourneyStage.INTENT,
    JourneyEventType.PURCHASE: JourneyStage.CONVERSION,
    JourneyEventType.FEEDBACK: JourneyStage.RETENTION,
    JourneyEventType.SUPPORT_TICKET: JourneyStage.RETENTION,
}

# conversion type -> (journey stage, journey event type) appended by the tracker
CONVERSION_JOURNEY: dict[ConversionType, tuple[JourneyStage, JourneyEventType]] = {
    ConversionType.PAGE_ENGAGEMENT: (JourneyStage.AWARENESS, JourneyEventType.PAGE_VIEW),
    ConversionType.SCROLL_DEPTH: (JourneyStage.INTEREST, JourneyEventType.CUSTOM),
    ConversionType.TIME_ON_SITE: (JourneyStage.INTEREST, JourneyEventType.CUSTOM),
    ConversionType.ADD_TO_CART: (JourneyStage.INTENT, JourneyEventType.CUSTOM),
    ConversionType.BEGIN_CHECKOUT: (JourneyStage.INTENT, JourneyEventType.CUSTOM),
    ConversionType.LEAD_FORM_SUBMISSION: (
        JourneyStage.CONVERSION,
        JourneyEventType.LEAD_CAPTURE,
    ),
    ConversionType.PURCHASE: (JourneyStage.CONVERSION, JourneyEventType.PURCHASE),
}

_META_SOURCES = ("facebook", "instagram", "meta")


def stage_for_event(event_type: JourneyEventType | str) -> JourneyStage:
    """Default journey stage for an event type (consideration when unmapped)."""
    try:
        return EVENT_TYPE_STAGES.get(
            JourneyEventType(event_type), JourneyStage.CONSIDERATION
        )
    except ValueError:
        return JourneyStage.CONSIDERATION


def journey_for_conversion(
    conversion_type: ConversionType,
) -> tuple[JourneyStage, JourneyEventType]:
    return CONVERSION_JOURNEY.get(
        conversion_type, (JourneyStage.CONSIDERATION, JourneyEventType.CUSTOM)
    )


def classify_platform(utm_source: str | None) -> Platform:
    """Classify an advertising platform from ``utm_source`` by substring.

    An empty or missing source means the visit was direct.
    """
    if not utm_source or not utm_source.strip():
        return Platform.DIRECT
    source = utm_source.lower()
    if any(name in source for name in _META_SOURCES):
        return Platform.META
    if "google" in source:
        return Platform.GOOGLE
    return Platform.GENERIC
