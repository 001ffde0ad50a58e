"""
Marketing channel classification from referrer, query string and hostname.
"""
from typing import Dict, Optional

from backfill.services.imports.mappers.enrichment import (
    get_all_url_params,
    get_referrer_domain,
    strip_www,
)

SEARCH_ENGINES = frozenset([
    "google", "bing", "yahoo", "duckduckgo", "baidu", "yandex", "ecosia", "search.brave",
    "naver", "startpage", "qwant", "ask", "aol", "seznam", "sogou", "so.com", "kagi",
])

SOCIAL_NETWORKS = frozenset([
    "facebook", "fb.com", "fb.me", "instagram", "twitter", "t.co", "x.com", "linkedin",
    "lnkd.in", "reddit", "pinterest", "tiktok", "snapchat", "threads.net", "mastodon",
    "bsky.app", "quora", "tumblr", "vk.com", "weibo", "whatsapp", "telegram", "t.me",
    "discord", "news.ycombinator", "producthunt",
])

VIDEO_SITES = frozenset(["youtube", "youtu.be", "vimeo", "twitch", "dailymotion", "wistia"])

EMAIL_PROVIDERS = frozenset([
    "mail.google", "outlook.live", "outlook.office", "mail.yahoo", "mail.proton",
    "webmail", "mail.aol", "mail.zoho",
])

AI_ASSISTANTS = frozenset([
    "chatgpt.com", "chat.openai.com", "perplexity.ai", "claude.ai", "gemini.google.com",
    "copilot.microsoft.com", "you.com", "phind.com",
])

PAID_MEDIUMS = frozenset(["cpc", "ppc", "paid", "paidsearch", "paid_search", "paid-search", "sem", "cpv", "cpa"])
PAID_SOCIAL_MEDIUMS = frozenset(["paid_social", "paid-social", "paidsocial", "social_paid", "social-paid"])
DISPLAY_MEDIUMS = frozenset(["display", "banner", "cpm", "expandable", "interstitial"])
SOCIAL_MEDIUMS = frozenset(["social", "social-network", "social_network", "social-media", "social_media", "sm"])
EMAIL_MEDIUMS = frozenset(["email", "e-mail", "e_mail", "newsletter"])

PAID_CLICK_IDS = ("gclid", "gbraid", "wbraid", "msclkid", "dclid")
PAID_SOCIAL_CLICK_IDS = ("ttclid", "li_fat_id", "twclid")


def _matches(domain: str, families: frozenset) -> bool:
    """Whether a domain (or bare utm_source value) belongs to a family of sites."""
    if not domain:
        return False
    labels = domain.split(".")
    for family in families:
        if "." in family:
            if domain == family or domain.endswith(f".{family}") or domain.startswith(f"{family}."):
                return True
        elif family in labels:
            return True
    return False


def _classify_source(source: str) -> Optional[str]:
    if _matches(source, AI_ASSISTANTS):
        return "AI"
    if _matches(source, EMAIL_PROVIDERS):
        return "Email"
    if _matches(source, SEARCH_ENGINES):
        return "Search"
    if _matches(source, VIDEO_SITES):
        return "Video"
    if _matches(source, SOCIAL_NETWORKS):
        return "Social"
    return None


def _channel_from_campaign(params: Dict[str, str], source_family: Optional[str]) -> Optional[str]:
    medium = params.get("utm_medium", "").strip().lower()

    if medium in PAID_SOCIAL_MEDIUMS or any(params.get(key) for key in PAID_SOCIAL_CLICK_IDS):
        return "Paid Social"
    if medium in PAID_MEDIUMS or any(params.get(key) for key in PAID_CLICK_IDS):
        if source_family == "Social":
            return "Paid Social"
        if source_family == "Video":
            return "Paid Video"
        return "Paid Search"
    if medium in DISPLAY_MEDIUMS:
        return "Display"
    if medium in SOCIAL_MEDIUMS:
        return "Organic Social"
    if medium in EMAIL_MEDIUMS:
        return "Email"
    if medium == "affiliate":
        return "Affiliate"
    if medium in ("audio", "podcast"):
        return "Audio"
    if medium == "sms":
        return "SMS"
    if medium in ("push", "mobile", "notification"):
        return "Mobile Push"
    if medium == "referral":
        return "Referral"
    if medium in ("video",):
        return "Organic Video"
    return None


FAMILY_CHANNELS = {
    "AI": "AI",
    "Email": "Email",
    "Search": "Organic Search",
    "Video": "Organic Video",
    "Social": "Organic Social",
}


def get_channel(referrer: str, querystring: str, hostname: str) -> str:
    """
    Classify the marketing channel of a visit.

    Campaign parameters win over the referrer; without either the visit is
    Direct. Visits referred by the site itself are Internal.
    """
    params = {key.lower(): value for key, value in get_all_url_params(querystring).items()}
    referrer_domain = get_referrer_domain(referrer)
    utm_source = params.get("utm_source", "").strip().lower()

    source_family = _classify_source(utm_source) or _classify_source(referrer_domain)

    campaign_channel = _channel_from_campaign(params, source_family)
    if campaign_channel:
        return campaign_channel

    if referrer_domain and hostname and referrer_domain == strip_www(hostname):
        return "Internal"

    if source_family:
        return FAMILY_CHANNELS[source_family]

    if referrer_domain or utm_source:
        return "Referral"

    return "Direct"
