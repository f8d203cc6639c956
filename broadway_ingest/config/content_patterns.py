"""Pattern tables for content quality classification and text cleaning.

Patterns are plain strings compiled by their consumers (case-insensitive).
Non-content markers are deliberately specific: a phrase that also shows up
at the cut-off point of a real but paywalled article ("sign in to continue
reading") is a truncation signal, not a non-content marker.
"""

from typing import Dict, List, Tuple

# ── Non-content markers (any match -> invalid) ──────────────────────────

ACCESS_WALL_PATTERNS: List[str] = [
    r"\bthis (?:article|story|content|page) is (?:only )?(?:for|available to) (?:paid )?(?:subscribers|members)(?: only)?\b",
    r"\byou(?:'ve| have) reached your (?:free )?(?:article|story|monthly) limit\b",
    r"\b(?:log|sign) in to (?:view|access) this (?:page|content|article)\b",
    r"\bcreate a free account to (?:read|view|access)\b",
    r"\bverify(?:ing)? (?:that )?you are (?:a )?human\b",
    r"\bunusual traffic from your (?:computer|network)\b",
    r"\baccess (?:to this page has been )?denied\b",
    r"\bplease enable (?:javascript|cookies) (?:to|and) (?:continue|view|access)\b",
    r"\bturn off (?:your )?ad ?block(?:er)?\b",
    r"\bdisable (?:your )?ad ?block(?:er)?\b",
    r"\bwhitelist (?:this |our )?(?:site|domain)\b",
    r"\bwe (?:noticed|detected) (?:that )?you(?:'re| are) using an ad ?blocker\b",
]

ERROR_PAGE_PATTERNS: List[str] = [
    r"\bpage not found\b",
    r"\b404 (?:error|not found)\b",
    r"\berror 404\b",
    r"\bthe page you(?:'re| are) looking for\b",
    r"\bsorry[,.]? (?:we )?couldn'?t find (?:that|the|this) (?:page|article)\b",
    r"\bwe can'?t find (?:that|the) (?:page|article)\b",
    r"\b(?:this )?(?:page|article|story) (?:is )?no longer available\b",
    r"\bthis (?:page|article|story) has been (?:removed|deleted|taken down)\b",
]

# Anchored at the start of the text (before or after leading junk is
# stripped): the document *is* a policy page
LEGAL_PAGE_PATTERNS: List[str] = [
    r"\A\s*privacy (?:policy|notice)\b",
    r"\A\s*terms (?:of )?(?:use|service)\b",
    r"\A\s*cookie (?:policy|notice|consent)\b",
    r"\A\s*legal (?:notice|disclaimer)\b",
    r"\A\s*copyright (?:notice|policy)\b",
]

NEWSLETTER_PATTERNS: List[str] = [
    r"\bthanks? for subscribing\b",
    r"\benter your email(?: address)?\b",
    r"\bnewsletter sign[- ]?up\b",
    r"\bemail address (?:is )?required\b",
]

NAVIGATION_PATTERNS: List[str] = [
    r"^(?:home|about|contact|faq|help|support|careers|advertise)\s*$",
    r"\bskip to (?:main )?content\b",
    r"\b(?:footer|header|sidebar|menu|navigation)\b",
    r"\bsearch (?:this )?(?:site|website)\b",
    r"\brelated (?:articles?|stories|posts)\b",
    r"\bpopular (?:articles?|stories|posts)\b",
    r"\blatest (?:articles?|stories|news)\b",
    r"\btrending (?:now|stories|articles)\b",
    r"\bread more\s*[>→]",
    r"\bsee all (?:articles?|stories|reviews)\b",
    r"^\s*(?:prev(?:ious)?|next)\s*(?:article|story|post)?\s*$",
]

URL_ONLY_PATTERN = r"\A\s*(?:https?://\S+\s*)+\Z"

# ── Truncation signals ──────────────────────────────────────────────────

# (signal name, pattern); any one severe signal is conclusive
SEVERE_TRUNCATION_PATTERNS: List[Tuple[str, str]] = [
    ("subscribe_to_continue", r"\bsubscribe (?:now )?to (?:continue|keep) reading\b"),
    ("sign_in_to_continue", r"\b(?:sign|log) in to (?:continue|keep) reading\b"),
    ("to_continue_subscribe", r"\bto (?:continue|keep) reading,? (?:please )?(?:subscribe|sign in|log in)\b"),
    ("subscriber_prompt", r"\balready a (?:subscriber|member)\?\s*(?:sign|log) in\b"),
    ("unlock_article", r"\bunlock (?:this|the full|access to every(?: one of our)?) (?:article|story|articles|stories)\b"),
    ("access_every_story", r"\bget access to every broadway story\b"),
]

# Evaluated against the tail of the body only
MODERATE_TRUNCATION_PATTERNS: List[Tuple[str, str]] = [
    ("trailing_ellipsis", r"(?:\.{3}|…|\[\s*(?:\.{3}|…)\s*\])\s*$"),
    ("read_more", r"\bread more\.{0,3}\s*$"),
    ("continue_reading", r"\bcontinue reading\.{0,3}\s*$"),
    ("trailing_advertisement", r"\badvertisement\s*$"),
]

FOOTER_PATTERNS: List[Tuple[str, str]] = [
    ("copyright", r"(?:copyright\s*)?©\s*\d{4}|\bcopyright\s+\d{4}\b"),
    ("all_rights_reserved", r"\ball rights reserved\b"),
    ("terms_privacy", r"\bterms of (?:use|service)\b.{0,40}\bprivacy policy\b"),
]

# ── Structural junk stripped before truncation/mismatch checks ─────────

# (name, pattern) applied with re.IGNORECASE | re.DOTALL, anchored at the start
LEADING_JUNK_PATTERNS: List[Tuple[str, str]] = [
    ("masthead", r"\A(?:democracy dies in darkness|all the news that'?s fit to print)\s*"),
    ("skip_to_content", r"\Askip to (?:main )?content\s*"),
    ("affiliate_disclosure", r"\A(?:things you buy through our links|we may earn a commission)[^.\n]*\.\s*"),
    ("photo_credit", r"\A(?:photo|photograph|credit)\s*:\s*[^\n]+\n\s*"),
    ("cookie_banner", r"\Awe use cookies[^\n]*\n\s*"),
    ("payment_prefix", r"\Awe haven'?t been able to take payment.*?(?=\b[A-Z][a-z])"),
]

# (name, pattern) applied with re.IGNORECASE | re.DOTALL, anchored at the end
TRAILING_JUNK_PATTERNS: List[Tuple[str, str]] = [
    ("newsletter_promo", r"\s*(?:sign up for|subscribe to) our newsletter.*\Z"),
    ("theatermania_promo", r"\s*get the latest news, discounts and updates on theater.*\Z"),
    ("account_prompt", r"\s*already have an account\?\s*(?:sign|log) in(?! to (?:continue|keep) reading).*\Z"),
    ("email_consent", r"\s*by submitting your email, you agree to our terms.*\Z"),
    ("email_signin", r"\s*this email will be used to sign into all .*\Z"),
    ("read_more_link", r"\s*read more:\s*[^\n]+\Z"),
    ("related_block", r"\s*(?:related (?:articles?|content|stories)|popular on \w+|more from our brands|more from [\w ]{2,30})\s*\n.*\Z"),
    ("share_bar", r"\s*share (?:full )?(?:this )?article\b.*\Z"),
    ("comments", r"\s*(?:\d+\s+)?comments?\s*\(\d+\).*\Z"),
    ("site_footer", r"\s*about us\s*\|\s*editorial guidelines\s*\|\s*contact us.*\Z"),
    ("copyright_footer", r"\s*copyright\s*©?\s*\d{4}.*\Z"),
    ("rights_reserved", r"\s*all rights reserved\.?\s*\Z"),
    ("critic_bio", r"\s*is (?:the chief|a) theater critic for the times\..*\Z"),
    ("image_markup", r"\s*<img\b[^>]*>.*\Z"),
]

# Signal prefixes
SEVERE = "severe"
MODERATE = "moderate"
FOOTER = "footer"

PATTERN_GROUPS: Dict[str, List[str]] = {
    "access_wall": ACCESS_WALL_PATTERNS,
    "error_page": ERROR_PAGE_PATTERNS,
    "legal_page": LEGAL_PAGE_PATTERNS,
    "newsletter_form": NEWSLETTER_PATTERNS,
}
