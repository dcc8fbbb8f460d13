"""Model-free heuristics behind the execution agent's fallback tiers.

Everything here works from the instruction text and whatever the backend's
deterministic primitives return (element text, page title and text); nothing calls a
model. Functions are pure except ``extract_cards``, which queries the backend.
"""

import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote_plus

from resight.agents.planner import SHOPPING_SITES
from resight.browser import AutomationBackend, BackendError, PageElement
from resight.telemetry import get_logger

log = get_logger(__name__)

GOOGLE_SEARCH_URL = "https://www.google.com/search?q="
DEFAULT_MARKETPLACE = "amazon"


class InstructionKind(str, Enum):
    SEARCH = "search"
    INTERACTION = "interaction"


_URL_RE = re.compile(r"\bhttps?://[^\s]+", re.IGNORECASE)
_DOMAIN_RE = re.compile(
    r"\b((?:www\.)?[a-z0-9-]+\.(?:com|org|net|edu|gov|io|co|us|uk|ca|app|dev|ai|tv|me)(?:/[^\s]*)?)\b",
    re.IGNORECASE,
)
_NAVIGATE_VERB_RE = re.compile(
    r"^(?:please\s+)?(?:search|google|find|look\s+(?:up|for)|go\s+to|open\s+(?!the\b|this\b|that\b)"
    r"|visit|navigate\s+to|pull\s+up|take\s+me\s+to|shop\s+for|buy|order|get\s+me)\b"
)
_INTERACTION_VERB_RE = re.compile(
    r"^(?:please\s+)?(?:click|press|tap|select|choose|pick|scroll|read|expand|open\s+(?:the|this|that)"
    r"|show\s+(?:me\s+)?(?:the|this)|add\s+(?:it|this|that|the)|what\s+does\s+(?:it|this|the\s+page))\b"
)
_IN_PAGE_RE = re.compile(
    r"\b(?:button|tab|link|this page|the page|first (?:one|result)|second (?:one|result)|menu|section)\b"
)
_SHOPPING_INTENT_RE = re.compile(
    r"\b(?:buy|order|purchase|shop(?:ping)? for|price of|how much (?:is|are|does)"
    r"|in stock|add to cart)\b"
)
_SITE_MENTION_RE = re.compile(
    r"\bon\s+(" + "|".join(SHOPPING_SITES) + r")(?:'s)?(?:\s+(?:website|site|\.com))?\b"
)

FLAVOR_TOKENS = (
    "cookies and cream", "cookie dough", "mint chocolate chip", "rocky road", "salted caramel",
    "vanilla", "chocolate", "strawberry", "caramel", "mint", "coffee", "pistachio",
    "peanut butter", "butter pecan", "mango", "blueberry", "original", "unsweetened",
)
PRODUCT_TYPE_TOKENS = (
    "ice cream", "frozen yogurt", "protein powder", "almond milk", "oat milk", "peanut butter",
    "yogurt", "cereal", "granola", "milk", "chips", "cookies", "coffee beans", "tea", "bread",
    "cheese", "pasta", "sauce", "shampoo", "toothpaste", "detergent", "headphones", "charger",
)
_SIZE_RE = re.compile(
    r"\b\d+(?:\.\d+)?\s?(?:fl\.?\s?oz|oz|ounces?|lbs?|pounds?|pints?|quarts?|gallons?|kg|g|ml|l"
    r"|pack|ct|count)\b"
)

QUERY_STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "to", "for", "of", "on", "in", "at", "with", "me",
        "my", "i", "please", "can", "you", "could", "would", "find", "search", "look", "up",
        "get", "show", "buy", "order", "purchase", "some", "want", "need", "give", "tell",
        "go", "open", "visit", "shop", "shopping", "price", "how", "much", "is", "are",
        "website", "site", "amazon", "target", "walmart", "google",
    }
)

INTERACTION_STOP_WORDS = frozenset(
    {
        "a", "an", "the", "on", "in", "to", "of", "for", "and", "or", "me", "my", "it",
        "this", "that", "click", "press", "tap", "select", "choose", "pick", "open", "show",
        "read", "please", "button", "link", "tab", "page", "can", "you", "what", "does", "say",
    }
)

_NUTRITION_INTENT_RE = re.compile(
    r"\b(?:nutrition|nutritional|ingredients?|calories|allergens?|sugar|protein content)\b"
)
_NUTRITION_ELEMENT_RE = re.compile(
    r"\b(?:nutrition(?:al)?(?: facts| info(?:rmation)?)?|ingredients|allergens?)\b"
)

CARD_SELECTORS = (
    '[data-component-type="s-search-result"]',
    '[data-test="@web/site-top-of-funnel/ProductCardWrapper"]',
    '[data-testid="list-view"] [data-item-id]',
    "div.g",
    "li.product",
    "article",
)
_PRICE_RE = re.compile(r"[$€£]\s?\d[\d,]*(?:\.\d{1,2})?")
_CARD_TITLE_MAX = 90
MAX_SUMMARY_CARDS = 3


def classify_instruction(instruction: str) -> InstructionKind:
    """Fresh search/navigation command, or interaction with the current page."""
    lower = instruction.lower().strip()
    if _URL_RE.search(lower) or _DOMAIN_RE.search(lower):
        return InstructionKind.SEARCH
    if _INTERACTION_VERB_RE.search(lower):
        return InstructionKind.INTERACTION
    if _NAVIGATE_VERB_RE.search(lower):
        return InstructionKind.SEARCH
    if _IN_PAGE_RE.search(lower) or _NUTRITION_INTENT_RE.search(lower):
        return InstructionKind.INTERACTION
    return InstructionKind.SEARCH


def find_explicit_address(instruction: str) -> str | None:
    """An http(s) URL or bare domain in the text, normalized to an absolute URL."""
    match = _URL_RE.search(instruction)
    if match:
        return match.group(0).rstrip(".,;:!?)\"'")
    match = _DOMAIN_RE.search(instruction)
    if match:
        return f"https://{match.group(1).rstrip('.,;:!?')}"
    return None


def _strip_stop_words(text: str) -> str:
    words = re.findall(r"[a-z0-9.'-]+", text)
    return " ".join(w for w in words if w.isdigit() or (w not in QUERY_STOP_WORDS and len(w) > 1))


def extract_shopping_query(instruction: str) -> str:
    """Marketplace query: flavor + product type + size when a product type is recognized.

    Falls back to the instruction with stop-words removed.
    """
    lower = instruction.lower()
    product = next((p for p in PRODUCT_TYPE_TOKENS if p in lower), None)
    if product is not None:
        remainder = lower.replace(product, " ")
        flavor = next((f for f in FLAVOR_TOKENS if f in remainder), None)
        size = _SIZE_RE.search(lower)
        parts = [flavor, product, size.group(0) if size else None]
        return " ".join(p for p in parts if p)
    return _strip_stop_words(_SITE_MENTION_RE.sub(" ", lower))


def has_shopping_intent(instruction: str) -> bool:
    lower = instruction.lower()
    return bool(
        _SITE_MENTION_RE.search(lower)
        or any(site in lower.split() for site in SHOPPING_SITES)
        or _SHOPPING_INTENT_RE.search(lower)
    )


def build_search_url(instruction: str) -> str:
    """Target address for a search/navigation instruction.

    Preference order: explicit address, marketplace search when shopping
    intent is detected, generic web search.
    """
    explicit = find_explicit_address(instruction)
    if explicit:
        return explicit

    lower = instruction.lower()
    if has_shopping_intent(instruction):
        site_match = _SITE_MENTION_RE.search(lower)
        site = site_match.group(1) if site_match else next(
            (s for s in SHOPPING_SITES if s in lower.split()), DEFAULT_MARKETPLACE
        )
        query = extract_shopping_query(instruction)
        if query:
            return f"{SHOPPING_SITES[site]}{quote_plus(query)}"

    return web_search_url(instruction)


def web_search_url(instruction: str) -> str:
    return f"{GOOGLE_SEARCH_URL}{quote_plus(instruction.strip())}"


def interaction_keywords(instruction: str) -> list[str]:
    words = re.findall(r"[a-z0-9$.-]+", instruction.lower())
    return [w for w in words if w not in INTERACTION_STOP_WORDS and len(w) > 1]


def score_element(keywords: Sequence[str], element: PageElement) -> int:
    """Number of instruction keywords present in the element's visible text."""
    text = element.text.lower()
    return sum(1 for keyword in keywords if keyword in text)


def pick_element(instruction: str, elements: Sequence[PageElement]) -> PageElement | None:
    """Element to activate for an in-page instruction, or None when nothing scores.

    Nutrition and ingredient requests prefer an element named for that
    vocabulary over the raw score leader.
    """
    if _NUTRITION_INTENT_RE.search(instruction.lower()):
        for element in elements:
            if _NUTRITION_ELEMENT_RE.search(element.text.lower()):
                return element

    keywords = interaction_keywords(instruction)
    if not keywords:
        return None
    best: PageElement | None = None
    best_score = 0
    for element in elements:
        score = score_element(keywords, element)
        if score > best_score:
            best, best_score = element, score
    return best


@dataclass(frozen=True)
class ResultCard:
    title: str
    price: str | None = None

    def describe(self) -> str:
        return f"{self.title} ({self.price})" if self.price else self.title


def parse_card(text: str) -> ResultCard | None:
    """Title and first price-like string from a card's visible text."""
    price_match = _PRICE_RE.search(text)
    title = None
    for line in text.splitlines():
        line = " ".join(line.split())
        if len(line) < 3 or len(line) > _CARD_TITLE_MAX or _PRICE_RE.fullmatch(line):
            continue
        if re.fullmatch(r"[\d.,\s]*(?:stars?|out of 5.*|ratings?|reviews?)?", line.lower()):
            continue
        title = line
        break
    if title is None:
        return None
    return ResultCard(title=title, price=price_match.group(0).replace(" ", "") if price_match else None)


async def extract_cards(
    backend: AutomationBackend,
    limit: int = MAX_SUMMARY_CARDS,
    call: Callable[[Awaitable[list[PageElement]]], Awaitable[list[PageElement]]] | None = None,
) -> list[ResultCard]:
    """Result cards from the first selector in ``CARD_SELECTORS`` that yields any.

    Backend errors end the search quietly; the caller degrades to a generic message.

    Args:
        backend: Session to query.
        limit: Maximum cards to return.
        call: Wrapper each backend query is awaited through (e.g. to make it abortable).
    """
    for selector in CARD_SELECTORS:
        query = backend.query_elements(selector, limit=limit * 3)
        try:
            elements = await (call(query) if call is not None else query)
        except BackendError as e:
            log.debug("card_query_failed", selector=selector, error=str(e))
            return []
        cards: list[ResultCard] = []
        seen: set[str] = set()
        for element in elements:
            card = parse_card(element.text)
            if card is None or card.title in seen:
                continue
            seen.add(card.title)
            cards.append(card)
            if len(cards) >= limit:
                break
        if cards:
            return cards
    return []


def summarize_cards(cards: Sequence[ResultCard], page_label: str) -> str:
    """Short spoken summary of the first cards, or a generic opened-page message."""
    if not cards:
        return f"I opened the page: {page_label}"
    listed = "; ".join(card.describe() for card in cards[:MAX_SUMMARY_CARDS])
    return f"Here's what's at the top: {listed}."


def detect_bot_wall(title: str, text: str) -> str | None:
    """Kind of bot check the page shows instead of its content, or None.

    Args:
        title: Document title.
        text: Visible page text (body excerpt, card text).
    """
    title = " ".join(title.lower().split())
    content = " ".join(text.lower().split())
    if "checking your browser" in content or "checking if the site connection is secure" in content:
        return "Cloudflare challenge"
    if "just a moment" in title and "ray id" in content:
        return "Cloudflare challenge"
    if "attention required" in title and "cloudflare" in content:
        return "Cloudflare block"
    if "verify you are human" in content or "are you a robot" in content:
        return "CAPTCHA"
    if "please enable javascript and cookies" in content or "please turn javascript on" in content:
        return "JavaScript/cookie wall"
    if "pardon our interruption" in content:
        return "Bot detection (retail)"
    if "access denied" in title or "access to this page has been denied" in title:
        return "Access denied"
    # Bare 403 pages carry almost no text
    if "403" in title and len(content) < 500:
        return "Access denied"
    if "automated access" in content or "bot detected" in content:
        return "Bot detection"
    return None
