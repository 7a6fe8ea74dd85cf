"""
D-BOT - Conversation Heuristics
================================
Pattern-based understanding of the caller-supplied conversation history.
Nothing here touches the database or the AI services.

Every classifier is a closed enumeration with an ordered list of matcher
predicates, so matching order is deterministic and each rule can be
tested on its own.

``IntentClassifier``
    Fixed intents answered without retrieval: greeting, list events, help.

``FollowUpClassifier``
    Decides whether a question refers back to an event already discussed
    (``SHORT_DETAIL`` → ``EVENT_REFERENCE`` → ``PATTERN``).

``HistoryAnswerExtractor``
    Generation-free fallback: pulls a location / time / date / contact
    answer out of earlier assistant turns.

Name flow helpers
    ``should_ask_for_name``, ``is_name_response``, ``extract_user_name``
    and ``user_name_from_history``.  The flow is inferred from turn order
    and the wording of the assistant's name request.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from enum import Enum

from dbot.config.prompt_templates import NAME_REQUEST_PHRASES
from dbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type aliases ───────────────────────────────────────────────────────
ChatMessage = dict[str, str]
Matcher = Callable[[str], bool]

_ASSISTANT_ROLES = frozenset({"assistant", "ai"})
_WORD_RE = re.compile(r"[a-z0-9']+")


def role(message: ChatMessage) -> str:
    """Lower-cased role; missing or null roles read as ``""``."""
    return str(message.get("role") or "").lower()


def is_assistant(message: ChatMessage) -> bool:
    return role(message) in _ASSISTANT_ROLES


def is_user(message: ChatMessage) -> bool:
    return role(message) == "user"


def words(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def prior_turns(question: str, history: Sequence[ChatMessage]) -> list[ChatMessage]:
    """
    Return the turns *before* the current question.

    Some clients append the question they are sending as the last user
    turn; that trailing copy is dropped.
    """
    turns = [m for m in history if isinstance(m, dict) and isinstance(m.get("content"), str)]
    if turns and is_user(turns[-1]) and turns[-1]["content"].strip() == question.strip():
        return turns[:-1]
    return turns


# ══════════════════════════════════════════════════════════════════════
#  FIXED INTENTS
# ══════════════════════════════════════════════════════════════════════


class IntentKind(Enum):
    GREETING = "greeting"
    LIST_EVENTS = "list_events"
    HELP = "help"


_GREETING_RE = re.compile(r"^(?:hi|hello|hey|greetings|good (?:morning|afternoon|evening))\b[\s!.,]*(?:there|d-?bot)?[\s!.,]*$")
_LIST_PHRASES = ("all events", "show events", "any events", "latest events")
_HELP_PHRASES = ("help", "what can you do", "what do you do", "what u do", "what can u do")
_HELP_RE = re.compile(r"^what (?:can|do) (?:you|u) (?:do|help)")


def _is_greeting(q: str) -> bool:
    return bool(_GREETING_RE.match(q))


def _is_list_events(q: str) -> bool:
    return any(phrase in q for phrase in _LIST_PHRASES) or q.rstrip("?!. ") == "events"


def _is_help(q: str) -> bool:
    return any(phrase in q for phrase in _HELP_PHRASES) or bool(_HELP_RE.match(q))


class IntentClassifier:
    """First matching fixed intent, or *None* for a regular question."""

    RULES: tuple[tuple[IntentKind, Matcher], ...] = (
        (IntentKind.GREETING, _is_greeting),
        (IntentKind.LIST_EVENTS, _is_list_events),
        (IntentKind.HELP, _is_help),
    )

    def classify(self, question: str) -> IntentKind | None:
        q = question.lower().strip()
        for kind, matcher in self.RULES:
            if matcher(q):
                return kind
        return None


    @staticmethod
    def wants_latest(question: str) -> bool:
        return "latest" in question.lower()


# ══════════════════════════════════════════════════════════════════════
#  FOLLOW-UP CLASSIFIER
# ══════════════════════════════════════════════════════════════════════


class FollowUpSignal(Enum):
    SHORT_DETAIL = "short_detail"
    EVENT_REFERENCE = "event_reference"
    PATTERN = "pattern"


_DETAIL_WORDS: frozenset[str] = frozenset({
    "date", "time", "location", "place", "contact", "number", "phone", "email",
    "website", "address", "price", "cost", "when", "where", "who", "what",
    "which", "how", "their", "they", "its", "it", "the", "them",
})

_EVENT_NOUNS: tuple[str, ...] = ("event", "festival", "concert", "show", "stadium", "venue", "location")

_ASKING_ABOUT_PHRASES: tuple[str, ...] = ("tell me more", "more about", "about the", "about this", "about that", "about it")
_ASKING_ABOUT_RE = re.compile(r"^(?:tell|give|show)\b.*\b(?:more|details|info|about)\b")

_DETAIL_NOUNS = r"(?:date|time|location|place|contact|number|price|cost|website|email|phone|address)"

FOLLOW_UP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"^(?:which|what|when|where|who|whose)\s+{_DETAIL_NOUNS}"),
    re.compile(rf"^(?:the\s+)?{_DETAIL_NOUNS}\b"),
    re.compile(r"^(?:their|its|his|her|they)\s+"),
    re.compile(r"^(?:how much|how long|how many|how far)\b"),
    re.compile(r"(?:contact|phone)\s*(?:number|details|info)?[\s?!.]*$"),
    re.compile(r"^(?:when|where|who|what time|what date)\b"),
    re.compile(r"^(?:tell|give|show)\b.*\b(?:more|details|info|about)\b"),
    re.compile(r"\bmore\s+about\b"),
)


class FollowUpClassifier:
    """
    Decide whether a question continues the current conversation.

    Parameters
    ----------
    window
        Number of most recent turns scanned for event nouns.
    """

    __slots__ = ("_window",)

    def __init__(self, window: int = 6) -> None:
        self._window = window


    def signal(self, question: str, history: Sequence[ChatMessage]) -> FollowUpSignal | None:
        """Return the first signal that fires, or *None* for a fresh question."""
        q = question.lower().strip()
        checks: tuple[tuple[FollowUpSignal, Callable[[], bool]], ...] = (
            (FollowUpSignal.SHORT_DETAIL, lambda: self._short_detail(q, history)),
            (FollowUpSignal.EVENT_REFERENCE, lambda: self._event_reference(q, history)),
            (FollowUpSignal.PATTERN, lambda: self._pattern(q)),
        )
        for kind, check in checks:
            if check():
                logger.info("[FOLLOW-UP] %s matched: '%s'", kind.value, question[:80])
                return kind
        return None


    def is_follow_up(self, question: str, history: Sequence[ChatMessage]) -> bool:
        return self.signal(question, history) is not None


    @staticmethod
    def _short_detail(q: str, history: Sequence[ChatMessage]) -> bool:
        if not history or len(q.split()) > 3:
            return False
        return any(w in _DETAIL_WORDS for w in words(q))


    def _event_reference(self, q: str, history: Sequence[ChatMessage]) -> bool:
        if not history:
            return False
        recent = " ".join(m.get("content", "") for m in history[-self._window:]).lower()
        if not any(noun in recent for noun in _EVENT_NOUNS):
            return False
        return any(phrase in q for phrase in _ASKING_ABOUT_PHRASES) or bool(_ASKING_ABOUT_RE.match(q))


    @staticmethod
    def _pattern(q: str) -> bool:
        return any(pattern.search(q) for pattern in FOLLOW_UP_PATTERNS)


# ══════════════════════════════════════════════════════════════════════
#  HISTORY ANSWER EXTRACTOR
# ══════════════════════════════════════════════════════════════════════


class DetailKind(Enum):
    TELL_ABOUT = "tell_about"
    TIME = "time"
    CONTACT = "contact"
    LOCATION = "location"
    DATE = "date"


_TELL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(re.compile(p) for p in (r"tell.*about", r"tell.*that", r"tell.*\bit\b", r"tell.*this", r"say.*about", r"can.*tell", r"could.*tell"))

_TIME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\d{1,2}\s*(?:am|pm)\s*(?:to|-)?\s*\d{1,2}\s*(?:am|pm)", re.IGNORECASE),
    re.compile(r"\d{1,2}:\d{2}\s*(?:am|pm)?\s*(?:to|-)?\s*\d{1,2}:\d{2}\s*(?:am|pm)?", re.IGNORECASE),
    re.compile(r"from\s*(?:\d{1,2}\s*(?:am|pm)|\d{1,2}:\d{2})\s*to\s*(?:\d{1,2}\s*(?:am|pm)|\d{1,2}:\d{2})", re.IGNORECASE),
)

_EMAIL = r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"
_CONTACT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"contact.*?{_EMAIL}", re.IGNORECASE),
    re.compile(rf"email.*?{_EMAIL}", re.IGNORECASE),
    re.compile(r"phone.*?(\+?\d{10,})", re.IGNORECASE),
    re.compile(r"call.*?(\+?\d{10,})", re.IGNORECASE),
    re.compile(r"contact.*?(\+?\d{10,})", re.IGNORECASE),
)

_VENUE_WORDS = (
    r"cafe|stadium|hall|center|centre|theater|theatre|park|venue|arena|auditorium|ground|grounds|hotel|"
    r"restaurant|club|bar|studio|gallery|mall|plaza|square|garden|beach|resort|academy|institute|school|"
    r"college|university|library|museum|cinema|field"
)
_LOCATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bat\s+([A-Za-z][A-Za-z\s]+)", re.IGNORECASE),
    re.compile(r"happening\s+(?:at|in)\s+([A-Za-z][A-Za-z\s]+)", re.IGNORECASE),
    re.compile(r"(?:located|takes place)\s+(?:at|in)\s+([A-Za-z][A-Za-z\s]+)", re.IGNORECASE),
    re.compile(r"(?:venue|location|place):\s*([A-Za-z][A-Za-z\s]+)", re.IGNORECASE),
    re.compile(rf"(?:at|venue|location|place)\s+([A-Za-z][A-Za-z\s]*(?:{_VENUE_WORDS}))", re.IGNORECASE),
)
# Capitalised phrase after "at" (case-sensitive on purpose)
_CAPITALISED_AT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bat\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,2})"),
    re.compile(r"\bat\s+([A-Z][A-Za-z]+(?:\s+[A-Z][A-Za-z]+)*)"),
)
_LOCATION_SKIP_WORDS = frozenset({"the", "a", "an", "at", "in", "on", "for", "to", "from", "and", "or", "but", "it", "is", "was", "are", "were"})

_MONTHS = r"(?:january|february|march|april|may|june|july|august|september|october|november|december)"
_DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"{_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?", re.IGNORECASE),
    re.compile(rf"\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTHS}", re.IGNORECASE),
    re.compile(r"\bon\s+\w+\s+\d{1,2}\b", re.IGNORECASE),
)


def _asks_tell_about(q: str) -> bool:
    tells = "tell" in q or "say" in q or any(p.search(q) for p in _TELL_PATTERNS)
    return tells and any(w in words(q) for w in ("about", "that", "it", "this"))


def _asks_time(q: str) -> bool:
    return "time" in q or ("when" in q and "date" not in q)


def _asks_contact(q: str) -> bool:
    return any(w in q for w in ("contact", "organizer", "organiser", "phone", "email"))


def _asks_location(q: str) -> bool:
    return any(w in q for w in ("where", "location", "venue", "place"))


def _asks_date(q: str) -> bool:
    return "date" in q or "when" in q or "day" in words(q)


DETAIL_RULES: tuple[tuple[DetailKind, Matcher], ...] = (
    (DetailKind.TELL_ABOUT, _asks_tell_about),
    (DetailKind.TIME, _asks_time),
    (DetailKind.CONTACT, _asks_contact),
    (DetailKind.LOCATION, _asks_location),
    (DetailKind.DATE, _asks_date),
)


def requested_details(question: str) -> list[DetailKind]:
    """Detail kinds asked for, in extraction priority order."""
    q = question.lower().strip()
    return [kind for kind, matcher in DETAIL_RULES if matcher(q)]


class HistoryAnswerExtractor:
    """
    Answer a follow-up directly from earlier assistant turns.

    Assistant turns are scanned newest → oldest; for each turn the
    requested detail kinds are tried in priority order and the first hit
    is returned as a full sentence.  *None* means no extractable answer.
    """

    __slots__ = ()

    def extract(self, question: str, history: Sequence[ChatMessage]) -> str | None:
        if len(history) < 2:
            logger.info("[FALLBACK] Not enough history to extract an answer.")
            return None

        kinds = requested_details(question)
        if not kinds:
            return None

        for message in reversed(history):
            if not is_assistant(message) or not message.get("content"):
                continue
            content = message["content"]
            for kind in kinds:
                answer = self._extract_kind(kind, content)
                if answer:
                    logger.info("[FALLBACK] Extracted %s answer from history.", kind.value)
                    return answer

        logger.info("[FALLBACK] Nothing extractable for '%s'.", question[:80])
        return None


    def _extract_kind(self, kind: DetailKind, content: str) -> str | None:
        if kind is DetailKind.TELL_ABOUT:
            return content if len(content) > 30 else None
        if kind is DetailKind.TIME:
            match = _first_match(_TIME_PATTERNS, content)
            return f"The event is scheduled {match.group(0)}." if match else None
        if kind is DetailKind.CONTACT:
            match = _first_match(_CONTACT_PATTERNS, content)
            return f"You can contact them at {match.group(1)}." if match else None
        if kind is DetailKind.LOCATION:
            location = self._location(content)
            return f"The event is happening at {location}." if location else None
        match = _first_match(_DATE_PATTERNS, content)
        return f"The event is on {match.group(0)}." if match else None


    @staticmethod
    def _location(content: str) -> str | None:
        for pattern in _LOCATION_PATTERNS:
            match = pattern.search(content)
            if not match:
                continue
            location = re.split(r"[.,!?;:]", match.group(1).strip())[0].strip()
            if len(location) > 2 and location.lower() not in _LOCATION_SKIP_WORDS:
                return location

        for pattern in _CAPITALISED_AT_PATTERNS:
            match = pattern.search(content)
            if match:
                location = re.split(r"[.,!?;:]", match.group(1).strip())[0].strip()
                if len(location) > 3:
                    return location
        return None


def _first_match(patterns: Sequence[re.Pattern[str]], content: str) -> re.Match[str] | None:
    for pattern in patterns:
        match = pattern.search(content)
        if match:
            return match
    return None


# ══════════════════════════════════════════════════════════════════════
#  NAME FLOW
# ══════════════════════════════════════════════════════════════════════

_NAME_PREFIX_RE = re.compile(r"^(?:my name is|i'?m|i am|it'?s|it is|this is|call me|name'?s)\s+", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[.,!?]+$")


def asks_for_name(message: ChatMessage) -> bool:
    """True for an assistant turn that requested the user's name."""
    if not is_assistant(message):
        return False
    content = str(message.get("content") or "").lower()
    return any(phrase in content for phrase in NAME_REQUEST_PHRASES)


def extract_user_name(text: str) -> str:
    """
    Pull a short name out of a self-introduction.

    Examples::

        "My name is Priya."     → "Priya"
        "i'm John Paul Smith Jr" → "John Paul Smith"
    """
    name = _NAME_PREFIX_RE.sub("", text.strip())
    name = _TRAILING_PUNCT_RE.sub("", name)
    return " ".join(name.split()[:3]).strip()


def user_name_from_history(history: Sequence[ChatMessage]) -> str | None:
    """Most recent name given in reply to an assistant name request."""
    for i in range(len(history) - 1, 0, -1):
        if is_user(history[i]) and asks_for_name(history[i - 1]):
            name = extract_user_name(history[i].get("content", ""))
            if name:
                return name
    return None


def should_ask_for_name(history: Sequence[ChatMessage]) -> bool:
    """
    Ask for a name on the first user message of a client-side conversation.

    The conversation must already exist (e.g. the client's opening
    greeting), hold no user turn yet, and the name must not have been
    requested before.  An empty history is a bare API call: never ask.
    """
    if not history:
        return False
    if any(is_user(m) for m in history):
        return False
    return not any(asks_for_name(m) for m in history)


def is_name_response(history: Sequence[ChatMessage]) -> bool:
    """True when the turn right before the current question asked for a name."""
    return bool(history) and asks_for_name(history[-1])
