"""
Heuristic parsing of free-text user interventions into negotiation guidance.

Pattern rules, not a grammar: a message may yield a price limit, a lead-time
limit, accept/walk-away intent and focus areas, plus an independent urgency
flag from keyword matching.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence


URGENCY_KEYWORDS = (
    "urgent",
    "immediately",
    "stop",
    "cancel",
    "must",
    "required",
    "asap",
    "now",
    "critical",
)

_URGENCY_RE = re.compile(r"\b(?:" + "|".join(URGENCY_KEYWORDS) + r")\b", re.IGNORECASE)

_WALK_AWAY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"walk\s*away",
        r"end\s*(?:the\s*)?negotiation",
        r"stop\s*(?:negotiating|talking)",
        r"cancel\s*(?:the\s*)?(?:deal|negotiation)",
        r"terminate",
        r"abort",
    )
]

_ACCEPT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"accept\s*(?:if|when)",
        r"take\s*(?:the\s*)?(?:deal|offer)",
        r"go\s*ahead",
        r"agree\s*(?:to|if)",
        r"approve",
        r"close\s*(?:the\s*)?deal",
    )
]

# A trailing "days" means the number is a lead time, not a price.
_PRICE_NUMBER = r"(\d+(?:\.\d{1,2})?)(?![\d.])(?!\s*days?\b)"
_PRICE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(?:max(?:imum)?|limit|no more than|under|below|less than)\s*\$?" + _PRICE_NUMBER,
        r"\$(\d+(?:\.\d{1,2})?)\s*(?:max|limit|or less|or under)",
        r"price\s*(?:limit|cap)\s*(?:of|at)?\s*\$?" + _PRICE_NUMBER,
    )
]

_LEAD_TIME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(?:within|under|less than|no more than|max(?:imum)?)\s*(\d+)\s*days?",
        r"(\d+)\s*days?\s*(?:max|or less|or faster)",
        r"delivery\s*(?:by|within)?\s*(\d+)\s*days?",
    )
]

_FOCUS_PREFIX = r"(?:focus|prioritize|emphasize)\s*(?:on\s*)?(?:the\s*)?"
_FOCUS_PATTERNS = [
    ("price", re.compile(_FOCUS_PREFIX + r"price", re.IGNORECASE)),
    ("lead_time", re.compile(_FOCUS_PREFIX + r"(?:lead\s*time|delivery|speed)", re.IGNORECASE)),
    ("quality", re.compile(_FOCUS_PREFIX + r"quality", re.IGNORECASE)),
    ("payment_terms", re.compile(_FOCUS_PREFIX + r"payment", re.IGNORECASE)),
]


@dataclass
class UserIntervention:
    """An out-of-band message injected while a negotiation is running."""

    content: str
    timestamp: float
    message_id: str


@dataclass
class ParsedInstructions:
    """Directives extracted from one intervention. ``None`` means not stated."""

    price_limit: Optional[float] = None
    lead_time_limit: Optional[int] = None
    accept_if_met: Optional[bool] = None
    walk_away: Optional[bool] = None
    focus_areas: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.price_limit,
                self.lead_time_limit,
                self.accept_if_met,
                self.walk_away,
                self.focus_areas,
            )
        )

    def merge(self, other: "ParsedInstructions") -> "ParsedInstructions":
        """Combine with a later instruction set; later values win."""
        focus = list(self.focus_areas or [])
        for area in other.focus_areas or []:
            if area not in focus:
                focus.append(area)
        return ParsedInstructions(
            price_limit=other.price_limit if other.price_limit is not None else self.price_limit,
            lead_time_limit=(
                other.lead_time_limit if other.lead_time_limit is not None else self.lead_time_limit
            ),
            accept_if_met=other.accept_if_met if other.accept_if_met is not None else self.accept_if_met,
            walk_away=other.walk_away if other.walk_away is not None else self.walk_away,
            focus_areas=focus or None,
        )


@dataclass
class FormattedGuidance:
    """Active guidance context handed to the brand-side collaborator."""

    summary: str = ""
    interventions: List[UserIntervention] = field(default_factory=list)
    has_urgent_request: bool = False

    @property
    def latest_timestamp(self) -> Optional[float]:
        if not self.interventions:
            return None
        return max(i.timestamp for i in self.interventions)

    def instructions(self) -> ParsedInstructions:
        """Directives of all interventions folded oldest to newest."""
        merged = ParsedInstructions()
        for intervention in self.interventions:
            merged = merged.merge(parse_instructions(intervention.content))
        return merged


def is_urgent_message(content: str) -> bool:
    return _URGENCY_RE.search(content) is not None


def is_walk_away_instruction(content: str) -> bool:
    return any(p.search(content) for p in _WALK_AWAY_PATTERNS)


def _first_match(patterns, content: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(content)
        if match:
            return match.group(1)
    return None


def parse_instructions(content: str) -> ParsedInstructions:
    """Extract structured directives from free text."""
    parsed = ParsedInstructions()

    price = _first_match(_PRICE_PATTERNS, content)
    if price is not None:
        parsed.price_limit = float(price)

    lead_time = _first_match(_LEAD_TIME_PATTERNS, content)
    if lead_time is not None:
        parsed.lead_time_limit = int(lead_time)

    if any(p.search(content) for p in _ACCEPT_PATTERNS):
        parsed.accept_if_met = True

    if is_walk_away_instruction(content):
        parsed.walk_away = True

    focus = [area for area, pattern in _FOCUS_PATTERNS if pattern.search(content)]
    if focus:
        parsed.focus_areas = focus

    return parsed


def format_guidance(interventions: Sequence[UserIntervention]) -> FormattedGuidance:
    """Render interventions into the markdown block shown to the brand side."""
    if not interventions:
        return FormattedGuidance()

    interventions = list(interventions)
    urgent = any(is_urgent_message(i.content) for i in interventions)
    label = "message" if len(interventions) == 1 else "messages"

    summary = f"## User Guidance ({len(interventions)} {label})\n"
    if urgent:
        summary += "\n⚠️ URGENT REQUEST - Prioritize user guidance\n"
    summary += "\n" + "\n".join(f"- {i.content}" for i in interventions) + "\n"
    summary += "\nYou MUST incorporate this guidance into your negotiation strategy."

    return FormattedGuidance(
        summary=summary.strip(),
        interventions=interventions,
        has_urgent_request=urgent,
    )


def combine_guidance(
    existing: Optional[FormattedGuidance], new_interventions: Sequence[UserIntervention]
) -> FormattedGuidance:
    """Fold newly arrived interventions into the active guidance."""
    previous = existing.interventions if existing is not None else []
    return format_guidance(list(previous) + list(new_interventions))


def build_guidance_context(guidance: Optional[FormattedGuidance]) -> str:
    """Context block appended to the brand-side prompt; empty without guidance."""
    if guidance is None or not guidance.summary:
        return ""
    closing = (
        "CRITICAL: The user has provided urgent instructions. Follow them precisely."
        if guidance.has_urgent_request
        else "Consider the above guidance when making your next move."
    )
    return f"\n---\n{guidance.summary}\n---\n\n{closing}\n"
