from enum import Enum
from typing import Iterable, Optional


class AgentKind(str, Enum):
    HUMAN = "human"
    SOCIAL_BOT = "social_bot"
    SEARCH_BOT = "search_bot"


def _matches(user_agent: str, signatures: Iterable[str]) -> bool:
    return any(sig and sig.lower() in user_agent for sig in signatures)


def classify_user_agent(
    user_agent: Optional[str],
    social_signatures: Iterable[str],
    search_signatures: Iterable[str],
) -> AgentKind:
    """
    Classify a User-Agent header by case-insensitive substring match.
    Social-preview signatures are checked first, then search crawlers.
    """
    if not user_agent:
        return AgentKind.HUMAN
    ua = user_agent.lower()
    if _matches(ua, social_signatures):
        return AgentKind.SOCIAL_BOT
    if _matches(ua, search_signatures):
        return AgentKind.SEARCH_BOT
    return AgentKind.HUMAN
