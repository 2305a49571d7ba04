"""
History Budget Trimmer
Keeps the newest conversation turns that fit a character budget so upstream
providers don't reject the request for exceeding their tokens-per-minute cap.
"""

import logging
from typing import List

from models import ConversationTurn

logger = logging.getLogger(__name__)


def trim_history(history: List[ConversationTurn], budget: int) -> List[ConversationTurn]:
    """
    Greedy suffix selection: walk from newest to oldest, stop before the turn
    that would push the running length past `budget`. The newest turn is always
    kept, even when it alone is over budget. Content is never modified.
    """
    if not history:
        return []

    kept: List[ConversationTurn] = []
    used = 0
    for turn in reversed(history):
        if kept and used + turn.length > budget:
            break
        kept.append(turn)
        used += turn.length

    kept.reverse()
    if len(kept) < len(history):
        logger.info(f"Trimmed history from {len(history)} to {len(kept)} turns ({used} chars, budget {budget})")
    return kept
