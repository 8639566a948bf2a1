import re
from typing import Dict, List, Optional

from shared.logging.logger import get_logger

log = get_logger("analysis.games")

SUPPORTED_GAMES: Dict[str, List[str]] = {
    "valorant": ["valorant", "val", "valo"],
    "minecraft": ["minecraft", "mc"],
    "fortnite": ["fortnite", "fn"],
    "apex": ["apex", "apex legends"],
    "cod": ["cod", "call of duty", "warzone"],
    "gta": ["gta", "grand theft auto"],
    "wow": ["wow", "world of warcraft"],
    "lol": ["lol", "league of legends"],
    "cs2": ["cs2", "counter-strike"],
    "overwatch": ["overwatch", "ow"],
    "pubg": ["pubg", "battlegrounds"],
    "rocket league": ["rocket league", "rl"],
    "dota": ["dota", "dota 2"],
    "among us": ["among us", "amongus"],
    "fall guys": ["fall guys"],
}

# Short aliases collide with ordinary chat ("lol", "wow"); they only count
# when the full game name is absent and the alias stands alone.
_MIN_ALIAS_LENGTH = 4


def _word_match(keyword: str, text: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def detect_game(title: str, description: str = "") -> Optional[str]:
    """
    Detect a game label from a broadcast title/description.

    The first keyword of each entry is the canonical name and scores highest;
    aliases shorter than four characters need an exact word match in the title.
    """
    title_text = (title or "").lower()
    text = f"{title_text} {(description or '').lower()}"

    best: Optional[str] = None
    best_score = 0

    for game, keywords in SUPPORTED_GAMES.items():
        score = 0
        for index, keyword in enumerate(keywords):
            if len(keyword) < _MIN_ALIAS_LENGTH:
                if _word_match(keyword, title_text):
                    score += 1
            elif _word_match(keyword, text):
                score += 3 if index == 0 else 2
        if score > best_score:
            best, best_score = game, score

    if best:
        log.info(f"[games] Game detected: {best}")
    else:
        log.debug(f"[games] No game detected in: {title!r}")
    return best
