from services.analysis.analyzer import MessageAnalysis, MessageAnalyzer
from services.analysis.authority import AuthorityClassifier, AuthorityLevel
from services.analysis.games import SUPPORTED_GAMES, detect_game
from services.analysis.responses import ResponseSelector

__all__ = [
    "MessageAnalysis",
    "MessageAnalyzer",
    "AuthorityClassifier",
    "AuthorityLevel",
    "SUPPORTED_GAMES",
    "detect_game",
    "ResponseSelector",
]
