"""Built-in platform adapters."""
from deckbridge.services.platforms.adapters.archidekt import ArchidektAdapter
from deckbridge.services.platforms.adapters.delimited import CSVAdapter
from deckbridge.services.platforms.adapters.edhrec import EDHRECAdapter
from deckbridge.services.platforms.adapters.moxfield import MoxfieldAdapter
from deckbridge.services.platforms.adapters.mtggoldfish import MTGGoldfishAdapter
from deckbridge.services.platforms.adapters.plaintext import TextAdapter
from deckbridge.services.platforms.adapters.tappedout import TappedOutAdapter

__all__ = [
    "ArchidektAdapter",
    "CSVAdapter",
    "EDHRECAdapter",
    "MoxfieldAdapter",
    "MTGGoldfishAdapter",
    "TappedOutAdapter",
    "TextAdapter",
]
