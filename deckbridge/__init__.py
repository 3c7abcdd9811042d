"""
DeckBridge: move Commander deck lists between deck-building platforms.
"""
__version__ = "0.1.0"
