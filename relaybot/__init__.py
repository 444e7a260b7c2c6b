"""
relaybot - relay terminal assistant notifications to Telegram and route replies back.
"""

__version__ = "0.1.0"
__logo__ = "📡"
