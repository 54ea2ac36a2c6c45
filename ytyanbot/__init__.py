"""Helpers for a group chat bot: calculator, Bilibili links, exchange rates, dice, battle tracking, web-app auth, Azure clients, configuration and yt-dlp downloads."""

__version__ = "0.1.0"