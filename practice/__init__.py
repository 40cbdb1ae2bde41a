"""Built-in house bots for offline duels and tests."""

from .bots import CallingStation, HouseBot, make_house_bot, parse_house_specs

__all__ = ["CallingStation", "HouseBot", "make_house_bot", "parse_house_specs"]
