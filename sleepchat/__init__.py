"""SleepChat: answers invite requests from whitelisted friends while you sleep."""

__version__ = "0.1.0"
