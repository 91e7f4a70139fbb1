"""
LocalizePipe: find untranslated strings.xml entries, translate them with a
local or hosted TranslateGemma model and write them back.
"""

__version__ = "0.1.0"
