import os
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


class Logger:
    def __init__(self, name: str = "TitleRewriter", level: str | None = None):
        self.name = name
        level = (level or os.getenv("LOG_LEVEL", "DEBUG")).upper()
        self.threshold = LEVELS.get(level, LEVELS["DEBUG"])

    def _current_timestamp(self) -> str:
        now = datetime.now()
        return now.strftime('%H:%M:%S.%f')[:-3]  # Hours:Minutes:Seconds:Milliseconds

    def _format_message(self, level: str, message: str) -> str:
        timestamp = self._current_timestamp()
        return f"[{timestamp}] [{self.name}] [{level.upper()}] {message}"

    def _log(self, level: str, message: str):
        if LEVELS[level] >= self.threshold:
            print(self._format_message(level, message))

    def debug(self, message: str):
        self._log("DEBUG", message)

    def info(self, message: str):
        self._log("INFO", message)

    def error(self, message: str):
        self._log("ERROR", message)

    def warning(self, message: str):
        self._log("WARNING", message)
