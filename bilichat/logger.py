# bilichat
# Copyright (c) 2025 bilichat contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import datetime
import logging
import sys
import threading
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '[{asctime}.{msecs:03.0f}] [{levelname}] {name} — {message}'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[34m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[31m',
    }
    RESET = '\033[0m'

    def format(self, record):
        formatted = super().format(record)

        color = self.COLORS.get(record.levelname, self.RESET)

        # Only colorize when stderr is a terminal
        if hasattr(sys.stderr, 'isatty') and sys.stderr.isatty():
            return f"{color}{formatted}{self.RESET}"
        else:
            return formatted


class LoggerManager:
    # The global logger manager that owns the root handlers
    _instance: Optional['LoggerManager'] = None
    _lock = threading.RLock()
    _loggers: dict = {}
    _current_date: str = ""
    _file_handler: Optional[logging.FileHandler] = None
    _console_handler: Optional[logging.Handler] = None
    _log_dir: Optional[Path] = None

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(LoggerManager, cls).__new__(cls)
                cls._instance.root_logger = logging.getLogger()
            return cls._instance

    def configure(self, log_dir: Union[str, Path, None] = None,
                  level: Union[int, str] = logging.INFO,
                  console: bool = True) -> None:
        with self._lock:
            if isinstance(level, str):
                level = logging.getLevelName(level.upper())
            self.root_logger.setLevel(level)

            if self._console_handler:
                self.root_logger.removeHandler(self._console_handler)
                self._console_handler = None
            if console:
                self._console_handler = logging.StreamHandler()
                self._console_handler.setLevel(level)
                self._console_handler.setFormatter(
                    ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, style='{')
                )
                self.root_logger.addHandler(self._console_handler)

            self._log_dir = Path(log_dir) if log_dir is not None else None
            self._setup_file_handler()

    def _setup_file_handler(self):
        if self._file_handler:
            self.root_logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

        if self._log_dir is None:
            return

        today = datetime.date.today().strftime('%Y-%m-%d')
        self._current_date = today

        self._log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self._log_dir / f"{today}.log"

        self._file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        self._file_handler.setLevel(logging.DEBUG)
        self._file_handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT, style='{')
        )
        self.root_logger.addHandler(self._file_handler)

    def _check_rotation(self):
        """Check if we need to rotate the log file due to date change"""
        if self._file_handler is None:
            return
        today = datetime.date.today().strftime('%Y-%m-%d')
        if today != self._current_date:
            with self._lock:
                # Double-check after acquiring lock
                if today != self._current_date:
                    self._setup_file_handler()

    def get_logger(self, name: str) -> logging.Logger:
        with self._lock:
            self._check_rotation()
            if name not in self._loggers:
                self._loggers[name] = logging.getLogger(name)
            return self._loggers[name]


_logger_manager = LoggerManager()


def setup_logging(log_dir: Union[str, Path, None] = None,
                  level: Union[int, str] = logging.INFO,
                  console: bool = True) -> None:
    """Install console and daily file handlers on the root logger"""
    _logger_manager.configure(log_dir=log_dir, level=level, console=console)


class GlobalLogger:

    def debug(self, msg, *args, **kwargs):
        caller_frame = sys._getframe(1)
        module_name = caller_frame.f_globals.get('__name__', 'unknown')
        logger = _logger_manager.get_logger(module_name)
        logger.debug(msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        caller_frame = sys._getframe(1)
        module_name = caller_frame.f_globals.get('__name__', 'unknown')
        logger = _logger_manager.get_logger(module_name)
        logger.info(msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        caller_frame = sys._getframe(1)
        module_name = caller_frame.f_globals.get('__name__', 'unknown')
        logger = _logger_manager.get_logger(module_name)
        logger.warning(msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        caller_frame = sys._getframe(1)
        module_name = caller_frame.f_globals.get('__name__', 'unknown')
        logger = _logger_manager.get_logger(module_name)
        logger.error(msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        caller_frame = sys._getframe(1)
        module_name = caller_frame.f_globals.get('__name__', 'unknown')
        logger = _logger_manager.get_logger(module_name)
        logger.exception(msg, *args, **kwargs)


log = GlobalLogger()
