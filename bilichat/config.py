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
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from .constants import HEARTBEAT_INTERVAL, POLL_INTERVAL, USER_AGENT
from .exceptions import ConfigError
from .logger import log

APP_NAME = "bilichat"

DEFAULT_CONFIG = """\
# 浏览器中复制的完整 Cookie（至少包含 SESSDATA、bili_jct、buvid3）
cookie: ""
# 直播间号
room_id: 0
history:
  danmaku: 1024
  sc: 512
  gift: 512
log:
  level: info
  console: false
"""


@dataclass
class HistoryConfig:
    """
    历史记录容量

    .danmaku: 弹幕事件队列容量，即 ClientConfig.event_queue_size
    .sc: 醒目留言列表容量，bilichat 本身不使用，留给展示层读取
    .gift: 礼物列表容量，同上
    """
    danmaku: int = 1024
    sc: int = 512
    gift: int = 512


@dataclass
class ClientConfig:
    """Runtime knobs of a live session"""
    heartbeat_interval: float = HEARTBEAT_INTERVAL
    poll_interval: float = POLL_INTERVAL
    event_queue_size: int = 1024
    snapshot_queue_size: int = 8
    rank_page_size: int = 50
    user_agent: str = USER_AGENT
    history: HistoryConfig = field(default_factory=HistoryConfig)


def get_config_dir(app_name: str = APP_NAME) -> Path:
    home = Path.home()
    if sys.platform.startswith("win"):
        app_data = os.environ.get("APPDATA")
        return Path(app_data) / app_name if app_data else home / "AppData" / "Roaming" / app_name
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / app_name
    config_home = os.environ.get("XDG_CONFIG_HOME")
    return Path(config_home) / app_name if config_home else home / ".config" / app_name


class ConfigManager:
    # ConfigManager can load and save configuration data from/to a YAML file
    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file is not None else get_config_dir() / "config.yaml"
        self.yaml = YAML()
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self.yaml.preserve_quotes = True
        self.config_data: CommentedMap = CommentedMap()  # Keep comments in config file
        self.created = False
        self._load_config()

    def _load_config(self) -> None:
        if not self.config_file.exists():
            self.config_data = self.yaml.load(DEFAULT_CONFIG)
            self._save_config()
            self.created = True
            log.info(f"Created new configuration file at {self.config_file}")
            return

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded_data = self.yaml.load(f)
        except Exception as e:
            raise ConfigError(f"Error loading configuration {self.config_file}: {e}") from e

        if loaded_data is None:
            log.warning(f"Empty YAML file {self.config_file}, using empty config")
            self.config_data = CommentedMap()
        elif isinstance(loaded_data, CommentedMap):
            self.config_data = loaded_data
        elif isinstance(loaded_data, dict):
            self.config_data = CommentedMap(loaded_data)
        else:
            raise ConfigError(f"Configuration {self.config_file} must be a mapping")
        log.debug(f"Configuration loaded from {self.config_file}")

    def _save_config(self) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w', encoding='utf-8') as f:
            self.yaml.dump(self.config_data, f)
        log.debug(f"Configuration saved to {self.config_file}")

    def get(self, config_key: str, default: Any = None) -> Any:
        """Dotted lookup, e.g. ``get("history.danmaku")``"""
        current: Any = self.config_data
        for key in config_key.split("."):
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current

    def set(self, config_key: str, value: Any) -> None:
        keys = config_key.split(".")
        current = self.config_data
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = CommentedMap()
            current = current[key]
        current[keys[-1]] = value
        self._save_config()

    @property
    def cookie(self) -> str:
        return str(self.get("cookie", "") or "")

    @property
    def room_id(self) -> int:
        try:
            return int(self.get("room_id", 0) or 0)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"room_id must be an integer: {e}") from e

    def client_config(self) -> ClientConfig:
        history = HistoryConfig(
            danmaku=int(self.get("history.danmaku", 0) or 1024),
            sc=int(self.get("history.sc", 0) or 512),
            gift=int(self.get("history.gift", 0) or 512),
        )
        return ClientConfig(event_queue_size=history.danmaku, history=history)
