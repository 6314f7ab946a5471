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
"""
bilichat: bilibili 直播弹幕客户端
"""
__version__ = "0.1.0"

from .config import ClientConfig, ConfigManager, HistoryConfig
from .constants import Operation, ProtocolVersion, SessionState
from .exceptions import (
    BilichatError,
    ConfigError,
    HttpError,
    ProtocolError,
    SessionError,
    StartupError,
    TransportError,
)
from .logger import log, setup_logging
from .messages import *
from .session import LiveSession
