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


class BilichatError(Exception):
    """Base class of every error raised by bilichat"""
    pass


class StartupError(BilichatError):
    """Raised when a session cannot be established (identity, token, hosts or handshake)"""
    pass


class SessionError(BilichatError):
    """Raised when a session is used in the wrong state"""
    pass


class ProtocolError(BilichatError):
    """Raised when a packet cannot be decoded"""
    pass


class TransportError(BilichatError):
    """Raised when the live connection fails or is closed by the peer"""
    pass


class HttpError(BilichatError):
    """Raised when an HTTP request fails or returns an unusable response"""
    pass


class ConfigError(BilichatError):
    pass
