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
r"""
bilichat.protocol

弹幕服务器二进制协议：数据包头的打包/解包、子包切分与解压分发。

Every packet starts with a 16 byte big-endian header::

    [u32 total_len][u16 header_len=16][u16 proto_ver][u32 op][u32 seq]

followed by the payload. Compressed payloads (proto_ver 2 and 3) contain
several complete packets packed back to back.
"""
from __future__ import annotations

import json
import struct
import zlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import brotli

from .constants import HEADER_FORMAT, HEADER_LENGTH, Operation, ProtocolVersion
from .exceptions import ProtocolError
from .logger import log

Decompressor = Callable[[bytes], bytes]


class PacketHeader(NamedTuple):
    total_length: int
    header_length: int
    version: int
    operation: int
    sequence: int


@dataclass(frozen=True)
class Frame:
    """One self-contained sub-message: its own header plus the body bytes."""
    header: PacketHeader
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


@dataclass
class Unpacked:
    """
    解包结果

    Attributes:
        header     (PacketHeader)    : 外层包头
        frames     (list[Frame])     : 可交给分类器的 JSON 子包
        popularity (int | None)      : 心跳回复携带的人气值
    """
    header: PacketHeader
    frames: List[Frame] = field(default_factory=list)
    popularity: Optional[int] = None


def encode(version: int, operation: int, sequence: int, payload: bytes = b"") -> bytes:
    """
    打包数据

    Args:
        version   (int)  : 协议版本
        operation (int)  : 数据包类型
        sequence  (int)  : 序列号
        payload   (bytes): 包体

    Returns:
        bytes: 包头 + 包体
    """
    header = struct.pack(
        HEADER_FORMAT,
        HEADER_LENGTH + len(payload),
        HEADER_LENGTH,
        version,
        operation,
        sequence,
    )
    return header + payload


def decode_header(data: bytes) -> PacketHeader:
    if len(data) < HEADER_LENGTH:
        raise ProtocolError(f"packet too short: {len(data)} bytes")
    return PacketHeader(*struct.unpack(HEADER_FORMAT, data[:HEADER_LENGTH]))


def split_frames(data: bytes) -> List[Frame]:
    """
    Split a buffer of back-to-back packets into frames.

    Scanning stops silently at the first malformed or truncated packet; the
    frames decoded so far are returned.
    """
    frames: List[Frame] = []
    offset = 0
    total = len(data)
    while offset + 4 <= total:
        length = struct.unpack(">I", data[offset:offset + 4])[0]
        if length < HEADER_LENGTH or offset + length > total:
            break
        header = PacketHeader(*struct.unpack(HEADER_FORMAT, data[offset:offset + HEADER_LENGTH]))
        if header.header_length < HEADER_LENGTH or header.header_length > length:
            break
        frames.append(Frame(header, data[offset + header.header_length:offset + length]))
        offset += length
    return frames


_decompressors: Dict[int, Decompressor] = {
    ProtocolVersion.ZLIB_JSON: zlib.decompress,
    ProtocolVersion.BROTLI_JSON: brotli.decompress,
}


def register_decompressor(version: int, decompressor: Decompressor) -> None:
    """Register the decompressor used for payloads tagged with ``version``"""
    _decompressors[int(version)] = decompressor


def get_decompressor(version: int) -> Optional[Decompressor]:
    return _decompressors.get(int(version))


def unpack(data: bytes) -> Unpacked:
    """
    解包数据

    Raises:
        ProtocolError: 包头不完整，或压缩包体无法解压
    """
    header = decode_header(data)
    payload = data[header.header_length:header.total_length]
    result = Unpacked(header)

    if header.version == ProtocolVersion.HEARTBEAT:
        if header.operation == Operation.HEARTBEAT_REPLY:
            # 心跳包协议特殊处理，包体为 4 字节人气值
            if len(payload) >= 4:
                result.popularity = struct.unpack(">I", payload[:4])[0]
        elif header.operation == Operation.AUTH_REPLY:
            result.frames.append(Frame(header, payload))
        return result

    if header.version == ProtocolVersion.RAW_JSON:
        result.frames.append(Frame(header, payload))
        return result

    decompressor = get_decompressor(header.version)
    if decompressor is None:
        log.debug(f"No decompressor for protocol version {header.version}, packet dropped")
        return result
    try:
        decompressed = decompressor(payload)
    except Exception as e:
        raise ProtocolError(f"failed to decompress version {header.version} payload: {e}") from e
    result.frames.extend(split_frames(decompressed))
    return result


__all__ = [
    "PacketHeader",
    "Frame",
    "Unpacked",
    "encode",
    "decode_header",
    "split_frames",
    "register_decompressor",
    "get_decompressor",
    "unpack",
]
