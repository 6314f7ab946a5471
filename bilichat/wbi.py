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
WBI 签名

Some web endpoints require a ``w_rid`` parameter: the MD5 of the sorted query
string followed by a key mixed from the two ``wbi_img`` file names.
"""
import hashlib
import posixpath
import time
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

# 字符顺序混淆表
MIXIN_KEY_ENC_TAB = (
    46, 47, 18, 2, 53, 8, 23, 32, 15, 50,
    10, 31, 58, 3, 45, 35, 27, 43, 5, 49,
    33, 9, 42, 19, 29, 28, 14, 39, 12, 38,
    41, 13, 37, 48, 7, 16, 24, 55, 40, 61,
    26, 17, 0, 1, 60, 51, 30, 4, 22, 25,
    54, 21, 56, 59, 6, 63, 57, 62, 11, 36,
    20, 34, 44, 52,
)

MIXIN_KEY_LENGTH = 32


def extract_key(url: str) -> str:
    """File name of ``url`` without its extension."""
    base = posixpath.basename(urlparse(url).path)
    return posixpath.splitext(base)[0]


def get_mixin_key(img_key: str, sub_key: str) -> str:
    raw = img_key + sub_key
    chars = []
    for i in MIXIN_KEY_ENC_TAB:
        if i < len(raw):
            chars.append(raw[i])
        if len(chars) >= MIXIN_KEY_LENGTH:
            break
    return "".join(chars)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sign(params: Mapping[str, Any], img_url: str, sub_url: str) -> str:
    """
    生成 w_rid 签名

    Args:
        params  (Mapping[str, Any]): 请求参数（不含 w_rid）
        img_url (str)              : nav 接口返回的 wbi_img.img_url
        sub_url (str)              : nav 接口返回的 wbi_img.sub_url

    Returns:
        str: 小写十六进制 MD5
    """
    mixin_key = get_mixin_key(extract_key(img_url), extract_key(sub_url))
    query = "&".join(f"{k}={_stringify(params[k])}" for k in sorted(params))
    return hashlib.md5((query + mixin_key).encode("utf-8")).hexdigest()


def sign_params(params: Mapping[str, Any], img_url: str, sub_url: str,
                wts: int | None = None) -> dict[str, Any]:
    """Copy of ``params`` with ``wts`` and ``w_rid`` attached"""
    signed = dict(params)
    if wts is not None:
        signed["wts"] = wts
    elif "wts" not in signed:
        signed["wts"] = int(time.time())
    signed.pop("w_rid", None)
    signed["w_rid"] = sign(signed, img_url, sub_url)
    return signed


__all__ = ["MIXIN_KEY_ENC_TAB", "extract_key", "get_mixin_key", "sign", "sign_params"]
