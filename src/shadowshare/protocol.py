# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Wire messages exchanged between dealers and collectors.

Every message is a single JSON object tagged with ``type`` and the protocol
version ``v``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Union

from shadowshare.errors import ProtocolError

PROTOCOL_VERSION = 1


@dataclass(frozen=True)
class ShareDelivery:
    session: str
    share_index: int
    total_shares: int
    threshold: int
    share: str

    type = "share_delivery"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "v": PROTOCOL_VERSION,
            "type": self.type,
            "session": self.session,
            "shareIndex": self.share_index,
            "totalShares": self.total_shares,
            "threshold": self.threshold,
            "share": self.share,
        }


@dataclass(frozen=True)
class ShareAck:
    share_index: int

    type = "share_ack"

    def to_dict(self) -> Dict[str, Any]:
        return {"v": PROTOCOL_VERSION, "type": self.type, "shareIndex": self.share_index}


@dataclass(frozen=True)
class ShareRequest:
    session: str

    type = "share_request"

    def to_dict(self) -> Dict[str, Any]:
        return {"v": PROTOCOL_VERSION, "type": self.type, "session": self.session}


Message = Union[ShareDelivery, ShareAck, ShareRequest]


def encode_message(message: Message) -> bytes:
    return json.dumps(message.to_dict(), separators=(",", ":")).encode("utf-8")


def _field(data: Dict[str, Any], name: str, kind: type) -> Any:
    value = data.get(name)
    # bool is an int subclass; never accept it as a number
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ProtocolError(f"Field {name!r} must be {kind.__name__}")
    return value


def decode_message(raw: bytes | str) -> Message | None:
    """Parse one wire message.

    Returns ``None`` for an unknown ``type``. Raises :class:`ProtocolError` for
    invalid JSON, a non-object payload, an unsupported version or fields of
    the wrong type.
    """
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON message: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    version = data.get("v")
    # bool is an int subclass and 1.0 == 1
    if type(version) is not int or version != PROTOCOL_VERSION:
        raise ProtocolError(f"Unsupported protocol version {version!r}")

    kind = data.get("type")
    if kind == ShareDelivery.type:
        return ShareDelivery(
            session=_field(data, "session", str),
            share_index=_field(data, "shareIndex", int),
            total_shares=_field(data, "totalShares", int),
            threshold=_field(data, "threshold", int),
            share=_field(data, "share", str),
        )
    if kind == ShareAck.type:
        return ShareAck(share_index=_field(data, "shareIndex", int))
    if kind == ShareRequest.type:
        return ShareRequest(session=_field(data, "session", str))
    return None


__all__ = [
    "Message",
    "PROTOCOL_VERSION",
    "ShareAck",
    "ShareDelivery",
    "ShareRequest",
    "decode_message",
    "encode_message",
]
