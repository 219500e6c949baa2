# matrix_lock/core/codec.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from matrix_lock.errors import ConfigError, DecodeError

DELIMITER = ","


def _check_id(participant_id: str) -> str:
    if not participant_id:
        raise ValueError("Participant id must be a non-empty string")
    if DELIMITER in participant_id:
        raise ValueError(f"Participant id must not contain {DELIMITER!r}: {participant_id!r}")
    return participant_id


@dataclass(frozen=True)
class CommaQueueCodec:
    """
    Plain-text queue format: UTF-8, ids joined by a comma, no trailing delimiter.

    There is no escaping, so ids containing the delimiter are rejected on encode.
    """
    encoding: str = "utf-8"

    def encode(self, queue: Sequence[str]) -> bytes:
        return DELIMITER.join(_check_id(p) for p in queue).encode(self.encoding)

    def decode(self, content: bytes) -> List[str]:
        try:
            text = content.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise DecodeError(f"Lock content is not valid {self.encoding} text: {e}") from e

        if text == "":
            return []
        return text.split(DELIMITER)


_DEFAULT_CODEC = CommaQueueCodec()


def encode_queue(queue: Sequence[str]) -> bytes:
    return _DEFAULT_CODEC.encode(queue)


def decode_queue(content: bytes) -> List[str]:
    return _DEFAULT_CODEC.decode(content)


def parse_order(text: str) -> List[str]:
    """
    Parse a user-supplied order such as "linux, macos,windows".
    Whitespace around each id is dropped; empty ids are rejected.
    """
    if text is None or not text.strip():
        raise ConfigError("Order must list at least one participant id")

    order = [part.strip() for part in text.split(DELIMITER)]
    if any(not p for p in order):
        raise ConfigError(f"Order contains an empty participant id: {text!r}")
    return order
