"""
Cryptographic domain models.
"""

import base64
import json
import secrets
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum, StrEnum
from typing import Any, Self

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.exceptions import MalformedInputError

KEY_PACKET_VERSION = 1

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def new_packet_id() -> str:
    """Packet id: base-36 millisecond timestamp, a dash, 16 random hex characters."""
    millis = time.time_ns() // 1_000_000
    digits = []
    while millis:
        millis, rem = divmod(millis, 36)
        digits.append(_BASE36[rem])
    return f"{''.join(reversed(digits)) or '0'}-{secrets.token_hex(8)}"


class SymmetricAlgorithm(IntEnum):
    """OpenPGP symmetric algorithm identifiers used for content keys."""

    AES_128 = 7
    AES_192 = 8
    AES_256 = 9

    @property
    def key_size(self) -> int:
        """Get key size in bytes for this algorithm."""
        match self:
            case self.AES_128:
                return 16
            case self.AES_192:
                return 24
            case _:
                return 32


class KeyType(StrEnum):
    """Kind of node a key packet belongs to."""

    USER = "user"
    SHARE = "share"
    FOLDER = "folder"
    FILE = "file"


class SignatureCheck(StrEnum):
    """Outcome of a detached signature check."""

    VALID = "valid"
    INVALID = "invalid"
    IDENTITY_MISMATCH = "identity_mismatch"


@dataclass(frozen=True, kw_only=True)
class ContentKey:
    """
    Symmetric key protecting a file's blocks and thumbnail.

    Attributes:
        algorithm: The symmetric algorithm used.
        key_data: The raw key bytes.
    """

    algorithm: SymmetricAlgorithm = SymmetricAlgorithm.AES_256
    key_data: bytes = field(repr=False)

    def __post_init__(self) -> None:
        """Validate key size matches algorithm."""
        expected = self.algorithm.key_size
        if len(self.key_data) == expected:
            return
        msg = f"Key size mismatch: {self.algorithm.name} expects {expected} bytes, got {len(self.key_data)}"
        raise MalformedInputError(msg)

    @classmethod
    def from_base64(cls, encoded: str) -> Self:
        try:
            key_data = base64.b64decode(encoded, validate=True)
        except ValueError as e:
            msg = f"Content key is not valid base64: {e}"
            raise MalformedInputError(msg) from e
        return cls(key_data=key_data)

    def to_base64(self) -> str:
        return base64.b64encode(self.key_data).decode("ascii")


@dataclass(frozen=True, kw_only=True)
class KeyPacket:
    """
    Decrypted content of a node's key packet.

    Serialized as JSON with camelCase keys:
    {sessionKey, parentKeyPacketId, created, version, keyType, id}.
    """

    session_key: SecureBytes = field(repr=False)
    parent_key_packet_id: str | None
    created: str
    version: int
    key_type: KeyType
    packet_id: str

    @classmethod
    def new(
        cls,
        session_key: SecureBytes,
        parent_key_packet_id: str | None,
        key_type: KeyType,
        packet_id: str | None = None,
    ) -> Self:
        return cls(
            session_key=session_key,
            parent_key_packet_id=parent_key_packet_id,
            created=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            version=KEY_PACKET_VERSION,
            key_type=key_type,
            packet_id=packet_id or new_packet_id(),
        )

    @property
    def created_at(self) -> datetime | None:
        try:
            return datetime.fromisoformat(self.created)
        except ValueError:
            return None

    def to_json(self) -> bytes:
        """Warning: the returned bytes contain the session key in clear."""
        return json.dumps(
            {
                "sessionKey": self.session_key.decode("ascii"),
                "parentKeyPacketId": self.parent_key_packet_id,
                "created": self.created,
                "version": self.version,
                "keyType": self.key_type.value,
                "id": self.packet_id,
            },
            separators=(",", ":"),
        ).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> Self:
        try:
            raw = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            msg = f"Key packet is not valid JSON: {e}"
            raise MalformedInputError(msg) from e
        if not isinstance(raw, dict):
            msg = "Key packet must be a JSON object"
            raise MalformedInputError(msg)

        session_key = raw.get("sessionKey")
        packet_id = raw.get("id")
        if not isinstance(session_key, str) or not session_key:
            msg = "Key packet has no session key"
            raise MalformedInputError(msg)
        if not isinstance(packet_id, str) or not packet_id:
            msg = "Key packet has no id"
            raise MalformedInputError(msg)

        parent_id = raw.get("parentKeyPacketId")
        if parent_id is not None and not isinstance(parent_id, str):
            msg = "Key packet parentKeyPacketId must be a string"
            raise MalformedInputError(msg)
        try:
            key_type = KeyType(raw.get("keyType"))
        except ValueError:
            msg = f"Unknown key type: {raw.get('keyType')!r}"
            raise MalformedInputError(msg) from None
        version = raw.get("version", KEY_PACKET_VERSION)
        if not isinstance(version, int) or isinstance(version, bool):
            msg = "Key packet version must be an integer"
            raise MalformedInputError(msg)

        return cls(
            session_key=SecureBytes.from_string(session_key),
            parent_key_packet_id=parent_id or None,
            created=str(raw.get("created", "")),
            version=version,
            key_type=key_type,
            packet_id=packet_id,
        )


@dataclass(frozen=True, kw_only=True)
class NodeKeyPair:
    """
    A node's keypair as held in memory.

    The private half stays in its encrypted armored form; `passphrase` is the
    node's session key that unlocks it.
    """

    private_key_armored: str = field(repr=False)
    public_key_armored: str = field(repr=False)
    key_id: str
    fingerprint: str
    identity: str | None
    passphrase: SecureBytes = field(repr=False)

    def clear(self) -> None:
        self.passphrase.clear()


@dataclass(frozen=True, kw_only=True)
class EncryptedName:
    """A name encrypted to a node key plus the lookup hash of its canonical form."""

    ciphertext: str
    name_hash: str


XAttrValue = str | int | float | bool | None


class ExtendedAttributes(Mapping[str, XAttrValue]):
    """
    Typed extension map attached to a node.

    Keys are strings, values are JSON scalars. Unknown keys are preserved so that
    attributes written by newer clients survive a round trip.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, XAttrValue] | None = None) -> None:
        self._items: dict[str, XAttrValue] = {}
        for key, value in (items or {}).items():
            self._validate(key, value)
            self._items[key] = value

    def __getitem__(self, key: str) -> XAttrValue:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ExtendedAttributes({self._items!r})"

    def to_json(self) -> str:
        return json.dumps(self._items, sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes) -> Self:
        try:
            raw = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            msg = f"Extended attributes are not valid JSON: {e}"
            raise MalformedInputError(msg) from e
        if not isinstance(raw, dict):
            msg = "Extended attributes must be a JSON object"
            raise MalformedInputError(msg)
        return cls(raw)

    @staticmethod
    def _validate(key: Any, value: Any) -> None:
        if not isinstance(key, str):
            msg = f"Extended attribute key must be a string, got {type(key).__name__}"
            raise MalformedInputError(msg)
        if not isinstance(value, (str, int, float, bool, type(None))):
            msg = f"Extended attribute {key!r} has unsupported type {type(value).__name__}"
            raise MalformedInputError(msg)


@dataclass(frozen=True, kw_only=True)
class GeneratedNodeKeys:
    """
    Sealed key material for a new file or folder, ready to send to the server.

    Only `content_key` is secret; the transfer layer needs it to encrypt blocks.
    """

    node_key: str
    node_passphrase: str
    node_passphrase_signature: str
    name_hash: str
    folder_name: str  # encrypted display name
    key_packet_id: str
    xattrs: str = ""
    content_key: str | None = field(default=None, repr=False)
    content_key_packet: str | None = None
    content_key_signature: str | None = None
    node_hash_key: str | None = None  # folders only
    node_hash_key_signature: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "node_key": self.node_key,
            "node_passphrase": self.node_passphrase,
            "node_passphrase_signature": self.node_passphrase_signature,
            "content_key": self.content_key,
            "content_key_packet": self.content_key_packet,
            "content_key_signature": self.content_key_signature,
            "name_hash": self.name_hash,
            "folder_name": self.folder_name,
            "xattrs": self.xattrs,
            "node_hash_key": self.node_hash_key,
            "node_hash_key_signature": self.node_hash_key_signature,
        }


@dataclass(frozen=True, kw_only=True)
class MovedItemKeys:
    """Key packet re-sealed under a new parent."""

    node_passphrase: str
    node_passphrase_signature: str | None
    name_hash: str
    key_packet_id: str
    node_hash_key: str | None = None
    node_hash_key_signature: str | None = None
