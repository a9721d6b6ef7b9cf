import base64
import json
import re

import pytest

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.exceptions import MalformedInputError
from zkdrive.models.crypto import (
    ContentKey,
    ExtendedAttributes,
    GeneratedNodeKeys,
    KeyPacket,
    KeyType,
    SymmetricAlgorithm,
    new_packet_id,
)


def test_new_packet_id_format() -> None:
    packet_id = new_packet_id()
    assert re.fullmatch(r"[0-9a-z]+-[0-9a-f]{16}", packet_id)
    assert packet_id != new_packet_id()


def test_key_packet_json_uses_wire_field_names() -> None:
    packet = KeyPacket.new(SecureBytes(b"c2Vzc2lvbg=="), "parent-1", KeyType.FOLDER, "packet-1")

    raw = json.loads(packet.to_json())

    assert raw == {
        "sessionKey": "c2Vzc2lvbg==",
        "parentKeyPacketId": "parent-1",
        "created": packet.created,
        "version": 1,
        "keyType": "folder",
        "id": "packet-1",
    }


def test_key_packet_from_json_restores_fields() -> None:
    packet = KeyPacket.new(SecureBytes(b"secret"), None, KeyType.USER)

    restored = KeyPacket.from_json(packet.to_json())

    assert restored.session_key == b"secret"
    assert restored.parent_key_packet_id is None
    assert restored.key_type == KeyType.USER
    assert restored.packet_id == packet.packet_id
    assert restored.created_at is not None


@pytest.mark.parametrize(
    "data",
    [
        b"not json",
        b"[1, 2]",
        b'{"id": "p"}',
        b'{"sessionKey": "k"}',
        b'{"sessionKey": "k", "id": "p", "keyType": "volume"}',
        b'{"sessionKey": "k", "id": "p", "keyType": "file", "parentKeyPacketId": 3}',
        b'{"sessionKey": "k", "id": "p", "keyType": "file", "version": "1"}',
        b"\xff\xfe",
    ],
)
def test_key_packet_from_json_rejects_malformed(data: bytes) -> None:
    with pytest.raises(MalformedInputError):
        KeyPacket.from_json(data)


def test_key_packet_repr_hides_session_key() -> None:
    packet = KeyPacket.new(SecureBytes(b"topsecret"), None, KeyType.SHARE)
    assert "topsecret" not in repr(packet)


def test_content_key_validates_size() -> None:
    with pytest.raises(MalformedInputError, match="Key size mismatch"):
        ContentKey(key_data=b"short")

    key = ContentKey(algorithm=SymmetricAlgorithm.AES_128, key_data=bytes(16))
    assert key.algorithm.key_size == 16


def test_content_key_base64() -> None:
    key = ContentKey(key_data=bytes(range(32)))

    assert ContentKey.from_base64(key.to_base64()) == key
    with pytest.raises(MalformedInputError):
        ContentKey.from_base64("***")
    with pytest.raises(MalformedInputError):
        ContentKey.from_base64(base64.b64encode(bytes(8)).decode())


def test_extended_attributes_preserve_unknown_keys() -> None:
    attrs = ExtendedAttributes.from_json('{"Common":"x","Vendor.Custom":3,"flag":true}')

    assert dict(attrs) == {"Common": "x", "Vendor.Custom": 3, "flag": True}
    assert ExtendedAttributes.from_json(attrs.to_json()) == attrs


@pytest.mark.parametrize("data", ["[]", "nope", '{"nested": {"a": 1}}', '{"list": [1]}'])
def test_extended_attributes_reject_invalid(data: str) -> None:
    with pytest.raises(MalformedInputError):
        ExtendedAttributes.from_json(data)


def test_generated_node_keys_to_dict() -> None:
    keys = GeneratedNodeKeys(
        node_key="key",
        node_passphrase="packet",
        node_passphrase_signature="sig",
        name_hash="hash",
        folder_name="name",
        key_packet_id="id",
    )

    as_dict = keys.to_dict()

    assert as_dict["node_key"] == "key"
    assert as_dict["content_key"] is None
    assert as_dict["node_hash_key"] is None
    assert as_dict["xattrs"] == ""
