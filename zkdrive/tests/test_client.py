from dataclasses import replace

import pytest

from zkdrive import DriveCryptoClient, ZkDriveConfig
from zkdrive.crypto.content import block_hash
from zkdrive.exceptions import DecryptionError, IntegrityError
from zkdrive.models.drive import NodeState
from zkdrive.services import InMemoryNodeSource
from zkdrive.tests.factories import (
    FILE_ID,
    KEY_SALT,
    OWNER_EMAIL,
    PASSWORD,
    ROOT_FOLDER_ID,
    SUBFOLDER_ID,
    USER_ID,
    DriveTree,
)


@pytest.mark.asyncio
async def test_client_end_to_end(drive_tree: DriveTree, thread_config: ZkDriveConfig) -> None:
    async with DriveCryptoClient(thread_config, owner_identity=OWNER_EMAIL) as client:
        client.add_nodes(drive_tree.descriptors)
        user = await client.unlock_account(drive_tree.user.descriptor, PASSWORD, KEY_SALT)

        assert user.node_id == USER_ID
        assert client.is_unlocked
        assert client.root_id == USER_ID
        assert await client.decrypt_name(ROOT_FOLDER_ID) == "My Files"
        assert await client.decrypt_name(FILE_ID) == "report.pdf"

        content_key = await client.get_content_key(FILE_ID)
        blocks = [
            await client.encrypt_payload(b"hello ", content_key, block_index=0),
            await client.encrypt_payload(b"world", content_key.to_base64(), block_index=1),
        ]
        hashes = [block_hash(b) for b in blocks]
        assert await client.decrypt_file_content(FILE_ID, blocks, hashes) == b"hello world"

        tampered = [blocks[0], blocks[1][:-1] + bytes([blocks[1][-1] ^ 1])]
        with pytest.raises(DecryptionError):
            await client.decrypt_file_content(FILE_ID, tampered)
        with pytest.raises(IntegrityError):
            await client.decrypt_file_content(FILE_ID, tampered, hashes)

        assert await client.verify_item_integrity(FILE_ID)


@pytest.mark.asyncio
async def test_client_generates_keys(drive_tree: DriveTree, thread_config: ZkDriveConfig) -> None:
    async with DriveCryptoClient(thread_config, owner_identity=OWNER_EMAIL) as client:
        client.add_nodes(drive_tree.descriptors)
        await client.unlock_with_root_secret(drive_tree.user.descriptor, drive_tree.root_secret)

        folder = await client.generate_folder_keys(SUBFOLDER_ID, "Archive")
        file = await client.generate_file_keys(SUBFOLDER_ID, "notes.txt", {"Common.Size": 12})
        encrypted_name = await client.encrypt_name(FILE_ID, "renamed.pdf")
        moved = await client.prepare_item_move(FILE_ID, ROOT_FOLDER_ID)

        assert folder.node_hash_key and folder.content_key is None
        assert file.content_key and file.xattrs
        ciphertext = await client.encrypt_payload(b"body", file.content_key)
        assert ciphertext != b"body"
        assert encrypted_name.ciphertext.startswith("-----BEGIN PGP MESSAGE-----")
        assert moved.key_packet_id == drive_tree.file.packet_id


@pytest.mark.asyncio
async def test_client_wrong_password(drive_tree: DriveTree, thread_config: ZkDriveConfig) -> None:
    async with DriveCryptoClient(thread_config) as client:
        with pytest.raises(DecryptionError) as exc_info:
            await client.unlock_account(drive_tree.user.descriptor, "wrong password", KEY_SALT)

        assert exc_info.value.key_type == "user"
        assert not client.is_unlocked


@pytest.mark.asyncio
async def test_client_accepts_wire_dictionaries(
    drive_tree: DriveTree, thread_config: ZkDriveConfig
) -> None:
    user = drive_tree.user.descriptor
    raw_user = {
        "id": user.node_id,
        "type": "user",
        "nodeKey": user.node_key,
        "nodePassphrase": user.node_passphrase,
    }
    async with DriveCryptoClient(thread_config) as client:
        node = await client.unlock_with_root_secret(raw_user, drive_tree.root_secret)

        assert node.state == NodeState.UNLOCKED


@pytest.mark.asyncio
async def test_client_close_wipes_keys(drive_tree: DriveTree, thread_config: ZkDriveConfig) -> None:
    client = DriveCryptoClient(thread_config, source=InMemoryNodeSource(drive_tree.descriptors))
    await client.unlock_with_root_secret(drive_tree.user.descriptor, drive_tree.root_secret)
    node = await client.unlock_node(FILE_ID)

    await client.close()

    assert node.session_key.is_cleared
    assert not client.is_unlocked
    with pytest.raises(RuntimeError):
        client.executor


@pytest.mark.asyncio
async def test_evicted_node_is_unlocked_again(
    drive_tree: DriveTree, thread_config: ZkDriveConfig
) -> None:
    async with DriveCryptoClient(thread_config) as client:
        client.add_nodes(drive_tree.descriptors)
        await client.unlock_with_root_secret(drive_tree.user.descriptor, drive_tree.root_secret)
        first = await client.unlock_node(FILE_ID)

        await client.evict(SUBFOLDER_ID)
        second = await client.unlock_node(FILE_ID)

        assert first.session_key.is_cleared
        assert second is not first
        assert second.name == "report.pdf"


def test_add_nodes_requires_in_memory_source(drive_tree: DriveTree) -> None:
    class _RemoteSource:
        async def get_node(self, node_id: str):
            raise NotImplementedError

    client = DriveCryptoClient(source=_RemoteSource())

    with pytest.raises(TypeError):
        client.add_nodes(drive_tree.descriptors)


@pytest.mark.asyncio
async def test_untrusted_nodes_are_still_readable_by_default(
    drive_tree: DriveTree, thread_config: ZkDriveConfig
) -> None:
    subfolder = replace(
        drive_tree.subfolder.descriptor,
        node_passphrase_signature=drive_tree.share.descriptor.node_passphrase_signature,
    )
    descriptors = [d if d.node_id != SUBFOLDER_ID else subfolder for d in drive_tree.descriptors]

    async with DriveCryptoClient(thread_config) as client:
        client.add_nodes(descriptors)
        await client.unlock_with_root_secret(drive_tree.user.descriptor, drive_tree.root_secret)

        node = await client.unlock_node(SUBFOLDER_ID)
        assert node.state == NodeState.UNLOCKED_UNTRUSTED
        assert await client.decrypt_name(FILE_ID) == "report.pdf"
        assert not await client.verify_item_integrity(FILE_ID)
