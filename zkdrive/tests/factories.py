"""
Builders for encrypted test trees.

Keys are RSA-2048 to keep generation fast. Every node's passphrase signature is
made by its parent's key, like the nodes produced by key generation.
"""

import base64
from dataclasses import dataclass, field

import pgpy

from zkdrive.config import KeyAlgorithm
from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.content import generate_content_key, seal_content_key
from zkdrive.crypto.key_packet import seal, seal_secret
from zkdrive.crypto.names import encrypt_name
from zkdrive.crypto.pgpy_backend import PgpyBackend, PgpyKey
from zkdrive.crypto.root_secret import derive_root_secret
from zkdrive.models.crypto import ContentKey, KeyPacket, KeyType, NodeKeyPair
from zkdrive.models.drive import NodeDescriptor, ParentContext

OWNER_EMAIL = "owner@example.com"
OTHER_EMAIL = "mallory@example.com"
PASSWORD = "correct horse battery staple"
KEY_SALT = base64.b64encode(bytes(range(16))).decode("ascii")

USER_ID = "user-1"
SHARE_ID = "share-1"
ROOT_FOLDER_ID = "folder-root"
SUBFOLDER_ID = "folder-sub"
FILE_ID = "file-1"

_UNSET = object()


def create_key(passphrase: SecureBytes, email: str = OWNER_EMAIL) -> PgpyKey:
    return PgpyBackend.generate_key(
        "Test User", email, passphrase, algorithm=KeyAlgorithm.RSA, rsa_key_size=2048
    )


@dataclass(kw_only=True)
class BuiltNode:
    descriptor: NodeDescriptor
    key: PgpyKey
    session_key_text: str = field(repr=False)
    packet_id: str

    @property
    def node_id(self) -> str:
        return self.descriptor.node_id

    @property
    def session_key(self) -> SecureBytes:
        """Fresh copy, safe to hand to code that clears it."""
        return SecureBytes.from_string(self.session_key_text)


def build_node(
    backend: PgpyBackend,
    *,
    node_id: str,
    key_type: KeyType,
    parent_secret: SecureBytes,
    parent_packet_id: str | None = None,
    parent_id: str | None = None,
    signer: BuiltNode | None = None,
    name: str | None = None,
    email: str = OWNER_EMAIL,
    with_hash_key: bool = False,
    content_key: ContentKey | None = None,
    recorded_parent_packet_id: object = _UNSET,
) -> BuiltNode:
    """
    Build an encrypted node descriptor.

    `recorded_parent_packet_id` overrides the parent packet id written into the
    key packet, to simulate a substituted node.
    """
    session_key = SecureBytes.random_session_key()
    session_key_text = session_key.decode()
    key = create_key(session_key, email)

    recorded = parent_packet_id if recorded_parent_packet_id is _UNSET else recorded_parent_packet_id
    packet = KeyPacket.new(session_key, recorded, key_type)

    node_hash_key = None
    password = parent_secret
    if with_hash_key:
        password = SecureBytes.random_session_key()
        node_hash_key = seal_secret(password, parent_secret, backend)
    sealed = seal(packet, password, backend)

    signature = None
    if signer is not None:
        signature = backend.sign_detached(sealed.encode("utf-8"), signer.key, signer.session_key)

    descriptor = NodeDescriptor(
        node_id=node_id,
        key_type=key_type,
        node_key=key.armored,
        node_passphrase=sealed,
        node_passphrase_signature=signature,
        name=encrypt_name(name, key, backend).ciphertext if name else None,
        parent_id=parent_id,
        signature_email=email,
        node_hash_key=node_hash_key,
        content_key_packet=seal_content_key(content_key, key, backend) if content_key else None,
    )
    return BuiltNode(
        descriptor=descriptor, key=key, session_key_text=session_key_text, packet_id=packet.packet_id
    )


def build_child(
    backend: PgpyBackend,
    parent: BuiltNode,
    *,
    node_id: str,
    key_type: KeyType,
    **kwargs: object,
) -> BuiltNode:
    return build_node(
        backend,
        node_id=node_id,
        key_type=key_type,
        parent_secret=parent.session_key,
        parent_packet_id=parent.packet_id,
        parent_id=parent.node_id,
        signer=kwargs.pop("signer", parent),
        **kwargs,
    )


@dataclass(kw_only=True)
class DriveTree:
    """user -> share -> root folder -> subfolder -> file"""

    root_secret_text: str = field(repr=False)
    user: BuiltNode
    share: BuiltNode
    root_folder: BuiltNode
    subfolder: BuiltNode
    file: BuiltNode
    content_key: ContentKey

    @property
    def root_secret(self) -> SecureBytes:
        return SecureBytes(self.root_secret_text.encode("latin-1"))

    @property
    def descriptors(self) -> list[NodeDescriptor]:
        return [
            node.descriptor
            for node in (self.user, self.share, self.root_folder, self.subfolder, self.file)
        ]


def build_tree(backend: PgpyBackend) -> DriveTree:
    root_secret = derive_root_secret(SecureBytes.from_string(PASSWORD), KEY_SALT)
    root_secret_text = bytes(root_secret).decode("latin-1")

    user = build_node(backend, node_id=USER_ID, key_type=KeyType.USER, parent_secret=root_secret)
    share = build_child(backend, user, node_id=SHARE_ID, key_type=KeyType.SHARE)
    root_folder = build_child(
        backend,
        share,
        node_id=ROOT_FOLDER_ID,
        key_type=KeyType.FOLDER,
        name="My Files",
        with_hash_key=True,
    )
    subfolder = build_child(
        backend,
        root_folder,
        node_id=SUBFOLDER_ID,
        key_type=KeyType.FOLDER,
        name="Documents",
        with_hash_key=True,
    )
    content_key = generate_content_key()
    file = build_child(
        backend,
        subfolder,
        node_id=FILE_ID,
        key_type=KeyType.FILE,
        name="report.pdf",
        content_key=content_key,
    )
    return DriveTree(
        root_secret_text=root_secret_text,
        user=user,
        share=share,
        root_folder=root_folder,
        subfolder=subfolder,
        file=file,
        content_key=content_key,
    )


def parent_context(parent: BuiltNode) -> ParentContext:
    return ParentContext(
        session_key=parent.session_key,
        node_id=parent.node_id,
        key_packet_id=parent.packet_id,
        verifier_key=parent.key.public_armored,
        verifier_key_id=parent.key.key_id,
    )


def key_pair_of(node: BuiltNode) -> NodeKeyPair:
    return NodeKeyPair(
        private_key_armored=node.key.armored,
        public_key_armored=node.key.public_armored,
        key_id=node.key.key_id,
        fingerprint=node.key.fingerprint,
        identity=node.key.identity,
        passphrase=node.session_key,
    )


def corrupt_message(armored: str, offset: int = -8) -> str:
    """Flip one byte of the encrypted data and re-armor with a valid checksum."""
    data = bytearray(bytes(pgpy.PGPMessage.from_blob(armored)))
    data[offset] ^= 0x01
    return str(pgpy.PGPMessage.from_blob(bytes(data)))
