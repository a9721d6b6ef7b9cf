"""
zkdrive configuration.
"""

import os
from dataclasses import dataclass, field
from enum import StrEnum


class ExecutorBackend(StrEnum):
    """Kind of worker pool backing the crypto executor."""

    PROCESS = "process"
    THREAD = "thread"


class KeyAlgorithm(StrEnum):
    """Algorithm used for freshly generated node keys."""

    ECC = "ecc"  # Ed25519 primary, Curve25519 encryption subkey
    RSA = "rsa"


class UntrustedPolicy(StrEnum):
    """What the keyring does with a node whose integrity signature failed."""

    FLAG = "flag"
    BLOCK = "block"


def _default_workers() -> int:
    return os.cpu_count() or 4


@dataclass(frozen=True, kw_only=True)
class ZkDriveConfig:
    """
    Attributes:
        executor_backend: Worker pool kind used by the crypto executor.
        max_workers: Number of isolated workers in the pool.
        key_cache_max_size: Maximum number of unlocked nodes kept in the registry.
        max_chain_depth: Maximum ancestor depth walked when unlocking a node.
        key_algorithm: Algorithm for generated node keys.
        rsa_key_size: Modulus size when key_algorithm is RSA.
        max_name_length: Maximum length (characters) of a node name.
        untrusted_policy: Whether untrusted nodes are only flagged or block descent.
    """

    executor_backend: ExecutorBackend = ExecutorBackend.PROCESS
    max_workers: int = field(default_factory=_default_workers)
    key_cache_max_size: int = 1000
    max_chain_depth: int = 50
    key_algorithm: KeyAlgorithm = KeyAlgorithm.ECC
    rsa_key_size: int = 3072
    max_name_length: int = 255
    untrusted_policy: UntrustedPolicy = UntrustedPolicy.FLAG

    def __post_init__(self) -> None:
        if self.max_workers <= 0:
            msg = "max_workers must be positive"
            raise ValueError(msg)
        if self.key_cache_max_size <= 0:
            msg = "key_cache_max_size must be positive"
            raise ValueError(msg)
        if self.max_chain_depth <= 0:
            msg = "max_chain_depth must be positive"
            raise ValueError(msg)
        if self.rsa_key_size < 2048:
            msg = "rsa_key_size must be at least 2048"
            raise ValueError(msg)
        if self.max_name_length <= 0:
            msg = "max_name_length must be positive"
            raise ValueError(msg)
