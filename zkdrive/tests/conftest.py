import pytest

from zkdrive.config import ExecutorBackend, KeyAlgorithm, ZkDriveConfig
from zkdrive.crypto.pgpy_backend import PgpyBackend
from zkdrive.tests.factories import DriveTree, build_tree


@pytest.fixture(scope="session")
def backend() -> PgpyBackend:
    return PgpyBackend()


@pytest.fixture(scope="session")
def drive_tree(backend: PgpyBackend) -> DriveTree:
    return build_tree(backend)


@pytest.fixture
def thread_config() -> ZkDriveConfig:
    return ZkDriveConfig(
        executor_backend=ExecutorBackend.THREAD,
        max_workers=4,
        key_algorithm=KeyAlgorithm.RSA,
        rsa_key_size=2048,
    )
