import pathlib
import tempfile
import typing

import click.testing
import git
import pytest

import credcrypt.cli
from credcrypt.config import Config
from credcrypt.credentials import Credentials
from credcrypt.encrypted_file import encrypt, generate_key


@pytest.fixture(autouse=True)
def environ(monkeypatch):
    for name in ('CREDCRYPT_MASTER_KEY', 'CREDCRYPT_DRIVER_NAME', 'CREDCRYPT_EXECUTABLE'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def plaintext_directory(tmp_path, monkeypatch) -> pathlib.Path:
    """Temporary files are created here so tests can check none are left behind."""
    directory = tmp_path / 'tmp'
    directory.mkdir()
    monkeypatch.setattr(tempfile, 'tempdir', str(directory))
    return directory


@pytest.fixture()
def repository(tmp_path) -> pathlib.Path:
    root = tmp_path / 'repository'
    git.Repo.init(root)
    return root


@pytest.fixture()
def credentials(repository) -> Credentials:
    return Credentials(Config(root=repository))


def write_key(path: pathlib.Path) -> bytes:
    key = generate_key()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'{key}\n')
    return bytes.fromhex(key)


def write_encrypted(path: pathlib.Path, plaintext: str, key: bytes) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encrypt(plaintext, key))
    return path


@pytest.fixture()
def master_key(credentials) -> bytes:
    return write_key(credentials.key_path(None))


@pytest.fixture()
def invoke(repository):
    def invoke_func(arguments: typing.Sequence[str], exit_code: int = 0) -> click.testing.Result:
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        result = runner.invoke(credcrypt.cli.main, ['--path', str(repository), *arguments])
        if result.exit_code != exit_code:
            message = (f"Command credcrypt {' '.join(arguments)} exited with "
                       f"{result.exit_code}, expected {exit_code}: {result.output}")
            raise Exception(message) from result.exception
        return result

    return invoke_func
