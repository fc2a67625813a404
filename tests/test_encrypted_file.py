import base64

import pytest

from credcrypt.encrypted_file import EncryptedFile, decrypt, encrypt, generate_key, parse_key
from credcrypt.utils import (
    CredcryptException,
    DecryptError,
    InvalidKeyError,
    MissingContentError,
    MissingKeyError,
)

from .conftest import write_encrypted, write_key


@pytest.fixture()
def key() -> bytes:
    return bytes.fromhex(generate_key())


@pytest.fixture()
def encrypted(tmp_path) -> EncryptedFile:
    return EncryptedFile(
        content_path=tmp_path / 'credentials.yml.enc',
        key_path=tmp_path / 'master.key',
        env_key='CREDCRYPT_MASTER_KEY')


@pytest.mark.parametrize('plaintext', [
    '',
    'secret_key_base: abc123\n',
    'api:\n  token: "ünïcødé ✓"\n',
    '<<<<<<< ours\na: 1\n=======\na: 2\n>>>>>>> theirs\n',
], ids=['empty', 'yaml', 'unicode', 'conflict-markers'])
def test_decrypt_reverses_encrypt(key, plaintext):
    assert decrypt(encrypt(plaintext, key), key) == plaintext


def test_encrypt_uses_a_fresh_nonce(key):
    assert encrypt('a: 1\n', key) != encrypt('a: 1\n', key)


def test_decrypt_ignores_surrounding_whitespace(key):
    assert decrypt(encrypt('a: 1\n', key) + b'\n', key) == 'a: 1\n'


def test_decrypt_with_wrong_key(key):
    with pytest.raises(DecryptError):
        decrypt(encrypt('a: 1\n', key), bytes.fromhex(generate_key()))


def test_decrypt_tampered_content(key):
    data, nonce, tag = encrypt('a: 1\n', key).split(b'--')
    raw = base64.b64decode(data)
    tampered = base64.b64encode(bytes([raw[0] ^ 1]) + raw[1:])
    with pytest.raises(DecryptError):
        decrypt(b'--'.join((tampered, nonce, tag)), key)


@pytest.mark.parametrize('content', [
    b'',
    b'not encrypted at all',
    b'a--b',
    b'!!!--!!!--!!!',
    b'YQ==--YQ==--YQ==',
], ids=['empty', 'plaintext', 'two-parts', 'not-base64', 'short-nonce'])
def test_decrypt_corrupt_content(key, content):
    with pytest.raises(DecryptError):
        decrypt(content, key)


@pytest.mark.parametrize('value', ['xyz', 'abcd', generate_key() + 'ff'])
def test_parse_invalid_key(value):
    with pytest.raises(InvalidKeyError):
        parse_key(value)


def test_key_from_file(encrypted):
    key = write_key(encrypted.key_path)
    assert encrypted.key() == key


def test_key_from_environment_takes_precedence(encrypted, monkeypatch):
    write_key(encrypted.key_path)
    env_key = generate_key()
    monkeypatch.setenv('CREDCRYPT_MASTER_KEY', env_key)
    assert encrypted.key() == bytes.fromhex(env_key)


def test_missing_key(encrypted):
    assert encrypted.key() is None
    assert not encrypted.has_key()
    with pytest.raises(MissingKeyError) as error:
        encrypted.resolve_key()
    assert 'CREDCRYPT_MASTER_KEY' in error.value.message
    assert str(encrypted.key_path) in error.value.message


def test_read_missing_content(encrypted):
    write_key(encrypted.key_path)
    with pytest.raises(MissingContentError):
        encrypted.read()


def test_write_then_read(encrypted):
    key = write_key(encrypted.key_path)
    encrypted.write('a: 1\n')
    assert encrypted.read() == 'a: 1\n'
    assert b'a: 1' not in encrypted.raw()
    assert decrypt(encrypted.raw(), key) == 'a: 1\n'


def test_change(encrypted):
    key = write_key(encrypted.key_path)
    write_encrypted(encrypted.content_path, 'a: 1\n', key)
    encrypted.change(lambda text: text + 'b: 2\n')
    assert encrypted.read() == 'a: 1\nb: 2\n'


def test_change_missing_content_starts_empty(encrypted):
    write_key(encrypted.key_path)
    seen = []

    def func(text):
        seen.append(text)
        return 'a: 1\n'

    encrypted.change(func)
    assert seen == ['']
    assert encrypted.read() == 'a: 1\n'


def test_change_without_key_does_not_call_func(encrypted):
    def func(text):
        raise AssertionError("func should not be called")

    with pytest.raises(MissingKeyError):
        encrypted.change(func)


def test_content_and_key_paths_must_differ(tmp_path):
    with pytest.raises(CredcryptException):
        EncryptedFile(
            content_path=tmp_path / 'same',
            key_path=tmp_path / 'same',
            env_key='CREDCRYPT_MASTER_KEY')
