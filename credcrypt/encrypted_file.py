"""
Authenticated encryption of credentials files.

Files are encrypted with AES-128-GCM and stored as three base64 encoded parts
joined by '--': the encrypted data, the nonce and the authentication tag.
"""

import base64
import binascii
import logging
import os
import pathlib
import typing

import attr
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .utils import (
    CredcryptException,
    DecryptError,
    InvalidKeyError,
    MissingContentError,
    MissingKeyError,
)

log = logging.getLogger(__name__)

KEY_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
SEPARATOR = b'--'


def generate_key() -> str:
    """Return a new random key as a hex string, the form stored in key files."""
    return os.urandom(KEY_SIZE).hex()


def parse_key(value: str) -> bytes:
    try:
        key = bytes.fromhex(value.strip())
    except ValueError:
        raise InvalidKeyError("Encryption key must be a hex string") from None

    if len(key) != KEY_SIZE:
        raise InvalidKeyError(
            f"Encryption key must be {KEY_SIZE * 2} hex characters, "
            f"got {len(value.strip())}")

    return key


def encrypt(plaintext: str, key: bytes) -> bytes:
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode('utf-8'), None)
    data, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return SEPARATOR.join(base64.b64encode(part) for part in (data, nonce, tag))


def decrypt(content: bytes, key: bytes) -> str:
    parts = content.strip().split(SEPARATOR)
    if len(parts) != 3:
        raise DecryptError("Encrypted content is not in the expected format")

    try:
        data, nonce, tag = (base64.b64decode(part, validate=True) for part in parts)
    except binascii.Error:
        raise DecryptError("Encrypted content is not valid base64") from None

    if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise DecryptError("Encrypted content has an invalid nonce or tag")

    try:
        plaintext = AESGCM(key).decrypt(nonce, data + tag, None)
    except InvalidTag:
        raise DecryptError("Encrypted content could not be authenticated") from None

    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError:
        raise DecryptError("Decrypted content is not valid UTF-8") from None


@attr.s(frozen=True, kw_only=True)
class EncryptedFile:
    content_path: pathlib.Path = attr.ib(converter=pathlib.Path)
    key_path: pathlib.Path = attr.ib(converter=pathlib.Path)
    env_key: str = attr.ib()

    def __attrs_post_init__(self):
        if self.content_path.absolute() == self.key_path.absolute():
            raise CredcryptException(
                f"Encrypted content and key can't share a path ({self.content_path})")

    def __str__(self):
        return str(self.content_path)

    def key(self) -> typing.Optional[bytes]:
        """
        Read the key from the environment or the key file.

        The environment variable takes precedence over the key file.
        """
        value = os.environ.get(self.env_key)
        if value:
            log.debug(f"Using key from ${self.env_key}")
            return parse_key(value)

        if self.key_path.is_file():
            log.debug(f"Using key from {self.key_path}")
            return parse_key(self.key_path.read_text())

        return None

    def has_key(self) -> bool:
        return self.key() is not None

    def resolve_key(self) -> bytes:
        key = self.key()
        if key is None:
            raise MissingKeyError(self.key_path, self.env_key)
        return key

    def exists(self) -> bool:
        return self.content_path.is_file()

    def raw(self) -> bytes:
        return self.content_path.read_bytes()

    def read(self) -> str:
        if not self.exists():
            raise MissingContentError(self.content_path)

        log.debug(f"Decrypting {self.content_path}")
        return decrypt(self.raw(), self.resolve_key())

    def write(self, plaintext: str) -> None:
        key = self.resolve_key()
        log.debug(f"Encrypting {self.content_path}")
        self.content_path.parent.mkdir(parents=True, exist_ok=True)
        self.content_path.write_bytes(encrypt(plaintext, key))

    def change(self, func: typing.Callable[[str], str]) -> None:
        """
        Pass the current plaintext to func and encrypt whatever it returns.

        A file that does not exist yet starts out empty.
        """
        self.resolve_key()
        plaintext = self.read() if self.exists() else ''
        self.write(func(plaintext))
