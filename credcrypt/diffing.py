import logging
import pathlib
import typing

import attr

from .credentials import Credentials
from .utils import DecryptError, InvalidKeyError, MissingKeyError

log = logging.getLogger(__name__)


@attr.s(frozen=True)
class Differ:
    """
    Converts a credentials file to text for git diff.

    Files that can't be decrypted are returned unchanged, so git still has
    something to diff instead of failing the whole command.
    """

    credentials: Credentials = attr.ib()

    def diff(self, path: pathlib.Path) -> typing.Union[str, bytes]:
        environment = self.credentials.environment_for(path)
        encrypted = self.credentials.encrypted(environment, content_path=path)
        log.debug(f"Diffing {path} as environment {environment or 'default'}")

        try:
            plaintext = encrypted.read()
        except (DecryptError, InvalidKeyError, MissingKeyError) as error:
            log.warning(f"Showing encrypted contents of {path}: {error.message}")
            return encrypted.raw()

        return plaintext or self.placeholder(path)

    @staticmethod
    def placeholder(path: pathlib.Path) -> str:
        return f"# {pathlib.Path(path).name} has no credentials yet.\n"
