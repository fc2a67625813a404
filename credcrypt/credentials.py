import logging
import os.path
import pathlib
import subprocess
import typing

import attr

from .config import Config
from .encrypted_file import EncryptedFile

log = logging.getLogger(__name__)

SUFFIX = '.yml.enc'
KEY_SUFFIX = '.key'


@attr.s(frozen=True)
class Credentials:
    """Locates the encrypted file and key for each environment in a repository."""

    config: Config = attr.ib()

    @property
    def root(self) -> pathlib.Path:
        return self.config.root

    def rel(self, path: pathlib.Path) -> str:
        return os.path.relpath(pathlib.Path(path).absolute().as_posix(), self.root.absolute().as_posix())

    def environments(self) -> typing.Sequence[str]:
        """Environments that have an encrypted file or a key in the credentials directory."""
        directory = self.config.credentials_directory
        if not directory.is_dir():
            return ()

        names = set()
        for path in directory.iterdir():
            if path.name.endswith(SUFFIX):
                names.add(path.name[:-len(SUFFIX)])
            elif path.name.endswith(KEY_SUFFIX):
                names.add(path.name[:-len(KEY_SUFFIX)])
        return tuple(sorted(name for name in names if name))

    def environment_for(self, path: pathlib.Path) -> typing.Optional[str]:
        """
        Infer the environment a credentials file belongs to from its name.

        Git hands drivers temporary copies named like 'XXXXXX_production.yml.enc',
        so known environments are matched by suffix and the longest match wins.
        Returns None for the default environment.
        """
        path = pathlib.Path(path)
        name = path.name

        if name.endswith(SUFFIX) and path.absolute().parent == self.config.credentials_directory.absolute():
            return name[:-len(SUFFIX)]

        matches = [env for env in self.environments() if name.endswith(f'{env}{SUFFIX}')]
        if matches:
            return max(matches, key=len)

        return None

    def content_path(self, environment: typing.Optional[str]) -> pathlib.Path:
        if environment is None:
            return self.config.default_content_path
        return self.config.credentials_directory / f'{environment}{SUFFIX}'

    def key_path(self, environment: typing.Optional[str]) -> pathlib.Path:
        if environment is None:
            return self.config.default_key_path
        return self.config.credentials_directory / f'{environment}{KEY_SUFFIX}'

    def encrypted(
            self,
            environment: typing.Optional[str],
            content_path: typing.Optional[pathlib.Path] = None) -> EncryptedFile:
        """
        Build an accessor for an environment's credentials.

        content_path overrides the environment's own file, for copies of it
        that git passes to the diff and merge drivers.
        """
        return EncryptedFile(
            content_path=content_path or self.content_path(environment),
            key_path=self.key_path(environment),
            env_key=self.config.env_key)

    def resolve_key(self, environment: typing.Optional[str]) -> bytes:
        return self.encrypted(environment).resolve_key()

    def key_is_ignored(self, environment: typing.Optional[str]) -> bool:
        """Check the environment's key file is excluded by a .gitignore file."""
        key_path = self.key_path(environment)
        log.info(f"Checking {self.rel(key_path)} is ignored by git")
        result = subprocess.run(
            ('git', 'check-ignore', '--quiet', self.rel(key_path)),
            cwd=self.root)
        return result.returncode == 0
