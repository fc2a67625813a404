import pathlib

import attr

DRIVER_NAME = 'credcrypt'
EXECUTABLE = 'credcrypt'
ENV_KEY = 'CREDCRYPT_MASTER_KEY'


@attr.s(frozen=True, kw_only=True)
class Config:
    root: pathlib.Path = attr.ib(converter=pathlib.Path)

    # Name of the git diff and merge drivers in .gitattributes and git config.
    driver_name: str = attr.ib(default=DRIVER_NAME)

    # Command git runs to invoke the drivers.
    executable: str = attr.ib(default=EXECUTABLE)

    env_key: str = attr.ib(default=ENV_KEY)

    @property
    def credentials_directory(self) -> pathlib.Path:
        return self.root / 'config' / 'credentials'

    @property
    def default_content_path(self) -> pathlib.Path:
        return self.root / 'config' / 'credentials.yml.enc'

    @property
    def default_key_path(self) -> pathlib.Path:
        return self.root / 'config' / 'master.key'
