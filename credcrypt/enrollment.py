"""
Enrollment of a repository in the credcrypt git drivers.

A repository is enrolled in a driver when its .gitattributes routes the
credentials files through the driver. Git only runs the driver when the
repository's local config also binds the driver's name to a command, so the
two are written and removed together.

The transitions are pure functions over an EnrollmentState, and Enrollment
reads and writes that state from the real .gitattributes file and git config.
"""

import logging
import pathlib
import typing

import attr
import git

from .config import Config

log = logging.getLogger(__name__)

PATTERNS = (
    'config/credentials/*.yml.enc',
    'config/credentials.yml.enc',
)


@attr.s(frozen=True, kw_only=True)
class Driver:
    attribute: str = attr.ib()
    name: str = attr.ib()
    option: str = attr.ib()
    command: str = attr.ib()
    description: str = attr.ib()

    @property
    def entry(self) -> str:
        return ''.join(f'{pattern} {self.attribute}={self.name}\n' for pattern in PATTERNS)

    @property
    def config_key(self) -> str:
        return f'{self.attribute}.{self.name}.{self.option}'


def merge_driver(config: Config) -> Driver:
    return Driver(
        attribute='merge',
        name=config.driver_name,
        option='driver',
        command=f'{config.executable} merge %A %O %B %P',
        description='credentials file merging')


def diff_driver(config: Config) -> Driver:
    return Driver(
        attribute='diff',
        name=config.driver_name,
        option='textconv',
        command=f'{config.executable} diff',
        description='credentials file diffing')


@attr.s(frozen=True)
class EnrollmentState:
    # Contents of .gitattributes, or None when the file does not exist.
    attributes: typing.Optional[str] = attr.ib(default=None)
    config: typing.Mapping[str, str] = attr.ib(factory=dict, converter=dict)


def is_enrolled(state: EnrollmentState, driver: Driver) -> bool:
    return state.attributes is not None and driver.entry in state.attributes


def apply_enroll(state: EnrollmentState, driver: Driver) -> EnrollmentState:
    if is_enrolled(state, driver):
        return state

    attributes = state.attributes or ''
    if attributes and not attributes.endswith('\n'):
        attributes += '\n'

    return EnrollmentState(
        attributes=attributes + driver.entry,
        config={**state.config, driver.config_key: driver.command})


def apply_disenroll(state: EnrollmentState, driver: Driver) -> EnrollmentState:
    if not is_enrolled(state, driver):
        return state

    assert state.attributes is not None
    return EnrollmentState(
        attributes=state.attributes.replace(driver.entry, '') or None,
        config={k: v for k, v in state.config.items() if k != driver.config_key})


def apply_configure(state: EnrollmentState, driver: Driver) -> EnrollmentState:
    """Restore a missing driver binding, e.g. in a fresh clone of an enrolled repository."""
    if not is_enrolled(state, driver) or state.config.get(driver.config_key) == driver.command:
        return state

    return attr.evolve(state, config={**state.config, driver.config_key: driver.command})


@attr.s(frozen=True)
class GitAttributes:
    path: pathlib.Path = attr.ib()

    def read(self) -> typing.Optional[str]:
        if not self.path.is_file():
            return None
        return self.path.read_text()

    def write(self, contents: typing.Optional[str]) -> None:
        if contents is None:
            log.debug(f"Deleting {self.path}")
            self.path.unlink()
        else:
            log.debug(f"Writing {self.path}")
            self.path.write_text(contents)


@attr.s(frozen=True)
class GitConfig:
    repo: git.Repo = attr.ib()

    def get(self, key: str) -> typing.Optional[str]:
        try:
            return self.repo.git.config('--local', '--get', key)
        except git.GitCommandError as error:
            # Exit status 1 means the key is not set.
            if error.status == 1:
                return None
            raise

    def set(self, key: str, value: str) -> None:
        log.debug(f"Setting git config {key}")
        self.repo.git.config('--local', key, value)

    def unset(self, key: str) -> None:
        log.debug(f"Unsetting git config {key}")
        self.repo.git.config('--local', '--unset', key)


@attr.s(frozen=True)
class Enrollment:
    driver: Driver = attr.ib()
    attributes: GitAttributes = attr.ib()
    config: GitConfig = attr.ib()

    @classmethod
    def for_repository(cls, root: pathlib.Path, driver: Driver) -> 'Enrollment':
        return cls(
            driver=driver,
            attributes=GitAttributes(root / '.gitattributes'),
            config=GitConfig(git.Repo(root)))

    def state(self) -> EnrollmentState:
        key = self.driver.config_key
        value = self.config.get(key)
        return EnrollmentState(
            attributes=self.attributes.read(),
            config={key: value} if value is not None else {})

    def is_enrolled(self) -> bool:
        return is_enrolled(EnrollmentState(attributes=self.attributes.read()), self.driver)

    def enroll(self) -> bool:
        """Enroll the repository, returning False if it was already enrolled."""
        if self.is_enrolled():
            log.info(f"Already enrolled in {self.driver.description}")
            return False
        state = self.state()
        self.commit(state, apply_enroll(state, self.driver))
        return True

    def disenroll(self) -> bool:
        """Disenroll the repository, returning False if it was not enrolled."""
        if not self.is_enrolled():
            log.info(f"Not enrolled in {self.driver.description}")
            return False
        state = self.state()
        self.commit(state, apply_disenroll(state, self.driver))
        return True

    def ensure_configured(self) -> bool:
        state = self.state()
        updated = apply_configure(state, self.driver)
        self.commit(state, updated)
        return updated != state

    def commit(self, old: EnrollmentState, new: EnrollmentState) -> None:
        if new.attributes != old.attributes:
            self.attributes.write(new.attributes)

        for key in set(old.config) | set(new.config):
            if key not in new.config:
                self.config.unset(key)
            elif new.config[key] != old.config.get(key):
                self.config.set(key, new.config[key])
