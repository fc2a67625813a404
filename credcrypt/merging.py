"""
Three-way merging of encrypted credentials files.

Git runs the merge driver with the paths of our version, the common ancestor
and their version of a conflicting file, plus the path the file will end up
at. The three versions are decrypted into temporary files, merged with
'git merge-file', and the result is encrypted back into our version's path,
where git expects the driver to leave it. Conflict markers are encrypted along
with everything else so they can be resolved with 'credcrypt edit'.
"""

import contextlib
import enum
import logging
import os
import pathlib
import subprocess
import tempfile
import typing

import attr

from .credentials import Credentials
from .utils import MergeToolFailure

log = logging.getLogger(__name__)

LABELS = ('ours', 'base', 'theirs')


@attr.s(frozen=True)
class Clean:
    text: str = attr.ib()

    @property
    def exit_status(self) -> int:
        return 0


@attr.s(frozen=True)
class Conflicted:
    text: str = attr.ib()
    conflicts: int = attr.ib()

    @property
    def exit_status(self) -> int:
        return self.conflicts


@attr.s(frozen=True)
class ToolError:
    status: int = attr.ib()

    @property
    def exit_status(self) -> int:
        return self.status


MergeOutcome = typing.Union[Clean, Conflicted, ToolError]


def interpret(status: int, text: str) -> MergeOutcome:
    """
    Interpret the exit status of 'git merge-file'.

    Git exits with the number of conflicts (at most 127) or a negative number
    on error, which the OS reports modulo 256. Negative return codes from
    subprocess mean the process was killed by a signal.
    """
    if status > 127:
        status -= 256
    if status < 0:
        return ToolError(status)
    if status > 0:
        return Conflicted(text, status)
    return Clean(text)


def merge_file(ours: pathlib.Path, base: pathlib.Path, theirs: pathlib.Path) -> int:
    """Merge base->theirs into ours in place, returning git's exit status."""
    command: typing.Tuple[str, ...] = ('git', 'merge-file')
    for label in LABELS:
        command = (*command, '-L', label)
    command = (*command, str(ours), str(base), str(theirs))

    log.debug(f"Running {' '.join(command)}")
    try:
        result = subprocess.run(
            command,
            encoding='utf-8',
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)
    except FileNotFoundError as error:
        raise MergeToolFailure(f"Could not run git merge-file: {error}", -1) from error

    for line in result.stderr.splitlines():
        log.warning(line)
    return result.returncode


@contextlib.contextmanager
def ephemeral_plaintext(name: str, plaintext: str) -> typing.Iterator[pathlib.Path]:
    """
    Write plaintext to a temporary file that is deleted when the context exits.

    The file is only readable by the current user.
    """
    file = tempfile.NamedTemporaryFile(
        prefix=f'credcrypt-{name}-',
        suffix='.yml',
        delete=False)
    path = pathlib.Path(file.name)
    log.debug(f"Created temporary plaintext {path}")

    try:
        with file:
            file.write(plaintext.encode('utf-8'))
        yield path
    finally:
        path.unlink(missing_ok=True)
        log.debug(f"Deleted temporary plaintext {path}")


class MergePhase(enum.Enum):
    START = 'start'
    DECRYPTING = 'decrypting'
    MERGING = 'merging'
    ENCRYPTING = 'encrypting'
    DONE = 'done'
    ABORTED = 'aborted'


@attr.s(frozen=True, kw_only=True)
class MergeRequest:
    ours_path: pathlib.Path = attr.ib(converter=pathlib.Path)
    base_path: pathlib.Path = attr.ib(converter=pathlib.Path)
    theirs_path: pathlib.Path = attr.ib(converter=pathlib.Path)
    real_path: pathlib.Path = attr.ib(converter=pathlib.Path)


@attr.s
class Merger:
    credentials: Credentials = attr.ib()
    merge_tool: typing.Callable[[pathlib.Path, pathlib.Path, pathlib.Path], int] = attr.ib(default=merge_file)
    phase: MergePhase = attr.ib(default=MergePhase.START, init=False)

    def merge(self, request: MergeRequest) -> MergeOutcome:
        environment = self.credentials.environment_for(request.real_path)
        log.info(f"Merging {request.real_path} as environment {environment or 'default'}")

        try:
            with contextlib.ExitStack() as stack:
                self.phase = MergePhase.DECRYPTING
                ours = stack.enter_context(ephemeral_plaintext(
                    'ours', self.decrypt(request.ours_path, environment)))
                base = stack.enter_context(ephemeral_plaintext(
                    'base', self.decrypt_base(request.base_path, environment)))
                theirs = stack.enter_context(ephemeral_plaintext(
                    'theirs', self.decrypt(request.theirs_path, environment)))

                self.phase = MergePhase.MERGING
                status = self.merge_tool(ours, base, theirs)
                log.debug(f"git merge-file exited with status {status}")

                self.phase = MergePhase.ENCRYPTING
                merged = ours.read_bytes().decode('utf-8')
                self.credentials.encrypted(environment, content_path=request.ours_path).write(merged)
        except Exception:
            self.phase = MergePhase.ABORTED
            log.error(f"Aborted merging {request.real_path}")
            raise

        self.phase = MergePhase.DONE
        return interpret(status, merged)

    def decrypt(self, path: pathlib.Path, environment: typing.Optional[str]) -> str:
        return self.credentials.encrypted(environment, content_path=path).read()

    def decrypt_base(self, path: pathlib.Path, environment: typing.Optional[str]) -> str:
        """The common ancestor is missing or empty when both sides added the file."""
        if not path.is_file() or os.path.getsize(path) == 0:
            log.debug(f"Using empty plaintext for missing base {path}")
            return ''
        return self.decrypt(path, environment)
