import logging
import pathlib
import typing

import click

from . import __doc__, __version__
from .config import DRIVER_NAME, EXECUTABLE, Config
from .credentials import Credentials
from .diffing import Differ
from .encrypted_file import EncryptedFile
from .enrollment import Driver, Enrollment, diff_driver, merge_driver
from .merging import Conflicted, Merger, MergeRequest, ToolError
from .utils import DecryptError, MergeToolFailure, MissingKeyError, find_git_directory

log = logging.getLogger(__name__)


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


environment_option = click.option(
    '-e', '--environment',
    metavar='ENV',
    default=None,
    type=click.STRING,
    help="Use config/credentials/ENV.yml.enc instead of config/credentials.yml.enc.")

enroll_option = click.option(
    '--enroll', 'enroll',
    default=False,
    is_flag=True,
    help="Enroll the repository in this git driver.")

disenroll_option = click.option(
    '--disenroll', 'disenroll',
    default=False,
    is_flag=True,
    help="Disenroll the repository from this git driver.")


def change_enrollment(
        credentials: Credentials,
        driver: Driver,
        enroll: bool,
        disenroll: bool) -> None:
    enrollment = Enrollment.for_repository(credentials.root, driver)

    if disenroll:
        if enrollment.disenroll():
            click.echo(f"Disenrolled project from {driver.description}!")
        else:
            click.echo(f"Project is not enrolled in {driver.description}.")

    if enroll:
        if enrollment.enroll():
            click.echo(f"Enrolled project in {driver.description}!")
        else:
            click.echo(f"Project is already enrolled in {driver.description}.")


def missing_credentials_message(credentials: Credentials, encrypted: EncryptedFile) -> str:
    if not encrypted.has_key():
        return (f"Missing '{credentials.rel(encrypted.key_path)}' to decrypt credentials. "
                f"See '{EXECUTABLE} --help'.")
    return (f"File '{credentials.rel(encrypted.content_path)}' does not exist. "
            f"Use '{EXECUTABLE} edit' to change that.")


@click.group(help=__doc__)
@click.option(
    '-p', '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    default=find_git_directory,
    required=True,
    help="Defaults to the current git repository.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.option(
    '--driver-name',
    envvar='CREDCRYPT_DRIVER_NAME',
    default=DRIVER_NAME,
    show_default=True,
    help="Name of the git diff and merge drivers.")
@click.option(
    '--executable',
    envvar='CREDCRYPT_EXECUTABLE',
    default=EXECUTABLE,
    show_default=True,
    help="Command git runs to invoke the drivers.")
@click.pass_context
def main(
        ctx,
        debug: bool,
        path: pathlib.Path,
        driver_name: str,
        executable: str):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = Credentials(Config(
        root=path,
        driver_name=driver_name,
        executable=executable))


@main.command()
def version():
    """Show the application version."""
    click.echo(f"credcrypt {__version__}")


@main.command()
@environment_option
@click.pass_obj
def show(credentials: Credentials, environment: typing.Optional[str]):
    """Show the decrypted credentials."""
    encrypted = credentials.encrypted(environment)

    if not encrypted.has_key() or not encrypted.exists():
        click.echo(missing_credentials_message(credentials, encrypted))
        return

    plaintext = encrypted.read()
    if not plaintext:
        click.echo(f"File '{credentials.rel(encrypted.content_path)}' has no credentials yet.")
        return

    click.echo(plaintext, nl=not plaintext.endswith('\n'))


@main.command()
@environment_option
@click.pass_obj
def edit(credentials: Credentials, environment: typing.Optional[str]):
    """
    Edit the decrypted credentials in your $EDITOR.

    The plaintext is only kept in memory and in the editor's temporary file.
    """
    encrypted = credentials.encrypted(environment)
    encrypted.resolve_key()

    if not credentials.key_is_ignored(environment):
        click.secho(
            f"Key {credentials.rel(encrypted.key_path)} is not ignored by git - "
            f"add it to .gitignore so it is never committed",
            fg='yellow')

    for driver in (diff_driver(credentials.config), merge_driver(credentials.config)):
        Enrollment.for_repository(credentials.root, driver).ensure_configured()

    def editor(old_text: str) -> str:
        new_text = click.edit(text=old_text, extension='.yml')

        if new_text is None or new_text == old_text:
            raise click.ClickException("No changes were made to the file")

        if not new_text.strip():
            raise click.ClickException("File is empty")

        return new_text

    click.echo(f"Editing {credentials.rel(encrypted.content_path)}...")
    try:
        encrypted.change(editor)
    except DecryptError:
        raise click.ClickException(
            f"Couldn't decrypt {credentials.rel(encrypted.content_path)}. "
            f"Perhaps you passed the wrong key?") from None
    click.echo("File encrypted and saved.")


@main.command()
@click.argument(
    'path',
    type=PathType(exists=True, dir_okay=False),
    required=False)
@enroll_option
@disenroll_option
@click.pass_obj
def diff(
        credentials: Credentials,
        path: typing.Optional[pathlib.Path],
        enroll: bool,
        disenroll: bool):
    """
    Print the decrypted contents of a credentials file for git diff.

    Git runs this as a textconv driver once the project is enrolled with
    --enroll. Files that can't be decrypted are printed as they are.
    """
    if path is not None:
        if enroll or disenroll:
            raise click.UsageError("PATH can't be combined with --enroll or --disenroll")
        click.echo(Differ(credentials).diff(path), nl=False)
    elif enroll or disenroll:
        change_enrollment(credentials, diff_driver(credentials.config), enroll, disenroll)
    else:
        raise click.UsageError("Provide a PATH, --enroll or --disenroll")


@main.command()
@click.argument('ours', type=PathType(dir_okay=False), required=False)
@click.argument('base', type=PathType(dir_okay=False), required=False)
@click.argument('theirs', type=PathType(dir_okay=False), required=False)
@click.argument('real_path', type=PathType(dir_okay=False), required=False)
@enroll_option
@disenroll_option
@click.pass_context
def merge(
        ctx,
        ours: typing.Optional[pathlib.Path],
        base: typing.Optional[pathlib.Path],
        theirs: typing.Optional[pathlib.Path],
        real_path: typing.Optional[pathlib.Path],
        enroll: bool,
        disenroll: bool):
    """
    Merge conflicting versions of a credentials file.

    Git runs this as a merge driver once the project is enrolled with
    --enroll, passing our version, the common ancestor, their version and
    the path of the file being merged. The merged plaintext is encrypted
    into our version, including any conflict markers, and the exit status
    is the number of conflicts.
    """
    credentials: Credentials = ctx.obj
    paths = (ours, base, theirs, real_path)

    if any(p is not None for p in paths):
        if enroll or disenroll:
            raise click.UsageError("Paths can't be combined with --enroll or --disenroll")
        if any(p is None for p in paths):
            raise click.UsageError("Provide OURS, BASE, THEIRS and REAL_PATH")
    elif enroll or disenroll:
        change_enrollment(credentials, merge_driver(credentials.config), enroll, disenroll)
        return
    else:
        raise click.UsageError("Provide OURS, BASE, THEIRS and REAL_PATH, --enroll or --disenroll")

    request = MergeRequest(
        ours_path=ours,
        base_path=base,
        theirs_path=theirs,
        real_path=real_path)

    try:
        outcome = Merger(credentials).merge(request)
    except (DecryptError, MissingKeyError) as error:
        raise click.ClickException(
            f"Couldn't merge {credentials.rel(real_path)}: {error.message}") from error

    if isinstance(outcome, ToolError):
        raise MergeToolFailure(
            f"git merge-file exited with error status: {outcome.status}", outcome.status)

    if isinstance(outcome, Conflicted):
        log.info(f"Merged {real_path} with {outcome.conflicts} conflict(s)")

    ctx.exit(outcome.exit_status)
