import pathlib
import typing

import click
import git


def find_git_directory() -> typing.Optional[pathlib.Path]:
    try:
        repo = git.Repo(search_parent_directories=True)
    except git.exc.InvalidGitRepositoryError:
        return None
    return pathlib.Path(repo.working_dir)


class CredcryptException(click.ClickException):
    pass


class MissingKeyError(CredcryptException):
    def __init__(self, key_path: pathlib.Path, env_key: str):
        super().__init__(
            f"Missing encryption key to decrypt file with. Ask your team for "
            f"your master key and write it to {key_path} or put it in "
            f"${env_key}.")
        self.key_path = key_path
        self.env_key = env_key


class InvalidKeyError(CredcryptException):
    pass


class MissingContentError(CredcryptException):
    def __init__(self, content_path: pathlib.Path):
        super().__init__(f"Missing encrypted content file in {content_path}")
        self.content_path = content_path


class DecryptError(CredcryptException):
    pass


class MergeToolFailure(CredcryptException):
    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.exit_code = status
