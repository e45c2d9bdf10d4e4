import logging
import pathlib
import typing

import click
import git

log = logging.getLogger(__name__)


class PrivetException(click.ClickException):
    pass


class DocumentError(PrivetException):
    pass


class KeyMaterialError(PrivetException):
    pass


class NoRecipients(PrivetException):
    def __init__(self, message: str = "No recipients available for encryption"):
        super().__init__(message)


class SealError(PrivetException):
    pass


class PolicyError(PrivetException):
    pass


class PathError(PrivetException):
    pass


class TreeTooDeep(PrivetException):
    pass


class NotIgnored(PrivetException):
    pass


def find_git_directory(path: typing.Optional[pathlib.Path] = None) -> typing.Optional[pathlib.Path]:
    try:
        repo = git.Repo(path or pathlib.Path.cwd(), search_parent_directories=True)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
        return None
    return pathlib.Path(repo.working_dir)


def in_directory(
        file: pathlib.Path,
        directory: pathlib.Path) -> bool:
    """Check if a path is a subpath of a directory."""
    try:
        file.resolve().relative_to(directory.resolve())
    except ValueError:
        return False
    else:
        return True


def check_ignored(path: pathlib.Path) -> None:
    """
    Refuse to write plaintext to a path git would pick up.

    Paths outside of a git work tree are always allowed.
    """
    directory = find_git_directory(path.resolve().parent)
    if directory is None or not in_directory(path, directory):
        return

    log.info(f"Checking {path} is ignored by git")
    repo = git.Repo(directory)
    if not repo.ignored(str(path.resolve())):
        raise NotIgnored(
            f"Decrypted output {path} is not excluded by .gitignore")
