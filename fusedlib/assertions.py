#    Copyright 2013-2025 ARM Limited
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""
Verification helpers.

Each ``assert_*`` helper raises :class:`~fusedlib.exception.VerificationError`
(an :class:`AssertionError`) describing the first mismatch it finds.
"""
from shlex import quote

from fusedlib.content import get_file_row_id
from fusedlib.exception import VerificationError, TargetError
from fusedlib.utils.misc import get_logger

from typing import Any, Callable, Iterable, IO, Optional, Type, Union, TYPE_CHECKING
if TYPE_CHECKING:
    from fusedlib.target import AndroidTarget


logger = get_logger('assertions')


def _check(condition: bool, message: str, *args: Any) -> None:
    if not condition:
        raise VerificationError(message.format(*args))


def assert_can_rename_file(target: 'AndroidTarget', old_path: str, new_path: str) -> None:
    """
    Rename ``old_path`` to ``new_path`` and check that the file moved and got a
    fresh index row.
    """
    row_id = get_file_row_id(target, old_path)
    _check(target.rename(old_path, new_path), 'Could not rename {} to {}', old_path, new_path)
    _check(not target.file_exists(old_path), '{} still exists after the rename', old_path)
    _check(target.file_exists(new_path), '{} does not exist after the rename', new_path)
    stale_id = get_file_row_id(target, old_path)
    _check(stale_id == -1, '{} is still indexed (row {})', old_path, stale_id)
    new_id = get_file_row_id(target, new_path)
    _check(new_id >= 0 and new_id != row_id,
           '{} did not get a fresh row (row {}, was {})', new_path, new_id, row_id)


def assert_cant_rename_file(target: 'AndroidTarget', old_path: str, new_path: str) -> None:
    """
    Check that renaming ``old_path`` to ``new_path`` is refused and leaves the
    file and its index row alone.
    """
    row_id = get_file_row_id(target, old_path)
    _check(not target.rename(old_path, new_path),
           'Renaming {} to {} unexpectedly succeeded', old_path, new_path)
    _check(target.file_exists(old_path), '{} is gone after a refused rename', old_path)
    new_id = get_file_row_id(target, old_path)
    _check(new_id == row_id, 'Row of {} changed from {} to {}', old_path, row_id, new_id)


def assert_can_rename_directory(target: 'AndroidTarget', old_dir: str, new_dir: str,
                                old_files: Optional[Iterable[str]] = None,
                                new_files: Optional[Iterable[str]] = None) -> None:
    """
    Rename ``old_dir`` to ``new_dir``, then check that every path of
    ``old_files`` is gone and unindexed and every path of ``new_files``
    exists and is indexed.
    """
    _check(target.rename(old_dir, new_dir), 'Could not rename {} to {}', old_dir, new_dir)
    _check(not target.file_exists(old_dir), '{} still exists after the rename', old_dir)
    _check(target.file_exists(new_dir), '{} does not exist after the rename', new_dir)
    for path in old_files or ():
        _check(not target.file_exists(path), '{} still exists after the rename', path)
        row_id = get_file_row_id(target, path)
        _check(row_id == -1, '{} is still indexed (row {})', path, row_id)
    for path in new_files or ():
        _check(target.file_exists(path), '{} does not exist after the rename', path)
        _check(get_file_row_id(target, path) != -1, '{} is not indexed', path)


def assert_cant_rename_directory(target: 'AndroidTarget', old_dir: str, new_dir: str,
                                 old_files: Optional[Iterable[str]] = None) -> None:
    """
    Check that renaming ``old_dir`` is refused and that it and ``old_files``
    keep their index rows.
    """
    old_files = list(old_files or ())
    rows = {path: get_file_row_id(target, path) for path in old_files}
    _check(not target.rename(old_dir, new_dir),
           'Renaming {} to {} unexpectedly succeeded', old_dir, new_dir)
    _check(target.file_exists(old_dir), '{} is gone after a refused rename', old_dir)
    for path in old_files:
        _check(target.file_exists(path), '{} is gone after a refused rename', path)
        row_id = get_file_row_id(target, path)
        _check(row_id != -1, '{} is not indexed', path)
        _check(row_id == rows[path], 'Row of {} changed from {} to {}', path, rows[path], row_id)


def assert_file_content(target: 'AndroidTarget', path: str, expected: Union[bytes, str]) -> None:
    """
    Check that the whole content of ``path`` is ``expected``.
    """
    if isinstance(expected, str):
        expected = expected.encode('utf-8')
    actual = target.read_file(path)
    _check(actual == expected, 'Content of {} is {!r}, expected {!r}', path, actual, expected)


def assert_stream_content(stream: IO, expected: Union[bytes, str]) -> None:
    """
    Check that ``stream``, read from its start, holds exactly ``expected``.
    """
    if isinstance(expected, str):
        expected = expected.encode('utf-8')
    if stream.seekable():
        stream.seek(0)
    actual = stream.read()
    if isinstance(actual, str):
        actual = actual.encode('utf-8')
    _check(actual == expected, 'Stream content is {!r}, expected {!r}', actual, expected)


def assert_directory_contains(target: 'AndroidTarget', directory: str, *names: str) -> None:
    listing = target.list_directory(directory)
    missing = [name for name in names if name not in listing]
    _check(not missing, '{} does not contain {}', directory, ', '.join(missing))


def assert_directory_does_not_contain(target: 'AndroidTarget', directory: str, *names: str) -> None:
    listing = target.list_directory(directory)
    present = [name for name in names if name in listing]
    _check(not present, '{} unexpectedly contains {}', directory, ', '.join(present))


def assert_throws(exc_class: Type[BaseException], operation: Callable[[], Any],
                  message: str = '') -> BaseException:
    """
    Check that ``operation()`` raises ``exc_class`` with ``message`` in its
    text. Any other exception propagates unchanged.

    :returns: The exception raised.
    """
    try:
        operation()
    except exc_class as e:
        if message not in str(e):
            logger.error('Expected %s exception with error message: %s',
                         exc_class.__name__, message, exc_info=True)
            raise
        return e
    raise VerificationError('Expected {} to be thrown'.format(exc_class.__name__))


def can_open(target: 'AndroidTarget', path: str, for_write: bool) -> bool:
    """
    Whether the shell can open ``path`` for reading, or for writing. Opening
    for writing truncates the file.
    """
    if for_write:
        command = ': > {}'.format(quote(path))
    else:
        command = 'cat {} > /dev/null'.format(quote(path))
    try:
        target.execute(command)
    except TargetError:
        return False
    return True


def delete_recursively(target: 'AndroidTarget', path: str) -> bool:
    """
    Delete ``path`` and, for a directory, everything below it.

    :returns: Whether ``path`` is gone.
    """
    try:
        target.execute('rm -r -- {}'.format(quote(path)))
    except TargetError as e:
        logger.debug('Could not delete %s: %s', path, e)
    return not target.file_exists(path)
