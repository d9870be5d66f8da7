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
Host-side helpers shared by the rest of fusedlib.
"""
import logging
import os
import subprocess
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import wrapt
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError
from typing_extensions import Literal

from fusedlib.exception import TimeoutError
from fusedlib.utils.annotation_helpers import ShellInput, SubprocessCommand


IgnoredExitCodes = Optional[Union[int, List[int], Literal['all']]]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _decode(data: Union[str, bytes, None], stream) -> str:
    if isinstance(data, bytes):
        # adb may print bytes that are not valid in the locale encoding
        return data.decode(getattr(stream, 'encoding', None) or 'utf-8', 'replace')
    return data or ''


def check_output(command: SubprocessCommand, timeout: Optional[int] = None,
                 ignore: IgnoredExitCodes = None, inputtext: ShellInput = None,
                 **kwargs) -> Tuple[str, str]:
    """
    Run ``command`` on the host and return its decoded ``(stdout, stderr)``.

    The command runs in its own process group and is killed when ``timeout``
    expires.

    :param ignore: Exit code(s) not treated as a failure, or ``'all'``.
    :param inputtext: Data written to the command's stdin.
    :param kwargs: Passed on to :class:`subprocess.Popen`.
    :raises TimeoutError: If the command is still running after ``timeout``.
    :raises subprocess.CalledProcessError: On any other non-zero exit code.
    """
    if isinstance(ignore, int):
        ignore = [ignore]
    elif ignore is None:
        ignore = []
    elif ignore != 'all' and not isinstance(ignore, list):
        raise ValueError('Invalid value for ignore parameter: "{}"; must be an int or a list'
                         .format(ignore))
    if 'stdout' in kwargs:
        raise ValueError('stdout argument not allowed, it will be overridden.')
    if isinstance(inputtext, str):
        inputtext = inputtext.encode('utf-8')

    with subprocess.Popen(command, stdin=subprocess.PIPE, stdout=subprocess.PIPE,
                          stderr=subprocess.PIPE, start_new_session=True, **kwargs) as process:
        try:
            raw_out, raw_err = process.communicate(inputtext, timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            raw_out, raw_err = process.communicate()
            output, error = _decode(raw_out, sys.stdout), _decode(raw_err, sys.stderr)
            raise TimeoutError(command, output='\n'.join([output, error]))

    output, error = _decode(raw_out, sys.stdout), _decode(raw_err, sys.stderr)
    if process.returncode and ignore != 'all' and process.returncode not in ignore:
        raise subprocess.CalledProcessError(process.returncode, command, output, error)
    return output, error


def which(name: str) -> Optional[str]:
    """
    :returns: The path of executable ``name`` on ``PATH``, or ``None``.
    """
    for directory in (os.getenv('PATH') or '').split(os.pathsep):
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def convert_new_lines(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


class LoadSyntaxError(Exception):
    """
    A configuration file is not valid YAML.

    :param filepath: The offending file.
    :param lineno: Line of the error, counting from 1, when known.
    """

    def __init__(self, message: str, filepath: str, lineno: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.filepath = filepath
        self.lineno = lineno

    def __str__(self):
        return 'Syntax Error in {}, line {}:\n\t{}'.format(self.filepath, self.lineno, self.message)


def load_struct_from_yaml(filepath: str) -> Any:
    """
    Load the plain Python structure held in the YAML file ``filepath``.

    :raises LoadSyntaxError: If the file is not valid YAML.
    """
    yaml = YAML(typ='safe', pure=True)
    try:
        with open(filepath, encoding='utf-8') as fh:
            return yaml.load(fh)
    except YAMLError as e:
        mark = getattr(e, 'problem_mark', None)
        lineno = mark.line + 1 if mark is not None else None
        raise LoadSyntaxError(str(e), filepath=filepath, lineno=lineno) from e


_memo_cache: Dict[Tuple, Any] = {}


def reset_memo_cache() -> None:
    _memo_cache.clear()


def _memo_key(obj: Any) -> Tuple:
    # id() alone may be reused by a later object, pair it with the hash
    try:
        return (id(obj), hash(obj))
    except TypeError:
        return (id(obj), type(obj).__name__)


@wrapt.decorator
def memoized(wrapped: Callable[..., Any], instance: Optional[Any],
             args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
    """
    Cache the result of the decorated callable for each combination of
    argument identities. Mutating an argument does not invalidate its entry;
    tests call :func:`reset_memo_cache` between devices.
    """
    key = (repr(wrapped), _memo_key(instance),
           tuple(_memo_key(a) for a in args),
           tuple((k, _memo_key(v)) for k, v in sorted(kwargs.items())))
    if key not in _memo_cache:
        _memo_cache[key] = wrapped(*args, **kwargs)
    return _memo_cache[key]
