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
Exceptions raised by fusedlib.

Errors are split into *stable* ones, which will keep happening if the
operation is retried, and *transient* ones, which may go away on their own
(e.g. a device dropping off the bus). Verification failures derive from
:class:`AssertionError` so that test runners report them as test failures
rather than errors.
"""
import subprocess
from typing import Optional, Union


class FusedLibError(Exception):
    """
    Base class for all fusedlib exceptions.
    """

    @property
    def message(self) -> Union[str, Exception]:
        if self.args:
            return self.args[0]
        return str(self)


class FusedLibStableError(FusedLibError):
    """Non transient fusedlib errors, that are not expected to go away on their own."""
    pass


class FusedLibTransientError(FusedLibError):
    """Exceptions inheriting from ``FusedLibTransientError`` represent random
    errors that can go away on retry."""
    pass


class TargetError(FusedLibError):
    """An error has occured on the target"""
    pass


class TargetTransientError(TargetError, FusedLibTransientError):
    """Transient target errors that can happen randomly when everything is
    properly configured."""
    pass


class TargetStableError(TargetError, FusedLibStableError):
    """Non-transient target errors that can be linked to a programming error or
    a configuration issue."""
    pass


class TargetNotRespondingError(TargetTransientError):
    """The target is unresponsive."""
    pass


class TargetCalledProcessError(subprocess.CalledProcessError, TargetError):
    """Exception raised when a command executed on the target fails."""
    def __str__(self):
        msg = super().__str__()

        def decode(s):
            try:
                s = s.decode()
            except AttributeError:
                s = str(s)

            return s.strip()

        if self.stdout is not None and self.stderr is None:
            out = ['OUTPUT: {}'.format(decode(self.output))]
        else:
            out = [
                'STDOUT: {}'.format(decode(self.output)) if self.output is not None else '',
                'STDERR: {}'.format(decode(self.stderr)) if self.stderr is not None else '',
            ]

        return '{}\n{}'.format(
            msg,
            '\n'.join(out),
        )


class TargetStableCalledProcessError(TargetCalledProcessError, TargetStableError):
    """Variant of :exc:`fusedlib.exception.TargetCalledProcessError` that is a
    :exc:`fusedlib.exception.TargetStableError`"""
    pass


class TargetTransientCalledProcessError(TargetCalledProcessError, TargetTransientError):
    """Variant of :exc:`fusedlib.exception.TargetCalledProcessError` that is a
    :exc:`fusedlib.exception.TargetTransientError`"""
    pass


class HostError(FusedLibError):
    """An error has occured on the host"""
    pass


class TimeoutError(FusedLibTransientError):
    """Raised when a subprocess command times out. This is basically a
    ``FusedLibError``-derived version of ``subprocess.CalledProcessError``, the
    thinking being that while a timeout could be due to programming error (e.g.
    not setting long enough timers), it is often due to some failure in the
    environment, and there fore should be classed as a "user error"."""

    def __init__(self, command, output: Optional[str] = None):
        super(TimeoutError, self).__init__('Timed out: {}'.format(command))
        self.command = command
        self.output = output

    def __str__(self):
        return '\n'.join([self.message, 'OUTPUT:', self.output or ''])


class ResponseTimeoutError(TimeoutError):
    """
    The remote test application did not report a result within the time
    allowed by the coordinator.
    """
    pass


class RemoteAppError(FusedLibStableError):
    """
    An error reported by a remote test application while performing a request
    on behalf of the harness.

    :param exception_class: Fully qualified class name of the exception raised
        in the remote process, e.g. ``java.io.FileNotFoundException``.
    :param message: The exception message as reported by the remote process.
    """

    def __init__(self, exception_class: str, message: Optional[str] = None):
        super().__init__(message or '')
        self.exception_class = exception_class
        self.remote_message = message

    def __str__(self):
        if self.remote_message:
            return '{}: {}'.format(self.exception_class, self.remote_message)
        return self.exception_class


class VerificationError(AssertionError):
    """A verification helper found the device in an unexpected state."""
    pass


class PollingTimeoutError(VerificationError):
    """A polling waiter gave up before the awaited condition was met."""
    pass
