#
#    Copyright 2024 ARM Limited
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

"""Fixtures shared by the unit tests."""

import re

import pytest

from fusedlib.connection import ConnectionBase
from fusedlib.exception import TargetStableCalledProcessError, TimeoutError
from fusedlib.target import AndroidTarget
from fusedlib.utils.misc import reset_memo_cache


class FakeConnection(ConnectionBase):
    """
    Connection answering shell commands from a table of regex handlers.

    A handler is either the output to return, an exception to raise, or a
    callable taking ``(command, inputtext)``. Handlers registered last win.
    Commands nothing matches print nothing and succeed.
    """

    def __init__(self, device='fake-device', adb_server=None, adb_port=None, **kwargs):
        super().__init__()
        self.device = device
        self.adb_server = adb_server
        self.adb_port = adb_port
        self.handlers = []
        self.commands = []
        self.inputs = []
        self.pushed = []
        self.pulled = []

    def on(self, pattern, result=''):
        self.handlers.insert(0, (re.compile(pattern), result))

    def fail(self, pattern, output='', exit_code=1):
        def _raise(command, _):
            raise TargetStableCalledProcessError(exit_code, command, output, None)
        self.on(pattern, _raise)

    def ran(self, pattern):
        return [c for c in self.commands if re.search(pattern, c)]

    def execute(self, command, timeout=None, check_exit_code=True, as_root=False,
                will_succeed=False, inputtext=None):
        self.commands.append(command)
        self.inputs.append(inputtext)
        for regex, result in self.handlers:
            if regex.search(command):
                break
        else:
            return ''
        try:
            if isinstance(result, BaseException):
                raise result
            if callable(result):
                return result(command, inputtext)
            return result
        except TargetStableCalledProcessError as e:
            if check_exit_code:
                raise
            return e.output or ''

    def push(self, sources, dest, timeout=None):
        self.pushed.append((list(sources), dest))

    def pull(self, sources, dest, timeout=None):
        self.pulled.append((list(sources), dest))

    def _close(self):
        pass


class FakeLogcatMonitor(object):
    """
    Stand-in for :class:`LogcatMonitor` replaying canned log lines.
    ``lines=None`` behaves like a log where nothing ever shows up.
    """

    def __init__(self, lines, regexps=None):
        self.lines = lines
        self.regexps = regexps
        self.started = False
        self.stopped = False
        self.waits = []

    def start(self, outfile=None):
        self.started = True

    def stop(self):
        self.stopped = True

    def wait_for(self, regexp, timeout=30):
        self.waits.append((regexp, timeout))
        matches = [line for line in self.lines or [] if re.match(regexp, line)]
        if not matches:
            raise TimeoutError('logcat wait for {!r}'.format(regexp),
                               output='Logcat monitor timeout ({}s)'.format(timeout))
        return matches


@pytest.fixture(autouse=True)
def memo_cache():
    reset_memo_cache()
    yield
    reset_memo_cache()


@pytest.fixture
def sleeps(monkeypatch):
    """Record ``time.sleep`` calls instead of sleeping."""
    calls = []
    monkeypatch.setattr('time.sleep', calls.append)
    return calls


@pytest.fixture
def target():
    with AndroidTarget(connection_settings={'device': 'fake-device'},
                       conn_cls=FakeConnection) as t:
        t.conn.on(r'^echo \$EXTERNAL_STORAGE$', '/sdcard\n')
        yield t


@pytest.fixture
def conn(target):
    return target.conn
