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
Host-side plumbing for talking to Android devices through adb: locating the
SDK tools, running shell commands with their exit status, connection
bookkeeping, APK metadata and following logcat.
"""
import glob
import os
import re
import subprocess
import tempfile
import threading
import time
from collections import Counter, namedtuple
from shlex import quote

import pexpect

from fusedlib.connection import ConnectionBase
from fusedlib.exception import (TargetTransientError, TargetStableError, HostError,
                                TargetNotRespondingError,
                                TargetTransientCalledProcessError, TargetStableCalledProcessError,
                                TimeoutError)
from fusedlib.utils.misc import check_output, which, get_logger, convert_new_lines

from typing import Dict, IO, List, Optional, Tuple, TYPE_CHECKING
if TYPE_CHECKING:
    from threading import Lock
    from pexpect import spawn
    from fusedlib.target import AndroidTarget
    from fusedlib.utils.annotation_helpers import ShellInput, SubprocessCommand


logger = get_logger('android')

CONNECT_ATTEMPTS = 5
CONNECT_RETRY_INTERVAL = 10

AM_START_ERROR = re.compile(r'Error: Activity.*')
AAPT2_BADGING_USAGE = re.compile(r'no dump ((file)|(apk)) specified', re.IGNORECASE)

EXIT_CODE_MARKER = '__fusedlib_exit_code='
_SHELL_RESULT_RE = re.compile(r'^(?P<output>.*?)\n?' + re.escape(EXIT_CODE_MARKER) +
                              r'(?P<code>\d+)\s*\Z', re.DOTALL)

# See https://developer.android.com/reference/android/content/Intent.html#setFlags(int)
INTENT_FLAGS: Dict[str, int] = {
    'ACTIVITY_NEW_TASK': 0x10000000,
    'ACTIVITY_CLEAR_TASK': 0x00008000,
}


AdbDevice = namedtuple('AdbDevice', ['serial', 'state'])
AdbDevice.__doc__ = 'One line of ``adb devices`` output.'


class AndroidProperties(dict):
    """
    System properties parsed from ``getprop`` output. Unknown properties read
    as ``None``.
    """
    _PROPERTY_RE = re.compile(r'^\[(?P<name>[^\]]+)\]:\s*\[(?P<value>.*)\]\s*$', re.MULTILINE)

    def __init__(self, text: str = ''):
        super().__init__((m.group('name'), m.group('value'))
                         for m in self._PROPERTY_RE.finditer(convert_new_lines(text)))

    def __missing__(self, name: str) -> None:
        return None


class ApkInfo(object):
    """
    Package metadata of an APK, from ``aapt dump badging``.

    :param path: Host path of the APK. When given, it is read straight away.
    """
    _FIELD_RE = re.compile(r"(?P<key>[\w-]+)='(?P<value>[^']*)'")

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.package: Optional[str] = None
        self.version_code: Optional[str] = None
        self.version_name: Optional[str] = None
        self.label: Optional[str] = None
        self.activity: Optional[str] = None
        self.permissions: List[str] = []
        if path:
            self.parse(path)

    def parse(self, apk_path: str) -> None:
        """
        :raises HostError: If aapt is missing or cannot read ``apk_path``.
        """
        aapt = ANDROID_TOOLS.get('aapt')
        if not aapt:
            raise HostError('aapt is needed to read {}; install the Android build tools'
                            .format(apk_path))
        try:
            output, _ = check_output([aapt, 'dump', 'badging', apk_path], timeout=60)
        except subprocess.CalledProcessError as e:
            raise HostError('Could not read {}:\n{}'.format(apk_path, e.output)) from e
        self.parse_badging(output)

    def parse_badging(self, output: str) -> None:
        for line in convert_new_lines(output).split('\n'):
            kind, sep, rest = line.partition(':')
            if not sep:
                continue
            fields = dict(self._FIELD_RE.findall(rest))
            if kind == 'package':
                self.package = fields.get('name')
                self.version_code = fields.get('versionCode')
                self.version_name = fields.get('versionName')
            elif kind == 'application-label':
                self.label = rest.strip().strip("'")
            elif kind == 'launchable-activity':
                self.activity = fields.get('name')
            elif kind == 'uses-permission' and 'name' in fields:
                self.permissions.append(fields['name'])


class AdbConnection(ConnectionBase):
    """
    Shell access to a device through ``adb``.

    :param device: Serial of the device, or ``host:port`` for adb over the
        network. When omitted, the only connected device is used.
    :param timeout: Seconds to wait for a device to show up when ``device``
        is omitted.
    :param adb_server: Host of the adb server to use.
    :param adb_port: Port of the adb server to use.
    :param adb_as_root: Restart adbd as root for the lifetime of the
        connection.
    :param connection_attempts: How many times to retry, 10 seconds apart,
        before giving up on the device.
    :raises HostError: If the device cannot be reached.
    """
    # Connections per device; "adb disconnect" waits for the last one.
    users: Tuple['Lock', Counter] = (threading.Lock(), Counter())
    default_timeout: int = 10
    su_cmd: str = 'su -c {}'

    def __init__(self, device: Optional[str] = None, timeout: Optional[int] = None,
                 adb_server: Optional[str] = None, adb_port: Optional[int] = None,
                 adb_as_root: bool = False, connection_attempts: int = CONNECT_ATTEMPTS):
        super().__init__()
        self._counted = False
        self.timeout = self.default_timeout if timeout is None else timeout
        self.adb_server = adb_server
        self.adb_port = adb_port
        self.adb_as_root = adb_as_root
        self.device = device or adb_get_device(timeout=timeout, adb_server=adb_server,
                                               adb_port=adb_port)
        self.logger.debug('Connecting to %s (server=%s port=%s root=%s)',
                          self.device, adb_server, adb_port, adb_as_root)

        lock, users = AdbConnection.users
        with lock:
            users[self.device] += 1
        self._counted = True

        if adb_as_root:
            self.adb('root', timeout=30)
        adb_connect(self.device, attempts=connection_attempts,
                    adb_server=adb_server, adb_port=adb_port)

    @property
    def name(self) -> str:
        return self.device

    def adb(self, command: str, timeout: Optional[int] = None) -> str:
        """
        Run an ``adb`` subcommand against this device.
        """
        return adb_command(self.device, command, timeout=timeout,
                           adb_server=self.adb_server, adb_port=self.adb_port)

    def push(self, sources: List[str], dest: str, timeout: Optional[int] = None) -> None:
        self._transfer('push', sources, dest, timeout)

    def pull(self, sources: List[str], dest: str, timeout: Optional[int] = None) -> None:
        self._transfer('pull', sources, dest, timeout)

    def _transfer(self, direction: str, sources: List[str], dest: str,
                  timeout: Optional[int]) -> None:
        # adb globs its arguments after the host shell unquotes them
        paths = ' '.join(quote(glob.escape(p)) for p in [*sources, dest])
        self.adb('{} {}'.format(direction, paths), timeout=timeout)

    def execute(self, command: 'SubprocessCommand', timeout: Optional[int] = None,
                check_exit_code: bool = True, as_root: Optional[bool] = False,
                will_succeed: bool = False, inputtext: 'ShellInput' = None) -> str:
        """
        Run ``command`` with ``adb shell``.

        :param will_succeed: The command is expected to work, so a failure is
            reported as transient.
        :returns: The output of the command.
        :raises TargetStableCalledProcessError: If the command exits with a
            non-zero status (``TargetTransientCalledProcessError`` with
            ``will_succeed``).
        """
        try:
            return adb_shell(self.device, command, timeout=timeout,
                             check_exit_code=check_exit_code,
                             as_root=bool(as_root) and not self.adb_as_root,
                             adb_server=self.adb_server, adb_port=self.adb_port,
                             su_cmd=self.su_cmd, inputtext=inputtext)
        except subprocess.CalledProcessError as e:
            error_cls = (TargetTransientCalledProcessError if will_succeed
                         else TargetStableCalledProcessError)
            raise error_cls(e.returncode, command, e.output, e.stderr) from e
        except TargetStableError as e:
            if will_succeed:
                raise TargetTransientError(e) from e
            raise

    def _close(self) -> None:
        if not self._counted:
            return
        lock, users = AdbConnection.users
        with lock:
            users[self.device] -= 1
            last = users[self.device] <= 0
            if last:
                del users[self.device]
        if last:
            if self.adb_as_root:
                self.adb('unroot', timeout=30)
            adb_disconnect(self.device, self.adb_server, self.adb_port)


def _adb_args(device: Optional[str], adb_server: Optional[str],
              adb_port: Optional[int]) -> List[str]:
    args = [ANDROID_TOOLS.get('adb')]
    if adb_server is not None:
        args += ['-H', adb_server]
    if adb_port is not None:
        args += ['-P', str(adb_port)]
    if device is not None:
        args += ['-s', device]
    return args


def get_adb_command(device: Optional[str], command: str, adb_server: Optional[str] = None,
                    adb_port: Optional[int] = None) -> str:
    """
    An ``adb`` command line for the host shell, running in the C locale.
    ``command`` is appended as is.
    """
    args = ' '.join(quote(arg) for arg in _adb_args(device, adb_server, adb_port))
    return 'LC_ALL=C {} {}'.format(args, command)


def adb_command(device: Optional[str], command: str, timeout: Optional[int] = None,
                adb_server: Optional[str] = None, adb_port: Optional[int] = None) -> str:
    """
    Run an ``adb`` subcommand such as ``install -r app.apk``.

    :returns: Its standard output.
    :raises subprocess.CalledProcessError: If adb fails.
    """
    full_command = get_adb_command(device, command, adb_server, adb_port)
    logger.debug(full_command)
    output, _ = check_output(full_command, timeout, shell=True)
    return output


def adb_shell(device: Optional[str], command: 'SubprocessCommand', timeout: Optional[int] = None,
              check_exit_code: bool = False, as_root: bool = False,
              adb_server: Optional[str] = None, adb_port: Optional[int] = None,
              su_cmd: str = 'su -c {}', inputtext: 'ShellInput' = None) -> str:
    """
    Run ``command`` in ``adb shell`` and return what it printed.

    :param check_exit_code: Raise if the command fails.
    :param as_root: Wrap the command in ``su_cmd``.
    :param inputtext: Data fed to the command's stdin.
    :raises subprocess.CalledProcessError: If ``check_exit_code`` is set and
        the command exits with a non-zero status.
    :raises TargetStableError: If adb itself fails, or ``am start`` could not
        resolve the activity.
    :raises TargetNotRespondingError: If adb went away before the command
        reported its exit status.
    :returns: The command's stdout. Anything it wrote to stderr is only
        logged.
    """
    # Older adb releases exit with 0 whatever the command returned, so the
    # status is printed after the output instead.
    wrapped = '({}); echo "{}$?"'.format(command, EXIT_CODE_MARKER)
    if as_root:
        wrapped = su_cmd.format(quote(wrapped))
    parts = _adb_args(device, adb_server, adb_port) + ['shell', wrapped]
    logger.debug(' '.join(quote(part) for part in parts))

    try:
        raw_output, error = check_output(parts, timeout, env=dict(os.environ, LC_ALL='C'),
                                         inputtext=inputtext)
    except subprocess.CalledProcessError as e:
        raise TargetStableError(str(e)) from e

    raw_output = convert_new_lines(raw_output)
    match = _SHELL_RESULT_RE.match(raw_output)
    if match:
        output: str = match.group('output')
        exit_code: Optional[int] = int(match.group('code'))
    else:
        output, exit_code = raw_output.rstrip('\n'), None

    if check_exit_code:
        if exit_code:
            raise subprocess.CalledProcessError(exit_code, command, output, error)
        am_error = AM_START_ERROR.search(output) or AM_START_ERROR.search(error or '')
        if am_error:
            raise TargetStableError('Could not start activity; got the following:\n{}'
                                    .format(am_error.group(0)))
        if exit_code is None:
            raise TargetNotRespondingError('adb returned without an exit code; was the server '
                                           'killed?\nOUTPUT:\n{}\nSTDERR:\n{}'.format(raw_output, error))

    if error:
        logger.debug('stderr: %s', error)
    return output


def adb_list_devices(adb_server: Optional[str] = None,
                     adb_port: Optional[int] = None) -> List[AdbDevice]:
    output = adb_command(None, 'devices', adb_server=adb_server, adb_port=adb_port)
    devices = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) == 2:
            devices.append(AdbDevice(*fields))
    return devices


def adb_get_device(timeout: Optional[int] = None, adb_server: Optional[str] = None,
                   adb_port: Optional[int] = None) -> str:
    """
    :returns: The serial of the only device ready for use.
    :param timeout: Seconds to wait for one to show up, ``None`` to wait
        forever.
    :raises HostError: If none shows up in time, or several are connected.
    """
    # Start the server up front so its banner does not end up in the listing
    adb_command(None, 'start-server', adb_server=adb_server, adb_port=adb_port)

    deadline = None if timeout is None else time.time() + timeout
    while True:
        ready = [d.serial for d in adb_list_devices(adb_server, adb_port) if d.state == 'device']
        if len(ready) == 1:
            return ready[0]
        if ready:
            raise HostError('Found {} devices ({}); pass the serial of the one to use'
                            .format(len(ready), ', '.join(ready)))
        if deadline is not None and time.time() > deadline:
            raise HostError('No device is connected and available')
        time.sleep(1)


def adb_connect(device: Optional[str], timeout: Optional[int] = None,
                attempts: int = CONNECT_ATTEMPTS, adb_server: Optional[str] = None,
                adb_port: Optional[int] = None) -> None:
    """
    Wait until ``device`` answers shell commands, running ``adb connect``
    first for devices on the network.

    :raises HostError: If it still does not answer after ``attempts``
        retries.
    """
    output = None
    for attempt in range(attempts + 1):
        if attempt:
            time.sleep(CONNECT_RETRY_INTERVAL)
        if device and '.' in device:
            # A network device dropped by the remote end lingers in the
            # device list and makes adb block.
            adb_disconnect(device, adb_server, adb_port)
            try:
                output = adb_command(None, 'connect {}'.format(quote(device)), timeout=timeout,
                                     adb_server=adb_server, adb_port=adb_port)
            except subprocess.CalledProcessError as e:
                output = e.output
        if _ping(device, adb_server, adb_port):
            return
    message = 'Could not connect to {} at {}:{}'.format(device or 'a device', adb_server, adb_port)
    if output:
        message += '; got: {}'.format(output.strip())
    raise HostError(message)


def adb_disconnect(device: Optional[str], adb_server: Optional[str] = None,
                   adb_port: Optional[int] = None) -> None:
    """
    ``adb disconnect`` a network device. USB devices are left alone.
    """
    if not device or ':' not in device:
        return
    if device not in [d.serial for d in adb_list_devices(adb_server, adb_port)]:
        return
    try:
        adb_command(None, 'disconnect {}'.format(quote(device)),
                    adb_server=adb_server, adb_port=adb_port)
    except subprocess.CalledProcessError as e:
        raise TargetTransientError('Could not disconnect {}: {}'.format(device, e.output)) from e


def _ping(device: Optional[str], adb_server: Optional[str] = None,
          adb_port: Optional[int] = None) -> bool:
    try:
        adb_command(device, 'shell {}'.format(quote('ls /data/local/tmp > /dev/null')),
                    timeout=30, adb_server=adb_server, adb_port=adb_port)
    except (subprocess.CalledProcessError, TimeoutError) as e:
        logger.debug('adb ping of %s failed: %s', device, e)
        return False
    return True


class _HostTools(object):
    """
    Host paths of ``adb`` and of an aapt able to dump badging, found from
    ``ANDROID_HOME`` or ``PATH`` on first use. A missing aapt only matters
    to :class:`ApkInfo`.
    """

    def __init__(self):
        self._paths: Optional[Dict[str, Optional[str]]] = None

    def get(self, name: str) -> Optional[str]:
        if self._paths is None:
            self._paths = self._discover()
        return self._paths[name]

    @classmethod
    def _discover(cls) -> Dict[str, Optional[str]]:
        android_home = os.getenv('ANDROID_HOME')
        if android_home:
            adb: Optional[str] = os.path.join(android_home, 'platform-tools', 'adb')
        else:
            adb = which('adb')
            if not adb:
                raise HostError('ANDROID_HOME is not set and adb is not in PATH. '
                                'Have you installed the Android SDK?')
            android_home = os.path.dirname(os.path.dirname(adb))
        logger.debug('Using adb from %s', adb)
        return {'adb': adb, 'aapt': cls._find_aapt(os.path.join(android_home, 'build-tools'))}

    @classmethod
    def _find_aapt(cls, build_tools: str) -> Optional[str]:
        candidates: List[Optional[str]] = []
        if os.path.isdir(build_tools):
            for version in sorted(os.listdir(build_tools), reverse=True):
                candidates.append(os.path.join(build_tools, version, 'aapt2'))
                candidates.append(os.path.join(build_tools, version, 'aapt'))
        candidates += [which('aapt2'), which('aapt')]

        for path in candidates:
            if not path or not os.path.isfile(path):
                continue
            if os.path.basename(path) == 'aapt2' and not cls._has_badging(path):
                continue
            return path
        logger.debug('aapt not found; APK metadata will not be available')
        return None

    @staticmethod
    def _has_badging(aapt2: str) -> bool:
        # Only an aapt2 that knows "dump badging" complains about the
        # missing file.
        _, error = check_output([aapt2, 'dump', 'badging'], timeout=30, ignore='all')
        return bool(AAPT2_BADGING_USAGE.search(error))


class LogcatMonitor(object):
    """
    Follows the device log from the host.

    Lines are copied to a log file as they are read, so :meth:`wait_for`
    first looks through what was already captured.

    :param target: The :class:`~fusedlib.target.AndroidTarget` to follow.
    :param regexps: Only lines matching one of these are sent to the host.
    :param logcat_format: Output format, passed to ``logcat -v``.
    """
    read_size = 8 * 1024

    def __init__(self, target: 'AndroidTarget', regexps: Optional[List[str]] = None,
                 logcat_format: Optional[str] = None):
        self.target = target
        self.regexps = list(regexps or [])
        self.logcat_format = logcat_format
        self._process: Optional['spawn'] = None
        self._logfile: Optional[IO[str]] = None

    @property
    def logfile(self) -> Optional[IO[str]]:
        return self._logfile

    def _logcat_command(self) -> str:
        command = 'logcat'
        if self.logcat_format:
            command += ' -v {}'.format(quote(self.logcat_format))
        if self.regexps:
            pattern = '|'.join(self.regexps)
            if len(self.regexps) > 1:
                pattern = '({})'.format(pattern)
            # logcat -e appeared after Android 6.0
            if (self.target.get_sdk_version() or 0) > 23:
                command += ' -e {}'.format(quote(pattern))
            else:
                command += ' | grep {}'.format(quote(pattern))
        adb = get_adb_command(self.target.adb_name, command,
                              self.target.adb_server, self.target.adb_port)
        return '/bin/bash -c {}'.format(quote(adb))

    def start(self, outfile: Optional[str] = None) -> None:
        """
        Clear the device log and follow it into ``outfile``, or into a
        temporary file.
        """
        self._logfile = open(outfile, 'w') if outfile else tempfile.NamedTemporaryFile(mode='w')
        self.target.clear_logcat()
        command = self._logcat_command()
        logger.debug('Following logcat: %s', command)
        self._process = pexpect.spawn(command, logfile=self._logfile, encoding='utf-8')

    def stop(self) -> None:
        self.flush_log()
        if self._process is not None:
            self._process.terminate()
        if self._logfile is not None:
            self._logfile.close()

    def flush_log(self) -> None:
        # pexpect only reads while expecting, drain what is already waiting.
        # A short read means we caught up.
        if self._process is not None:
            try:
                while len(self._process.read_nonblocking(self.read_size, timeout=0)) == self.read_size:
                    pass
            except (pexpect.TIMEOUT, pexpect.EOF):
                pass
        if self._logfile is not None and not self._logfile.closed:
            self._logfile.flush()

    def get_log(self) -> List[str]:
        """
        :returns: Every line captured so far.
        """
        self.flush_log()
        if self._logfile is None:
            return []
        with open(self._logfile.name) as fh:
            return fh.readlines()

    def search(self, regexp: str) -> List[str]:
        return [line for line in self.get_log() if re.match(regexp, line)]

    def wait_for(self, regexp: str, timeout: Optional[int] = 30) -> List[str]:
        """
        Wait for a line matching ``regexp``.

        :param timeout: Seconds to wait, ``None`` to wait forever.
        :returns: The matching lines. When some were already captured, those
            are returned without waiting.
        :raises TimeoutError: If no line matches in time.
        """
        log = self.get_log()
        matches = [line for line in log if re.match(regexp, line)]
        if matches or self._process is None:
            return matches

        try:
            self._process.expect(regexp, timeout=timeout)
        except pexpect.TIMEOUT as e:
            raise TimeoutError('logcat wait for {!r}'.format(regexp),
                               output='Logcat monitor timeout ({}s)'.format(timeout)) from e
        except pexpect.EOF as e:
            raise TargetTransientError('logcat exited while waiting for {!r}'.format(regexp)) from e

        return [line for line in self.get_log()[len(log):] if re.match(regexp, line)]


ANDROID_TOOLS = _HostTools()
