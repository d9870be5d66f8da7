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
Host-side facade over an Android device.

:class:`AndroidTarget` turns the device operations needed by storage tests
(file system access, package management, runtime permissions, logcat) into
``adb shell`` commands run through a connection object.
"""
import base64
import os
import posixpath
import re
import subprocess
import threading
import time
from shlex import quote

from fusedlib.exception import TargetStableError
from fusedlib.utils.android import (AdbConnection, AndroidProperties, LogcatMonitor,
                                    INTENT_FLAGS, adb_command)
from fusedlib.utils.misc import get_logger, memoized, convert_new_lines

from typing import (Optional, List, Dict, Union, Type, Sequence,
                    TYPE_CHECKING, cast)
if TYPE_CHECKING:
    from fusedlib.connection import ConnectionBase
    from fusedlib.utils.annotation_helpers import (AdbUserConnectionSettings, IntentExtras,
                                                    ShellInput, SubprocessCommand)


PACKAGE_VERSION_REGEX = re.compile(r'package:(?P<name>\S+)\s+versionCode:(?P<code>-?\d+)')
PACKAGE_UID_REGEX = re.compile(r'package:(?P<name>\S+)\s+uid:(?P<uid>\d+)')
# "Uid mode:" or "Package com.example:" on a line of its own opens a section
APP_OP_SCOPE_REGEX = re.compile(r'^\s*(?P<scope>uid|package)(?: mode| \S+)?\s*:\s*$', re.IGNORECASE)
APP_OP_MODE_REGEX = re.compile(r'^\s*(?:(?P<scope>uid|package) mode:\s*)?(?P<op>\w+):\s*(?P<mode>\w+)',
                               re.IGNORECASE)

# "pm grant" failures that just mean the permission cannot be granted to
# this package, as opposed to the command being broken.
IGNORED_GRANT_ERRORS = (
    'is not a changeable permission type',
    'Unknown permission',
    'has not requested permission',
    'Operation not allowed',
    'is managed by role',
)


def parse_app_op_modes(output: str) -> Dict[str, Dict[str, str]]:
    """
    Parse ``appops get`` output into ``{op: {scope: mode}}``, ``scope`` being
    ``uid`` or ``package``. Ops listed outside of a uid section are package
    modes.
    """
    modes: Dict[str, Dict[str, str]] = {}
    scope = 'package'
    for line in convert_new_lines(output).split('\n'):
        section = APP_OP_SCOPE_REGEX.match(line)
        if section:
            scope = section.group('scope').lower()
            continue
        match = APP_OP_MODE_REGEX.match(line)
        if match:
            line_scope = (match.group('scope') or scope).lower()
            modes.setdefault(match.group('op').upper(), {})[line_scope] = match.group('mode').lower()
    return modes


class AndroidTarget(object):
    """
    An Android device reached through ``adb``.

    :param connection_settings: Keyword arguments for ``conn_cls``, e.g.
        ``{'device': 'emulator-5554'}``.
    :param connect: If ``True``, connect immediately, else call :meth:`connect`
        manually.
    :param conn_cls: The connection class, :class:`AdbConnection` by default.
    :param working_directory: A writable directory on the device used to stage
        files. Defaults to ``/data/local/tmp``.
    """
    @property
    def adb_name(self) -> Optional[str]:
        """
        The serial of the device, or ``None`` for a non-adb connection.
        """
        return getattr(self.conn, 'device', None)

    @property
    def adb_server(self) -> Optional[str]:
        return getattr(self.conn, 'adb_server', None)

    @property
    def adb_port(self) -> Optional[int]:
        return getattr(self.conn, 'adb_port', None)

    @property
    @memoized
    def external_storage(self) -> str:
        """
        The primary shared storage directory (``$EXTERNAL_STORAGE``), usually
        ``/sdcard`` or ``/storage/emulated/0``.
        """
        return self.execute('echo $EXTERNAL_STORAGE').strip()

    @property
    def is_connected(self) -> bool:
        return self.conn is not None

    def __init__(self,
                 connection_settings: Optional['AdbUserConnectionSettings'] = None,
                 connect: bool = True,
                 conn_cls: Type['ConnectionBase'] = AdbConnection,
                 working_directory: Optional[str] = None,
                 ):
        self.connection_settings: Dict = dict(connection_settings or {})
        self.conn_cls = conn_cls
        self.working_directory = working_directory or '/data/local/tmp'
        self.logger = get_logger(self.__class__.__name__)
        self.conn: Optional['ConnectionBase'] = None
        self.clear_logcat_lock = threading.Lock()
        if connect:
            self.connect()

    def connect(self) -> None:
        """
        Open the connection described by :attr:`connection_settings`.
        """
        if self.conn is not None:
            return
        self.logger.debug('Connecting using %s', self.conn_cls.__name__)
        self.conn = self.conn_cls(**self.connection_settings)

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    disconnect = close

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()

    def _adb_command(self, command: str, timeout: Optional[int] = None) -> str:
        try:
            return adb_command(self.adb_name, command, timeout=timeout,
                               adb_server=self.adb_server, adb_port=self.adb_port)
        except subprocess.CalledProcessError as e:
            raise TargetStableError('"adb {}" failed with exit code {}:\n{}'
                                    .format(command, e.returncode, e.output))

    def _get_conn(self) -> 'ConnectionBase':
        if self.conn is None:
            raise TargetStableError('Target is not connected; call connect() first')
        return self.conn

    # shell

    def execute(self, command: 'SubprocessCommand', timeout: Optional[int] = None,
                check_exit_code: bool = True, as_root: bool = False,
                will_succeed: bool = False,
                inputtext: 'ShellInput' = None) -> str:
        """
        Run ``command`` in a shell on the device and return its output.

        :raises TargetStableError: If the command fails and ``check_exit_code``
            is set.
        """
        return self._get_conn().execute(command, timeout=timeout,
                                        check_exit_code=check_exit_code,
                                        as_root=as_root, will_succeed=will_succeed,
                                        inputtext=inputtext)

    def getprop(self, prop: Optional[str] = None) -> Optional[Union[str, AndroidProperties]]:
        """
        Return the value of system property ``prop``, or every property when
        ``prop`` is omitted.
        """
        props = AndroidProperties(self.execute('getprop'))
        if prop:
            return props[prop]
        return props

    def get_sdk_version(self) -> Optional[int]:
        try:
            return int(cast(str, self.getprop('ro.build.version.sdk')))
        except (ValueError, TypeError):
            return None

    # file system

    def file_exists(self, filepath: str) -> bool:
        command = 'if [ -e {} ]; then echo 1; else echo 0; fi'
        output: str = self.execute(command.format(quote(filepath)))
        return output.split()[-1] == '1'

    def directory_exists(self, filepath: str) -> bool:
        command = 'if [ -d {} ]; then echo 1; else echo 0; fi'
        output: str = self.execute(command.format(quote(filepath)))
        return output.split()[-1] == '1'

    def list_directory(self, path: str, as_root: bool = False) -> List[str]:
        """
        :returns: The names of the entries of directory ``path``.
        :raises TargetStableError: If ``path`` cannot be listed.
        """
        contents = self.execute('ls -1 {}'.format(quote(path)), as_root=as_root)
        return [x.strip() for x in contents.split('\n') if x.strip()]

    def mkdir(self, path: str) -> bool:
        """
        Create a single directory.

        :returns: ``False`` if the directory could not be created, for
            instance because it already exists or access was denied.
        """
        try:
            self.execute('mkdir {}'.format(quote(path)))
        except TargetStableError as e:
            self.logger.debug('mkdir %s failed: %s', path, e)
            return False
        return True

    def remove(self, path: str, as_root: bool = False) -> None:
        self.execute('rm -rf -- {}'.format(quote(path)), as_root=as_root)

    def rename(self, source: str, dest: str) -> bool:
        """
        Move ``source`` to ``dest``.

        :returns: Whether the rename happened. A rename refused by the device
            is reported as ``False`` rather than raised.
        """
        try:
            self.execute('mv -- {} {}'.format(quote(source), quote(dest)))
        except TargetStableError as e:
            self.logger.debug('Rename of %s to %s failed: %s', source, dest, e)
            return False
        return True

    def read_file(self, path: str) -> bytes:
        """
        :returns: The raw content of ``path``.
        :raises TargetStableError: If the file cannot be read.
        """
        output = self.execute('base64 {}'.format(quote(path)))
        return base64.b64decode(''.join(output.split()))

    def write_file(self, path: str, data: Union[str, bytes]) -> None:
        """
        Replace the content of ``path`` with ``data``.
        """
        if isinstance(data, str):
            data = data.encode('utf-8')
        self.execute('base64 -d > {}'.format(quote(path)),
                     inputtext=base64.b64encode(data))

    def push(self, source: str, dest: str, timeout: Optional[int] = None) -> None:
        self._get_conn().push([source], dest, timeout=timeout)

    def pull(self, source: str, dest: str, timeout: Optional[int] = None) -> None:
        self._get_conn().pull([source], dest, timeout=timeout)

    # packages

    def list_packages(self) -> List[str]:
        output: str = self.execute('pm list packages')
        output = output.replace('package:', '')
        return output.split()

    def package_is_installed(self, package_name: str) -> bool:
        return package_name in self.list_packages()

    def get_installed_version_code(self, package: str) -> int:
        """
        :returns: The version code of the installed ``package``, or ``-1`` if
            it is not installed.
        """
        output = self.execute('pm list packages --show-versioncode {}'.format(quote(package)))
        for match in PACKAGE_VERSION_REGEX.finditer(output):
            if match.group('name') == package:
                return int(match.group('code'))
        return -1

    def get_package_uid(self, package: str) -> int:
        """
        :raises TargetStableError: If ``package`` is not installed.
        """
        output = self.execute('pm list packages -U {}'.format(quote(package)))
        for match in PACKAGE_UID_REGEX.finditer(output):
            if match.group('name') == package:
                return int(match.group('uid'))
        raise TargetStableError('Package {} is not installed'.format(package))

    def install_apk(self, filepath: str, timeout: Optional[int] = None, replace: bool = False,
                    allow_downgrade: bool = False, grant_permissions: bool = False) -> str:
        """
        Install an APK from the host. Over adb this is ``adb install``,
        otherwise the file is pushed to :attr:`working_directory` and
        installed with ``pm install``.

        :param replace: Pass ``-r`` to replace an installed copy.
        :param allow_downgrade: Pass ``-d`` to allow a lower version code.
        :param grant_permissions: Pass ``-g`` to grant every runtime
            permission the APK requests.
        :raises TargetStableError: If the file is not an APK.
        """
        ext: str = os.path.splitext(filepath)[1].lower()
        if ext != '.apk':
            raise TargetStableError('Can\'t install {}: unsupported format.'.format(filepath))
        flags: List[str] = []
        if replace:
            flags.append('-r')
        if allow_downgrade:
            flags.append('-d')
        if grant_permissions:
            flags.append('-g')
        self.logger.debug("Replace APK = {}, ADB flags = '{}'".format(replace, ' '.join(flags)))
        if isinstance(self.conn, AdbConnection):
            return self._adb_command("install {} {}".format(' '.join(flags), quote(filepath)),
                                     timeout=timeout)
        dev_path: str = posixpath.join(self.working_directory, os.path.basename(filepath))
        self.push(filepath, dev_path, timeout=timeout)
        try:
            return self.execute("pm install {} {}".format(' '.join(flags), quote(dev_path)),
                                timeout=timeout)
        finally:
            self.remove(dev_path)

    def uninstall_package(self, package: str) -> None:
        if isinstance(self.conn, AdbConnection):
            self._adb_command("uninstall {}".format(quote(package)), timeout=30)
        else:
            self.execute("pm uninstall {}".format(quote(package)), timeout=30)

    def force_stop(self, package: str) -> None:
        """
        Kill every process of ``package``. Returns once the package manager
        has had a second to settle.
        """
        self.execute('am force-stop {}'.format(quote(package)))
        time.sleep(1)

    def start_activity(self, package: str, action: Optional[str] = None,
                       categories: Sequence[str] = (), flags: Sequence[str] = (),
                       extras: Optional['IntentExtras'] = None) -> str:
        """
        ``am start`` an intent restricted to ``package``.

        :param flags: Names from :data:`INTENT_FLAGS`, OR'ed together.
        :param extras: String extras put on the intent.
        :raises TargetStableError: If no activity handles the intent.
        """
        parts: List[str] = ['am', 'start']
        if action:
            parts += ['-a', quote(action)]
        for category in categories:
            parts += ['-c', quote(category)]
        parts += ['-p', quote(package)]
        if flags:
            value = 0
            for flag in flags:
                value |= INTENT_FLAGS[flag]
            parts += ['-f', '0x{:08x}'.format(value)]
        for key, val in (extras or {}).items():
            parts += ['--es', quote(key), quote(val)]
        return self.execute(' '.join(parts))

    # permissions

    def grant_package_permission(self, package: str, permission: str) -> None:
        """
        ``pm grant`` a runtime permission. Failures meaning that the permission
        does not apply to the package are ignored.
        """
        try:
            self.execute('pm grant {} {}'.format(quote(package), quote(permission)))
        except TargetStableError as e:
            text = str(e)
            if not any(reason in text for reason in IGNORED_GRANT_ERRORS):
                raise
            self.logger.debug('Not granting %s to %s: %s', permission, package, text)

    def revoke_package_permission(self, package: str, permission: str) -> None:
        self.execute('pm revoke {} {}'.format(quote(package), quote(permission)))

    def is_permission_granted(self, package: str, permission: str) -> bool:
        """
        Whether ``dumpsys package`` reports ``permission`` as granted to
        ``package``.
        """
        output = convert_new_lines(self.execute('dumpsys package {}'.format(quote(package))))
        regex = re.compile(r'{}: granted=(true|false)'.format(re.escape(permission)))
        return any(m.group(1) == 'true' for m in regex.finditer(output))

    def get_app_op_mode(self, package: str, op: str) -> str:
        """
        :param op: App op name, either ``READ_EXTERNAL_STORAGE`` or
            ``android:read_external_storage``.
        :returns: The effective mode of ``op`` for ``package`` (``allow``,
            ``ignore``, ``deny``, ...), ``default`` when none is set. A uid
            mode other than ``allow`` overrides the package mode.
        """
        output = self.execute('appops get {} {}'.format(quote(package), quote(op)))
        modes = parse_app_op_modes(output).get(op.split(':')[-1].upper(), {})
        uid_mode = modes.get('uid')
        if uid_mode is not None and uid_mode != 'allow':
            return uid_mode
        return modes.get('package') or uid_mode or 'default'

    def set_uid_app_op_mode(self, uid: int, op: str, mode: str) -> None:
        self.execute('appops set {} {} {}'.format(int(uid), quote(op), quote(mode)))

    # storage

    def get_external_storage_state(self) -> str:
        """
        :returns: The state of the primary emulated volume, e.g. ``mounted``
            or ``unmounted``; ``unknown`` if the volume is not listed.
        """
        output = self.execute('sm list-volumes emulated')
        for line in convert_new_lines(output).split('\n'):
            parts = line.split()
            if len(parts) >= 2 and parts[0].startswith('emulated'):
                return parts[1]
        return 'unknown'

    # logcat

    def clear_logcat(self) -> None:
        """
        ``logcat -c``. A clear already in progress in another thread is not
        repeated.
        """
        locked = self.clear_logcat_lock.acquire(blocking=False)
        if locked:
            try:
                if isinstance(self.conn, AdbConnection):
                    self._adb_command('logcat -c', timeout=30)
                else:
                    self.execute('logcat -c', timeout=30)
            finally:
                self.clear_logcat_lock.release()

    def get_logcat_monitor(self, regexps: Optional[List[str]] = None) -> LogcatMonitor:
        return LogcatMonitor(self, regexps)
