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
Test applications and their installation.
"""
import os

from fusedlib.exception import VerificationError, HostError
from fusedlib.permissions import grant_permission, READ_EXTERNAL_STORAGE
from fusedlib.utils.android import ApkInfo
from fusedlib.utils.misc import get_logger

from typing import Optional, TYPE_CHECKING
if TYPE_CHECKING:
    from fusedlib.target import AndroidTarget


logger = get_logger('apps')


class TestApp(object):
    """
    An APK on the host that tests install and drive on the device.

    :param name: Short name used in logs and configuration.
    :param package_name: The Android package of the APK.
    :param apk_path: Host path of the APK.
    :param version_code: Version code the installed package must report.
    """
    __test__ = False  # not a pytest test class

    def __init__(self, name: str, package_name: str, apk_path: str, version_code: int = 1):
        self.name = name
        self.package_name = package_name
        self.apk_path = apk_path
        self.version_code = int(version_code)

    @classmethod
    def from_apk(cls, apk_path: str, name: Optional[str] = None) -> 'TestApp':
        """
        Describe the APK at ``apk_path`` from its own metadata.

        :raises HostError: If the APK cannot be read.
        """
        info = ApkInfo(apk_path)
        if not info.package:
            raise HostError('Could not find the package name of {}'.format(apk_path))
        name = name or os.path.splitext(os.path.basename(apk_path))[0]
        return cls(name, info.package, apk_path, int(info.version_code or 1))

    def __eq__(self, other):
        if not isinstance(other, TestApp):
            return NotImplemented
        return (self.package_name, self.apk_path, self.version_code) == \
               (other.package_name, other.apk_path, other.version_code)

    def __hash__(self):
        return hash((self.package_name, self.apk_path, self.version_code))

    def __str__(self):
        return 'TestApp({}, {})'.format(self.name, self.package_name)

    __repr__ = __str__


def install_app(target: 'AndroidTarget', app: TestApp,
                grant_storage_permission: bool = False) -> None:
    """
    Install ``app``, replacing any copy already on the device.

    :param grant_storage_permission: Also grant ``READ_EXTERNAL_STORAGE``.
    :raises VerificationError: If the device does not report the expected
        version afterwards.
    """
    package = app.package_name
    if target.get_installed_version_code(package) != -1:
        target.uninstall_package(package)
    logger.debug('Installing %s from %s', package, app.apk_path)
    target.install_apk(app.apk_path)
    installed = target.get_installed_version_code(package)
    if installed != app.version_code:
        message = 'Expected {} version {} to be installed, found {}'
        raise VerificationError(message.format(package, app.version_code, installed))
    if grant_storage_permission:
        grant_permission(target, package, READ_EXTERNAL_STORAGE)


def install_app_with_storage_permissions(target: 'AndroidTarget', app: TestApp) -> None:
    install_app(target, app, grant_storage_permission=True)


def uninstall_app(target: 'AndroidTarget', app: TestApp) -> None:
    """
    :raises VerificationError: If ``app`` is still installed afterwards.
    """
    package = app.package_name
    logger.debug('Uninstalling %s', package)
    target.uninstall_package(package)
    installed = target.get_installed_version_code(package)
    if installed != -1:
        raise VerificationError('{} is still installed (version {})'.format(package, installed))


def uninstall_app_no_throw(target: 'AndroidTarget', app: TestApp) -> None:
    """
    :func:`uninstall_app` for cleanup code: failures are only logged.
    """
    try:
        uninstall_app(target, app)
    except Exception:  # pylint: disable=broad-except
        logger.error('Exception occurred while uninstalling app: %s', app, exc_info=True)
