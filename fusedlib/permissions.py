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
Runtime permission and app op helpers.
"""
import time

from fusedlib.utils.misc import get_logger

from typing import Dict, Optional, TYPE_CHECKING
if TYPE_CHECKING:
    from fusedlib.target import AndroidTarget


logger = get_logger('permissions')

READ_EXTERNAL_STORAGE = 'android.permission.READ_EXTERNAL_STORAGE'
WRITE_EXTERNAL_STORAGE = 'android.permission.WRITE_EXTERNAL_STORAGE'
MANAGE_EXTERNAL_STORAGE = 'android.permission.MANAGE_EXTERNAL_STORAGE'

MODE_ALLOWED = 'allow'
MODE_IGNORED = 'ignore'
MODE_ERRORED = 'deny'
MODE_DEFAULT = 'default'

# Time for the app op backing a permission to catch up with a grant.
GRANT_SETTLE_DELAY = 1

# Runtime permissions that are gated by an app op, and that op.
PERMISSION_APP_OPS: Dict[str, str] = {
    READ_EXTERNAL_STORAGE: 'android:read_external_storage',
    WRITE_EXTERNAL_STORAGE: 'android:write_external_storage',
    MANAGE_EXTERNAL_STORAGE: 'android:manage_external_storage',
    'android.permission.ACCESS_MEDIA_LOCATION': 'android:access_media_location',
    'android.permission.READ_MEDIA_AUDIO': 'android:read_media_audio',
    'android.permission.READ_MEDIA_VIDEO': 'android:read_media_video',
    'android.permission.READ_MEDIA_IMAGES': 'android:read_media_images',
    'android.permission.CAMERA': 'android:camera',
    'android.permission.RECORD_AUDIO': 'android:record_audio',
    'android.permission.ACCESS_FINE_LOCATION': 'android:fine_location',
    'android.permission.ACCESS_COARSE_LOCATION': 'android:coarse_location',
    'android.permission.READ_CONTACTS': 'android:read_contacts',
    'android.permission.WRITE_CONTACTS': 'android:write_contacts',
}


def permission_to_op(permission: str) -> Optional[str]:
    """
    :returns: The app op gating ``permission``, or ``None`` if there is none.
    """
    return PERMISSION_APP_OPS.get(permission)


def grant_permission(target: 'AndroidTarget', package: str, permission: str) -> None:
    """
    Grant a runtime permission to ``package``, then give its app op time to
    follow.
    """
    logger.debug('Granting %s to %s', permission, package)
    target.grant_package_permission(package, permission)
    time.sleep(GRANT_SETTLE_DELAY)


def revoke_permission(target: 'AndroidTarget', package: str, permission: str) -> None:
    logger.debug('Revoking %s from %s', permission, package)
    target.revoke_package_permission(package, permission)


def _set_app_ops_mode_for_uid(target: 'AndroidTarget', uid: int, mode: str, *ops: str) -> None:
    for op in ops:
        logger.debug('Setting %s to %s for uid %s', op, mode, uid)
        target.set_uid_app_op_mode(uid, op, mode)


def allow_app_ops_to_uid(target: 'AndroidTarget', uid: int, *ops: str) -> None:
    """
    Set every op of ``ops`` to ``allow`` for ``uid``.
    """
    _set_app_ops_mode_for_uid(target, uid, MODE_ALLOWED, *ops)


def deny_app_ops_to_uid(target: 'AndroidTarget', uid: int, *ops: str) -> None:
    """
    Set every op of ``ops`` to ``deny`` (errored) for ``uid``.
    """
    _set_app_ops_mode_for_uid(target, uid, MODE_ERRORED, *ops)


def check_permission_and_app_op(target: 'AndroidTarget', package: str, permission: str) -> bool:
    """
    Whether ``permission`` is granted to ``package`` and the app op attached to
    it, if any, is allowed.
    """
    if not target.is_permission_granted(package, permission):
        return False
    op = permission_to_op(permission)
    if op is None:
        return True
    return target.get_app_op_mode(package, op) == MODE_ALLOWED


def execute_shell_command(target: 'AndroidTarget', cmd: str) -> str:
    """
    Run ``cmd`` on the device and return its output, whatever its exit code.
    """
    return target.execute(cmd, check_exit_code=False)
