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
Fixed-interval waiters.

A waiter samples a condition every ``interval`` seconds until it holds or
``timeout`` seconds have been slept, then fails the calling test with a
:class:`~fusedlib.exception.PollingTimeoutError` naming the condition.
"""
import time
from collections import namedtuple

from fusedlib.exception import PollingTimeoutError
from fusedlib.permissions import check_permission_and_app_op
from fusedlib.utils.misc import get_logger

from typing import Any, Callable, Optional, TYPE_CHECKING
if TYPE_CHECKING:
    from fusedlib.target import AndroidTarget


logger = get_logger('polling')


class PollingPolicy(namedtuple('PollingPolicy', ['timeout', 'interval'])):
    """
    :param timeout: Total time, in seconds, a waiter may sleep.
    :param interval: Time, in seconds, slept between two samples.
    """
    __slots__ = ()

    def __new__(cls, timeout: float = 10.0, interval: float = 0.1):
        if interval <= 0:
            raise ValueError('Polling interval must be positive, got {}'.format(interval))
        if timeout < 0:
            raise ValueError('Polling timeout must not be negative, got {}'.format(timeout))
        return super(PollingPolicy, cls).__new__(cls, timeout, interval)

    @property
    def attempts(self) -> int:
        return max(1, int(round(self.timeout / self.interval)))


DEFAULT_POLLING_POLICY = PollingPolicy()


def poll_for(predicate: Callable[[], Any], expected: Any = True,
             description: Optional[str] = None,
             policy: Optional[PollingPolicy] = None) -> None:
    """
    Wait until ``predicate()`` returns ``expected``.

    The predicate is sampled ``policy.attempts`` times, with ``policy.interval``
    seconds slept after every miss, so failure is reported only once the whole
    ``policy.timeout`` has elapsed.

    :raises PollingTimeoutError: If the predicate never returned ``expected``.
    """
    policy = policy or DEFAULT_POLLING_POLICY
    description = description or getattr(predicate, '__name__', repr(predicate))
    last = None
    for _ in range(policy.attempts):
        last = predicate()
        if last == expected:
            return
        time.sleep(policy.interval)
    message = 'Timed out after {}s while waiting for {} to be {!r} (last value: {!r})'
    raise PollingTimeoutError(message.format(policy.timeout, description, expected, last))


def poll_for_external_storage_state(target: 'AndroidTarget', state: str = 'mounted',
                                    policy: Optional[PollingPolicy] = None) -> None:
    """
    Wait for the primary emulated volume to reach ``state``.
    """
    logger.debug('Waiting for external storage to be %s', state)
    poll_for(target.get_external_storage_state, state,
             'external storage state', policy)


def poll_for_permission(target: 'AndroidTarget', package: str, permission: str,
                        granted: bool = True, policy: Optional[PollingPolicy] = None) -> None:
    """
    Wait until ``permission`` (and the app op attached to it, if any) is
    granted to ``package``, or revoked when ``granted`` is ``False``.
    """
    logger.debug('Waiting for %s to be %s to %s', permission,
                 'granted' if granted else 'revoked', package)
    poll_for(lambda: check_permission_and_app_op(target, package, permission), granted,
             '{} {} for {}'.format(permission, 'granted' if granted else 'revoked', package),
             policy)
