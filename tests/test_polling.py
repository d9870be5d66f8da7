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

"""Tests for the polling waiters."""

import pytest

from fusedlib.exception import PollingTimeoutError, VerificationError
from fusedlib.polling import (DEFAULT_POLLING_POLICY, PollingPolicy, poll_for,
                              poll_for_external_storage_state, poll_for_permission)


READ_STORAGE = 'android.permission.READ_EXTERNAL_STORAGE'


def test_default_policy():
    assert DEFAULT_POLLING_POLICY == PollingPolicy(10.0, 0.1)
    assert DEFAULT_POLLING_POLICY.attempts == 100


def test_policy_validation():
    with pytest.raises(ValueError):
        PollingPolicy(timeout=1, interval=0)
    with pytest.raises(ValueError):
        PollingPolicy(timeout=-1, interval=0.1)


def test_poll_for_returns_once_condition_holds(sleeps):
    values = iter([False, False, True])

    poll_for(lambda: next(values), True, 'flag')

    assert sleeps == [0.1, 0.1]


def test_poll_for_fails_only_after_full_bound(sleeps):
    policy = PollingPolicy(timeout=1.0, interval=0.25)

    with pytest.raises(PollingTimeoutError) as excinfo:
        poll_for(lambda: 'unmounted', 'mounted', 'external storage state', policy)

    assert sum(sleeps) == pytest.approx(1.0)
    assert len(sleeps) == 4
    assert 'external storage state' in str(excinfo.value)
    assert '1.0s' in str(excinfo.value)
    assert isinstance(excinfo.value, VerificationError)
    assert isinstance(excinfo.value, AssertionError)


def test_poll_for_external_storage_state(target, conn, sleeps):
    states = iter(['emulated;0 unmounted null\n', 'emulated;0 checking null\n',
                   'emulated;0 mounted null\n'])
    conn.on(r'^sm list-volumes emulated$', lambda command, _: next(states))

    poll_for_external_storage_state(target)

    assert len(sleeps) == 2


def test_poll_for_external_storage_state_timeout(target, conn, sleeps):
    conn.on(r'^sm list-volumes emulated$', 'emulated;0 unmounted null\n')

    with pytest.raises(PollingTimeoutError):
        poll_for_external_storage_state(target, policy=PollingPolicy(0.5, 0.1))

    assert len(sleeps) == 5


def test_poll_for_permission(target, conn, sleeps):
    conn.on(r'^dumpsys package com\.example\.app$',
            '      {}: granted=true, flags=[ USER_SET ]\n'.format(READ_STORAGE))
    modes = iter(['READ_EXTERNAL_STORAGE: ignore\n', 'READ_EXTERNAL_STORAGE: allow\n'])
    conn.on(r'^appops get com\.example\.app android:read_external_storage$',
            lambda command, _: next(modes))

    poll_for_permission(target, 'com.example.app', READ_STORAGE, granted=True)

    assert sleeps == [0.1]


def test_poll_for_permission_revoked(target, conn, sleeps):
    conn.on(r'^dumpsys package com\.example\.app$',
            '      {}: granted=true, flags=[ USER_SET ]\n'.format(READ_STORAGE))
    conn.on(r'^appops get ', 'READ_EXTERNAL_STORAGE: allow\n')

    with pytest.raises(PollingTimeoutError) as excinfo:
        poll_for_permission(target, 'com.example.app', READ_STORAGE, granted=False,
                            policy=PollingPolicy(0.2, 0.1))

    assert 'revoked' in str(excinfo.value)
