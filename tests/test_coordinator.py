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

"""Tests for the cross-app request coordinator."""

import re

import pytest

from fusedlib.apps import TestApp
from fusedlib.content import get_file_row_id
from fusedlib.coordinator import (Action, BooleanResponse, CrossAppRequestCoordinator,
                                  ErrorResponse, ExchangeState, Request, ResponseShape,
                                  StringListResponse, StringMapResponse, decode_response,
                                  error_extras, format_response_line, parse_response_line,
                                  EXCEPTION_EXTRA, PATH_EXTRA, QUERY_TYPE_EXTRA)
from fusedlib.exception import RemoteAppError, ResponseTimeoutError, TargetStableError

from conftest import FakeLogcatMonitor


APP_A = TestApp('A', 'com.android.tests.fused.testapp.A', '/host/TestAppA.apk')


def logcat_line(action, extras):
    return '10-18 12:00:00.000  4321  4321 I {}'.format(format_response_line(action, extras))


@pytest.fixture
def monitors():
    return []


@pytest.fixture
def make_coordinator(target, monitors, sleeps):
    def _make(lines, **kwargs):
        def factory(regexps):
            monitor = FakeLogcatMonitor(lines, regexps)
            monitors.append(monitor)
            return monitor
        return CrossAppRequestCoordinator(target, monitor_factory=factory, **kwargs)
    return _make


def test_create_file_as(make_coordinator, conn, monitors):
    path = '/sdcard/Download/x.jpg'
    coordinator = make_coordinator([logcat_line(Action.CREATE_FILE,
                                                {Action.CREATE_FILE.identifier: True})])

    assert coordinator.create_file_as(APP_A, path) is True

    force_stop = conn.commands.index('am force-stop com.android.tests.fused.testapp.A')
    launches = conn.ran(r'^am start ')
    assert len(launches) == 1
    assert force_stop < conn.commands.index(launches[0])
    assert '-a android.intent.action.MAIN' in launches[0]
    assert '-c android.intent.category.LAUNCHER' in launches[0]
    assert '-p com.android.tests.fused.testapp.A' in launches[0]
    assert '-f 0x10000000' in launches[0]
    assert '--es {} com.android.tests.fused.createfile'.format(QUERY_TYPE_EXTRA) in launches[0]
    assert '--es {} {}'.format(PATH_EXTRA, path) in launches[0]

    monitor, = monitors
    assert monitor.regexps == [re.escape('com.android.tests.fused.createfile')]
    assert monitor.started and monitor.stopped
    assert monitor.waits[0][1] == 60
    assert coordinator.state is ExchangeState.RESULT_RECEIVED


def test_package_name_accepted_as_app(make_coordinator, conn):
    coordinator = make_coordinator([logcat_line(Action.DELETE_FILE,
                                                {Action.DELETE_FILE.identifier: True})])

    assert coordinator.delete_file_as('com.example.other', '/sdcard/x')
    assert conn.ran(r'^am force-stop com\.example\.other$')


def test_open_file_as_picks_the_action(make_coordinator, monitors):
    coordinator = make_coordinator([
        logcat_line(Action.OPEN_FILE_FOR_READ, {Action.OPEN_FILE_FOR_READ.identifier: True}),
        logcat_line(Action.OPEN_FILE_FOR_WRITE, {Action.OPEN_FILE_FOR_WRITE.identifier: False}),
    ])

    assert coordinator.open_file_as(APP_A, '/sdcard/Music/a.mp3', for_write=False) is True
    assert coordinator.open_file_as(APP_A, '/sdcard/Music/a.mp3', for_write=True) is False
    assert monitors[1].regexps == [re.escape(Action.OPEN_FILE_FOR_WRITE.identifier)]


def test_can_read_and_write_as(make_coordinator):
    coordinator = make_coordinator([logcat_line(Action.CAN_READ_WRITE,
                                                {Action.CAN_READ_WRITE.identifier: True})])

    assert coordinator.can_read_and_write_as(APP_A, '/sdcard/Music/a.mp3')


def test_list_as(make_coordinator):
    coordinator = make_coordinator([logcat_line(Action.READDIR,
                                                {Action.READDIR.identifier: ['a.jpg', 'b.mp4']})])

    assert coordinator.list_as(APP_A, '/sdcard/DCIM') == ['a.jpg', 'b.mp4']


def test_read_exif_metadata_as(make_coordinator):
    exif = {'GPSLatitude': '53/1,50/1,423/100', 'GPSLatitudeRef': 'N'}
    coordinator = make_coordinator([logcat_line(Action.EXIF_METADATA,
                                                {Action.EXIF_METADATA.identifier: exif})])

    assert coordinator.read_exif_metadata_as(APP_A, '/sdcard/Pictures/a.jpg') == exif


def test_remote_error_is_raised(make_coordinator, monitors):
    coordinator = make_coordinator([logcat_line(
        Action.CREATE_FILE,
        error_extras('java.io.IOException', 'Permission denied'))])

    with pytest.raises(RemoteAppError) as excinfo:
        coordinator.create_file_as(APP_A, '/sdcard/Android/data/x')

    assert excinfo.value.exception_class == 'java.io.IOException'
    assert excinfo.value.remote_message == 'Permission denied'
    assert str(excinfo.value) == 'java.io.IOException: Permission denied'
    assert coordinator.state is ExchangeState.ERROR_RECEIVED
    assert monitors[0].stopped


def test_error_takes_precedence_over_result(make_coordinator):
    extras = error_extras('java.lang.SecurityException', 'nope')
    extras[Action.CREATE_FILE.identifier] = True
    coordinator = make_coordinator([logcat_line(Action.CREATE_FILE, extras)])

    response = coordinator.exchange(APP_A, '/sdcard/x', Action.CREATE_FILE)

    assert response == ErrorResponse('java.lang.SecurityException', 'nope')


@pytest.mark.parametrize('action, expected', [
    (Action.CREATE_FILE, False),
    (Action.READDIR, []),
    (Action.EXIF_METADATA, {}),
])
def test_missing_result_is_zero_value(make_coordinator, action, expected):
    coordinator = make_coordinator([logcat_line(action, {})])

    assert coordinator.request(APP_A, '/sdcard/x', action) == expected


def test_only_first_response_is_consumed(make_coordinator):
    coordinator = make_coordinator([
        logcat_line(Action.CREATE_FILE, {Action.CREATE_FILE.identifier: True}),
        logcat_line(Action.CREATE_FILE, {Action.CREATE_FILE.identifier: False}),
    ])

    assert coordinator.create_file_as(APP_A, '/sdcard/x') is True


def test_response_to_other_action_is_ignored(make_coordinator, monitors):
    coordinator = make_coordinator([logcat_line(Action.DELETE_FILE,
                                                {Action.DELETE_FILE.identifier: True})],
                                   response_timeout=5)

    with pytest.raises(ResponseTimeoutError):
        coordinator.create_file_as(APP_A, '/sdcard/x')

    assert monitors[0].waits[0][1] == 5
    assert monitors[0].stopped
    assert coordinator.state is ExchangeState.AWAITING_SIGNAL


def test_unbounded_wait(make_coordinator, monitors):
    coordinator = make_coordinator([logcat_line(Action.CREATE_FILE,
                                                {Action.CREATE_FILE.identifier: True})],
                                   response_timeout=None)

    coordinator.create_file_as(APP_A, '/sdcard/x')

    assert monitors[0].waits[0][1] is None


def test_delete_file_as_no_throw(make_coordinator):
    failing = make_coordinator([logcat_line(Action.DELETE_FILE,
                                            error_extras('java.io.FileNotFoundException'))])
    silent = make_coordinator(None)

    assert failing.delete_file_as_no_throw(APP_A, '/sdcard/x') is False
    assert silent.delete_file_as_no_throw(APP_A, '/sdcard/x') is False


def test_delete_file_as_no_throw_on_host_error(make_coordinator, target, conn):
    def no_logcat(regexps):
        raise OSError('adb: No such file or directory')

    assert CrossAppRequestCoordinator(target, monitor_factory=no_logcat) \
        .delete_file_as_no_throw(APP_A, '/sdcard/x') is False

    conn.on(r'^am start ', OSError('adb: connection reset'))
    assert make_coordinator([]).delete_file_as_no_throw(APP_A, '/sdcard/x') is False


def test_create_then_delete_leaves_no_row(make_coordinator, target, conn):
    path = '/sdcard/Download/x.jpg'
    coordinator = make_coordinator([
        logcat_line(Action.CREATE_FILE, {Action.CREATE_FILE.identifier: True}),
        logcat_line(Action.DELETE_FILE, {Action.DELETE_FILE.identifier: True}),
    ])
    conn.on(r'^content query ', 'No result found.\n')

    assert coordinator.create_file_as(APP_A, path) is True
    assert coordinator.delete_file_as(APP_A, path) is True
    assert get_file_row_id(target, path) == -1


@pytest.mark.parametrize('action', list(Action))
def test_response_variant_matches_action(action):
    samples = {
        ResponseShape.BOOLEAN: (True, BooleanResponse),
        ResponseShape.STRING_LIST: (['a'], StringListResponse),
        ResponseShape.STRING_MAP: ({'k': 'v'}, StringMapResponse),
    }
    value, variant = samples[action.shape]

    response = decode_response(action, {action.identifier: value})

    assert type(response) is variant
    assert response.value == value


def test_decode_response_coerces_values():
    assert decode_response(Action.CREATE_FILE, {Action.CREATE_FILE.identifier: 'true'}) == \
        BooleanResponse(True)
    assert decode_response(Action.EXIF_METADATA, {Action.EXIF_METADATA.identifier: {'n': 1}}) == \
        StringMapResponse({'n': '1'})
    assert decode_response(Action.CREATE_FILE, {EXCEPTION_EXTRA: 'java.lang.Exception'}) == \
        ErrorResponse('java.lang.Exception', None)


def test_decode_response_rejects_wrong_shape():
    with pytest.raises(TargetStableError):
        decode_response(Action.READDIR, {Action.READDIR.identifier: True})


def test_parse_response_line():
    line = logcat_line(Action.READDIR, {Action.READDIR.identifier: ['a']})

    assert parse_response_line(line) == {Action.READDIR.identifier: ['a']}
    with pytest.raises(TargetStableError):
        parse_response_line('I FusedTestResult: {not json')
    with pytest.raises(TargetStableError):
        parse_response_line('I ActivityManager: Start proc')


def test_action_lookup():
    assert Action.from_identifier('com.android.tests.fused.queryexif') is Action.EXIF_METADATA
    assert Action.READDIR.shape is ResponseShape.STRING_LIST
    with pytest.raises(ValueError):
        Action.from_identifier('com.android.tests.fused.nope')


def test_request_is_immutable():
    request = Request(Action.CREATE_FILE, '/sdcard/x', 'com.example')

    with pytest.raises(AttributeError):
        request.path = '/sdcard/y'
