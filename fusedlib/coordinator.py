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
Requests run by a remote test application on behalf of the host.

Some storage behaviours only show from another app's point of view, so the
test installs helper applications and asks them to act. A request is sent by
launching the helper with two string extras: the action identifier and the
path to act on. The helper answers with a single logcat line tagged
``FusedTestResult`` carrying a JSON object::

    FusedTestResult: {"action": "com.android.tests.fused.createfile",
                      "extras": {"com.android.tests.fused.createfile": true}}

The result is stored in ``extras`` under the action identifier. An exception
raised in the helper is reported under ``com.android.tests.fused.exception``
as ``{"class": ..., "message": ...}`` and is raised again on the host as a
:class:`~fusedlib.exception.RemoteAppError`.
"""
import json
import re
from collections import namedtuple
from enum import Enum

from fusedlib.exception import (RemoteAppError, ResponseTimeoutError, TimeoutError,
                                TargetStableError)
from fusedlib.utils.misc import get_logger

from typing import (Any, Callable, Dict, List, Optional, Union, TYPE_CHECKING)
if TYPE_CHECKING:
    from fusedlib.apps import TestApp
    from fusedlib.target import AndroidTarget
    from fusedlib.utils.android import LogcatMonitor


QUERY_TYPE_EXTRA = 'com.android.tests.fused.queryType'
PATH_EXTRA = 'com.android.tests.fused.path'
EXCEPTION_EXTRA = 'com.android.tests.fused.exception'

RESPONSE_TAG = 'FusedTestResult'

LAUNCH_ACTION = 'android.intent.action.MAIN'
LAUNCH_CATEGORY = 'android.intent.category.LAUNCHER'
LAUNCH_FLAGS = ('ACTIVITY_NEW_TASK',)

DEFAULT_RESPONSE_TIMEOUT = 60


class ResponseShape(Enum):
    BOOLEAN = 'boolean'
    STRING_LIST = 'string_list'
    STRING_MAP = 'string_map'


class Action(Enum):
    """
    Requests understood by the test applications, with the identifier sent
    over the wire and the shape of the result.
    """
    CREATE_FILE = ('com.android.tests.fused.createfile', ResponseShape.BOOLEAN)
    DELETE_FILE = ('com.android.tests.fused.deletefile', ResponseShape.BOOLEAN)
    OPEN_FILE_FOR_READ = ('com.android.tests.fused.openfile_read', ResponseShape.BOOLEAN)
    OPEN_FILE_FOR_WRITE = ('com.android.tests.fused.openfile_write', ResponseShape.BOOLEAN)
    CAN_READ_WRITE = ('com.android.tests.fused.can_read_and_write', ResponseShape.BOOLEAN)
    READDIR = ('com.android.tests.fused.readdir', ResponseShape.STRING_LIST)
    EXIF_METADATA = ('com.android.tests.fused.queryexif', ResponseShape.STRING_MAP)

    def __init__(self, identifier: str, shape: ResponseShape):
        self.identifier = identifier
        self.shape = shape

    @classmethod
    def from_identifier(cls, identifier: str) -> 'Action':
        for action in cls:
            if action.identifier == identifier:
                return action
        raise ValueError('Unknown action identifier: {}'.format(identifier))


class ExchangeState(Enum):
    IDLE = 'idle'
    APP_LAUNCHED = 'app_launched'
    AWAITING_SIGNAL = 'awaiting_signal'
    RESULT_RECEIVED = 'result_received'
    ERROR_RECEIVED = 'error_received'


Request = namedtuple('Request', ['action', 'path', 'package'])

BooleanResponse = namedtuple('BooleanResponse', ['value'])
StringListResponse = namedtuple('StringListResponse', ['value'])
StringMapResponse = namedtuple('StringMapResponse', ['value'])
ErrorResponse = namedtuple('ErrorResponse', ['exception_class', 'message'])

Response = Union[BooleanResponse, StringListResponse, StringMapResponse, ErrorResponse]

_ZERO_VALUES: Dict[ResponseShape, Callable[[], Response]] = {
    ResponseShape.BOOLEAN: lambda: BooleanResponse(False),
    ResponseShape.STRING_LIST: lambda: StringListResponse([]),
    ResponseShape.STRING_MAP: lambda: StringMapResponse({}),
}


def format_response_line(action: Action, extras: Dict[str, Any]) -> str:
    """
    The logcat message a test application emits to answer ``action``.
    """
    return '{}: {}'.format(RESPONSE_TAG, json.dumps({'action': action.identifier,
                                                     'extras': extras}))


def error_extras(exception_class: str, message: Optional[str] = None) -> Dict[str, Any]:
    return {EXCEPTION_EXTRA: {'class': exception_class, 'message': message}}


def response_regex(action: Action) -> str:
    """
    Regular expression matching a whole logcat line that answers ``action``.
    """
    return r'.*{}: .*"action":\s*"{}"'.format(RESPONSE_TAG, re.escape(action.identifier))


def parse_response_line(line: str) -> Dict[str, Any]:
    """
    Extract the ``extras`` of a response line.

    :raises TargetStableError: If the line does not hold a response.
    """
    marker = '{}: '.format(RESPONSE_TAG)
    _, sep, payload = line.partition(marker)
    if not sep:
        raise TargetStableError('Not a test application response: {!r}'.format(line))
    try:
        message = json.loads(payload.strip())
    except ValueError as e:
        raise TargetStableError('Malformed test application response {!r}: {}'.format(payload, e))
    extras = message.get('extras') if isinstance(message, dict) else None
    if not isinstance(extras, dict):
        raise TargetStableError('Test application response has no extras: {!r}'.format(payload))
    return extras


def decode_response(action: Action, extras: Dict[str, Any]) -> Response:
    """
    Turn the extras of a response into the variant declared by ``action``.
    An error takes precedence over a result; a response carrying neither
    decodes to the zero value of the shape.
    """
    if EXCEPTION_EXTRA in extras:
        error = extras[EXCEPTION_EXTRA]
        if isinstance(error, dict):
            return ErrorResponse(str(error.get('class') or 'java.lang.Exception'),
                                 error.get('message'))
        return ErrorResponse(str(error), None)

    if action.identifier not in extras:
        return _ZERO_VALUES[action.shape]()

    value = extras[action.identifier]
    if action.shape is ResponseShape.BOOLEAN:
        if isinstance(value, str):
            return BooleanResponse(value.lower() == 'true')
        return BooleanResponse(bool(value))
    elif action.shape is ResponseShape.STRING_LIST:
        if not isinstance(value, list):
            raise TargetStableError('Expected a list for {}, got {!r}'.format(action.identifier, value))
        return StringListResponse([str(v) for v in value])
    else:
        if not isinstance(value, dict):
            raise TargetStableError('Expected a map for {}, got {!r}'.format(action.identifier, value))
        return StringMapResponse({str(k): str(v) for k, v in value.items()})


def unwrap_response(response: Response) -> Any:
    """
    :returns: The payload of ``response``.
    :raises RemoteAppError: If ``response`` is an error.
    """
    if isinstance(response, ErrorResponse):
        raise RemoteAppError(response.exception_class, response.message)
    return response.value


class CrossAppRequestCoordinator(object):
    """
    Sends :class:`Request` objects to test applications and waits for their
    answer.

    Calls are synchronous and one exchange runs at a time: the application is
    force-stopped, a logcat listener for the action is started (clearing
    earlier lines), the application is launched and the first answer is
    consumed. The listener is stopped as soon as that answer arrives.

    :param target: Device the test applications run on.
    :param response_timeout: Seconds to wait for an answer, ``None`` to wait
        forever.
    :param monitor_factory: Builds the logcat listener from a list of
        regexps. Defaults to ``target.get_logcat_monitor``.
    """

    def __init__(self, target: 'AndroidTarget',
                 response_timeout: Optional[int] = DEFAULT_RESPONSE_TIMEOUT,
                 monitor_factory: Optional[Callable[[List[str]], 'LogcatMonitor']] = None):
        self.target = target
        self.response_timeout = response_timeout
        self.monitor_factory = monitor_factory or target.get_logcat_monitor
        self.state = ExchangeState.IDLE
        self.logger = get_logger(self.__class__.__name__)

    def _transition(self, state: ExchangeState) -> None:
        self.logger.debug('%s -> %s', self.state.name, state.name)
        self.state = state

    def _launch(self, request: Request) -> None:
        self.target.start_activity(request.package,
                                   action=LAUNCH_ACTION,
                                   categories=[LAUNCH_CATEGORY],
                                   flags=LAUNCH_FLAGS,
                                   extras={QUERY_TYPE_EXTRA: request.action.identifier,
                                           PATH_EXTRA: request.path})

    def send(self, request: Request) -> Response:
        """
        Run one exchange for ``request`` and return the decoded answer.

        :raises ResponseTimeoutError: If no answer came within
            :attr:`response_timeout`.
        """
        self.state = ExchangeState.IDLE
        action = request.action
        self.logger.debug('Sending %s for %s to %s', action.identifier, request.path, request.package)

        self.target.force_stop(request.package)
        monitor = self.monitor_factory([re.escape(action.identifier)])
        monitor.start()
        try:
            self._launch(request)
            self._transition(ExchangeState.APP_LAUNCHED)
            self._transition(ExchangeState.AWAITING_SIGNAL)
            try:
                lines = monitor.wait_for(response_regex(action), timeout=self.response_timeout)
            except TimeoutError as e:
                raise ResponseTimeoutError(
                    '{} from {}'.format(action.identifier, request.package),
                    output='No response within {}s'.format(self.response_timeout)) from e
        finally:
            monitor.stop()

        if not lines:
            raise ResponseTimeoutError('{} from {}'.format(action.identifier, request.package),
                                       output='Listener returned without a response')
        response = decode_response(action, parse_response_line(lines[0]))
        if isinstance(response, ErrorResponse):
            self._transition(ExchangeState.ERROR_RECEIVED)
        else:
            self._transition(ExchangeState.RESULT_RECEIVED)
        return response

    def exchange(self, app: Union['TestApp', str], path: str, action: Action) -> Response:
        """
        Ask ``app`` to perform ``action`` on ``path``. An error reported by
        the app is returned as an :class:`ErrorResponse`.
        """
        package = getattr(app, 'package_name', app)
        return self.send(Request(action, path, package))

    def request(self, app: Union['TestApp', str], path: str, action: Action) -> Any:
        """
        Like :meth:`exchange`, but return the payload.

        :raises RemoteAppError: If the app reported an error.
        """
        return unwrap_response(self.exchange(app, path, action))

    def create_file_as(self, app: Union['TestApp', str], path: str) -> bool:
        return self.request(app, path, Action.CREATE_FILE)

    def delete_file_as(self, app: Union['TestApp', str], path: str) -> bool:
        return self.request(app, path, Action.DELETE_FILE)

    def delete_file_as_no_throw(self, app: Union['TestApp', str], path: str) -> bool:
        """
        :meth:`delete_file_as` for cleanup code: failures are logged and
        reported as ``False``.
        """
        try:
            return self.delete_file_as(app, path)
        except Exception:  # pylint: disable=broad-except
            self.logger.error('Error occurred while deleting file: %s on behalf of app: %s',
                              path, getattr(app, 'package_name', app), exc_info=True)
            return False

    def open_file_as(self, app: Union['TestApp', str], path: str, for_write: bool) -> bool:
        action = Action.OPEN_FILE_FOR_WRITE if for_write else Action.OPEN_FILE_FOR_READ
        return self.request(app, path, action)

    def can_read_and_write_as(self, app: Union['TestApp', str], path: str) -> bool:
        return self.request(app, path, Action.CAN_READ_WRITE)

    def list_as(self, app: Union['TestApp', str], dir_path: str) -> List[str]:
        """
        :returns: The names ``app`` sees in ``dir_path``.
        """
        return self.request(app, dir_path, Action.READDIR)

    def read_exif_metadata_as(self, app: Union['TestApp', str], path: str) -> Dict[str, str]:
        """
        :returns: The EXIF tags of the image at ``path`` as read by ``app``.
        """
        return self.request(app, path, Action.EXIF_METADATA)
