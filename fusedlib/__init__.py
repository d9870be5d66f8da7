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

from fusedlib.target import AndroidTarget
from fusedlib.connection import ConnectionBase
from fusedlib.utils.android import AdbConnection, LogcatMonitor, ApkInfo

from fusedlib.coordinator import (CrossAppRequestCoordinator, Action, Request, ResponseShape,
                                  BooleanResponse, StringListResponse, StringMapResponse,
                                  ErrorResponse, format_response_line)
from fusedlib.polling import (PollingPolicy, DEFAULT_POLLING_POLICY, poll_for,
                              poll_for_external_storage_state, poll_for_permission)
from fusedlib.apps import (TestApp, install_app, install_app_with_storage_permissions,
                           uninstall_app, uninstall_app_no_throw)
from fusedlib.storage import StorageContext, DEFAULT_TOP_LEVEL_DIRS, setup_default_directories
from fusedlib.config import HarnessConfig, load_config, build_targets

from fusedlib.exception import (FusedLibError, FusedLibStableError, FusedLibTransientError,
                                TargetError, TargetStableError, TargetTransientError,
                                TargetNotRespondingError, TargetCalledProcessError,
                                HostError, TimeoutError, ResponseTimeoutError, RemoteAppError,
                                VerificationError, PollingTimeoutError)

__version__ = '1.0.0'
