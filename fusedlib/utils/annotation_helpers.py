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
Type aliases shared across fusedlib.
"""
import os
from typing import Dict, Sequence, Union
from typing_extensions import NotRequired, TypedDict


SubprocessCommand = Union[str, bytes, 'os.PathLike[str]',
                          Sequence[Union[str, bytes, 'os.PathLike[str]']]]

# Data written to the stdin of a device command
ShellInput = Union[str, bytes, None]

# String extras put on an intent, by extra name
IntentExtras = Dict[str, str]


class AdbUserConnectionSettings(TypedDict, total=False):
    """
    Keyword arguments accepted by :class:`~fusedlib.utils.android.AdbConnection`,
    as read from the ``connection_settings`` of a harness configuration.
    """
    device: NotRequired[str]
    adb_server: NotRequired[str]
    adb_port: NotRequired[int]
    timeout: NotRequired[int]
    adb_as_root: NotRequired[bool]
    connection_attempts: NotRequired[int]
