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
The link an :class:`~fusedlib.target.AndroidTarget` runs its commands over.
"""
import threading
from abc import ABC, abstractmethod

from fusedlib.utils.misc import get_logger
from fusedlib.utils.annotation_helpers import ShellInput, SubprocessCommand
from typing import List, Optional


class ConnectionBase(ABC):
    """
    Shell and file transfer access to one device.

    Subclasses provide :meth:`execute`, :meth:`push`, :meth:`pull` and
    :meth:`_close`. Targets build their connection from
    ``connection_settings``; tests substitute their own subclass.
    """

    def __init__(self):
        self._closed = False
        self._close_lock = threading.Lock()
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def execute(self, command: SubprocessCommand, timeout: Optional[int] = None,
                check_exit_code: bool = True, as_root: Optional[bool] = False,
                will_succeed: bool = False, inputtext: ShellInput = None) -> str:
        """
        Run ``command`` on the device and return its output.

        :param check_exit_code: Raise
            :class:`~fusedlib.exception.TargetCalledProcessError` on a
            non-zero exit status.
        :param inputtext: Data written to the command's stdin.
        """

    @abstractmethod
    def push(self, sources: List[str], dest: str, timeout: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def pull(self, sources: List[str], dest: str, timeout: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def _close(self) -> None:
        pass

    def close(self) -> None:
        """
        Release the connection. Only the first call does anything.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._close()

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()

    def __del__(self):
        # __init__ may have failed before the lock existed
        if getattr(self, '_close_lock', None) is not None:
            self.close()
