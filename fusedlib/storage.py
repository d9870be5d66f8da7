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
The shared storage tree tests operate on.

Every test runs against the same top-level directories of the primary
external storage, so tests must run one at a time. A
:class:`StorageContext` owns that tree for the duration of a test: it makes
sure the default directories exist, remembers what the test created, and
puts things back afterwards.
"""
import posixpath

from fusedlib.exception import TargetError
from fusedlib.utils.misc import get_logger

from typing import List, Optional, Tuple, TYPE_CHECKING
if TYPE_CHECKING:
    from fusedlib.target import AndroidTarget


logger = get_logger('storage')

DIRECTORY_ALARMS = 'Alarms'
DIRECTORY_ANDROID = 'Android'
DIRECTORY_AUDIOBOOKS = 'Audiobooks'
DIRECTORY_DCIM = 'DCIM'
DIRECTORY_DOCUMENTS = 'Documents'
DIRECTORY_DOWNLOADS = 'Download'
DIRECTORY_MUSIC = 'Music'
DIRECTORY_MOVIES = 'Movies'
DIRECTORY_NOTIFICATIONS = 'Notifications'
DIRECTORY_PICTURES = 'Pictures'
DIRECTORY_PODCASTS = 'Podcasts'
DIRECTORY_RINGTONES = 'Ringtones'

DEFAULT_TOP_LEVEL_DIRS: Tuple[str, ...] = (
    DIRECTORY_ALARMS,
    DIRECTORY_ANDROID,
    DIRECTORY_AUDIOBOOKS,
    DIRECTORY_DCIM,
    DIRECTORY_DOCUMENTS,
    DIRECTORY_DOWNLOADS,
    DIRECTORY_MUSIC,
    DIRECTORY_MOVIES,
    DIRECTORY_NOTIFICATIONS,
    DIRECTORY_PICTURES,
    DIRECTORY_PODCASTS,
    DIRECTORY_RINGTONES,
)


def setup_default_directories(target: 'AndroidTarget', root: Optional[str] = None) -> None:
    """
    Create whichever default top-level directories are missing under
    ``root`` (the external storage by default).
    """
    root = root or target.external_storage
    for name in DEFAULT_TOP_LEVEL_DIRS:
        target.mkdir(posixpath.join(root, name))


class StorageContext(object):
    """
    :param target: Device whose external storage is used.
    :param root: Storage root, ``$EXTERNAL_STORAGE`` by default.
    """

    def __init__(self, target: 'AndroidTarget', root: Optional[str] = None):
        self.target = target
        self._root = root
        self._tracked: List[str] = []
        self.logger = get_logger(self.__class__.__name__)

    @property
    def root(self) -> str:
        if self._root is None:
            self._root = self.target.external_storage
        return self._root

    def _dir(self, name: str) -> str:
        return posixpath.join(self.root, name)

    @property
    def alarms_dir(self) -> str:
        return self._dir(DIRECTORY_ALARMS)

    @property
    def android_dir(self) -> str:
        return self._dir(DIRECTORY_ANDROID)

    @property
    def audiobooks_dir(self) -> str:
        return self._dir(DIRECTORY_AUDIOBOOKS)

    @property
    def dcim_dir(self) -> str:
        return self._dir(DIRECTORY_DCIM)

    @property
    def documents_dir(self) -> str:
        return self._dir(DIRECTORY_DOCUMENTS)

    @property
    def download_dir(self) -> str:
        return self._dir(DIRECTORY_DOWNLOADS)

    @property
    def music_dir(self) -> str:
        return self._dir(DIRECTORY_MUSIC)

    @property
    def movies_dir(self) -> str:
        return self._dir(DIRECTORY_MOVIES)

    @property
    def notifications_dir(self) -> str:
        return self._dir(DIRECTORY_NOTIFICATIONS)

    @property
    def pictures_dir(self) -> str:
        return self._dir(DIRECTORY_PICTURES)

    @property
    def podcasts_dir(self) -> str:
        return self._dir(DIRECTORY_PODCASTS)

    @property
    def ringtones_dir(self) -> str:
        return self._dir(DIRECTORY_RINGTONES)

    @property
    def android_data_dir(self) -> str:
        return posixpath.join(self.android_dir, 'data')

    @property
    def android_media_dir(self) -> str:
        return posixpath.join(self.android_dir, 'media')

    @property
    def default_dirs(self) -> List[str]:
        return [self._dir(name) for name in DEFAULT_TOP_LEVEL_DIRS]

    @property
    def tracked(self) -> List[str]:
        return list(self._tracked)

    def setup(self) -> 'StorageContext':
        setup_default_directories(self.target, self.root)
        return self

    def track(self, path: str) -> str:
        """
        Remember ``path`` for removal on :meth:`teardown`.

        :returns: ``path``, so that it can be used inline.
        """
        if path not in self._tracked:
            self._tracked.append(path)
        return path

    def teardown(self) -> None:
        """
        Remove tracked paths, newest first, then recreate the default
        directories a test may have removed.
        """
        while self._tracked:
            path = self._tracked.pop()
            try:
                self.target.remove(path)
            except TargetError:
                self.logger.error('Could not remove %s', path, exc_info=True)
        setup_default_directories(self.target, self.root)

    def __enter__(self):
        return self.setup()

    def __exit__(self, *args, **kwargs):
        self.teardown()
