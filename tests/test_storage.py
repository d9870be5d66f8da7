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

"""Tests for the shared storage tree helpers."""

from fusedlib.storage import DEFAULT_TOP_LEVEL_DIRS, StorageContext, setup_default_directories


def test_setup_default_directories(target, conn):
    setup_default_directories(target)

    assert conn.ran(r'^mkdir ') == ['mkdir /sdcard/{}'.format(name)
                                    for name in DEFAULT_TOP_LEVEL_DIRS]


def test_setup_tolerates_existing_directories(target, conn):
    conn.fail(r'^mkdir /sdcard/Download$', "mkdir: '/sdcard/Download': File exists")

    setup_default_directories(target, '/storage/emulated/0')
    setup_default_directories(target)

    assert 'mkdir /storage/emulated/0/DCIM' in conn.commands
    assert len(conn.ran(r'^mkdir ')) == 2 * len(DEFAULT_TOP_LEVEL_DIRS)


def test_storage_context_directories(target):
    context = StorageContext(target)

    assert context.root == '/sdcard'
    assert context.download_dir == '/sdcard/Download'
    assert context.dcim_dir == '/sdcard/DCIM'
    assert context.pictures_dir == '/sdcard/Pictures'
    assert context.android_data_dir == '/sdcard/Android/data'
    assert context.android_media_dir == '/sdcard/Android/media'
    assert len(context.default_dirs) == len(DEFAULT_TOP_LEVEL_DIRS)
    assert StorageContext(target, '/storage/emulated/10').music_dir == '/storage/emulated/10/Music'


def test_storage_context_teardown(target, conn):
    with StorageContext(target) as context:
        first = context.track('/sdcard/Download/a.jpg')
        context.track('/sdcard/Pictures/dir')
        context.track(first)
        assert context.tracked == ['/sdcard/Download/a.jpg', '/sdcard/Pictures/dir']
        conn.commands.clear()

    assert conn.ran(r'^rm ') == ['rm -rf -- /sdcard/Pictures/dir',
                                 'rm -rf -- /sdcard/Download/a.jpg']
    assert len(conn.ran(r'^mkdir ')) == len(DEFAULT_TOP_LEVEL_DIRS)
    assert context.tracked == []


def test_storage_context_teardown_keeps_going(target, conn):
    conn.fail(r'^rm -rf -- /sdcard/Pictures/dir$', 'rm: Permission denied')
    context = StorageContext(target).setup()
    context.track('/sdcard/Download/a.jpg')
    context.track('/sdcard/Pictures/dir')

    context.teardown()

    assert conn.ran(r'^rm -rf -- /sdcard/Download/a.jpg$')
    assert context.tracked == []
