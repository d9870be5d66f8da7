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
Helpers for the media content index (``MediaStore``), driven through the
device ``content`` command.

Rows are looked up by exact ``_data`` path. Lookups include pending and
trashed rows, so a file that exists on disk is always found.
"""
import base64
import io
import re
from shlex import quote

from fusedlib.exception import VerificationError, TargetError
from fusedlib.utils.misc import get_logger, convert_new_lines

from typing import Dict, List, Optional, Sequence, Union, TYPE_CHECKING
if TYPE_CHECKING:
    from fusedlib.target import AndroidTarget


logger = get_logger('content')

FILES_URI = 'content://media/external/file'
IMAGES_URI = 'content://media/external/images/media'
VIDEO_URI = 'content://media/external/video/media'

INCLUDE_PENDING_AND_TRASHED = 'includePending=1&includeTrashed=1'

ID = '_id'
DATA = '_data'
DISPLAY_NAME = '_display_name'
RELATIVE_PATH = 'relative_path'
MIME_TYPE = 'mime_type'
OWNER_PACKAGE_NAME = 'owner_package_name'

NO_RESULT = 'No result found.'
NULL = 'NULL'

_ROW_START_RE = re.compile(r'^Row:\s*\d+\s*', re.MULTILINE)

ContentRow = Dict[str, Optional[str]]


def with_appended_id(uri: str, row_id: int) -> str:
    return '{}/{}'.format(uri.rstrip('/'), row_id)


def including_pending_and_trashed(uri: str) -> str:
    separator = '&' if '?' in uri else '?'
    return '{}{}{}'.format(uri, separator, INCLUDE_PENDING_AND_TRASHED)


def sql_literal(value: str) -> str:
    """
    Quote ``value`` as an SQL string literal.
    """
    return "'{}'".format(value.replace("'", "''"))


def split_rows(output: str) -> List[str]:
    """
    Split ``content query`` output into the payload of each ``Row: N``.
    A value may span several lines, so rows are delimited by their headers.
    """
    text = convert_new_lines(output or '')
    if not text.strip() or text.strip().startswith(NO_RESULT):
        return []
    matches = list(_ROW_START_RE.finditer(text))
    rows: List[str] = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        rows.append(text[match.end():end].strip())
    return rows


def parse_row(payload: str, projection: Sequence[str]) -> ContentRow:
    """
    Parse ``col=value, col=value`` into a dict.

    Only ``, <column>=`` for a column of ``projection`` delimits a value, so
    values containing commas or ``=`` survive. ``NULL`` becomes ``None``.
    """
    keys = '|'.join(re.escape(column) for column in projection)
    matches = list(re.finditer(r'(?:^|, )(?P<key>{})='.format(keys), payload))
    row: ContentRow = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(payload)
        value = payload[match.end():end]
        row[match.group('key')] = None if value == NULL else value
    return row


def query(target: 'AndroidTarget', uri: str, projection: Sequence[str],
          where: Optional[str] = None, sort: Optional[str] = None) -> List[ContentRow]:
    """
    Run ``content query`` and return the matching rows.

    :param projection: Columns to return; also used to parse the output.
    :param where: SQL selection, passed verbatim.
    :raises TargetError: If the query cannot be run.
    """
    parts = ['content', 'query', '--uri', quote(uri), '--projection', quote(':'.join(projection))]
    if where:
        parts += ['--where', quote(where)]
    if sort:
        parts += ['--sort', quote(sort)]
    output = target.execute(' '.join(parts))
    return [parse_row(payload, projection) for payload in split_rows(output)]


def _query_path(target: 'AndroidTarget', uri: str, path: str,
                projection: Sequence[str]) -> List[ContentRow]:
    return query(target, including_pending_and_trashed(uri), projection,
                 where='{} = {}'.format(DATA, sql_literal(path)))


def query_file(target: 'AndroidTarget', path: str, *projection: str) -> List[ContentRow]:
    return _query_path(target, FILES_URI, path, projection or (ID,))


def query_image_file(target: 'AndroidTarget', path: str, *projection: str) -> List[ContentRow]:
    return _query_path(target, IMAGES_URI, path, projection or (ID,))


def query_video_file(target: 'AndroidTarget', path: str, *projection: str) -> List[ContentRow]:
    return _query_path(target, VIDEO_URI, path, projection or (ID,))


def _first_value(target: 'AndroidTarget', path: str, column: str) -> Optional[str]:
    rows = query_file(target, path, column)
    if rows:
        return rows[0].get(column)
    return None


def get_file_row_id(target: 'AndroidTarget', path: str) -> int:
    """
    :returns: The row id of ``path`` in the files table, ``-1`` if the file
        is not indexed.
    """
    value = _first_value(target, path, ID)
    return int(value) if value is not None else -1


def get_file_uri(target: 'AndroidTarget', path: str) -> Optional[str]:
    """
    :returns: The content URI of ``path``, or ``None`` if it is not indexed.
    """
    row_id = get_file_row_id(target, path)
    return None if row_id == -1 else with_appended_id(FILES_URI, row_id)


def get_file_owner_package(target: 'AndroidTarget', path: str) -> Optional[str]:
    return _first_value(target, path, OWNER_PACKAGE_NAME)


def get_file_mime_type(target: 'AndroidTarget', path: str) -> str:
    return _first_value(target, path, MIME_TYPE) or ''


def delete_with_media_provider(target: 'AndroidTarget', path: str) -> None:
    """
    Delete the row (and file) of ``path`` through the media provider.

    :raises VerificationError: Unless exactly that one row went away.
    """
    where = '{} = {}'.format(DATA, sql_literal(path))
    before = len(query_file(target, path))
    target.execute('content delete --uri {} --where {}'.format(quote(FILES_URI), quote(where)))
    after = len(query_file(target, path))
    if before - after != 1:
        message = 'Expected exactly one row deleted for {}, got {}'
        raise VerificationError(message.format(path, before - after))


def delete_with_media_provider_no_throw(target: 'AndroidTarget', *uris: Optional[str]) -> None:
    """
    Best effort delete of each of ``uris``. ``None`` entries are skipped and
    failures are logged.
    """
    for uri in uris:
        if uri is None:
            continue
        try:
            target.execute('content delete --uri {}'.format(quote(uri)))
        except TargetError:
            logger.error('Could not delete %s', uri, exc_info=True)


def update_display_name_with_media_provider(target: 'AndroidTarget', relative_path: str,
                                            old_display_name: str,
                                            new_display_name: str) -> None:
    """
    Rename an image through the media provider by updating its display name.

    :param relative_path: Directory of the image relative to the volume root,
        without the trailing slash, e.g. ``Pictures``.
    :raises VerificationError: If the selection does not match exactly one
        image, or the row was not renamed.
    """
    selection = '{} = {} AND {} = {}'.format(RELATIVE_PATH, sql_literal(relative_path + '/'),
                                             DISPLAY_NAME, sql_literal(old_display_name))
    rows = query(target, IMAGES_URI, (ID, DATA), where=selection)
    if len(rows) != 1:
        message = 'Expected one image named {} in {}, found {}'
        raise VerificationError(message.format(old_display_name, relative_path, len(rows)))
    row_id = int(rows[0][ID] or -1)
    uri = with_appended_id(IMAGES_URI, row_id)
    logger.info('Uri: %s. Data: %s', uri, rows[0].get(DATA))
    target.execute('content update --uri {} --bind {}'.format(
        quote(uri), quote('{}:s:{}'.format(DISPLAY_NAME, new_display_name))))

    updated = query(target, IMAGES_URI, (DISPLAY_NAME,),
                    where='{} = {}'.format(ID, row_id))
    if len(updated) != 1 or updated[0].get(DISPLAY_NAME) != new_display_name:
        raise VerificationError('Image {} was not renamed to {}'.format(uri, new_display_name))


class MediaProviderWriter(io.BytesIO):
    """
    Buffer whose content replaces that of ``uri`` when closed.
    """

    def __init__(self, target: 'AndroidTarget', uri: str):
        super().__init__()
        self.target = target
        self.uri = uri

    def close(self) -> None:
        if not self.closed:
            data = self.getvalue()
            super().close()
            self.target.execute('base64 -d | content write --uri {}'.format(quote(self.uri)),
                                inputtext=base64.b64encode(data))


def open_with_media_provider(target: 'AndroidTarget', path: str,
                             mode: str = 'r') -> Union[io.BytesIO, MediaProviderWriter]:
    """
    Open ``path`` through its content URI rather than the file system.

    :param mode: ``'r'`` for a stream of the current content, ``'w'`` for a
        stream written back to the provider on close.
    :raises VerificationError: If ``path`` is not indexed.
    """
    uri = get_file_uri(target, path)
    if uri is None:
        raise VerificationError('{} has no content URI'.format(path))
    logger.info('Uri: %s. Data: %s', uri, path)
    if 'w' in mode:
        return MediaProviderWriter(target, uri)
    output = target.execute('content read --uri {} | base64'.format(quote(uri)))
    return io.BytesIO(base64.b64decode(''.join(output.split())))
