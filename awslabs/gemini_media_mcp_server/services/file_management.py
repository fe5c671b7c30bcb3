# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
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
"""Listing and deleting files stored in the Gemini File API."""

from awslabs.gemini_media_mcp_server.models.common import RemoteObject
from awslabs.gemini_media_mcp_server.services.file_store import GeminiFileStore
from typing import List


NO_FILES_MESSAGE = 'No files found in the Google File API storage.'
SEPARATOR = '--------------------'


def format_file(remote: RemoteObject) -> str:
    """One listing entry."""
    return '\n'.join(
        [
            f'Name: {remote.name}',
            f'  Display Name: {remote.display_name or "N/A"}',
            f'  MIME Type: {remote.mime_type or "N/A"}',
            f'  Size: {remote.size_bytes or "N/A"} bytes',
            f'  State: {remote.state or "N/A"}',
            f'  URI: {remote.uri or "N/A"}',
            f'  Expires: {remote.expiration_time or "N/A"}',
        ]
    )


def format_file_list(files: List[RemoteObject]) -> str:
    """The full listing, or a fixed message when there are no files."""
    if not files:
        return NO_FILES_MESSAGE
    return f'\n{SEPARATOR}\n'.join(format_file(remote) for remote in files)


async def list_files(file_store: GeminiFileStore) -> str:
    """List every stored file as text."""
    return format_file_list(await file_store.list_files())


async def delete_file(file_store: GeminiFileStore, file_name: str) -> str:
    """Delete a stored file and return a confirmation."""
    await file_store.delete_file(file_name)
    return f'Successfully deleted file: {file_name}'
