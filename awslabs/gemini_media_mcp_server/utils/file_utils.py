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
"""Byte transfer utilities: unique names, saving, removal and downloads.

Nothing here knows about Gemini. These helpers move bytes between local disk
and arbitrary HTTP sources and report failures through the server's error
taxonomy.
"""

import aiofiles
import aiofiles.os
import base64
import httpx
import os
import random
import string
from awslabs.gemini_media_mcp_server.consts import DOWNLOAD_CHUNK_SIZE, FALLBACK_EXTENSION
from awslabs.gemini_media_mcp_server.errors import (
    InputValidationError,
    PersistenceError,
    TransferError,
)
from awslabs.gemini_media_mcp_server.utils.mime_utils import (
    extension_for_content_type,
    extension_from_url,
    normalize_content_type,
)
from datetime import datetime, timezone
from loguru import logger
from typing import NamedTuple, Optional


class DownloadResult(NamedTuple):
    """A file fetched from a URL.

    Attributes:
        path: Absolute path of the written file.
        content_type: Normalized Content-Type reported by the server, if any.
        size: Number of bytes written.
    """
    path: str
    content_type: Optional[str]
    size: int


def unique_name(prefix: str, extension: str) -> str:
    """Generate a collision-resistant filename.

    Args:
        prefix: Leading part of the name, e.g. 'gemini-gen'.
        extension: File extension, with or without the leading dot.

    Returns:
        A name like 'gemini-gen-2024-05-01T10-00-00-123Z-k3j9x2.png'.
    """
    now = datetime.now(timezone.utc)
    timestamp = now.strftime('%Y-%m-%dT%H-%M-%S-') + f'{now.microsecond // 1000:03d}Z'
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
    if extension and not extension.startswith('.'):
        extension = f'.{extension}'
    return f'{prefix}-{timestamp}-{suffix}{extension}'


async def save_file(output_dir: str, subfolder: str, filename: str, data: bytes) -> str:
    """Write bytes to ``<output_dir>/<subfolder>/<filename>``.

    The directory is created if needed.

    Args:
        output_dir: Base output directory.
        subfolder: Subdirectory such as 'image', 'video' or 'tmp'.
        filename: Name of the file to write.
        data: Content to write.

    Returns:
        Absolute path of the written file.

    Raises:
        PersistenceError: If the directory or file cannot be written.
    """
    directory = os.path.abspath(os.path.join(output_dir, subfolder))
    file_path = os.path.join(directory, filename)
    try:
        os.makedirs(directory, exist_ok=True)
        async with aiofiles.open(file_path, 'wb') as f:
            await f.write(data)
    except OSError as e:
        logger.error(f'Failed to save file {file_path}: {e}')
        raise PersistenceError(f'Failed to save file {file_path}: {e}')

    logger.bind(path=file_path, size=len(data)).info(f'Saved file: {file_path}')
    return file_path


async def remove_file(path: Optional[str]) -> None:
    """Delete a file, treating an already missing file as success.

    Other OS errors are logged and swallowed; removal is only ever cleanup.
    """
    if not path:
        return
    try:
        await aiofiles.os.remove(path)
        logger.debug(f'Deleted file: {path}')
    except FileNotFoundError:
        logger.debug(f'File already absent, nothing to delete: {path}')
    except OSError as e:
        logger.warning(f'Failed to delete file {path}: {e}')


def file_size(path: str) -> int:
    """Size of a local file in bytes.

    Raises:
        InputValidationError: If the path does not exist or is not a regular file.
    """
    if not os.path.isfile(path):
        raise InputValidationError(f'File not found: {path}')
    return os.path.getsize(path)


async def read_file_base64(path: str) -> str:
    """Read a local file and return its content base64-encoded.

    Raises:
        PersistenceError: If the file cannot be read.
    """
    try:
        async with aiofiles.open(path, 'rb') as f:
            data = await f.read()
    except OSError as e:
        raise PersistenceError(f'Failed to read file {path}: {e}')
    return base64.b64encode(data).decode('utf-8')


async def fetch_content_length(client: httpx.AsyncClient, url: str) -> Optional[int]:
    """Ask a server for the size of a resource without downloading it.

    Args:
        client: HTTP client to use.
        url: Resource URL.

    Returns:
        The Content-Length reported by a successful HEAD request, or None when
        the HEAD request fails or the header is missing or not numeric.
    """
    try:
        response = await client.head(url, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.debug(f'HEAD request failed for {url}: {e}')
        return None
    if response.status_code >= 400:
        logger.debug(f'HEAD request for {url} returned status {response.status_code}')
        return None
    content_length = response.headers.get('content-length', '').strip()
    if not content_length.isdigit():
        return None
    return int(content_length)


async def download_file(
    client: httpx.AsyncClient,
    url: str,
    output_dir: str,
    subfolder: str,
    prefix: str,
    timeout: Optional[float] = None,
) -> DownloadResult:
    """Stream a URL to a uniquely named local file.

    The extension is taken from the response Content-Type when it is
    trustworthy, otherwise from the URL path, otherwise a fixed fallback.

    Args:
        client: HTTP client to use.
        url: URL to fetch.
        output_dir: Base output directory.
        subfolder: Subdirectory to write into.
        prefix: Filename prefix passed to unique_name.
        timeout: Overrides the client's timeout, in seconds.

    Returns:
        A DownloadResult describing the written file.

    Raises:
        TransferError: On a non-success status or a transport failure.
        PersistenceError: If the file cannot be written.
    """
    directory = os.path.abspath(os.path.join(output_dir, subfolder))
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as e:
        raise PersistenceError(f'Failed to create directory {directory}: {e}')

    file_path: Optional[str] = None
    request_kwargs = {'follow_redirects': True}
    if timeout is not None:
        request_kwargs['timeout'] = timeout

    logger.info(f'Downloading file from URL: {url}')
    try:
        async with client.stream('GET', url, **request_kwargs) as response:
            if not response.is_success:
                body = (await response.aread()).decode('utf-8', errors='replace')[:500]
                raise TransferError(
                    f'Download failed with status code {response.status_code}. Response: {body}',
                    status_code=response.status_code,
                )

            content_type = normalize_content_type(response.headers.get('content-type'))
            extension = (
                extension_for_content_type(content_type)
                or extension_from_url(url)
                or FALLBACK_EXTENSION
            )
            file_path = os.path.join(directory, unique_name(prefix, extension))

            size = 0
            async with aiofiles.open(file_path, 'wb') as f:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    size += len(chunk)
                    await f.write(chunk)
    except httpx.HTTPError as e:
        await remove_file(file_path)
        raise TransferError(f'Download failed for {url}: {e}')
    except OSError as e:
        await remove_file(file_path)
        raise PersistenceError(f'Failed to write downloaded file {file_path}: {e}')
    except BaseException:
        await remove_file(file_path)
        raise

    logger.bind(url=url, path=file_path, size=size, content_type=content_type).info(
        f'Downloaded {url} to {file_path}'
    )
    return DownloadResult(path=file_path, content_type=content_type, size=size)
