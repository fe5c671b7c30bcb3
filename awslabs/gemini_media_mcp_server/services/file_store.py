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
"""Client for the Gemini File API.

Uploads use the two-phase resumable protocol: a ``start`` call that declares
the size and type and returns a session URL, then a single
``upload, finalize`` call that sends every byte to that session URL.
"""

import aiofiles
import httpx
import re
from awslabs.gemini_media_mcp_server.consts import (
    EXTENDED_TRANSFER_TIMEOUT_SECONDS,
    GEMINI_API_VERSION,
    REMOTE_FILE_NAME_PATTERN,
    UPLOAD_CHUNK_SIZE,
)
from awslabs.gemini_media_mcp_server.errors import (
    InputValidationError,
    UploadInitError,
    UploadTransferError,
)
from awslabs.gemini_media_mcp_server.models.common import RemoteObject
from awslabs.gemini_media_mcp_server.services.gemini_common import api_path, parse_api_response
from awslabs.gemini_media_mcp_server.utils.file_utils import file_size
from loguru import logger
from typing import AsyncIterator, List, Optional, Union


async def _iter_file(path: str) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, 'rb') as f:
        while True:
            chunk = await f.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class GeminiFileStore:
    """Remote object store backed by the Gemini File API.

    Attributes:
        client: Shared HTTP client whose base URL is the Gemini API URL.
        api_key: Gemini API key.
        request_timeout: Timeout for metadata calls, in seconds.
        transfer_timeout: Timeout for the byte transfer call, in seconds.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        request_timeout: float,
        transfer_timeout: float = EXTENDED_TRANSFER_TIMEOUT_SECONDS,
    ):
        """Initialize the store.

        Args:
            client: Shared HTTP client whose base URL is the Gemini API URL.
            api_key: Gemini API key.
            request_timeout: Timeout for metadata calls, in seconds.
            transfer_timeout: Timeout for the byte transfer call, in seconds.
        """
        self.client = client
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.transfer_timeout = transfer_timeout

    async def begin_upload(self, display_name: str, mime_type: str, byte_length: int) -> str:
        """Start a resumable upload session.

        Args:
            display_name: Name shown for the file in listings.
            mime_type: MIME type of the content.
            byte_length: Exact number of bytes that will be sent.

        Returns:
            The session URL to which the bytes must be sent.

        Raises:
            UploadInitError: If the request fails or no session URL is returned.
        """
        logger.bind(display_name=display_name, mime_type=mime_type, size=byte_length).info(
            f'Initiating resumable upload for {display_name}'
        )
        try:
            response = await self.client.post(
                f'/upload/{GEMINI_API_VERSION}/files',
                params={'key': self.api_key},
                json={'file': {'display_name': display_name}},
                headers={
                    'X-Goog-Upload-Protocol': 'resumable',
                    'X-Goog-Upload-Command': 'start',
                    'X-Goog-Upload-Header-Content-Length': str(byte_length),
                    'X-Goog-Upload-Header-Content-Type': mime_type,
                },
                timeout=self.request_timeout,
            )
        except httpx.HTTPError as e:
            raise UploadInitError(f'Failed to initiate resumable upload: {e}')

        if not response.is_success:
            raise UploadInitError(
                f'Failed to initiate resumable upload: status {response.status_code}. '
                f'Response: {response.text[:500]}',
                status_code=response.status_code,
            )
        session_url = response.headers.get('x-goog-upload-url') or response.headers.get('location')
        if not session_url:
            logger.error(f'No upload URL in start response headers: {dict(response.headers)}')
            raise UploadInitError('Failed to initiate resumable upload: no upload URL received')
        return session_url

    async def send_bytes(
        self,
        session_url: str,
        content: Union[bytes, str],
        mime_type: str,
        byte_length: Optional[int] = None,
    ) -> RemoteObject:
        """Send the full payload to an upload session and finalize it.

        Args:
            session_url: URL returned by begin_upload.
            content: The bytes to send, or a local path streamed in chunks.
            mime_type: MIME type of the content.
            byte_length: Size of the payload; computed when omitted.

        Returns:
            The created RemoteObject (name and uri always populated).

        Raises:
            UploadTransferError: On transport failure, a non-success status, or a
                response without both name and uri.
        """
        if isinstance(content, (bytes, bytearray)):
            body = bytes(content)
            length = len(body) if byte_length is None else byte_length
        else:
            length = file_size(content) if byte_length is None else byte_length
            body = _iter_file(content)

        try:
            response = await self.client.post(
                session_url,
                content=body,
                headers={
                    'Content-Length': str(length),
                    'X-Goog-Upload-Offset': '0',
                    'X-Goog-Upload-Command': 'upload, finalize',
                    'Content-Type': mime_type,
                },
                timeout=self.transfer_timeout,
            )
        except httpx.HTTPError as e:
            raise UploadTransferError(f'Failed to upload file data: {e}')

        if not response.is_success:
            raise UploadTransferError(
                f'File upload failed with status {response.status_code}. Response: {response.text[:500]}',
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        file_data = payload.get('file') if isinstance(payload, dict) else None
        remote = RemoteObject.model_validate(file_data) if isinstance(file_data, dict) else None
        if remote is None or not remote.name or not remote.uri:
            raise UploadTransferError(
                f'File upload response is missing the file name or URI: {response.text[:500]}',
                status_code=response.status_code,
            )

        logger.bind(remote_name=remote.name, uri=remote.uri, state=remote.state).info(
            f'File uploaded: {remote.name}'
        )
        return remote

    async def upload_file(self, path: str, mime_type: str, display_name: str) -> RemoteObject:
        """Upload a local file with begin_upload followed by send_bytes."""
        length = file_size(path)
        if length == 0:
            raise InputValidationError(f'File is empty and cannot be uploaded: {path}')
        session_url = await self.begin_upload(display_name, mime_type, length)
        return await self.send_bytes(session_url, path, mime_type, byte_length=length)

    async def get_status(self, name: str) -> RemoteObject:
        """Fetch the current metadata of a stored file.

        Transport and API errors propagate; callers that poll decide whether
        they are transient.
        """
        response = await self.client.get(
            api_path(name), params={'key': self.api_key}, timeout=self.request_timeout
        )
        return RemoteObject.model_validate(parse_api_response(response))

    async def list_files(self, page_size: int = 100) -> List[RemoteObject]:
        """List every stored file, following pagination."""
        files: List[RemoteObject] = []
        page_token: Optional[str] = None
        while True:
            params = {'key': self.api_key, 'pageSize': page_size}
            if page_token:
                params['pageToken'] = page_token
            response = await self.client.get(
                api_path('files'), params=params, timeout=self.request_timeout
            )
            data = parse_api_response(response)
            files.extend(RemoteObject.model_validate(item) for item in data.get('files') or [])
            page_token = data.get('nextPageToken')
            if not page_token:
                return files

    async def delete_file(self, name: str) -> None:
        """Delete a stored file by its relative name ('files/<id>').

        Raises:
            InputValidationError: If the name is not of the form 'files/<id>'.
            UpstreamApiError: If the API reports an error.
        """
        if not re.match(REMOTE_FILE_NAME_PATTERN, name or ''):
            raise InputValidationError(
                f"Invalid file name '{name}'. Expected the form 'files/<id>'."
            )
        response = await self.client.delete(
            api_path(name), params={'key': self.api_key}, timeout=self.request_timeout
        )
        parse_api_response(response)
        logger.info(f'Deleted remote file: {name}')
