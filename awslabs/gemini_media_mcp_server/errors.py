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
"""Exception hierarchy for the Gemini media MCP server.

Every failure the server can report is one of these classes. Tool handlers
catch them at the boundary and turn them into a text response; the background
upload path turns them into a notification instead.
"""

import httpx
from typing import Optional


class GeminiMediaError(Exception):
    """Base exception for all server errors.

    Attributes:
        message: Human-readable error message.
        error_code: Short machine-readable classification.
        retryable: Whether retrying the same call could succeed.
    """

    error_code = 'GeminiMediaError'

    def __init__(self, message: str, error_code: Optional[str] = None, retryable: bool = False):
        """Initialize GeminiMediaError.

        Args:
            message: Human-readable error message.
            error_code: Overrides the class-level error code.
            retryable: Whether this error should be retried.
        """
        self.message = message
        if error_code:
            self.error_code = error_code
        self.retryable = retryable
        super().__init__(message)


class InputValidationError(GeminiMediaError):
    """Malformed or contradictory input. Never retried."""

    error_code = 'ValidationError'


class TransferError(GeminiMediaError):
    """A download or upload failed at the transport level."""

    error_code = 'TransferError'

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize TransferError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status of the failed response, when there was one.
        """
        self.status_code = status_code
        super().__init__(message)


class UploadInitError(TransferError):
    """The resumable upload session could not be started."""

    error_code = 'UploadInitError'


class UploadTransferError(TransferError):
    """The file bytes could not be delivered to the upload session."""

    error_code = 'UploadTransferError'


class PersistenceError(GeminiMediaError):
    """Writing to local disk failed."""

    error_code = 'PersistenceError'


class SizeLimitExceededError(GeminiMediaError):
    """A source is too large to be sent inline."""

    error_code = 'SizeLimitExceeded'

    def __init__(self, source: str, size_bytes: int, limit_bytes: int):
        """Initialize SizeLimitExceededError.

        Args:
            source: Description of the offending source.
            size_bytes: Resolved size of the source.
            limit_bytes: The inline threshold that was exceeded.
        """
        self.source = source
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f'File {source} is {size_bytes / 1024 / 1024:.2f} MB, which exceeds the '
            f'{limit_bytes / 1024 / 1024:g} MB inline limit. Use the gemini_upload_large_media '
            f'tool to upload it first, then pass the returned file_uri and mime_type.'
        )


class RemoteProcessingFailedError(GeminiMediaError):
    """The File API reported FAILED for an uploaded object."""

    error_code = 'RemoteProcessingFailed'


class PollingTimedOutError(GeminiMediaError):
    """Polling exhausted its attempts without reaching a terminal state."""

    error_code = 'PollingTimedOut'
    retryable = True


class UpstreamApiError(GeminiMediaError):
    """The Gemini API returned a structured error object.

    Attributes:
        code: Numeric error code from the API (usually the HTTP status).
        status: Canonical status string, e.g. 'INVALID_ARGUMENT'.
    """

    error_code = 'UpstreamApiError'

    def __init__(self, message: str, code: Optional[int] = None, status: Optional[str] = None):
        """Initialize UpstreamApiError.

        Args:
            message: Error message returned by the API.
            code: Numeric error code.
            status: Canonical status string.
        """
        self.code = code
        self.status = status
        super().__init__(
            f'Gemini API error: {message} (Status: {status or "UNKNOWN"}, Code: {code})',
            retryable=code in (429, 500, 503) if code else False,
        )


def describe_error(error: BaseException) -> str:
    """Render an exception as the one-line reason shown to users."""
    if isinstance(error, GeminiMediaError):
        return error.message
    if isinstance(error, httpx.HTTPStatusError):
        body = error.response.text[:500] if error.response is not None else ''
        return f'API request failed with status {error.response.status_code}: {body}'
    if isinstance(error, httpx.TimeoutException):
        return f'Request timed out: {error}'
    if isinstance(error, httpx.HTTPError):
        return f'HTTP error: {error}'
    return str(error) or type(error).__name__
