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
"""Common models and enums shared across the Gemini media services."""

import json
from awslabs.gemini_media_mcp_server.models.media import RemoteUploadPlan
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class FileState(str, Enum):
    """Processing states reported by the Gemini File API.

    Attributes:
        PROCESSING: The file is still being processed and cannot be used yet.
        ACTIVE: The file is ready to be referenced by generation requests.
        FAILED: Processing failed permanently.
        UNSPECIFIED: The service did not report a state.
    """
    PROCESSING = 'PROCESSING'
    ACTIVE = 'ACTIVE'
    FAILED = 'FAILED'
    UNSPECIFIED = 'STATE_UNSPECIFIED'


class UploadOutcome(str, Enum):
    """Lifecycle outcome of one background upload-and-poll sequence."""
    PENDING = 'pending'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is allowed."""
        return self is not UploadOutcome.PENDING


class RemoteObject(BaseModel):
    """A file resource held by the Gemini File API.

    The service owns the state of this object; the server only observes it
    by polling.

    Attributes:
        name: Stable relative identifier, e.g. 'files/abc-123'.
        uri: Full dereferenceable address used in generation requests.
        mime_type: MIME type recorded by the service.
        state: Raw state string as reported by the service.
        update_time: RFC 3339 timestamp of the last state change.
        display_name: Human-friendly name supplied at upload time.
        size_bytes: Size of the stored object, as reported by the service.
        create_time: RFC 3339 creation timestamp.
        expiration_time: RFC 3339 timestamp after which the object is deleted.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    name: str = ''
    uri: str = ''
    mime_type: Optional[str] = Field(default=None, alias='mimeType')
    state: Optional[str] = None
    update_time: Optional[str] = Field(default=None, alias='updateTime')
    display_name: Optional[str] = Field(default=None, alias='displayName')
    size_bytes: Optional[str] = Field(default=None, alias='sizeBytes')
    create_time: Optional[str] = Field(default=None, alias='createTime')
    expiration_time: Optional[str] = Field(default=None, alias='expirationTime')

    @property
    def file_state(self) -> Optional[FileState]:
        """The state as an enum, or None when the service sent something unknown."""
        try:
            return FileState(self.state) if self.state else FileState.UNSPECIFIED
        except ValueError:
            return None


class UploadTask(BaseModel):
    """In-memory record of one background upload-and-poll lifecycle.

    Nothing about a task is persisted; it lives only as long as the background
    coroutine that drives it.

    Attributes:
        source: Description of the original source (URL or local path).
        remote: The uploaded object, once the upload has completed.
        plan: How the uploaded object is referenced in generation requests.
        attempts: Number of status checks performed so far.
        outcome: Current lifecycle outcome.
        completed_at: Timestamp reported by the service for the terminal state.
    """
    source: str
    remote: Optional[RemoteObject] = None
    plan: Optional[RemoteUploadPlan] = None
    attempts: int = 0
    outcome: UploadOutcome = UploadOutcome.PENDING
    completed_at: Optional[str] = None

    def finish(self, outcome: UploadOutcome, completed_at: Optional[str] = None) -> None:
        """Move the task to a terminal outcome.

        Args:
            outcome: The terminal outcome to record.
            completed_at: Timestamp reported by the service, if any.

        Raises:
            ValueError: If the task is already terminal or the outcome is not terminal.
        """
        if self.outcome.is_terminal:
            raise ValueError(f'Upload task for {self.source} already finished as {self.outcome.value}')
        if not outcome.is_terminal:
            raise ValueError('An upload task can only finish with a terminal outcome')
        self.outcome = outcome
        self.completed_at = completed_at


class MediaResult(BaseModel):
    """Result of an image tool that produced a local file.

    Serialized with camelCase keys, the field names clients of the image
    tools already parse.

    Attributes:
        local_path: Absolute path of the saved file.
        cf_image_url: Public URL on the image host, when the upload succeeded.
        cf_upload_success: Whether the image host upload succeeded.
    """
    model_config = ConfigDict(populate_by_name=True)

    local_path: str = Field(alias='localPath')
    cf_image_url: Optional[str] = Field(default=None, alias='cfImageUrl')
    cf_upload_success: bool = Field(default=False, alias='cfUploadSuccess')

    def to_json(self) -> str:
        """Render the result as indented JSON for the tool response."""
        return json.dumps(self.model_dump(by_alias=True), indent=2)


class VideoResult(BaseModel):
    """Result of a video generation.

    Attributes:
        local_path: Absolute path of the saved video.
        cf_video_url: Public URL on the image host, when the upload succeeded.
        cf_upload_success: Whether the image host upload succeeded.
        operation_name: Name of the long-running operation that produced the video.
    """
    model_config = ConfigDict(populate_by_name=True)

    local_path: str = Field(alias='localPath')
    cf_video_url: Optional[str] = Field(default=None, alias='cfVideoUrl')
    cf_upload_success: bool = Field(default=False, alias='cfUploadSuccess')
    operation_name: str = Field(alias='operationName')

    def to_json(self) -> str:
        """Render the result as indented JSON for the tool response."""
        return json.dumps(self.model_dump(by_alias=True), indent=2)


def format_remote_timestamp(value: Optional[str]) -> str:
    """Render an RFC 3339 timestamp from the File API for humans.

    Args:
        value: Timestamp such as '2024-05-01T10:00:00.123456789Z', or None.

    Returns:
        A UTC timestamp like '2024-05-01 10:00:00 UTC', the raw value when it
        cannot be parsed, or 'N/A' when the service did not provide one.
    """
    if not value:
        return 'N/A'
    text = value.replace('Z', '+00:00')
    # The API reports nanoseconds; fromisoformat accepts at most microseconds.
    if '.' in text:
        head, _, tail = text.partition('.')
        digits = ''
        while tail and tail[0].isdigit():
            digits += tail[0]
            tail = tail[1:]
        text = f'{head}.{digits[:6].ljust(6, "0")}{tail}'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')


def error_payload(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the structured ``error`` object of an API response, if present."""
    error = data.get('error') if isinstance(data, dict) else None
    return error if isinstance(error, dict) else None
