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
"""Upload lifecycle coordinator.

Decides how each media source reaches a generation request (inline bytes,
an uploaded File API object, or a URI passed through untouched), drives the
resumable upload for large files, polls the File API until the object is
usable, and reports the terminal outcome of background uploads through the
notification dispatcher.
"""

import asyncio
import httpx
import os
import re
from awslabs.gemini_media_mcp_server.consts import (
    EXTENDED_TRANSFER_TIMEOUT_SECONDS,
    LARGE_UPLOAD_MAX_POLL_ATTEMPTS,
    LARGE_UPLOAD_POLL_INTERVAL_SECONDS,
    PASSTHROUGH_URL_PATTERNS,
    TEMP_SUBFOLDER,
)
from awslabs.gemini_media_mcp_server.errors import (
    InputValidationError,
    SizeLimitExceededError,
    describe_error,
)
from awslabs.gemini_media_mcp_server.models.common import (
    FileState,
    UploadOutcome,
    UploadTask,
    format_remote_timestamp,
)
from awslabs.gemini_media_mcp_server.models.media import (
    DirectReferencePlan,
    InlinePlan,
    LocalPathSource,
    MediaSource,
    RemoteHandleSource,
    RemoteUploadPlan,
    TransferPlan,
    UrlSource,
)
from awslabs.gemini_media_mcp_server.services.file_store import GeminiFileStore
from awslabs.gemini_media_mcp_server.services.notifier import NotificationDispatcher
from awslabs.gemini_media_mcp_server.utils.file_utils import (
    download_file,
    fetch_content_length,
    file_size,
    read_file_base64,
    remove_file,
)
from awslabs.gemini_media_mcp_server.utils.mime_utils import (
    guess_mime_type,
    is_supported_mime_type,
)
from loguru import logger
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Union




def is_passthrough_url(url: str) -> bool:
    """Whether the generation endpoint reads this URL itself (e.g. YouTube)."""
    return any(re.match(pattern, url) for pattern in PASSTHROUGH_URL_PATTERNS)


def resolve_mime_type(path: str, content_type: Optional[str] = None) -> str:
    """Determine the MIME type of a local file.

    A supported Content-Type reported by the server that produced the file
    wins; otherwise the type is guessed from the file extension.

    Raises:
        InputValidationError: If no MIME type can be determined.
    """
    if content_type == 'audio/mpeg' and path.lower().endswith('.mp3'):
        content_type = 'audio/mp3'
    if is_supported_mime_type(content_type):
        return content_type
    mime_type = guess_mime_type(path)
    if not mime_type:
        raise InputValidationError(f'Could not determine MIME type for file: {path}')
    return mime_type


def success_message(source: str, plan: RemoteUploadPlan, at: Optional[str]) -> str:
    """Notification text for a file that became ACTIVE."""
    return (
        f'✅ Large file ready:\nOriginal: `{source}`\nURI: `{plan.remote_uri}`\n'
        f'MIME Type: `{plan.mime_type}`\nReady At: `{format_remote_timestamp(at)}`'
    )


def failure_message(source: str, plan: RemoteUploadPlan, at: Optional[str]) -> str:
    """Notification text for a file the File API failed to process."""
    return (
        f'❌ Large file processing failed:\nOriginal: `{source}`\nURI: `{plan.remote_uri}`\n'
        f'MIME Type: `{plan.mime_type}`\nFailed At: `{format_remote_timestamp(at)}`'
    )


def timeout_message(source: str, plan: RemoteUploadPlan, at: Optional[str]) -> str:
    """Notification text for a file that never reached a terminal state."""
    return (
        f'⏳ Polling timed out for large file:\nOriginal: `{source}`\nURI: `{plan.remote_uri}`\n'
        f'MIME Type: `{plan.mime_type}`\nLast Update: `{format_remote_timestamp(at)}`'
    )


def error_message(source: str, reason: str) -> str:
    """Notification text for a background upload that failed before polling."""
    return f'❌ Error processing large file:\nOriginal: `{source}`\nError: `{reason}`'


class MediaCoordinator:
    """Resolves media sources into transfer plans and runs background uploads.

    Attributes:
        file_store: File API client.
        notifier: Dispatcher used to report background outcomes.
        http_client: Client used for HEAD requests and downloads of source URLs.
        inline_limit_bytes: Largest source sent inline.
        output_dir: Base output directory; downloads go to its 'tmp' subfolder.
        poll_interval: Seconds between status checks.
        max_poll_attempts: Status checks before giving up.
        background_tasks: Strong references to in-flight background uploads.
    """

    def __init__(
        self,
        file_store: GeminiFileStore,
        notifier: NotificationDispatcher,
        http_client: httpx.AsyncClient,
        inline_limit_bytes: int,
        output_dir: str,
        poll_interval: float = LARGE_UPLOAD_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = LARGE_UPLOAD_MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the coordinator.

        Args:
            file_store: File API client.
            notifier: Dispatcher used to report background outcomes.
            http_client: Client used for HEAD requests and downloads of source URLs.
            inline_limit_bytes: Largest source sent inline.
            output_dir: Base output directory.
            poll_interval: Seconds between status checks.
            max_poll_attempts: Status checks before giving up.
            sleep: Awaitable delay used between polls.
        """
        self.file_store = file_store
        self.notifier = notifier
        self.http_client = http_client
        self.inline_limit_bytes = inline_limit_bytes
        self.output_dir = output_dir
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._sleep = sleep
        self.background_tasks: Set[asyncio.Task] = set()

    # Per-request resolution

    async def resolve(self, source: MediaSource, mime_prefix: Optional[str] = None) -> TransferPlan:
        """Turn one source into a transfer plan for a generation request.

        Only inline transfer is allowed here. Sources above the inline limit
        fail with SizeLimitExceededError and must go through the background
        large-upload path instead.

        Args:
            source: The media source.
            mime_prefix: If set, the resolved MIME type must start with it (e.g. 'image/').

        Returns:
            An InlinePlan, or a DirectReferencePlan for pass-through sources.

        Raises:
            InputValidationError: Missing file, unknown or unsupported MIME type.
            SizeLimitExceededError: The source is larger than the inline limit.
            TransferError: The source URL could not be downloaded.
        """
        if isinstance(source, RemoteHandleSource):
            self._check_mime_type(source.mime_type, source.describe(), mime_prefix)
            logger.info(f'Using pre-uploaded file: {source.uri}')
            return DirectReferencePlan(uri=source.uri, mime_type=source.mime_type)

        if isinstance(source, UrlSource):
            if is_passthrough_url(source.url):
                if mime_prefix:
                    raise InputValidationError(
                        f'{source.url} cannot be used here, a {mime_prefix}* file is required'
                    )
                logger.info(f'Passing URL through to the model: {source.url}')
                return DirectReferencePlan(uri=source.url)
            return await self._resolve_url(source, mime_prefix)

        if isinstance(source, LocalPathSource):
            return await self._resolve_path(source, mime_prefix)

        raise InputValidationError(f'Unsupported media source: {source!r}')

    async def resolve_many(
        self, sources: Sequence[MediaSource], mime_prefix: Optional[str] = None
    ) -> List[TransferPlan]:
        """Resolve several sources concurrently, failing if any one fails.

        Every resolution runs to completion (and cleans up its own temporary
        download) before the first error, in source order, is raised.
        """
        results = await asyncio.gather(
            *(self.resolve(source, mime_prefix) for source in sources), return_exceptions=True
        )
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error(f'Failed to resolve media source {source.describe()}: {result}')
                raise result
        return list(results)

    async def _resolve_url(self, source: UrlSource, mime_prefix: Optional[str]) -> InlinePlan:
        declared = await fetch_content_length(self.http_client, source.url)
        if declared is not None and declared > self.inline_limit_bytes:
            raise SizeLimitExceededError(source.url, declared, self.inline_limit_bytes)

        temp_path = None
        try:
            download = await download_file(
                self.http_client, source.url, self.output_dir, TEMP_SUBFOLDER, 'downloaded_media'
            )
            temp_path = download.path
            if download.size > self.inline_limit_bytes:
                raise SizeLimitExceededError(source.url, download.size, self.inline_limit_bytes)
            mime_type = resolve_mime_type(download.path, download.content_type)
            return await self._inline(download.path, download.size, mime_type, source.url, mime_prefix)
        finally:
            await remove_file(temp_path)

    async def _resolve_path(self, source: LocalPathSource, mime_prefix: Optional[str]) -> InlinePlan:
        path = os.path.abspath(source.path)
        size = file_size(path)
        if size > self.inline_limit_bytes:
            raise SizeLimitExceededError(source.path, size, self.inline_limit_bytes)
        return await self._inline(path, size, resolve_mime_type(path), source.path, mime_prefix)

    async def _inline(
        self, path: str, size: int, mime_type: str, description: str, mime_prefix: Optional[str]
    ) -> InlinePlan:
        if size == 0:
            raise InputValidationError(f'File is empty: {description}')
        self._check_mime_type(mime_type, description, mime_prefix)
        logger.bind(source=description, size=size, mime_type=mime_type).debug(
            f'Sending {description} inline'
        )
        return InlinePlan(mime_type=mime_type, data=await read_file_base64(path))

    def _check_mime_type(self, mime_type: str, description: str, mime_prefix: Optional[str]) -> None:
        if mime_prefix and not mime_type.startswith(mime_prefix):
            raise InputValidationError(
                f"File {description} has MIME type '{mime_type}', expected {mime_prefix}*"
            )
        if not is_supported_mime_type(mime_type):
            raise InputValidationError(f"Unsupported file type '{mime_type}' for source: {description}")

    # Background large uploads

    def start_large_upload(self, source: Union[UrlSource, LocalPathSource]) -> UploadTask:
        """Schedule a background upload and return without waiting for it.

        The returned task record is updated in place as the upload proceeds.
        """
        record = UploadTask(source=source.describe())
        task = asyncio.create_task(self.run_large_upload(source, record))
        self.background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        logger.info(f'Scheduled background upload for {record.source}')
        return record

    def _on_background_done(self, task: asyncio.Task) -> None:
        self.background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f'Background upload task crashed: {task.exception()!r}')

    async def run_large_upload(
        self, source: Union[UrlSource, LocalPathSource], record: Optional[UploadTask] = None
    ) -> UploadTask:
        """Download (for URLs), upload and poll one large file.

        Every outcome is reported through exactly one terminal notification;
        nothing is raised to the caller.
        """
        record = record or UploadTask(source=source.describe())
        temp_path = None
        try:
            if isinstance(source, UrlSource):
                if is_passthrough_url(source.url):
                    raise InputValidationError(
                        f'{source.url} is read by Gemini directly; pass it to gemini_understand_media instead'
                    )
                download = await download_file(
                    self.http_client,
                    source.url,
                    self.output_dir,
                    TEMP_SUBFOLDER,
                    'large_download',
                    timeout=EXTENDED_TRANSFER_TIMEOUT_SECONDS,
                )
                temp_path = download.path
                await self.notifier.notify(
                    f'ℹ️ Download complete for large file:\nOriginal URL: `{source.url}`\n'
                    f'Saved to: `{download.path}`'
                )
                path = download.path
                mime_type = resolve_mime_type(path, download.content_type)
            else:
                path = os.path.abspath(source.path)
                mime_type = resolve_mime_type(path)

            self._check_mime_type(mime_type, record.source, None)
            size = file_size(path)
            if size == 0:
                raise InputValidationError(f'File is empty: {record.source}')
            if size <= self.inline_limit_bytes:
                raise InputValidationError(
                    f'File is {size / 1024 / 1024:.2f} MB, within the '
                    f'{self.inline_limit_bytes / 1024 / 1024:g} MB inline limit. '
                    f'Use gemini_understand_media directly.'
                )

            logger.bind(source=record.source, size=size, mime_type=mime_type).info(
                f'Uploading large file {record.source}'
            )
            record.remote = await self.file_store.upload_file(path, mime_type, os.path.basename(path))
            record.plan = RemoteUploadPlan(
                mime_type=mime_type,
                remote_name=record.remote.name,
                remote_uri=record.remote.uri,
            )
        except Exception as e:
            logger.error(f'Background upload failed for {record.source}: {e}')
            record.finish(UploadOutcome.FAILED)
            await self.notifier.notify(error_message(record.source, describe_error(e)))
            return record
        finally:
            await remove_file(temp_path)

        await self.poll_until_terminal(record)
        return record

    async def poll_until_terminal(self, record: UploadTask) -> UploadOutcome:
        """Poll the uploaded object until it is ACTIVE, FAILED, or attempts run out.

        Status-check errors are logged and retried. Exactly one notification is
        sent, carrying the terminal outcome.
        """
        if record.remote is None or record.plan is None:
            raise ValueError('Polling requires a completed upload')
        remote = record.remote
        plan = record.plan
        last_update = remote.update_time

        for attempt in range(1, self.max_poll_attempts + 1):
            record.attempts = attempt
            try:
                status = await self.file_store.get_status(remote.name)
            except Exception as e:
                logger.bind(remote_name=remote.name, attempt=attempt).warning(
                    f'Error polling status for {remote.name}: {describe_error(e)}'
                )
                status = None

            if status is not None:
                last_update = status.update_time or last_update
                state = status.file_state
                logger.bind(remote_name=remote.name, attempt=attempt, state=status.state).debug(
                    f'File {remote.name} state: {status.state}'
                )
                if state is FileState.ACTIVE:
                    record.finish(UploadOutcome.SUCCEEDED, status.update_time)
                    logger.bind(remote_name=remote.name).info(f'File {remote.name} is ACTIVE')
                    await self.notifier.notify(
                        success_message(record.source, plan, status.update_time)
                    )
                    return record.outcome
                if state is FileState.FAILED:
                    record.finish(UploadOutcome.FAILED, status.update_time)
                    logger.bind(remote_name=remote.name).error(
                        f'File {remote.name} processing failed'
                    )
                    await self.notifier.notify(
                        failure_message(record.source, plan, status.update_time)
                    )
                    return record.outcome
                if state is None:
                    logger.warning(f'File {remote.name} has unexpected state {status.state}, continuing')

            if attempt < self.max_poll_attempts:
                await self._sleep(self.poll_interval)

        record.finish(UploadOutcome.TIMED_OUT, last_update)
        logger.bind(remote_name=remote.name).error(
            f'Polling timed out for file {remote.name} after {self.max_poll_attempts} attempts'
        )
        await self.notifier.notify(timeout_message(record.source, plan, last_update))
        return record.outcome
