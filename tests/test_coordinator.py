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
"""Tests for the upload lifecycle coordinator."""

import asyncio
import base64
import httpx
import os
import pytest
from awslabs.gemini_media_mcp_server.errors import (
    InputValidationError,
    SizeLimitExceededError,
    UploadInitError,
)
from awslabs.gemini_media_mcp_server.models.common import RemoteObject, UploadOutcome, UploadTask
from awslabs.gemini_media_mcp_server.models.media import (
    DirectReferencePlan,
    InlinePlan,
    LocalPathSource,
    RemoteHandleSource,
    RemoteUploadPlan,
    UrlSource,
)
from awslabs.gemini_media_mcp_server.services.coordinator import (
    MediaCoordinator,
    is_passthrough_url,
    resolve_mime_type,
)
from tests.conftest import API_URL, make_client
from unittest.mock import AsyncMock, patch


LIMIT = 1024 * 1024
UPLOADED = RemoteObject(name='files/abc', uri='https://generativelanguage.googleapis.com/v1beta/files/abc')
PLAN = RemoteUploadPlan(mime_type='video/mp4', remote_name=UPLOADED.name, remote_uri=UPLOADED.uri)


def status(state, update_time=None):
    return RemoteObject(name='files/abc', uri=UPLOADED.uri, state=state, update_time=update_time)


def make_coordinator(file_store, notifier, output_dir, handler=None, max_poll_attempts=5):
    client = make_client(handler or (lambda request: pytest.fail(f'unexpected request {request.url}')))
    return MediaCoordinator(
        file_store=file_store,
        notifier=notifier,
        http_client=client,
        inline_limit_bytes=LIMIT,
        output_dir=output_dir,
        poll_interval=0,
        max_poll_attempts=max_poll_attempts,
        sleep=AsyncMock(),
    )


def tmp_files(output_dir):
    tmp_dir = os.path.join(output_dir, 'tmp')
    return os.listdir(tmp_dir) if os.path.isdir(tmp_dir) else []


class TestHelpers:
    """Tests for module helpers."""

    @pytest.mark.parametrize(
        'url',
        [
            'https://www.youtube.com/watch?v=dQw4w9WgXcQ',
            'https://youtube.com/watch?feature=share&v=abc-123',
            'https://www.youtube.com/shorts/abc_123',
            'https://youtu.be/dQw4w9WgXcQ',
        ],
    )
    def test_passthrough_urls(self, url):
        """Test the recognized streaming video URLs."""
        assert is_passthrough_url(url)

    def test_not_passthrough(self):
        """Test that ordinary URLs are not passed through."""
        assert not is_passthrough_url('https://example.com/watch?v=abc')

    def test_resolve_mime_type(self):
        """Test MIME type resolution from headers and extensions."""
        assert resolve_mime_type('/tmp/a.png', 'image/png') == 'image/png'
        assert resolve_mime_type('/tmp/a.mp3', 'audio/mpeg') == 'audio/mp3'
        assert resolve_mime_type('/tmp/a.mp4', 'application/octet-stream') == 'video/mp4'
        with pytest.raises(InputValidationError):
            resolve_mime_type('/tmp/blob')


class TestResolve:
    """Tests for per-request resolution."""

    @pytest.mark.asyncio
    async def test_local_image_inline(self, mock_file_store, mock_notifier, temp_workspace_dir, tmp_path):
        """Test that a 2KB PNG resolves inline with its exact bytes and no upload."""
        path = tmp_path / 'cat.png'
        data = os.urandom(2048)
        path.write_bytes(data)
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)

        plan = await coordinator.resolve(LocalPathSource(path=str(path)))

        assert isinstance(plan, InlinePlan)
        assert plan.mime_type == 'image/png'
        assert base64.b64decode(plan.data) == data
        mock_file_store.upload_file.assert_not_called()
        mock_file_store.begin_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_braces_in_path_logged_verbatim(
        self, mock_file_store, mock_notifier, temp_workspace_dir, tmp_path, log_messages
    ):
        """Test that a file name containing braces resolves with DEBUG logging enabled."""
        path = tmp_path / 'cat{0}.png'
        path.write_bytes(b'p' * 128)
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)

        plan = await coordinator.resolve(LocalPathSource(path=str(path)))

        assert isinstance(plan, InlinePlan)
        assert any('cat{0}.png' in message for message in log_messages)

    @pytest.mark.asyncio
    async def test_size_threshold(self, mock_file_store, mock_notifier, temp_workspace_dir, tmp_path):
        """Test that exactly the limit is inline and one byte more is rejected without upload."""
        at_limit = tmp_path / 'at.txt'
        at_limit.write_bytes(b'a' * LIMIT)
        over_limit = tmp_path / 'over.txt'
        over_limit.write_bytes(b'a' * (LIMIT + 1))
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)

        assert isinstance(await coordinator.resolve(LocalPathSource(path=str(at_limit))), InlinePlan)
        with pytest.raises(SizeLimitExceededError) as excinfo:
            await coordinator.resolve(LocalPathSource(path=str(over_limit)))

        assert 'gemini_upload_large_media' in excinfo.value.message
        assert mock_file_store.begin_upload.call_count == 0
        assert mock_file_store.upload_file.call_count == 0

    @pytest.mark.asyncio
    async def test_oversized_url_rejected_by_head_request(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that a HEAD response reporting 50MB fails fast without downloading or uploading."""
        methods = []

        def handler(request):
            methods.append(request.method)
            return httpx.Response(200, headers={'Content-Length': '50000000'})

        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir, handler)
        coordinator.inline_limit_bytes = 20 * 1024 * 1024

        with pytest.raises(SizeLimitExceededError):
            await coordinator.resolve(UrlSource(url='https://cdn.example.com/big.mp4'))

        assert methods == ['HEAD']
        mock_file_store.upload_file.assert_not_called()
        mock_file_store.begin_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_url_without_length_size_checked_after_download(
        self, mock_file_store, mock_notifier, temp_workspace_dir
    ):
        """Test that an inconclusive HEAD request falls back to checking the downloaded size."""

        def handler(request):
            if request.method == 'HEAD':
                return httpx.Response(405)
            return httpx.Response(200, headers={'Content-Type': 'video/mp4'}, content=b'v' * (LIMIT + 10))

        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir, handler)
        with pytest.raises(SizeLimitExceededError):
            await coordinator.resolve(UrlSource(url='https://cdn.example.com/clip'))
        assert tmp_files(temp_workspace_dir) == []

    @pytest.mark.asyncio
    async def test_url_inline_cleans_download(self, mock_file_store, mock_notifier, temp_workspace_dir, png_bytes):
        """Test that a small URL is inlined and its temporary download removed."""

        def handler(request):
            if request.method == 'HEAD':
                return httpx.Response(200, headers={'Content-Length': str(len(png_bytes))})
            return httpx.Response(200, headers={'Content-Type': 'image/png'}, content=png_bytes)

        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir, handler)
        plan = await coordinator.resolve(UrlSource(url='https://cdn.example.com/cat'), mime_prefix='image/')

        assert isinstance(plan, InlinePlan)
        assert base64.b64decode(plan.data) == png_bytes
        assert tmp_files(temp_workspace_dir) == []

    @pytest.mark.asyncio
    async def test_passthrough_url(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that a YouTube URL is referenced directly with no network access."""
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        plan = await coordinator.resolve(UrlSource(url='https://youtu.be/dQw4w9WgXcQ'))
        assert plan == DirectReferencePlan(uri='https://youtu.be/dQw4w9WgXcQ')

    @pytest.mark.asyncio
    async def test_remote_handle(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that a pre-uploaded file is referenced directly without polling."""
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        plan = await coordinator.resolve(RemoteHandleSource(uri=UPLOADED.uri, mime_type='video/mp4'))
        assert plan == DirectReferencePlan(uri=UPLOADED.uri, mime_type='video/mp4')
        mock_file_store.get_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_unsupported_type(self, mock_file_store, mock_notifier, temp_workspace_dir, tmp_path):
        """Test that types outside the allow-list are rejected."""
        path = tmp_path / 'archive.zip'
        path.write_bytes(b'PK')
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        with pytest.raises(InputValidationError, match='Unsupported file type'):
            await coordinator.resolve(LocalPathSource(path=str(path)))

    @pytest.mark.asyncio
    async def test_mime_prefix(self, mock_file_store, mock_notifier, temp_workspace_dir, tmp_path):
        """Test that a required MIME prefix is enforced."""
        path = tmp_path / 'notes.txt'
        path.write_text('hello')
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        with pytest.raises(InputValidationError, match='expected image/'):
            await coordinator.resolve(LocalPathSource(path=str(path)), mime_prefix='image/')


class TestResolveMany:
    """Tests for concurrent multi-file resolution."""

    @pytest.mark.asyncio
    async def test_all_or_nothing_cleanup(self, mock_file_store, mock_notifier, temp_workspace_dir, png_bytes):
        """Test that one failing source fails the request and every download is removed."""

        def handler(request):
            if request.method == 'HEAD':
                return httpx.Response(405)
            if request.url.path == '/bad':
                return httpx.Response(200, headers={'Content-Type': 'application/zip'}, content=b'PK')
            return httpx.Response(200, headers={'Content-Type': 'image/png'}, content=png_bytes)

        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir, handler)
        sources = [
            UrlSource(url='https://cdn.example.com/one'),
            UrlSource(url='https://cdn.example.com/bad'),
            UrlSource(url='https://cdn.example.com/three'),
        ]

        with pytest.raises(InputValidationError):
            await coordinator.resolve_many(sources)

        assert tmp_files(temp_workspace_dir) == []
        mock_file_store.upload_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_keeps_order(self, mock_file_store, mock_notifier, temp_workspace_dir, sample_png_path):
        """Test that plans come back in source order."""
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        plans = await coordinator.resolve_many(
            [LocalPathSource(path=sample_png_path), UrlSource(url='https://youtu.be/abc')]
        )
        assert [plan.kind for plan in plans] == ['inline', 'direct']


class TestPolling:
    """Tests for poll_until_terminal."""

    async def _poll(self, mock_file_store, mock_notifier, output_dir, statuses, max_poll_attempts=5):
        mock_file_store.get_status.side_effect = statuses
        coordinator = make_coordinator(mock_file_store, mock_notifier, output_dir, max_poll_attempts=max_poll_attempts)
        record = UploadTask(source='/data/movie.mp4', remote=UPLOADED, plan=PLAN)
        outcome = await coordinator.poll_until_terminal(record)
        return outcome, record

    @pytest.mark.asyncio
    async def test_processing_then_active(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that reaching ACTIVE sends exactly one success notification."""
        outcome, record = await self._poll(
            mock_file_store,
            mock_notifier,
            temp_workspace_dir,
            [status('PROCESSING'), status('PROCESSING'), status('ACTIVE', '2024-05-01T10:00:00.5Z')],
        )
        assert outcome is UploadOutcome.SUCCEEDED
        assert record.attempts == 3
        assert record.completed_at == '2024-05-01T10:00:00.5Z'
        mock_notifier.notify.assert_awaited_once()
        message = mock_notifier.notify.await_args.args[0]
        assert message.startswith('✅')
        assert UPLOADED.uri in message
        assert 'video/mp4' in message
        assert '/data/movie.mp4' in message
        assert '2024-05-01 10:00:00 UTC' in message

    @pytest.mark.asyncio
    async def test_processing_then_failed(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that FAILED sends exactly one failure notification."""
        outcome, _ = await self._poll(
            mock_file_store, mock_notifier, temp_workspace_dir, [status('PROCESSING'), status('FAILED')]
        )
        assert outcome is UploadOutcome.FAILED
        mock_notifier.notify.assert_awaited_once()
        message = mock_notifier.notify.await_args.args[0]
        assert message.startswith('❌ Large file processing failed')
        assert 'Failed At: `N/A`' in message

    @pytest.mark.asyncio
    async def test_timeout(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that exhausting attempts sends exactly one timeout notification."""
        outcome, record = await self._poll(
            mock_file_store, mock_notifier, temp_workspace_dir, [status('PROCESSING')] * 4, max_poll_attempts=4
        )
        assert outcome is UploadOutcome.TIMED_OUT
        assert mock_file_store.get_status.await_count == 4
        mock_notifier.notify.assert_awaited_once()
        message = mock_notifier.notify.await_args.args[0]
        assert message.startswith('⏳')
        assert UPLOADED.uri in message

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that status errors and unknown states keep polling."""
        outcome, _ = await self._poll(
            mock_file_store,
            mock_notifier,
            temp_workspace_dir,
            [httpx.ConnectError('refused'), status('STATE_UNSPECIFIED'), status('WEIRD'), status('ACTIVE')],
        )
        assert outcome is UploadOutcome.SUCCEEDED
        assert mock_file_store.get_status.await_count == 4
        mock_notifier.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_status_error_with_json_body_retried(
        self, mock_file_store, mock_notifier, temp_workspace_dir, log_messages
    ):
        """Test that an HTTP status error carrying a JSON body is logged and retried."""
        request = httpx.Request('GET', f'{API_URL}/v1beta/files/abc')
        response = httpx.Response(502, text='{"message": "bad gateway"}', request=request)
        error = httpx.HTTPStatusError('Server error 502', request=request, response=response)

        outcome, record = await self._poll(
            mock_file_store, mock_notifier, temp_workspace_dir, [error, status('ACTIVE')]
        )

        assert outcome is UploadOutcome.SUCCEEDED
        assert record.attempts == 2
        mock_notifier.notify.assert_awaited_once()
        assert any('{"message": "bad gateway"}' in message for message in log_messages)

    @pytest.mark.asyncio
    async def test_requires_upload_plan(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that polling refuses a record without an uploaded object."""
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        with pytest.raises(ValueError):
            await coordinator.poll_until_terminal(UploadTask(source='x', remote=UPLOADED))
        mock_file_store.get_status.assert_not_called()
        mock_notifier.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts_only(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that the interval is awaited between attempts but not after the last."""
        mock_file_store.get_status.side_effect = [status('PROCESSING')] * 3
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir, max_poll_attempts=3)
        await coordinator.poll_until_terminal(UploadTask(source='x', remote=UPLOADED, plan=PLAN))
        assert coordinator._sleep.await_count == 2


class TestLargeUpload:
    """Tests for the background large-upload path."""

    @pytest.mark.asyncio
    async def test_background_success(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that the task starts after the caller returns, uploads, polls and notifies once."""
        mock_file_store.upload_file.return_value = UPLOADED
        mock_file_store.get_status.side_effect = [status('PROCESSING'), status('ACTIVE')]
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)

        with patch(
            'awslabs.gemini_media_mcp_server.services.coordinator.file_size',
            return_value=500 * 1024 * 1024,
        ):
            record = coordinator.start_large_upload(LocalPathSource(path='/data/movie.mp4'))
            assert record.outcome is UploadOutcome.PENDING
            mock_file_store.upload_file.assert_not_called()
            assert len(coordinator.background_tasks) == 1

            await asyncio.gather(*coordinator.background_tasks)

        assert record.outcome is UploadOutcome.SUCCEEDED
        assert record.plan == RemoteUploadPlan(
            mime_type='video/mp4', remote_name='files/abc', remote_uri=UPLOADED.uri
        )
        mock_file_store.upload_file.assert_awaited_once_with(
            os.path.abspath('/data/movie.mp4'), 'video/mp4', 'movie.mp4'
        )
        mock_notifier.notify.assert_awaited_once()
        assert UPLOADED.uri in mock_notifier.notify.await_args.args[0]
        assert coordinator.background_tasks == set()

    @pytest.mark.asyncio
    async def test_upload_error_single_notification(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test that an upload failure is reported by one error notification and no polling."""
        mock_file_store.upload_file.side_effect = UploadInitError('no upload URL received')
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)

        with patch(
            'awslabs.gemini_media_mcp_server.services.coordinator.file_size',
            return_value=500 * 1024 * 1024,
        ):
            record = await coordinator.run_large_upload(LocalPathSource(path='/data/movie.mp4'))

        assert record.outcome is UploadOutcome.FAILED
        mock_file_store.get_status.assert_not_called()
        mock_notifier.notify.assert_awaited_once()
        message = mock_notifier.notify.await_args.args[0]
        assert message.startswith('❌ Error processing large file')
        assert 'no upload URL received' in message

    @pytest.mark.asyncio
    async def test_small_file_rejected(self, mock_file_store, mock_notifier, temp_workspace_dir, sample_png_path):
        """Test that files within the inline limit are not uploaded."""
        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir)
        record = await coordinator.run_large_upload(LocalPathSource(path=sample_png_path))
        assert record.outcome is UploadOutcome.FAILED
        mock_file_store.upload_file.assert_not_called()
        assert 'gemini_understand_media' in mock_notifier.notify.await_args.args[0]

    @pytest.mark.asyncio
    async def test_url_download_then_upload(self, mock_file_store, mock_notifier, temp_workspace_dir):
        """Test the URL path: download notice, upload, terminal notice, and temp cleanup."""
        mock_file_store.upload_file.return_value = UPLOADED
        mock_file_store.get_status.side_effect = [status('ACTIVE')]
        payload = b'v' * (LIMIT + 1)

        def handler(request):
            return httpx.Response(200, headers={'Content-Type': 'video/mp4'}, content=payload)

        coordinator = make_coordinator(mock_file_store, mock_notifier, temp_workspace_dir, handler)
        record = await coordinator.run_large_upload(UrlSource(url='https://cdn.example.com/movie'))

        assert record.outcome is UploadOutcome.SUCCEEDED
        messages = [call.args[0] for call in mock_notifier.notify.await_args_list]
        assert len(messages) == 2
        assert messages[0].startswith('ℹ️ Download complete')
        assert messages[1].startswith('✅')
        uploaded_path, mime_type, _ = mock_file_store.upload_file.await_args.args
        assert mime_type == 'video/mp4'
        assert uploaded_path.endswith('.mp4')
        assert tmp_files(temp_workspace_dir) == []
