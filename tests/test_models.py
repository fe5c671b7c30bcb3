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
"""Tests for the models of the gemini-media-mcp-server."""

import pytest
from awslabs.gemini_media_mcp_server.errors import InputValidationError
from awslabs.gemini_media_mcp_server.models.common import (
    FileState,
    MediaResult,
    RemoteObject,
    UploadOutcome,
    UploadTask,
    format_remote_timestamp,
)
from awslabs.gemini_media_mcp_server.models.media import (
    DirectReferencePlan,
    FileInput,
    InlinePlan,
    LocalPathSource,
    RemoteHandleSource,
    RemoteUploadPlan,
    UrlSource,
    parse_file_input,
    parse_media_source,
)


class TestParseMediaSource:
    """Tests for parse_media_source."""

    @pytest.mark.parametrize(
        'kwargs',
        [
            {},
            {'url': '  '},
            {'url': 'https://example.com/a.png', 'path': '/tmp/a.png'},
            {'path': '/tmp/a.png', 'file_uri': 'https://x/files/a', 'mime_type': 'image/png'},
            {
                'url': 'https://example.com/a.png',
                'path': '/tmp/a.png',
                'file_uri': 'https://x/files/a',
                'mime_type': 'image/png',
            },
        ],
    )
    def test_requires_exactly_one_source(self, kwargs):
        """Test that zero or several sources are rejected."""
        with pytest.raises(InputValidationError) as excinfo:
            parse_media_source(**kwargs)
        assert excinfo.value.error_code == 'ValidationError'

    def test_url(self):
        """Test a URL source."""
        source = parse_media_source(url=' https://example.com/a.png ')
        assert isinstance(source, UrlSource)
        assert source.url == 'https://example.com/a.png'
        assert source.describe() == 'https://example.com/a.png'

    def test_path(self):
        """Test a local path source."""
        source = parse_media_source(path='/tmp/cat.png')
        assert isinstance(source, LocalPathSource)
        assert source.kind == 'path'

    def test_remote_handle_requires_mime_type(self):
        """Test that file_uri without mime_type is rejected."""
        with pytest.raises(InputValidationError, match='mime_type'):
            parse_media_source(file_uri='https://generativelanguage.googleapis.com/v1beta/files/abc')

    def test_remote_handle(self):
        """Test a remote handle source."""
        source = parse_file_input(
            FileInput(
                file_uri='https://generativelanguage.googleapis.com/v1beta/files/abc',
                mime_type='video/mp4',
            )
        )
        assert isinstance(source, RemoteHandleSource)
        assert source.mime_type == 'video/mp4'

    def test_remote_handle_must_be_file_api_uri(self):
        """Test that file_uri must point at the Gemini File API."""
        with pytest.raises(InputValidationError, match='Invalid file_uri'):
            parse_media_source(file_uri='https://example.com/files/abc', mime_type='video/mp4')

    def test_remote_handle_not_allowed(self):
        """Test that file_uri is rejected where only url or path are accepted."""
        with pytest.raises(InputValidationError, match="'url' or 'path'"):
            parse_media_source(file_uri='https://x/files/a', mime_type='image/png', allow_remote=False)


class TestTransferPlans:
    """Tests for the request parts produced by transfer plans."""

    def test_inline_part(self):
        """Test the inline_data part."""
        plan = InlinePlan(mime_type='image/png', data='aGVsbG8=')
        assert plan.to_part() == {'inline_data': {'mime_type': 'image/png', 'data': 'aGVsbG8='}}

    def test_remote_upload_part(self):
        """Test the file_data part of an uploaded file."""
        plan = RemoteUploadPlan(mime_type='video/mp4', remote_name='files/a', remote_uri='https://x/files/a')
        assert plan.to_part() == {'file_data': {'mime_type': 'video/mp4', 'file_uri': 'https://x/files/a'}}

    def test_direct_reference_without_mime_type(self):
        """Test that a pass-through reference omits the MIME type when unknown."""
        plan = DirectReferencePlan(uri='https://youtu.be/abc')
        assert plan.to_part() == {'file_data': {'file_uri': 'https://youtu.be/abc'}}


class TestRemoteObject:
    """Tests for RemoteObject."""

    def test_parses_api_fields(self):
        """Test that camelCase API fields are mapped."""
        remote = RemoteObject.model_validate(
            {
                'name': 'files/abc',
                'uri': 'https://x/files/abc',
                'mimeType': 'video/mp4',
                'state': 'ACTIVE',
                'updateTime': '2024-05-01T10:00:00Z',
                'sizeBytes': '1024',
                'unknownField': True,
            }
        )
        assert remote.mime_type == 'video/mp4'
        assert remote.file_state is FileState.ACTIVE
        assert remote.update_time == '2024-05-01T10:00:00Z'

    def test_unknown_state(self):
        """Test that an unrecognized state maps to None and a missing one to UNSPECIFIED."""
        assert RemoteObject(name='files/a', state='SOMETHING_NEW').file_state is None
        assert RemoteObject(name='files/a').file_state is FileState.UNSPECIFIED


class TestUploadTask:
    """Tests for UploadTask transitions."""

    def test_finish_once(self):
        """Test that a terminal outcome cannot be left."""
        task = UploadTask(source='/data/movie.mp4')
        task.finish(UploadOutcome.SUCCEEDED, '2024-05-01T10:00:00Z')
        assert task.outcome is UploadOutcome.SUCCEEDED
        with pytest.raises(ValueError):
            task.finish(UploadOutcome.FAILED)
        assert task.outcome is UploadOutcome.SUCCEEDED

    def test_finish_requires_terminal_outcome(self):
        """Test that finishing with PENDING is rejected."""
        with pytest.raises(ValueError):
            UploadTask(source='x').finish(UploadOutcome.PENDING)


def test_format_remote_timestamp():
    """Test rendering of API timestamps."""
    assert format_remote_timestamp(None) == 'N/A'
    assert format_remote_timestamp('2024-05-01T10:00:00.123456789Z') == '2024-05-01 10:00:00 UTC'
    assert format_remote_timestamp('2024-05-01T12:00:00+02:00') == '2024-05-01 10:00:00 UTC'
    assert format_remote_timestamp('yesterday') == 'yesterday'


def test_media_result_json():
    """Test that results keep the camelCase keys and a null URL."""
    result = MediaResult(local_path='/out/image/a.png')
    assert result.to_json() == (
        '{\n  "localPath": "/out/image/a.png",\n  "cfImageUrl": null,\n  "cfUploadSuccess": false\n}'
    )
