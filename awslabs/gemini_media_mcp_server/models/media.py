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
"""Media source and transfer plan models.

A tool receives loosely shaped file references (any of url, path or file_uri
may be set). ``parse_media_source`` turns one of those into exactly one
``MediaSource`` variant, so the rest of the server never has to count which
optional fields are populated. The coordinator then derives a ``TransferPlan``
variant describing how the content reaches the generation request.
"""

import re
from awslabs.gemini_media_mcp_server.consts import REMOTE_FILE_URI_PATTERN
from awslabs.gemini_media_mcp_server.errors import InputValidationError
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Dict, Literal, Optional, Union


class FileInput(BaseModel):
    """A file reference as supplied by a tool caller.

    Attributes:
        url: Public URL of the file.
        path: Local path of the file on the server machine.
        file_uri: Full URI of a file already uploaded to the Gemini File API.
        mime_type: MIME type, required together with file_uri.
    """
    url: Optional[str] = Field(default=None, description='URL of the file')
    path: Optional[str] = Field(default=None, description='Local path of the file')
    file_uri: Optional[str] = Field(
        default=None,
        description='Gemini File API URI returned by gemini_upload_large_media',
    )
    mime_type: Optional[str] = Field(
        default=None, description='MIME type of the file, required with file_uri'
    )


class UrlSource(BaseModel):
    """Content addressed by a URL."""
    model_config = ConfigDict(frozen=True)

    kind: Literal['url'] = 'url'
    url: str

    def describe(self) -> str:
        """Source description used in messages."""
        return self.url


class LocalPathSource(BaseModel):
    """Content stored on the local filesystem."""
    model_config = ConfigDict(frozen=True)

    kind: Literal['path'] = 'path'
    path: str

    def describe(self) -> str:
        """Source description used in messages."""
        return self.path


class RemoteHandleSource(BaseModel):
    """A file that already lives in the Gemini File API."""
    model_config = ConfigDict(frozen=True)

    kind: Literal['remote'] = 'remote'
    uri: str
    mime_type: str

    def describe(self) -> str:
        """Source description used in messages."""
        return self.uri


MediaSource = Annotated[
    Union[UrlSource, LocalPathSource, RemoteHandleSource], Field(discriminator='kind')
]


class InlinePlan(BaseModel):
    """Bytes embedded in the request as base64."""
    model_config = ConfigDict(frozen=True)

    kind: Literal['inline'] = 'inline'
    mime_type: str
    data: str

    def to_part(self) -> Dict[str, Any]:
        """Render as a generateContent request part."""
        return {'inline_data': {'mime_type': self.mime_type, 'data': self.data}}


class RemoteUploadPlan(BaseModel):
    """Content uploaded to the File API, referenced by its URI."""
    model_config = ConfigDict(frozen=True)

    kind: Literal['remote_upload'] = 'remote_upload'
    mime_type: str
    remote_name: str
    remote_uri: str

    def to_part(self) -> Dict[str, Any]:
        """Render as a generateContent request part."""
        return {'file_data': {'mime_type': self.mime_type, 'file_uri': self.remote_uri}}


class DirectReferencePlan(BaseModel):
    """A URI passed to the model untouched."""
    model_config = ConfigDict(frozen=True)

    kind: Literal['direct'] = 'direct'
    uri: str
    mime_type: Optional[str] = None

    def to_part(self) -> Dict[str, Any]:
        """Render as a generateContent request part."""
        file_data: Dict[str, Any] = {'file_uri': self.uri}
        if self.mime_type:
            file_data['mime_type'] = self.mime_type
        return {'file_data': file_data}


TransferPlan = Annotated[
    Union[InlinePlan, RemoteUploadPlan, DirectReferencePlan], Field(discriminator='kind')
]


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ''


def parse_media_source(
    url: Optional[str] = None,
    path: Optional[str] = None,
    file_uri: Optional[str] = None,
    mime_type: Optional[str] = None,
    allow_remote: bool = True,
) -> Union[UrlSource, LocalPathSource, RemoteHandleSource]:
    """Build a single-variant MediaSource from optional tool parameters.

    Args:
        url: URL of the content.
        path: Local filesystem path of the content.
        file_uri: File API URI of previously uploaded content.
        mime_type: MIME type, mandatory with file_uri and ignored otherwise.
        allow_remote: Whether a file_uri is acceptable for this operation.

    Returns:
        Exactly one of UrlSource, LocalPathSource or RemoteHandleSource.

    Raises:
        InputValidationError: If zero or several references are given, or a
            file_uri lacks its MIME type.
    """
    provided = [
        name
        for name, value in (('url', url), ('path', path), ('file_uri', file_uri))
        if _present(value)
    ]
    accepted = "'url', 'path' or 'file_uri'" if allow_remote else "'url' or 'path'"
    if len(provided) != 1:
        raise InputValidationError(
            f'Exactly one of {accepted} must be provided, got {len(provided)}'
            + (f" ({', '.join(provided)})" if provided else '')
        )

    if _present(url):
        return UrlSource(url=url.strip())
    if _present(path):
        return LocalPathSource(path=path.strip())

    if not allow_remote:
        raise InputValidationError(f'Exactly one of {accepted} must be provided')
    if not _present(mime_type):
        raise InputValidationError("'mime_type' is required when 'file_uri' is provided")
    if not re.match(REMOTE_FILE_URI_PATTERN, file_uri.strip()):
        raise InputValidationError(
            f"Invalid file_uri '{file_uri}'. Expected a Gemini File API URI such as "
            "'https://generativelanguage.googleapis.com/v1beta/files/<id>'."
        )
    return RemoteHandleSource(uri=file_uri.strip(), mime_type=mime_type.strip())


def parse_file_input(file_input: FileInput, allow_remote: bool = True):
    """Parse a FileInput into a MediaSource; see parse_media_source."""
    return parse_media_source(
        url=file_input.url,
        path=file_input.path,
        file_uri=file_input.file_uri,
        mime_type=file_input.mime_type,
        allow_remote=allow_remote,
    )
