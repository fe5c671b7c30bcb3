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
# Constants
DEFAULT_GEMINI_API_URL = 'https://generativelanguage.googleapis.com'
GEMINI_API_VERSION = 'v1beta'
TELEGRAM_API_URL = 'https://api.telegram.org'

# Model defaults
DEFAULT_IMAGE_GEN_MODEL = 'gemini-2.0-flash-exp-image-generation'
DEFAULT_UNDERSTANDING_MODEL = 'gemini-2.0-flash'
DEFAULT_SEARCH_MODEL = 'gemini-2.0-flash'
DEFAULT_VIDEO_MODEL = 'veo-2.0-generate-001'

# Output defaults
DEFAULT_OUTPUT_DIR = './output'
IMAGE_SUBFOLDER = 'image'
VIDEO_SUBFOLDER = 'video'
TEMP_SUBFOLDER = 'tmp'
FALLBACK_EXTENSION = '.tmp'

# Request configuration
DEFAULT_REQUEST_TIMEOUT_MS = 180000  # 3 minutes
EXTENDED_TRANSFER_TIMEOUT_SECONDS = 24 * 60 * 60  # Large uploads and downloads
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# Inline payload limits
GEMINI_MAX_INLINE_SIZE_BYTES = 20 * 1024 * 1024  # Hard ceiling imposed by the API
DEFAULT_INLINE_LIMIT_MB = 20

# Polling configuration
LARGE_UPLOAD_POLL_INTERVAL_SECONDS = 10
LARGE_UPLOAD_MAX_POLL_ATTEMPTS = 180  # 30 minutes
VIDEO_POLL_INTERVAL_SECONDS = 10
VIDEO_MAX_POLL_ATTEMPTS = 360  # 1 hour

# Video generation defaults
DEFAULT_VIDEO_ASPECT_RATIO = '16:9'
DEFAULT_PERSON_GENERATION = 'dont_allow'
DEFAULT_VIDEO_DURATION_SECONDS = 5
MIN_VIDEO_DURATION_SECONDS = 5
MAX_VIDEO_DURATION_SECONDS = 8

# Web search
WEB_SEARCH_PREFIX = 'Please search the internet for the following questions: '

# Sources that the generation endpoint reads directly, without download or upload
PASSTHROUGH_URL_PATTERNS = (
    r'^https?://(www\.|m\.)?youtube\.com/watch\?(.*&)?v=[\w-]+',
    r'^https?://(www\.)?youtube\.com/shorts/[\w-]+',
    r'^https?://youtu\.be/[\w-]+',
)
REMOTE_FILE_URI_PATTERN = r'^https://generativelanguage\.googleapis\.com/v1beta/files/[a-zA-Z0-9-]+$'
REMOTE_FILE_NAME_PATTERN = r'^files/[a-zA-Z0-9-]+$'

# Content types that say nothing reliable about the payload
GENERIC_CONTENT_TYPE_PREFIX = 'application/'
RELIABLE_APPLICATION_TYPES = frozenset({'application/pdf'})

SUPPORTED_MIME_TYPES = frozenset({
    # Video
    'video/mp4', 'video/mpeg', 'video/mov', 'video/quicktime', 'video/avi', 'video/x-flv',
    'video/mpg', 'video/webm', 'video/wmv', 'video/3gpp',
    # Audio
    'audio/wav', 'audio/x-wav', 'audio/mp3', 'audio/mpeg',
    'audio/aiff', 'audio/aac', 'audio/ogg', 'audio/flac',
    # Image
    'image/png', 'image/jpeg', 'image/webp', 'image/heic', 'image/heif',
    # Documents
    'application/pdf',
    'application/json',
    'text/plain', 'text/html', 'text/css', 'text/markdown', 'text/csv',
    'text/xml', 'application/xml',
    'text/rtf', 'application/rtf',
    # Code
    'application/javascript', 'application/x-javascript', 'text/javascript',
    'application/x-python', 'text/x-python',
    'application/x-typescript', 'text/typescript',
    'text/x-java-source', 'text/x-c', 'text/x-csrc', 'text/x-csharp',
    'text/x-php', 'application/x-httpd-php', 'text/x-ruby', 'text/x-go',
    'text/rust', 'text/swift', 'text/kotlin', 'text/scala', 'text/perl',
    'application/x-sh',
})


SERVER_INSTRUCTIONS = """
# Google Gemini Media Integration

This MCP server exposes Google Gemini image, video, multimodal understanding, web search
and File API operations as tools.

## Available Tools

### Generation
- **gemini_generate_image**: Generate an image from a text prompt.
- **gemini_edit_image**: Edit an image (by URL or local path) following text instructions.
- **gemini_generate_video**: Generate a video with Veo. Long-running; the call waits for completion.

### Understanding
- **gemini_understand_media**: Ask questions about one or more files (images, audio, video,
  documents, code). Files are sent inline and must not exceed the configured size limit.
  YouTube URLs and pre-uploaded File API URIs are passed through untouched.
- **gemini_web_search**: Answer a question using Google Search grounding, with sources.

### File API
- **gemini_upload_large_media**: Upload a file that exceeds the inline limit to the Gemini
  File API in the background. Requires OneBot or Telegram notifications; the resulting
  `file_uri` is delivered through the configured channel(s) once the file is ACTIVE.
- **gemini_list_files**: List files stored in the Gemini File API.
- **gemini_delete_file**: Delete a stored file by its relative name (`files/xxxxxx`).

## Working With Large Files

1. Call `gemini_upload_large_media` with a `url` or `path`.
2. Wait for the notification carrying the file URI and MIME type.
3. Call `gemini_understand_media` with `{"file_uri": ..., "mime_type": ...}`.
"""
