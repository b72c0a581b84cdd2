"""Canonical chat session model.

Field names are snake_case in Python and camelCase on the wire. Unknown wire
keys are kept in ``model_extra`` so data this package does not interpret
survives an export/import cycle.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator
from pydantic.alias_generators import to_camel

from chatport.infrastructure.config import INITIAL_MESSAGES_COUNT
from chatport.sessions.defaults import DEFAULT_MODEL, DEFAULT_SAFETY_SETTINGS, DEFAULT_TTS_SETTINGS


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


ChatMessageRole = Literal["user", "model", "system"]

UploadState = Literal[
    "pending",
    "reading_client",
    "uploading_to_cloud",
    "processing_on_server",
    "completed",
    "completed_cloud_upload",
    "error_client_read",
    "error_cloud_upload",
]


# --- Attachment payload variants ---


class InlinePayload(BaseModel):
    kind: Literal["inline"] = "inline"
    base64_data: str
    data_url: str | None = None


class ContainerPayload(BaseModel):
    kind: Literal["container"] = "container"
    file_path: str


class CloudPayload(BaseModel):
    kind: Literal["cloud"] = "cloud"
    file_uri: str
    file_api_name: str


AttachmentPayload = Annotated[Union[InlinePayload, ContainerPayload, CloudPayload], Field(discriminator="kind")]

# Flat wire keys that make up the payload union.
PAYLOAD_WIRE_KEYS = ("base64Data", "dataUrl", "filePath", "fileUri", "fileApiName")


class Attachment(WireModel):
    id: str
    name: str
    mime_type: str = "application/octet-stream"
    size: int | None = None
    upload_state: UploadState | None = None
    status_message: str | None = None
    error: str | None = None
    payload: AttachmentPayload | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_payload(cls, data: Any) -> Any:
        """Collapse the flat wire keys into one payload variant (cloud > inline > container)."""
        if not isinstance(data, dict) or "payload" in data:
            return data
        data = dict(data)
        wire = {key: data.pop(key) for key in PAYLOAD_WIRE_KEYS if key in data}
        if wire.get("fileUri") and wire.get("fileApiName"):
            data["payload"] = {"kind": "cloud", "file_uri": wire["fileUri"], "file_api_name": wire["fileApiName"]}
        elif wire.get("base64Data"):
            data["payload"] = {"kind": "inline", "base64_data": wire["base64Data"], "data_url": wire.get("dataUrl")}
        elif wire.get("filePath"):
            data["payload"] = {"kind": "container", "file_path": wire["filePath"]}
        return data

    @model_serializer(mode="wrap")
    def _flatten_payload(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        data.pop("payload", None)
        payload = self.payload
        if isinstance(payload, InlinePayload):
            data["base64Data"] = payload.base64_data
            if payload.data_url:
                data["dataUrl"] = payload.data_url
        elif isinstance(payload, ContainerPayload):
            data["filePath"] = payload.file_path
        elif isinstance(payload, CloudPayload):
            data["fileUri"] = payload.file_uri
            data["fileApiName"] = payload.file_api_name
        return data

    @property
    def base64_data(self) -> str | None:
        return self.payload.base64_data if isinstance(self.payload, InlinePayload) else None


# --- Settings ---


class SafetySetting(WireModel):
    category: str
    threshold: str


class TtsSettings(WireModel):
    model: str = DEFAULT_TTS_SETTINGS["model"]
    voice: str = DEFAULT_TTS_SETTINGS["voice"]
    auto_play_new_messages: bool = False
    system_instruction: str = ""


class ChatSettings(WireModel):
    system_instruction: str = ""
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 64
    safety_settings: list[SafetySetting] = Field(
        default_factory=lambda: [SafetySetting.model_validate(s) for s in DEFAULT_SAFETY_SETTINGS]
    )
    tts_settings: TtsSettings = Field(default_factory=TtsSettings)
    ai_sees_timestamps: bool = False
    use_google_search: bool = False
    url_context: list[str] = Field(default_factory=list)
    max_initial_messages_displayed: int = INITIAL_MESSAGES_COUNT
    debug_api_requests: bool = False


class AICharacter(WireModel):
    id: str
    name: str
    system_instruction: str = ""
    contextual_info: str = ""


class ApiRequestLog(WireModel):
    id: str
    timestamp: datetime
    request_type: str | None = None
    payload: Any = None


class GithubRepoContext(WireModel):
    url: str
    context_text: str = ""


# --- Messages and sessions ---


class ChatMessage(WireModel):
    id: str
    role: ChatMessageRole
    content: str = ""
    timestamp: datetime
    character_name: str | None = None
    grounding_metadata: Any | None = None
    attachments: list[Attachment] | None = None
    cached_audio_segment_count: int | None = None
    # Decoded audio held by a running client; never persisted or exported.
    cached_audio_buffers: list[bytes] | None = Field(default=None, exclude=True)


class ChatSession(WireModel):
    id: str
    title: str = "Untitled Chat"
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime
    last_updated_at: datetime
    model: str = DEFAULT_MODEL
    settings: ChatSettings = Field(default_factory=ChatSettings)
    is_character_mode_active: bool = False
    ai_characters: list[AICharacter] = Field(default_factory=list)
    api_request_logs: list[ApiRequestLog] = Field(default_factory=list)
    github_repo_context: GithubRepoContext | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Export configuration ---


class ExportConfiguration(WireModel):
    """One flag per redactable field group."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    include_message_content: bool = True
    include_message_timestamps: bool = True
    include_message_role_and_character_names: bool = True
    include_grounding_metadata: bool = True
    include_message_attachments_metadata: bool = True
    include_full_attachment_file_data: bool = True
    include_cached_message_audio: bool = True
    include_chat_specific_settings: bool = True
    include_ai_character_definitions: bool = True
    include_api_logs: bool = False
    include_last_active_chat_id: bool = True
    include_message_generation_times: bool = True
    include_ui_configuration: bool = True
    include_user_defined_global_defaults: bool = True
    include_api_keys: bool = False


DEFAULT_EXPORT_CONFIGURATION = ExportConfiguration()
