"""Request bodies for the HTTP API."""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DetailValue = Union[bool, int, float, str, List[str]]


class UserCreate(BaseModel):
    display_name: Optional[str] = None


class CharacterBookEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    keys: List[str] = Field(default_factory=list)
    content: str = ""
    insertion_order: int = 0
    enabled: bool = True


class CharacterBook(BaseModel):
    model_config = ConfigDict(extra="allow")

    entries: List[CharacterBookEntry] = Field(default_factory=list)


class CharacterV3Data(BaseModel):
    """Persona document in Character Card V3 layout.

    Unknown keys are kept so documents from other editors survive a save.
    """

    model_config = ConfigDict(extra="allow")

    # Core identity
    name: str
    description: str = ""
    personality: str = ""
    tags: List[str] = Field(default_factory=list)
    nickname: Optional[str] = None

    # Greetings and examples
    first_mes: str = ""
    alternate_greetings: Optional[List[str]] = None
    mes_example: Optional[str] = None

    # Knowledge base
    character_book: Optional[CharacterBook] = None

    # Advanced
    system_prompt: Optional[str] = None
    post_history_instructions: Optional[str] = None
    scenario: Optional[str] = None
    creator_notes: Optional[str] = None

    # Metadata
    character_version: Optional[str] = None
    creator: Optional[str] = None
    creation_date: Optional[str] = None
    modification_date: Optional[str] = None
    source: Optional[str] = None
    extensions: Optional[Dict[str, Any]] = None

    def document(self) -> Dict[str, Any]:
        # Only what the caller sent, so the stored document matches the form
        return self.model_dump(exclude_unset=True)


class CharacterCreate(BaseModel):
    name: str = Field(min_length=1)
    v3_data: CharacterV3Data
    avatar_url: Optional[str] = None
    background_url: Optional[str] = None


class CharacterUpdate(BaseModel):
    name: Optional[str] = None
    v3_data: Optional[CharacterV3Data] = None
    avatar_url: Optional[str] = None
    background_url: Optional[str] = None


class CharacterCard(BaseModel):
    spec: str
    spec_version: str = "3.0"
    data: CharacterV3Data


class Mission(BaseModel):
    mission_type: Literal["schedule_meeting", "accept_offer", "interview_report", "custom"]
    mission_title: str = Field(min_length=1)
    initial_details: Dict[str, DetailValue] = Field(default_factory=dict)
    confirmation: Optional[Dict[str, DetailValue]] = None
    generated_by: Literal["human", "ai"] = "human"


class SessionCreate(BaseModel):
    character_id: str
    mission: Mission


class StatusUpdate(BaseModel):
    status: Literal["active", "completed", "expired"]


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatCharacter(BaseModel):
    name: str
    personality: str = ""
    description: str = ""
    first_mes: str = ""


class ChatMission(BaseModel):
    mission_type: str
    mission_title: str
    initial_details: Dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    """Body of the streamed chat relay."""

    messages: List[ChatTurn]
    character: ChatCharacter
    mission: ChatMission


class LinkChatRequest(BaseModel):
    message: str


class ImageGenerateRequest(BaseModel):
    prompt: Optional[str] = None
    type: Optional[str] = None


class SettingsUpdate(BaseModel):
    ai_provider: Optional[str] = None
    # An empty string clears the stored key
    groq_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
