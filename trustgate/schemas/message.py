"""Message Schemas — ciphertext submission and history entries.

Invariants:
    - chatId and encryptedPayload are passed through as received; MessageRelay owns
      id shape, base64 and membership checks (one error path for HTTP and tests)
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageCreate(_CamelModel):
    chat_id: str = Field(max_length=64)
    encrypted_payload: str


class MessageResponse(_CamelModel):
    id: str
    chat_id: str
    sender_id: str
    encrypted_payload: str
    created_at: str
