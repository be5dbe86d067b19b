from dataclasses import dataclass, field
from typing import Optional

from record import EMPTY, NoteBody, EncryptedRecord


@dataclass
class Category:
    id: str
    name: str
    parent_id: Optional[str] = None


@dataclass
class Note:
    id: str
    title: str
    category_id: str
    created_at: str
    updated_at: str
    body: NoteBody = field(default=EMPTY)

    @property
    def is_sealed(self) -> bool:
        return isinstance(self.body, EncryptedRecord)


@dataclass(frozen=True)
class ChangeEvent:
    """Sent to subscribers after a committed change."""
    kind: str  # e.g. "category_added", "note_saved"
    entity_id: str
