from datetime import datetime
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field

from models.section import Section


class Storyline(BaseModel):
    """
    Ordered collection of sections for one deliverable.

    `id` is None until the storyline has been persisted. Section `order`
    values are kept contiguous (0..n-1) by the section store.
    """
    model_config = {
        "extra": "allow",
    }

    id: Optional[str] = None
    deliverableId: Optional[str] = None
    title: str = ""
    status: str = "draft"
    sections: List[Section] = Field(default_factory=list)
    executiveSummary: Any = None
    presentationFlow: Any = None
    callToAction: Any = None
    version: str = "1.0"
    lastRegeneration: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    @property
    def is_saved(self) -> bool:
        return bool(self.id)

    def section_by_id(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def summary(self) -> Dict[str, Any]:
        """Lightweight storyline context sent along with per-section agent requests"""
        return {
            'id': self.id,
            'title': self.title or None,
            'executiveSummary': self.executiveSummary,
            'sections': [
                {'id': s.id, 'title': s.title, 'framework': s.framework}
                for s in self.sections
            ]
        }


def increment_version(version: Optional[str] = "1.0") -> str:
    """Minor-increment a "major.minor" version, rolling 1.9 -> 2.0"""
    try:
        major, minor = (int(part) for part in (version or "1.0").split('.')[:2])
    except ValueError:
        return "1.1"
    minor += 1
    if minor >= 10:
        return f"{major + 1}.0"
    return f"{major}.{minor}"
