"""
Drill and assignment schemas.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from drill_engine.models.enums import DrillType, Difficulty, AssignmentStatus


class TargetSentence(BaseModel):
    """Vocabulary item: optional target word plus the sentence that uses it."""
    word: str = ""
    word_translation: str = ""
    text: str
    translation: str = ""


class DialogueTurn(BaseModel):
    """One roleplay line. 'student' lines are spoken by the learner."""
    speaker: str = Field(..., description="'student' or an AI character id such as 'ai_0'")
    text: str
    translation: str = ""


class RoleplayScene(BaseModel):
    scene_name: str
    context: str = ""
    dialogue: List[DialogueTurn] = Field(default_factory=list)


class MatchingPair(BaseModel):
    left: str
    right: str
    left_translation: str = ""
    right_translation: str = ""


class DefinitionItem(BaseModel):
    word: str
    hint: str = ""


class GrammarItem(BaseModel):
    pattern: str
    hint: str = ""
    example: str


class SentenceWritingItem(BaseModel):
    word: str
    hint: str = ""


class FillBlankItem(BaseModel):
    sentence: str = Field(..., description="Sentence with the blank marked as ___")
    answer: str
    hint: str = ""


class DrillContent(BaseModel):
    """Type-specific drill content. Only the fields of the drill's type are used."""
    target_sentences: List[TargetSentence] = Field(default_factory=list)
    roleplay_scenes: List[RoleplayScene] = Field(default_factory=list)
    matching_pairs: List[MatchingPair] = Field(default_factory=list)
    definition_items: List[DefinitionItem] = Field(default_factory=list)
    grammar_items: List[GrammarItem] = Field(default_factory=list)
    sentence_writing_items: List[SentenceWritingItem] = Field(default_factory=list)
    sentences_per_item: int = Field(2, ge=1, le=10, description="Sentences a learner writes per word/pattern")
    fill_blank_items: List[FillBlankItem] = Field(default_factory=list)
    article_title: Optional[str] = None
    article_content: Optional[str] = None
    listening_title: Optional[str] = None
    listening_content: Optional[str] = None

    def validate_type_specific_fields(self, drill_type: str) -> List[str]:
        """Return the list of problems with the content for the given drill type."""
        errors = []
        if drill_type == DrillType.VOCABULARY and not self.target_sentences:
            errors.append("Vocabulary drills require at least one target sentence")
        elif drill_type == DrillType.ROLEPLAY:
            if not self.roleplay_scenes:
                errors.append("Roleplay drills require at least one scene")
            elif not any(
                turn.speaker == "student"
                for scene in self.roleplay_scenes
                for turn in scene.dialogue
            ):
                errors.append("Roleplay drills require at least one student line")
        elif drill_type == DrillType.MATCHING and len(self.matching_pairs) < 2:
            errors.append("Matching drills require at least two pairs")
        elif drill_type == DrillType.DEFINITION and not self.definition_items:
            errors.append("Definition drills require at least one word")
        elif drill_type == DrillType.GRAMMAR and not self.grammar_items:
            errors.append("Grammar drills require at least one pattern")
        elif drill_type == DrillType.SENTENCE_WRITING and not self.sentence_writing_items:
            errors.append("Sentence writing drills require at least one word")
        elif drill_type == DrillType.FILL_BLANK and not self.fill_blank_items:
            errors.append("Fill in the blank drills require at least one item")
        elif drill_type == DrillType.SUMMARY and not (self.article_content or "").strip():
            errors.append("Summary drills require article content")
        elif drill_type == DrillType.LISTENING and not (self.listening_content or "").strip():
            errors.append("Listening drills require listening content")
        return errors


class DrillData(BaseModel):
    """Drill fields supplied by the creator."""
    title: str = Field(..., min_length=1, max_length=200)
    type: DrillType
    difficulty: Difficulty = Difficulty.BEGINNER
    due_date: Optional[datetime] = None
    duration_days: Optional[int] = Field(None, ge=1, le=365)
    context: Optional[str] = None
    content: DrillContent = Field(default_factory=DrillContent)


class CreateDrillRequest(BaseModel):
    """Request to create a drill and assign it in one step."""
    creator_id: int
    drill: DrillData
    learner_ids: List[int] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "creator_id": 1,
                "drill": {
                    "title": "Airport vocabulary",
                    "type": "vocabulary",
                    "difficulty": "beginner",
                    "duration_days": 7,
                    "content": {
                        "target_sentences": [
                            {"word": "boarding pass", "text": "Here is my boarding pass."}
                        ]
                    }
                },
                "learner_ids": [2, 3]
            }
        }


class UpdateDrillRequest(BaseModel):
    """Corrective edit of a drill. New learner ids get assignments; existing ones are kept."""
    actor_id: int
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    difficulty: Optional[Difficulty] = None
    due_date: Optional[datetime] = None
    duration_days: Optional[int] = Field(None, ge=1, le=365)
    context: Optional[str] = None
    content: Optional[DrillContent] = None
    is_active: Optional[bool] = None
    learner_ids: List[int] = Field(default_factory=list)


class DrillResponse(BaseModel):
    id: int
    title: str
    type: str
    difficulty: str
    due_date: Optional[datetime] = None
    duration_days: int
    context: Optional[str] = None
    content: dict
    created_by_id: int
    is_active: bool
    total_assignments: int
    created_at: datetime

    class Config:
        from_attributes = True


class CreateDrillResponse(BaseModel):
    drill: DrillResponse
    assignment_count: int


class UpdateDrillResponse(BaseModel):
    drill: DrillResponse
    new_assignments_created: int


class AssignDrillRequest(BaseModel):
    """Request to assign an existing drill to learners."""
    learner_ids: List[int] = Field(..., min_length=1)
    assigned_by: int
    due_date: Optional[datetime] = None


class AssignmentResponse(BaseModel):
    id: int
    drill_id: int
    learner_id: int
    assigned_by_id: int
    assigned_at: datetime
    due_date: Optional[datetime] = None
    status: str
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AssignDrillResponse(BaseModel):
    created: List[AssignmentResponse]
    skipped: int = Field(..., description="Learners already assigned (including insert conflicts)")
    failed: int = Field(0, description="Rows that could not be inserted for other reasons")
    total: int = Field(..., description="Number of assignments created")


class UpdateAssignmentStatusRequest(BaseModel):
    status: AssignmentStatus
    completed_at: Optional[datetime] = None


class AssignmentListResponse(BaseModel):
    assignments: List[AssignmentResponse]
    total: int
    page: int
    page_size: int


class DrillListResponse(BaseModel):
    drills: List[DrillResponse]
    total: int
    page: int
    page_size: int


class DrillDetailResponse(BaseModel):
    """A drill as seen by one user, with their assignment when they have one."""
    drill: DrillResponse
    assignment: Optional[AssignmentResponse] = None
