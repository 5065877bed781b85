from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models import QuestionType
from .users import UserBrief


class QuizCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    subject: str | None = Field(default=None, max_length=100)
    difficulty: str = Field(default="MEDIUM", max_length=20)
    passing_score: int = Field(default=60, ge=0, le=100)
    time_limit: int | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=1, gt=0)
    xp_reward: int = Field(default=50, ge=0)
    is_active: bool = True


class QuizUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    subject: str | None = Field(default=None, max_length=100)
    difficulty: str | None = Field(default=None, max_length=20)
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=None, gt=0)
    xp_reward: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class QuestionCreate(BaseModel):
    question: str = Field(min_length=1)
    type: QuestionType = QuestionType.MCQ
    options: list[str] = []
    correct_answer: str = Field(min_length=1, max_length=500)
    points: int = Field(default=1, ge=1)
    explanation: str | None = None

    @model_validator(mode="after")
    def check_options(self) -> "QuestionCreate":
        if self.type == QuestionType.TRUE_FALSE and not self.options:
            self.options = ["True", "False"]
        if self.type != QuestionType.SHORT_ANSWER:
            if len(self.options) < 2:
                raise ValueError("Multiple choice questions need at least 2 options")
            if self.correct_answer.lower() not in {option.lower() for option in self.options}:
                raise ValueError("correct_answer must be one of the options")
        return self


class QuestionUpdate(BaseModel):
    question: str | None = Field(default=None, min_length=1)
    type: QuestionType | None = None
    options: list[str] | None = None
    correct_answer: str | None = Field(default=None, min_length=1, max_length=500)
    points: int | None = Field(default=None, ge=1)
    explanation: str | None = None


class ReorderQuestionsRequest(BaseModel):
    question_ids: list[int] = Field(min_length=1)


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int
    question: str
    type: QuestionType
    options: list[str] = []
    points: int
    order: int
    correct_answer: str | None = None
    explanation: str | None = None


class QuizOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: str | None = None
    subject: str | None = None
    difficulty: str
    passing_score: int
    time_limit: int | None = None
    max_attempts: int | None = None
    xp_reward: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class QuizSummary(QuizOut):
    question_count: int = 0


class QuizDetail(QuizOut):
    questions: list[QuestionOut] = []


class AnswerIn(BaseModel):
    question_id: int
    answer: str


class QuizSubmission(BaseModel):
    answers: list[AnswerIn]
    time_taken: int | None = Field(default=None, ge=0)


class QuizResult(BaseModel):
    attempt_id: int
    score: int
    total_points: int
    percentage: int
    passed: bool
    correct_answers: int
    total_questions: int
    xp_earned: int
    badges_earned: list[str] = []


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int
    student_id: int
    score: int
    total_points: int
    total_questions: int
    correct_answers: int
    percentage: int
    passed: bool
    time_taken: int | None = None
    xp_earned: int
    completed_at: datetime


class QuizAnalytics(BaseModel):
    quiz_id: int
    total_submissions: int
    passed: int
    failed: int
    pass_rate: int
    average_score: int
    attempts: list[AttemptOut]


class StudentQuizStats(BaseModel):
    total_attempts: int
    passed: int
    failed: int
    pass_rate: int
    average_score: int
    total_xp_earned: int
    attempts: list[AttemptOut]


class BadgeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    description: str | None = None
    icon: str | None = None
    earned_at: datetime


class GamificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    xp: int
    points: int
    level: int
    streak: int
    last_activity_at: datetime | None = None
    badges: list[BadgeOut] = []


class LeaderboardEntry(BaseModel):
    rank: int
    user: UserBrief
    xp: int
    level: int
    points: int
