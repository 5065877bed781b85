from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import NotFoundError
from ..middleware import get_current_user, require_roles, require_staff
from ..models import User, UserRole
from ..responses import ApiResponse, ok, paged
from ..schemas.quiz import (
    GamificationOut,
    LeaderboardEntry,
    QuestionCreate,
    QuestionOut,
    QuestionUpdate,
    QuizAnalytics,
    QuizCreate,
    QuizDetail,
    QuizOut,
    QuizResult,
    QuizSubmission,
    QuizSummary,
    QuizUpdate,
    ReorderQuestionsRequest,
    StudentQuizStats,
)
from ..services import quiz as quiz_service

router = APIRouter(tags=["Quizzes"])

require_student = require_roles(UserRole.STUDENT)

STAFF_ROLES = {UserRole.ADMIN, UserRole.TEACHER}


@router.post(
    "/courses/{course_id}/quizzes",
    response_model=ApiResponse[QuizOut],
    status_code=status.HTTP_201_CREATED,
)
def create_quiz(
    course_id: int,
    payload: QuizCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    quiz = quiz_service.create_quiz(db, course_id=course_id, data=payload, actor=current_user)
    return ok(QuizOut.model_validate(quiz), "Quiz created successfully")


@router.get("/courses/{course_id}/quizzes", response_model=ApiResponse[list[QuizSummary]])
def quizzes_by_course(
    course_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = quiz_service.quizzes_by_course(db, course_id=course_id, actor=current_user, page=page, limit=limit)
    return paged(result, QuizSummary)


@router.get("/quizzes/student/stats", response_model=ApiResponse[StudentQuizStats])
def student_stats(db: Session = Depends(get_db_session), current_user: User = Depends(require_student)):
    return ok(StudentQuizStats.model_validate(quiz_service.student_quiz_stats(db, actor=current_user)))


@router.get("/quizzes/{quiz_id}", response_model=ApiResponse[QuizDetail])
def get_quiz(quiz_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    quiz = quiz_service.get_quiz(db, quiz_id)
    staff = current_user.role in STAFF_ROLES
    if not staff and not quiz.is_active:
        raise NotFoundError("Quiz")
    return ok(QuizDetail.model_validate(quiz_service.quiz_detail(quiz, reveal_answers=staff)))


@router.put("/quizzes/{quiz_id}", response_model=ApiResponse[QuizOut])
def update_quiz(
    quiz_id: int,
    payload: QuizUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    quiz = quiz_service.update_quiz(db, quiz_id=quiz_id, data=payload, actor=current_user)
    return ok(QuizOut.model_validate(quiz), "Quiz updated successfully")


@router.delete("/quizzes/{quiz_id}", response_model=ApiResponse[None])
def delete_quiz(quiz_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(require_staff)):
    quiz_service.delete_quiz(db, quiz_id=quiz_id, actor=current_user)
    return ok(message="Quiz deleted successfully")


@router.post(
    "/quizzes/{quiz_id}/questions",
    response_model=ApiResponse[QuestionOut],
    status_code=status.HTTP_201_CREATED,
)
def add_question(
    quiz_id: int,
    payload: QuestionCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    question = quiz_service.add_question(db, quiz_id=quiz_id, data=payload, actor=current_user)
    return ok(QuestionOut.model_validate(question), "Question added successfully")


@router.put("/quizzes/{quiz_id}/questions/reorder", response_model=ApiResponse[list[QuestionOut]])
def reorder_questions(
    quiz_id: int,
    payload: ReorderQuestionsRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    questions = quiz_service.reorder_questions(
        db, quiz_id=quiz_id, question_ids=payload.question_ids, actor=current_user
    )
    return ok([QuestionOut.model_validate(question) for question in questions], "Questions reordered successfully")


@router.put("/questions/{question_id}", response_model=ApiResponse[QuestionOut])
def update_question(
    question_id: int,
    payload: QuestionUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    question = quiz_service.update_question(db, question_id=question_id, data=payload, actor=current_user)
    return ok(QuestionOut.model_validate(question), "Question updated successfully")


@router.delete("/questions/{question_id}", response_model=ApiResponse[None])
def delete_question(
    question_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    quiz_service.delete_question(db, question_id=question_id, actor=current_user)
    return ok(message="Question deleted successfully")


@router.post("/quizzes/{quiz_id}/submit", response_model=ApiResponse[QuizResult])
def submit_quiz(
    quiz_id: int,
    payload: QuizSubmission,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_student),
):
    result = quiz_service.submit_quiz(db, quiz_id=quiz_id, data=payload, actor=current_user)
    message = "Quiz passed" if result["passed"] else "Quiz submitted"
    return ok(QuizResult.model_validate(result), message)


@router.get("/quizzes/{quiz_id}/analytics", response_model=ApiResponse[QuizAnalytics])
def quiz_analytics(
    quiz_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    return ok(QuizAnalytics.model_validate(quiz_service.quiz_analytics(db, quiz_id=quiz_id, actor=current_user)))


@router.get("/gamification/leaderboard", response_model=ApiResponse[list[LeaderboardEntry]])
def leaderboard(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return ok([LeaderboardEntry.model_validate(entry) for entry in quiz_service.leaderboard(db, limit=limit)])


@router.get("/gamification/me", response_model=ApiResponse[GamificationOut])
def my_gamification(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    profile = quiz_service.user_gamification(db, user_id=current_user.id)
    return ok(GamificationOut.model_validate(profile))
