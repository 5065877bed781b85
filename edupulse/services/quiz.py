from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import BadRequestError
from ..models import (
    Badge,
    Course,
    Gamification,
    Question,
    QuestionType,
    Quiz,
    QuizAttempt,
    User,
    UserRole,
    utcnow,
)
from ..pagination import Page, paginate
from ..schemas.quiz import QuestionCreate, QuestionUpdate, QuizCreate, QuizSubmission, QuizUpdate
from .common import apply_changes, ensure_course_access, get_or_404, save, student_profile
from .courses import is_enrolled

logger = get_logger("quiz")

XP_PER_LEVEL = 500
FIRST_QUIZ_BADGE = ("First Quiz", "Completed your first quiz", "star")
PERFECT_SCORE_BADGE = ("Perfect Score", "Scored 100% on a quiz", "trophy")


def level_for(xp: int) -> int:
    return 1 + xp // XP_PER_LEVEL


def create_quiz(db: Session, *, course_id: int, data: QuizCreate, actor: User) -> Quiz:
    course = get_or_404(db, Course, course_id, "Course")
    ensure_course_access(actor, course)
    quiz = Quiz(course_id=course.id, **data.model_dump())
    if quiz.subject is None:
        quiz.subject = course.subject
    db.add(quiz)
    save(db, quiz)
    logger.info("Created quiz %s for course %s", quiz.id, course.id)
    return quiz


def get_quiz(db: Session, quiz_id: int) -> Quiz:
    return get_or_404(db, Quiz, quiz_id, "Quiz")


def quiz_detail(quiz: Quiz, *, reveal_answers: bool) -> dict:
    """Quiz with its ordered questions; answers are stripped for students."""
    questions = []
    for question in quiz.questions:
        item = {
            "id": question.id,
            "quiz_id": question.quiz_id,
            "question": question.question,
            "type": question.type,
            "options": question.options or [],
            "points": question.points,
            "order": question.order,
        }
        if reveal_answers:
            item["correct_answer"] = question.correct_answer
            item["explanation"] = question.explanation
        questions.append(item)
    detail = {column.name: getattr(quiz, column.name) for column in Quiz.__table__.columns}
    detail["questions"] = questions
    return detail


def quizzes_by_course(db: Session, *, course_id: int, actor: User, page: int = 1, limit: int = 10) -> Page:
    get_or_404(db, Course, course_id, "Course")
    query = db.query(Quiz).filter(Quiz.course_id == course_id)
    if actor.role in {UserRole.STUDENT, UserRole.PARENT}:
        query = query.filter(Quiz.is_active.is_(True))
    result = paginate(query.order_by(Quiz.created_at.desc(), Quiz.id.desc()), page, limit)

    counts = dict(
        db.query(Question.quiz_id, func.count(Question.id))
        .filter(Question.quiz_id.in_([quiz.id for quiz in result.items]))
        .group_by(Question.quiz_id)
        .all()
    )
    for quiz in result.items:
        quiz.question_count = counts.get(quiz.id, 0)
    return result


def update_quiz(db: Session, *, quiz_id: int, data: QuizUpdate, actor: User) -> Quiz:
    quiz = get_quiz(db, quiz_id)
    ensure_course_access(actor, quiz.course)
    nullable = {"description", "time_limit", "max_attempts"}
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in nullable
    }
    apply_changes(quiz, changes)
    save(db, quiz)
    return quiz


def delete_quiz(db: Session, *, quiz_id: int, actor: User) -> None:
    quiz = get_quiz(db, quiz_id)
    ensure_course_access(actor, quiz.course)
    db.delete(quiz)
    db.commit()
    logger.info("Deleted quiz %s", quiz_id)


def add_question(db: Session, *, quiz_id: int, data: QuestionCreate, actor: User) -> Question:
    quiz = get_quiz(db, quiz_id)
    ensure_course_access(actor, quiz.course)
    highest = db.query(func.max(Question.order)).filter(Question.quiz_id == quiz.id).scalar() or 0
    question = Question(quiz_id=quiz.id, order=highest + 1, **data.model_dump())
    db.add(question)
    save(db, question)
    return question


def update_question(db: Session, *, question_id: int, data: QuestionUpdate, actor: User) -> Question:
    question = get_or_404(db, Question, question_id, "Question")
    ensure_course_access(actor, question.quiz.course)
    changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
    question_type = changes.get("type", question.type)
    options = changes.get("options", question.options) or []
    if question_type != QuestionType.SHORT_ANSWER and len(options) < 2:
        raise BadRequestError("Multiple choice questions need at least 2 options")
    apply_changes(question, changes)
    save(db, question)
    return question


def delete_question(db: Session, *, question_id: int, actor: User) -> None:
    question = get_or_404(db, Question, question_id, "Question")
    ensure_course_access(actor, question.quiz.course)
    db.delete(question)
    db.commit()


def reorder_questions(db: Session, *, quiz_id: int, question_ids: list[int], actor: User) -> list[Question]:
    quiz = get_quiz(db, quiz_id)
    ensure_course_access(actor, quiz.course)
    by_id = {question.id: question for question in quiz.questions}
    if len(set(question_ids)) != len(question_ids):
        raise BadRequestError("Duplicate question ids")
    unknown = [question_id for question_id in question_ids if question_id not in by_id]
    if unknown:
        raise BadRequestError(f"Questions {unknown} do not belong to this quiz")

    listed = set(question_ids)
    remaining = sorted(
        (question for question in quiz.questions if question.id not in listed),
        key=lambda question: (question.order, question.id),
    )
    ordered = [by_id[question_id] for question_id in question_ids] + remaining
    for position, question in enumerate(ordered, start=1):
        question.order = position
    db.commit()
    db.refresh(quiz)
    return list(quiz.questions)


def gamification_for(db: Session, user_id: int) -> Gamification:
    profile = db.query(Gamification).filter(Gamification.user_id == user_id).first()
    if profile is None:
        profile = Gamification(user_id=user_id, xp=0, points=0, level=1, streak=0)
        db.add(profile)
        db.flush()
    return profile


def _touch_streak(profile: Gamification) -> None:
    now = utcnow()
    if profile.last_activity_at is None:
        profile.streak = 1
    else:
        gap = (now.date() - profile.last_activity_at.date()).days
        if gap == 1:
            profile.streak += 1
        elif gap > 1:
            profile.streak = 1
    profile.last_activity_at = now


def _award_badge(profile: Gamification, badge: tuple[str, str, str]) -> bool:
    name, description, icon = badge
    if any(existing.name == name for existing in profile.badges):
        return False
    profile.badges.append(Badge(name=name, description=description, icon=icon))
    return True


def submit_quiz(db: Session, *, quiz_id: int, data: QuizSubmission, actor: User) -> dict:
    quiz = get_quiz(db, quiz_id)
    student = student_profile(actor)
    if not quiz.is_active:
        raise BadRequestError("Quiz is not active")
    if not is_enrolled(db, student_id=student.id, course_id=quiz.course_id):
        raise BadRequestError("You are not enrolled in this course")
    if not quiz.questions:
        raise BadRequestError("Quiz has no questions")

    previous = (
        db.query(func.count(QuizAttempt.id))
        .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.student_id == student.id)
        .scalar()
        or 0
    )
    if quiz.max_attempts is not None and previous >= quiz.max_attempts:
        raise BadRequestError(f"Maximum attempts ({quiz.max_attempts}) reached for this quiz")

    questions = {question.id: question for question in quiz.questions}
    total_points = sum(question.points for question in questions.values())
    answers = {}
    for item in data.answers:
        if item.question_id in questions:
            answers[item.question_id] = item.answer

    score = 0
    correct = 0
    for question_id, answer in answers.items():
        question = questions[question_id]
        if answer.strip().lower() == question.correct_answer.strip().lower():
            score += question.points
            correct += 1

    percentage = round(score / total_points * 100) if total_points else 0
    passed = percentage >= quiz.passing_score
    xp_earned = round(percentage / 100 * quiz.xp_reward) if passed else 0

    attempt = QuizAttempt(
        quiz_id=quiz.id,
        student_id=student.id,
        score=score,
        total_points=total_points,
        total_questions=len(questions),
        correct_answers=correct,
        percentage=percentage,
        passed=passed,
        time_taken=data.time_taken,
        xp_earned=xp_earned,
        answers={str(question_id): answer for question_id, answer in answers.items()},
        completed_at=utcnow(),
    )
    db.add(attempt)

    profile = gamification_for(db, actor.id)
    profile.xp += xp_earned
    profile.points += xp_earned
    profile.level = level_for(profile.xp)
    _touch_streak(profile)
    badges = []
    if _award_badge(profile, FIRST_QUIZ_BADGE):
        badges.append(FIRST_QUIZ_BADGE[0])
    if percentage == 100 and _award_badge(profile, PERFECT_SCORE_BADGE):
        badges.append(PERFECT_SCORE_BADGE[0])
    save(db, attempt)
    logger.info("Student %s scored %s%% on quiz %s (+%s XP)", student.id, percentage, quiz.id, xp_earned)

    return {
        "attempt_id": attempt.id,
        "score": score,
        "total_points": total_points,
        "percentage": percentage,
        "passed": passed,
        "correct_answers": correct,
        "total_questions": len(questions),
        "xp_earned": xp_earned,
        "badges_earned": badges,
    }


def _summarize(attempts: list[QuizAttempt]) -> dict:
    total = len(attempts)
    passed = sum(1 for attempt in attempts if attempt.passed)
    return {
        "passed": passed,
        "failed": total - passed,
        "pass_rate": round(passed / total * 100) if total else 0,
        "average_score": round(sum(attempt.percentage for attempt in attempts) / total) if total else 0,
    }


def quiz_analytics(db: Session, *, quiz_id: int, actor: User) -> dict:
    quiz = get_quiz(db, quiz_id)
    ensure_course_access(actor, quiz.course)
    attempts = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.quiz_id == quiz.id)
        .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.id.desc())
        .all()
    )
    return {"quiz_id": quiz.id, "total_submissions": len(attempts), **_summarize(attempts), "attempts": attempts}


def student_quiz_stats(db: Session, *, actor: User) -> dict:
    student = student_profile(actor)
    attempts = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.student_id == student.id)
        .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.id.desc())
        .all()
    )
    return {
        "total_attempts": len(attempts),
        **_summarize(attempts),
        "total_xp_earned": sum(attempt.xp_earned for attempt in attempts),
        "attempts": attempts,
    }


def leaderboard(db: Session, *, limit: int = 10) -> list[dict]:
    rows = (
        db.query(Gamification)
        .options(joinedload(Gamification.user))
        .order_by(Gamification.xp.desc(), Gamification.id)
        .limit(max(1, min(limit, 100)))
        .all()
    )
    return [
        {"rank": rank, "user": row.user, "xp": row.xp, "level": row.level, "points": row.points}
        for rank, row in enumerate(rows, start=1)
    ]


def user_gamification(db: Session, *, user_id: int) -> Gamification:
    get_or_404(db, User, user_id, "User")
    profile = gamification_for(db, user_id)
    save(db, profile)
    return profile
