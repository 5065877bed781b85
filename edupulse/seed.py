import argparse
from datetime import date, timedelta

from sqlalchemy.orm import Session

from .app_logger import get_logger, setup_logging
from .config import settings
from .database import Base, SessionLocal, engine
from .models import (
    Admin,
    Book,
    BookStatus,
    Course,
    Enrollment,
    Event,
    EventType,
    Parent,
    ParentStudent,
    Question,
    QuestionType,
    Quiz,
    Student,
    SystemSetting,
    Teacher,
    User,
    UserRole,
    UserStatus,
    utcnow,
)
from .security import hash_password

logger = get_logger("seed")

DEMO_PASSWORD = "Password@123"

DEMO_BOOKS = [
    ("9780132350884", "Clean Code", "Robert C. Martin", "Programming", 3),
    ("9780262033848", "Introduction to Algorithms", "Thomas H. Cormen", "Computer Science", 2),
    ("9780143127741", "The Martian", "Andy Weir", "Fiction", 1),
    ("9780553380163", "A Brief History of Time", "Stephen Hawking", "Science", 2),
]

DEMO_SETTINGS = [
    ("school_name", "EduPulse Academy", "general"),
    ("academic_year", "2024-2025", "general"),
    ("library_loan_days", "14", "library"),
    ("library_max_loans", "5", "library"),
]


def _user(db: Session, email: str, first_name: str, last_name: str, role: UserRole, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        status=UserStatus.ACTIVE,
        email_verified=True,
    )
    db.add(user)
    db.flush()
    return user


def seed_default_admin(db: Session) -> User:
    email = settings.default_admin_email.strip().lower()
    user = _user(db, email, "System", "Administrator", UserRole.ADMIN, settings.default_admin_password)
    if user.admin is None:
        db.add(Admin(user_id=user.id, admin_code="ADM001", access_level=10))
    db.commit()
    return user


def seed_demo_data(db: Session) -> dict:
    """Idempotent demo dataset: one of each role, two courses, a quiz, books, events and settings."""
    seed_default_admin(db)

    teacher_user = _user(db, "teacher@edupulse.local", "Grace", "Hopper", UserRole.TEACHER, DEMO_PASSWORD)
    teacher = teacher_user.teacher
    if teacher is None:
        teacher = Teacher(
            user_id=teacher_user.id,
            employee_id="EMP001",
            department="Mathematics",
            subjects=["Mathematics", "Computer Science"],
            qualification="MSc Mathematics",
        )
        db.add(teacher)
        db.flush()

    student_user = _user(db, "student@edupulse.local", "Alan", "Turing", UserRole.STUDENT, DEMO_PASSWORD)
    student = student_user.student
    if student is None:
        student = Student(user_id=student_user.id, roll_number="STU001", grade_level=10, section="A")
        db.add(student)
        db.flush()

    parent_user = _user(db, "parent@edupulse.local", "Ada", "Lovelace", UserRole.PARENT, DEMO_PASSWORD)
    parent = parent_user.parent
    if parent is None:
        parent = Parent(user_id=parent_user.id, occupation="Engineer", relationship_type="Mother")
        parent.children.append(ParentStudent(student_id=student.id))
        db.add(parent)
        db.flush()

    courses = []
    for code, name, subject in (("MATH101", "Algebra I", "Mathematics"), ("CS101", "Intro to Programming", "Computer Science")):
        course = db.query(Course).filter(Course.code == code).first()
        if course is None:
            course = Course(
                code=code,
                name=name,
                subject=subject,
                grade_level=10,
                credits=3,
                teacher_id=teacher.id,
                start_date=date.today(),
                end_date=date.today() + timedelta(days=120),
            )
            db.add(course)
            db.flush()
            db.add(Enrollment(student_id=student.id, course_id=course.id))
        courses.append(course)

    if not db.query(Quiz).filter(Quiz.course_id == courses[0].id).first():
        quiz = Quiz(course_id=courses[0].id, title="Linear Equations", subject="Mathematics", max_attempts=3)
        quiz.questions = [
            Question(question="Solve x + 2 = 5", type=QuestionType.MCQ, options=["2", "3", "4"], correct_answer="3",
                     points=10, order=1),
            Question(question="2x = 10 means x = 5", type=QuestionType.TRUE_FALSE, options=["True", "False"],
                     correct_answer="True", points=10, order=2),
        ]
        db.add(quiz)

    for isbn, title, author, category, copies in DEMO_BOOKS:
        if db.query(Book).filter(Book.isbn == isbn).first() is None:
            db.add(
                Book(
                    isbn=isbn,
                    title=title,
                    author=author,
                    category=category,
                    total_copies=copies,
                    available_copies=copies,
                    status=BookStatus.AVAILABLE,
                )
            )

    if db.query(Event).count() == 0:
        start = utcnow().replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=7)
        db.add_all(
            [
                Event(title="Mid-term Exams", type=EventType.EXAM, start_date=start,
                      end_date=start + timedelta(days=5), all_day=True, target_roles=["STUDENT", "TEACHER"]),
                Event(title="Parent-Teacher Meeting", type=EventType.MEETING, start_date=start + timedelta(days=10),
                      end_date=start + timedelta(days=10, hours=3), target_roles=["PARENT", "TEACHER"]),
            ]
        )

    for key, value, category in DEMO_SETTINGS:
        if db.query(SystemSetting).filter(SystemSetting.key == key).first() is None:
            db.add(SystemSetting(key=key, value=value, category=category))

    db.commit()
    logger.info("Demo data ready")
    return {
        "admin": settings.default_admin_email,
        "teacher": teacher_user.email,
        "student": student_user.email,
        "parent": parent_user.email,
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create tables and seed EduPulse data")
    parser.add_argument("--demo", action="store_true", help="also load the demo dataset")
    args = parser.parse_args(argv)

    setup_logging()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.demo:
            accounts = seed_demo_data(db)
            for role, email in accounts.items():
                logger.info("%s account: %s", role, email)
        else:
            seed_default_admin(db)
            logger.info("Default admin ready: %s", settings.default_admin_email)
    finally:
        db.close()


if __name__ == "__main__":
    main()
