import os

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_EMAIL"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["ALLOW_EMAIL_CONSOLE_FALLBACK"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from edupulse.app import create_app
from edupulse.database import Base, build_engine, get_db_session
from edupulse.models import (
    Admin,
    Book,
    BookStatus,
    Course,
    Enrollment,
    Parent,
    ParentStudent,
    Student,
    Teacher,
    User,
    UserRole,
    UserStatus,
)
from edupulse.security import create_access_token, hash_password

PASSWORD = "Password@123"


@pytest.fixture()
def engine():
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)()
    yield session
    session.close()


@pytest.fixture()
def app(db):
    application = create_app(init_db=False)

    def override_db():
        try:
            yield db
        finally:
            db.rollback()

    application.dependency_overrides[get_db_session] = override_db
    return application


@pytest.fixture()
def client(app):
    return TestClient(app)


def make_user(db, role: UserRole, email: str, *, status: UserStatus = UserStatus.ACTIVE, **profile) -> User:
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        first_name=email.split("@")[0].title(),
        last_name="Tester",
        role=role,
        status=status,
        email_verified=status == UserStatus.ACTIVE,
    )
    db.add(user)
    db.flush()
    if role == UserRole.STUDENT:
        db.add(
            Student(
                user_id=user.id,
                roll_number=profile.get("roll_number", f"R-{user.id}"),
                grade_level=profile.get("grade_level", 10),
                section=profile.get("section", "A"),
            )
        )
    elif role == UserRole.TEACHER:
        db.add(
            Teacher(
                user_id=user.id,
                employee_id=profile.get("employee_id", f"E-{user.id}"),
                department=profile.get("department", "Science"),
                subjects=["Physics"],
            )
        )
    elif role == UserRole.ADMIN:
        db.add(Admin(user_id=user.id, admin_code="ADM-TEST"))
    elif role == UserRole.PARENT:
        db.add(Parent(user_id=user.id))
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role.value)}"}


@pytest.fixture()
def admin(db):
    return make_user(db, UserRole.ADMIN, "admin@example.com")


@pytest.fixture()
def teacher(db):
    return make_user(db, UserRole.TEACHER, "teacher@example.com")


@pytest.fixture()
def student(db):
    return make_user(db, UserRole.STUDENT, "student@example.com")


@pytest.fixture()
def other_student(db):
    return make_user(db, UserRole.STUDENT, "other@example.com")


@pytest.fixture()
def parent(db, student):
    user = make_user(db, UserRole.PARENT, "parent@example.com")
    db.add(ParentStudent(parent_id=user.parent.id, student_id=student.student.id))
    db.commit()
    return user


@pytest.fixture()
def course(db, teacher, student):
    item = Course(code="PHY101", name="Physics I", subject="Physics", grade_level=10, teacher_id=teacher.teacher.id)
    db.add(item)
    db.flush()
    db.add(Enrollment(student_id=student.student.id, course_id=item.id))
    db.commit()
    db.refresh(item)
    return item


def make_book(db, isbn: str = "9780132350884", copies: int = 1, **fields) -> Book:
    book = Book(
        isbn=isbn,
        title=fields.get("title", "Clean Code"),
        author=fields.get("author", "Robert C. Martin"),
        category=fields.get("category", "Programming"),
        total_copies=copies,
        available_copies=copies,
        status=BookStatus.AVAILABLE,
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    return book
