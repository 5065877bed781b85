from . import (
    attendance,
    auth,
    books,
    courses,
    events,
    grades,
    health,
    lessons,
    loans,
    messages,
    notifications,
    quiz,
    reservations,
    schedule,
    settings,
    students,
    teachers,
    users,
)

API_ROUTERS = [
    auth.router,
    users.router,
    students.router,
    teachers.router,
    courses.router,
    schedule.router,
    lessons.router,
    attendance.router,
    grades.router,
    books.router,
    loans.router,
    reservations.router,
    quiz.router,
    notifications.router,
    messages.router,
    events.router,
    settings.router,
]

__all__ = ["API_ROUTERS", "health"]
