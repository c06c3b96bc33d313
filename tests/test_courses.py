from datetime import datetime, timedelta, timezone

import pytest

from learnhub.core.errors import ErrorKind
from learnhub.models.orm import (
    AttemptStatus, CourseStatus, Exam, ExamAttempt, ExamQuestion, LessonProgress, QuestionType,
)
from learnhub.services.courses import CourseChanges, CourseDraft, CourseService
from learnhub.services.exams import (
    ExamChanges, ExamDraft, ExamService, QuestionChanges, QuestionDraft, validate_question,
)
from learnhub.services.grades import GradeService, upsert_grade
from learnhub.services.grading import LetterGrade
from learnhub.services.progress import ProgressService, course_completion


# ---- courses -------------------------------------------------------------

def test_teacher_creates_course_with_prerequisites(db, make, teacher):
    algebra = make.course(title="Algebra")
    result = CourseService(db).create_course(
        teacher, CourseDraft(title="Calculus", prerequisite_ids=[algebra.id, algebra.id])
    )
    assert result.success
    course = result.data
    assert course.teacher_id == teacher.user_id
    assert [link.prerequisite_id for link in course.prerequisite_links] == [algebra.id]


def test_student_cannot_create_course(db, student):
    result = CourseService(db).create_course(student, CourseDraft(title="Mine"))
    assert result.error.kind == ErrorKind.FORBIDDEN


def test_admin_assigns_owner(db, admin):
    course = CourseService(db).create_course(admin, CourseDraft(title="X", teacher_id="teacher-9")).data
    assert course.teacher_id == "teacher-9"


def test_prerequisite_cycle_rejected(db, make, teacher):
    a = make.course(title="Algebra")
    b = make.course(title="Biology", prerequisites=[a])
    c = make.course(title="Calculus", prerequisites=[b])
    result = CourseService(db).update_course(teacher, a.id, CourseChanges(prerequisite_ids=[c.id]))
    assert result.error.kind == ErrorKind.INVALID_STATE
    assert "Calculus" in result.error.message
    db.refresh(a)
    assert a.prerequisite_links == []


def test_self_prerequisite_rejected(db, make, teacher):
    a = make.course(title="Algebra")
    result = CourseService(db).update_course(teacher, a.id, CourseChanges(prerequisite_ids=[a.id]))
    assert result.error.kind == ErrorKind.INVALID_STATE


def test_missing_prerequisite(db, make, teacher):
    a = make.course()
    result = CourseService(db).update_course(teacher, a.id, CourseChanges(prerequisite_ids=["nope"]))
    assert result.error.kind == ErrorKind.NOT_FOUND


def test_prerequisites_replaced(db, make, teacher):
    a = make.course(title="Algebra")
    b = make.course(title="Biology")
    c = make.course(title="Calculus", prerequisites=[a])
    updated = CourseService(db).update_course(teacher, c.id, CourseChanges(prerequisite_ids=[b.id])).data
    assert [link.prerequisite_id for link in updated.prerequisite_links] == [b.id]


def test_foreign_teacher_cannot_update(db, make, other_teacher):
    course = make.course()
    result = CourseService(db).update_course(other_teacher, course.id, CourseChanges(title="Mine"))
    assert result.error.kind == ErrorKind.FORBIDDEN


def test_draft_course_visible_to_owner_only(db, make, teacher, student):
    course = make.course(status=CourseStatus.DRAFT)
    make.lesson(course)
    svc = CourseService(db)
    assert svc.get_course(student, course.id).error.kind == ErrorKind.FORBIDDEN
    data = svc.get_course(teacher, course.id).data
    assert data["status"] == "DRAFT"
    assert len(data["modules"][0]["lessons"]) == 1


def test_modules_and_lessons_ordered(db, make, teacher):
    course = make.course()
    svc = CourseService(db)
    module = svc.add_module(teacher, course.id, "Intro").data
    first = svc.add_lesson(teacher, module.id, "One").data
    second = svc.add_lesson(teacher, module.id, "Two").data
    assert module.order == 1
    assert (first.order, second.order) == (1, 2)
    assert svc.add_module(teacher, "nope", "X").error.kind == ErrorKind.NOT_FOUND


def test_lesson_reading_requires_enrollment(db, make, student):
    course = make.course()
    lesson = make.lesson(course)
    svc = CourseService(db)
    assert svc.get_lesson(student, lesson.id).error.kind == ErrorKind.FORBIDDEN
    make.enroll(student.user_id, course)
    assert svc.get_lesson(student, lesson.id).data.id == lesson.id


# ---- progress ------------------------------------------------------------

def test_course_without_lessons_is_complete(db, make, student):
    course = make.course()
    completion = course_completion(db, course.id, student.user_id)
    assert completion.all_lessons_completed
    assert completion.total_lessons == 0


def test_complete_lesson_idempotent(db, make, student):
    course = make.course()
    lesson = make.lesson(course)
    make.lesson(course, title="Second")
    make.enroll(student.user_id, course)
    svc = ProgressService(db)
    assert svc.complete_lesson(student, lesson.id).success
    assert svc.complete_lesson(student, lesson.id).success
    assert db.query(LessonProgress).count() == 1

    progress = svc.course_progress(student, course.id).data
    assert (progress.completed_lessons, progress.total_lessons) == (1, 2)
    assert not progress.all_lessons_completed


def test_complete_lesson_requires_enrollment(db, make, student):
    lesson = make.lesson(make.course())
    assert ProgressService(db).complete_lesson(student, lesson.id).error.kind == ErrorKind.FORBIDDEN
    assert ProgressService(db).complete_lesson(student, "nope").error.kind == ErrorKind.NOT_FOUND


# ---- exam authoring ------------------------------------------------------

def _draft(**kw):
    start = datetime.now(timezone.utc)
    values = dict(title="Midterm", start_date=start, end_date=start + timedelta(days=1), max_score=10, passing_score=6)
    values.update(kw)
    return ExamDraft(**values)


def test_create_exam_validates_window_and_scores(db, make, teacher):
    course = make.course()
    svc = ExamService(db)
    assert svc.create_exam(teacher, course.id, _draft()).success
    bad_window = _draft()
    bad_window.end_date = bad_window.start_date
    assert svc.create_exam(teacher, course.id, bad_window).error.kind == ErrorKind.INVALID_STATE
    assert svc.create_exam(teacher, course.id, _draft(passing_score=11)).error.kind == ErrorKind.INVALID_STATE


def test_create_exam_permissions(db, make, other_teacher):
    course = make.course()
    svc = ExamService(db)
    assert svc.create_exam(other_teacher, course.id, _draft()).error.kind == ErrorKind.FORBIDDEN
    assert svc.create_exam(other_teacher, "nope", _draft()).error.kind == ErrorKind.NOT_FOUND


@pytest.mark.parametrize("draft", [
    QuestionDraft(prompt="q", choices=["only"], correct_index=0),
    QuestionDraft(prompt="q", choices=["a", "b"], correct_index=2),
    QuestionDraft(prompt="q", choices=["a", "b"], correct_index=None),
    QuestionDraft(prompt="q", type=QuestionType.TEXT, points=-1),
])
def test_invalid_questions(draft):
    assert validate_question(draft) is not None


def test_essay_question_needs_no_choices():
    assert validate_question(QuestionDraft(prompt="Discuss", type=QuestionType.ESSAY, points=5)) is None


def test_question_points_bounded_by_max_score(db, make, teacher):
    exam = make.exam(make.course(), max_score=10, questions=[(QuestionType.MULTIPLE_CHOICE, 8)])
    svc = ExamService(db)
    extra = QuestionDraft(prompt="extra", type=QuestionType.TEXT, points=5)
    result = svc.add_question(teacher, exam.id, extra)
    assert result.error.kind == ErrorKind.INVALID_STATE
    assert "allow_bonus" in result.error.message

    question = svc.add_question(teacher, exam.id, extra, allow_bonus=True).data
    assert question.order == 2
    assert question.correct_index is None


def test_list_exams_requires_read_access(db, make, student, teacher):
    course = make.course()
    make.exam(course)
    svc = ExamService(db)
    assert svc.list_exams(student, course.id).error.kind == ErrorKind.FORBIDDEN
    assert svc.list_exams(student, "nope").error.kind == ErrorKind.NOT_FOUND
    assert len(svc.list_exams(teacher, course.id).data) == 1


def test_list_attempts_staff_only(db, make, student, teacher):
    course = make.course()
    make.enroll(student.user_id, course)
    exam = make.exam(course)
    make.attempt(exam, student.user_id, 5, AttemptStatus.GRADED)
    svc = ExamService(db)
    assert len(svc.list_attempts(teacher, exam.id).data) == 1
    assert svc.list_attempts(student, exam.id).error.kind == ErrorKind.FORBIDDEN


# ---- grade reports -------------------------------------------------------

def test_student_grade_report_with_gpa(db, make, student, admin, teacher):
    course = make.course()
    for score, letter in ((96, "A+"), (81, "B")):
        exam = make.exam(course, max_score=100)
        upsert_grade(db, user_id=student.user_id, course_id=course.id, item_id=exam.id,
                     score=score, max_score=100, percentage=score, letter_grade=LetterGrade(letter))
    db.commit()
    svc = GradeService(db)
    report = svc.student_grades(student, student.user_id).data
    assert len(report.grades) == 2
    assert report.gpa == 3.5
    assert svc.student_grades(admin, student.user_id).success
    assert svc.student_grades(teacher, student.user_id).error.kind == ErrorKind.FORBIDDEN


def test_course_grades_for_owner(db, make, teacher, other_teacher):
    course = make.course(teacher_id=teacher.user_id)
    svc = GradeService(db)
    assert svc.course_grades(teacher, course.id).data == []
    assert svc.course_grades(other_teacher, course.id).error.kind == ErrorKind.FORBIDDEN
    assert svc.course_grades(teacher, "nope").error.kind == ErrorKind.NOT_FOUND


def test_create_exam_accepts_mixed_timezone_forms(db, make, teacher):
    course = make.course()
    svc = ExamService(db)
    naive_start = datetime(2026, 1, 1, 9, 0)
    aware_end = datetime(2026, 1, 2, 9, 0, tzinfo=timezone.utc)
    assert svc.create_exam(teacher, course.id, _draft(start_date=naive_start, end_date=aware_end)).success

    # 08:00 at UTC+2 is 06:00 UTC, before a naive 07:00 start
    early_end = datetime(2026, 1, 1, 8, 0, tzinfo=timezone(timedelta(hours=2)))
    result = svc.create_exam(teacher, course.id, _draft(start_date=datetime(2026, 1, 1, 7, 0), end_date=early_end))
    assert result.error.kind == ErrorKind.INVALID_STATE


def test_update_exam_revalidates(db, make, teacher, other_teacher):
    exam = make.exam(make.course(), max_score=10, passing_score=6)
    svc = ExamService(db)
    updated = svc.update_exam(teacher, exam.id, ExamChanges(title="Final", max_score=20)).data
    assert (updated.title, updated.max_score) == ("Final", 20)
    assert svc.update_exam(teacher, exam.id, ExamChanges(passing_score=25)).error.kind == ErrorKind.INVALID_STATE
    early = datetime(2000, 1, 1)
    assert svc.update_exam(teacher, exam.id, ExamChanges(end_date=early)).error.kind == ErrorKind.INVALID_STATE
    assert svc.update_exam(other_teacher, exam.id, ExamChanges(title="Mine")).error.kind == ErrorKind.FORBIDDEN
    assert svc.update_exam(teacher, "nope", ExamChanges(title="X")).error.kind == ErrorKind.NOT_FOUND


def test_delete_exam_removes_questions_and_attempts(db, make, teacher, student):
    exam = make.exam(make.course(), questions=[(QuestionType.MULTIPLE_CHOICE, 5)])
    make.attempt(exam, student.user_id, 5, AttemptStatus.AUTO_GRADED)
    svc = ExamService(db)
    assert svc.delete_exam(student, exam.id).error.kind == ErrorKind.FORBIDDEN
    assert svc.delete_exam(teacher, exam.id).success
    assert db.query(Exam).count() == 0
    assert db.query(ExamQuestion).count() == 0
    assert db.query(ExamAttempt).count() == 0


def test_update_question_checks_points_and_choices(db, make, teacher):
    exam = make.exam(make.course(), max_score=10,
                     questions=[(QuestionType.MULTIPLE_CHOICE, 6), (QuestionType.MULTIPLE_CHOICE, 4)])
    first = exam.questions[0]
    svc = ExamService(db)

    # replacing a question's own points does not count them twice
    assert svc.update_question(teacher, exam.id, first.id, QuestionChanges(points=6)).success
    too_many = svc.update_question(teacher, exam.id, first.id, QuestionChanges(points=7))
    assert too_many.error.kind == ErrorKind.INVALID_STATE
    assert svc.update_question(teacher, exam.id, first.id, QuestionChanges(points=7), allow_bonus=True).data.points == 7

    bad_index = svc.update_question(teacher, exam.id, first.id, QuestionChanges(correct_index=5))
    assert bad_index.error.kind == ErrorKind.INVALID_STATE
    essay = svc.update_question(teacher, exam.id, first.id, QuestionChanges(type=QuestionType.ESSAY)).data
    assert essay.correct_index is None
    assert svc.update_question(teacher, exam.id, "nope", QuestionChanges(points=1)).error.kind == ErrorKind.NOT_FOUND


def test_delete_question(db, make, teacher):
    exam = make.exam(make.course(), questions=[(QuestionType.MULTIPLE_CHOICE, 5)])
    question_id = exam.questions[0].id
    other_exam = make.exam(make.course())
    svc = ExamService(db)
    assert svc.delete_question(teacher, other_exam.id, question_id).error.kind == ErrorKind.NOT_FOUND
    assert svc.delete_question(teacher, exam.id, question_id).success
    assert db.get(ExamQuestion, question_id) is None
