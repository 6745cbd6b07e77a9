"""
Courses module - credentials and the access grants that certificates control.
"""

from certtrack.modules.courses.models import Course, course_enrollments
from certtrack.modules.courses.repository import CourseRepository

__all__ = ["Course", "course_enrollments", "CourseRepository"]
