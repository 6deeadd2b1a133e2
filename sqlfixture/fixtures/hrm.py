"""HRM test data builders: employees, users, leave requests and reference data."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from faker import Faker

from sqlfixture.registry import ContextRef, FixtureRegistry

logger = logging.getLogger(__name__)

LEAVE_TYPES = ["Annual", "Sick", "Maternity", "Paternity", "Personal"]
JOB_TITLES = ["Software Engineer", "QA Engineer", "Project Manager", "HR Manager", "System Admin"]
DEPARTMENTS = ["Engineering", "Quality Assurance", "Human Resources", "Administration"]

# Hours recorded per leave day
FULL_DAY_DURATION = 8.0


class HrmTestData:
    """Builds tracked HRM rows through a :class:`FixtureRegistry`.

    Every row is inserted with ``insert_tracked``, so ending the context
    removes it again.
    """

    def __init__(self, registry: FixtureRegistry, faker: Optional[Faker] = None, seed: Optional[int] = None):
        """Initialize HRM data builder.

        Args:
            registry: Registry the rows are tracked in.
            faker: Faker instance for generated names. Created if None.
            seed: Seed for reproducible generated data.
        """
        self.registry = registry
        self.faker = faker or Faker()
        if seed is not None:
            self.faker.seed_instance(seed)

    def create_employee_test_data(
        self,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        employee_id: Optional[str] = None,
        context: ContextRef = None,
        **extra_columns: Any,
    ) -> Any:
        """Insert an active employee hired today.

        Args:
            first_name: First name. Generated if None.
            last_name: Last name. Generated if None.
            employee_id: Optional employee id column value.
            context: Owning context. If None, the default context.
            **extra_columns: Additional ``hs_hr_employees`` columns (e.g. ``email``).

        Returns:
            The employee's ``emp_number``.
        """
        now = datetime.now()
        employee_data = {
            'first_name': first_name or self.faker.first_name(),
            'last_name': last_name or self.faker.last_name(),
        }
        if employee_id is not None:
            employee_data['employee_id'] = employee_id
        employee_data['hire_date'] = now.date()
        employee_data['status'] = "Active"
        employee_data['created_date'] = now
        employee_data.update(extra_columns)

        return self.registry.insert_tracked("hs_hr_employees", employee_data, "emp_number", context=context)

    def create_user_test_data(
        self,
        username: str,
        password: str,
        user_role: str,
        employee_number: Any = None,
        context: ContextRef = None,
    ) -> Any:
        """Insert an active user account, creating its role when it does not exist.

        The password is stored as given.

        Returns:
            The user's ``id``.
        """
        user_data = {
            'user_name': username,
            'user_password': password,
            'user_role_id': self._get_user_role_id(user_role, context),
            'emp_number': employee_number,
            'created_date': datetime.now(),
            'status': 1,
        }
        return self.registry.insert_tracked("ohrm_user", user_data, "id", context=context)

    def _get_user_role_id(self, role_name: str, context: ContextRef) -> Any:
        executor = self.registry.executor_for(context)
        role_id = executor.single_value("SELECT id FROM ohrm_user_role WHERE name = ?", role_name, target_type=int)
        if role_id is not None:
            return role_id

        role_data = {
            'name': role_name,
            'display_name': role_name,
            'is_assignable': 1,
            'is_predefined': 0,
        }
        logger.debug(f"Creating user role: {role_name}")
        return self.registry.insert_tracked("ohrm_user_role", role_data, "id", context=context)

    def create_leave_test_data(
        self,
        employee_number: Any,
        leave_type_id: int,
        from_date: date,
        to_date: date,
        status: str,
        context: ContextRef = None,
    ) -> Any:
        """Insert a leave request and one leave day row per calendar day, inclusive.

        Returns:
            The leave request's ``id``.
        """
        leave_data = {
            'emp_number': employee_number,
            'leave_type_id': leave_type_id,
            'date_applied': date.today(),
            'leave_comments': "Test leave request",
        }
        leave_id = self.registry.insert_tracked("ohrm_leave", leave_data, "id", context=context)

        days = (to_date - from_date).days + 1
        for offset in range(days):
            detail_data = {
                'leave_id': leave_id,
                'leave_date': from_date + timedelta(days=offset),
                'status': status,
                'duration': FULL_DAY_DURATION,
            }
            self.registry.insert_tracked("ohrm_leave_leave_entitlement", detail_data, "id", context=context)

        return leave_id

    def seed_common_test_data(self, context: ContextRef = None) -> None:
        """Insert the standard leave types, job titles and departments that are missing."""
        logger.info("Seeding database with common test data")
        executor = self.registry.executor_for(context)

        for leave_type in LEAVE_TYPES:
            if executor.record_count("SELECT COUNT(*) FROM ohrm_leave_type WHERE name = ?", leave_type) == 0:
                self.registry.insert_tracked(
                    "ohrm_leave_type", {'name': leave_type, 'deleted': 0}, "id", context=context
                )
                logger.debug(f"Created leave type: {leave_type}")

        for job_title in JOB_TITLES:
            if executor.record_count("SELECT COUNT(*) FROM ohrm_job_title WHERE job_title = ?", job_title) == 0:
                job_title_data = {
                    'job_title': job_title,
                    'job_description': f"Test {job_title} description",
                    'is_deleted': 0,
                }
                self.registry.insert_tracked("ohrm_job_title", job_title_data, "id", context=context)
                logger.debug(f"Created job title: {job_title}")

        for department in DEPARTMENTS:
            if executor.record_count("SELECT COUNT(*) FROM ohrm_subunit WHERE name = ?", department) == 0:
                department_data = {
                    'name': department,
                    'unit_id': "DEPT_" + department.upper().replace(" ", "_"),
                    'description': f"Test {department} department",
                }
                self.registry.insert_tracked("ohrm_subunit", department_data, "id", context=context)
                logger.debug(f"Created department: {department}")

        logger.info("Common test data seeding completed")
