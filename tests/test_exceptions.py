"""
Tests for the exception hierarchy.
"""

from src.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConstraintViolationError,
    DatabaseError,
    ErrorCategory,
    ErrorSeverity,
    InvalidInputError,
    PolicyViolationError,
    RecordNotFoundError,
    StorageError,
    StorageUploadError,
    StudyPlatformError,
)


class TestPolicyViolationError:
    def test_insert_message(self):
        error = PolicyViolationError("responses", "INSERT", "authenticated")
        assert str(error) == 'new row violates row-level security policy for table "responses"'
        assert error.table == "responses"
        assert error.command == "INSERT"
        assert error.role == "authenticated"

    def test_update_message_with_reason(self):
        error = PolicyViolationError("studies", "UPDATE", "anon", "row not found or not permitted")
        assert str(error).startswith('UPDATE on table "studies" is not permitted for role anon')
        assert str(error).endswith("row not found or not permitted")

    def test_is_authorization_error(self):
        error = PolicyViolationError("forms", "DELETE", "authenticated")
        assert isinstance(error, AuthorizationError)
        assert error.category == ErrorCategory.AUTHORIZATION
        assert error.user_message == "You don't have permission to perform this action."


class TestHierarchy:
    def test_categories(self):
        assert AuthenticationError().category == ErrorCategory.AUTHENTICATION
        assert ConstraintViolationError("users", "dup").category == ErrorCategory.DATABASE
        assert StorageUploadError("boom").category == ErrorCategory.STORAGE
        assert ConfigurationError("dsn").category == ErrorCategory.SYSTEM

    def test_subclassing(self):
        assert issubclass(ConstraintViolationError, DatabaseError)
        assert issubclass(RecordNotFoundError, DatabaseError)
        assert issubclass(StorageUploadError, StorageError)
        assert issubclass(InvalidInputError, StudyPlatformError)

    def test_constraint_violation_keeps_message(self):
        error = ConstraintViolationError("users", "UNIQUE constraint failed: users.email")
        assert str(error) == "UNIQUE constraint failed: users.email"
        assert error.details == {"table": "users"}
        assert error.severity == ErrorSeverity.MEDIUM

    def test_invalid_input_details(self):
        error = InvalidInputError("file_path", "x.csv", "must be stored under the study folder")
        assert error.details["field"] == "file_path"
        assert error.details["value"] == "x.csv"
        assert error.user_message == "Invalid file_path: must be stored under the study folder"


class TestToDict:
    def test_to_dict_includes_cause(self):
        try:
            try:
                raise ValueError("driver said no")
            except ValueError as e:
                raise ConstraintViolationError("studies", "CHECK constraint failed") from e
        except ConstraintViolationError as error:
            payload = error.to_dict()

        assert payload["error_type"] == "ConstraintViolationError"
        assert payload["category"] == "database"
        assert payload["cause"] == "driver said no"

    def test_record_not_found(self):
        payload = RecordNotFoundError("StudyDataUpload", "abc").to_dict()
        assert payload["message"] == "StudyDataUpload with identifier 'abc' not found"
        assert payload["cause"] is None
