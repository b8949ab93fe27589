"""
Input validation and sanitization utilities.
Functions for validating and cleaning request and notes input.
"""

from typing import Optional
import re

from shared_utils.error_handler import ValidationError


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: str, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated string

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        if not value or not value.strip():
            raise ValidationError(f"{field_name} cannot be empty")

        return value.strip()

    @staticmethod
    def validate_positive_int(value: int, field_name: str, allow_zero: bool = False) -> int:
        """Validate positive integer.

        Args:
            value: Integer to validate
            field_name: Name of field for error messages
            allow_zero: Whether zero is valid

        Returns:
            Validated integer

        Raises:
            ValidationError: If validation fails
        """
        # bool is an int subclass; reject it explicitly
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"{field_name} must be an integer")

        min_val = 0 if allow_zero else 1
        if value < min_val:
            raise ValidationError(f"{field_name} must be >= {min_val}", context={field_name: value})

        return value

    @staticmethod
    def validate_section_index(value: int, section_count: Optional[int] = None) -> int:
        """Validate an agenda section index.

        Args:
            value: Zero-based section index
            section_count: Number of template sections, when a template is known

        Returns:
            Validated index

        Raises:
            ValidationError: If negative or past the last section
        """
        index = InputValidator.validate_positive_int(value, "section_index", allow_zero=True)
        if section_count is not None and index >= section_count:
            raise ValidationError(
                "section_index is past the last agenda section",
                context={"section_index": index, "section_count": section_count},
            )
        return index

    @staticmethod
    def validate_note_content(value: str, max_length: int = 20000) -> str:
        """Validate general note content (non-blank, bounded).

        Raises:
            ValidationError: If blank or too long
        """
        content = InputValidator.validate_non_empty_string(value, "content")
        if len(content) > max_length:
            raise ValidationError(f"content too long (max {max_length} characters)")
        return content

    @staticmethod
    def sanitize_filename(filename: str, max_length: int = 255) -> str:
        """Sanitize filename to prevent path traversal and other issues.

        Args:
            filename: Filename to sanitize
            max_length: Maximum filename length

        Returns:
            Sanitized filename

        Raises:
            ValidationError: If validation fails
        """
        # Remove path separators and special characters
        filename = filename.replace('\\', '').replace('/', '')
        filename = re.sub(r'[<>:"|?*]', '', filename)

        # Prevent path traversal
        if '..' in filename or filename.startswith('.'):
            raise ValidationError("Invalid filename format")

        if len(filename) > max_length:
            raise ValidationError(f"Filename too long (max {max_length} characters)")

        return filename

