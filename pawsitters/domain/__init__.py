# Domain Layer
from .column_policy import ColumnPolicy, ColumnPolicyError
from .validation import EntityValidator, ValidationResult, parse_date, sanitize
